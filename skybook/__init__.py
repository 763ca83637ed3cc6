"""SkyBook flight search and booking storefront."""
from typing import TYPE_CHECKING, Any
from .bookings import (
    booking_summary,
    cancel_booking,
    create_booking,
    delete_booking,
    list_all_bookings,
    list_bookings_for_user,
    update_booking_status,
)
from .cli import main as cli_main
from .database import create_session_factory, init_db, session_scope
from .dataset import generate_sample_data
from .errors import (
    BookingNotFoundError,
    FlightNotFoundError,
    InsufficientSeatsError,
    NotAuthenticatedError,
    SkyBookError,
    TransientError,
    ValidationError,
)
from .flights import (
    create_flight,
    delete_flight,
    get_flight,
    list_flights,
    release_seats,
    reserve_seats,
    search_flights,
    update_flight,
)
from .seat_classes import SEAT_CLASSES, SeatClass, class_price
from .stats import FlightStats, flight_stats
from .workflow import BookingWorkflow, SearchRequest, WorkflowState

if TYPE_CHECKING:  # pragma: no cover - import for type hints only
    from .web import create_app as _create_app


def create_app(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    from .web import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "BookingNotFoundError",
    "BookingWorkflow",
    "FlightNotFoundError",
    "FlightStats",
    "InsufficientSeatsError",
    "NotAuthenticatedError",
    "SEAT_CLASSES",
    "SearchRequest",
    "SeatClass",
    "SkyBookError",
    "TransientError",
    "ValidationError",
    "WorkflowState",
    "booking_summary",
    "cancel_booking",
    "class_price",
    "cli_main",
    "create_app",
    "create_booking",
    "create_flight",
    "create_session_factory",
    "delete_booking",
    "delete_flight",
    "flight_stats",
    "generate_sample_data",
    "get_flight",
    "init_db",
    "list_all_bookings",
    "list_bookings_for_user",
    "list_flights",
    "release_seats",
    "reserve_seats",
    "search_flights",
    "session_scope",
    "update_booking_status",
    "update_flight",
]
