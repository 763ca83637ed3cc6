"""Search and booking flow behind the storefront pages.

A :class:`BookingWorkflow` walks one shopper through

    idle -> searching -> results_shown -> booking_in_progress -> confirmed

with ``error`` reachable from ``searching`` and ``booking_in_progress``.
Requests are typed objects handed to each step explicitly, so a selected
flight travels with the call rather than through ambient page storage.
Retries are never automatic; :meth:`BookingWorkflow.retry` re-submits the
failed step on the shopper's behalf.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import config
from .bookings import create_booking
from .database import session_scope
from .errors import FlightNotFoundError, SkyBookError, ValidationError
from .flights import get_flight, search_flights
from .models import Flight
from .seat_classes import DEFAULT_SEAT_CLASS, get_seat_class

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    RESULTS_SHOWN = "results_shown"
    BOOKING_IN_PROGRESS = "booking_in_progress"
    CONFIRMED = "confirmed"
    ERROR = "error"


_TRANSITIONS: Dict[WorkflowState, FrozenSet[WorkflowState]] = {
    WorkflowState.IDLE: frozenset({WorkflowState.SEARCHING}),
    WorkflowState.SEARCHING: frozenset({WorkflowState.RESULTS_SHOWN, WorkflowState.ERROR}),
    WorkflowState.RESULTS_SHOWN: frozenset(
        {WorkflowState.SEARCHING, WorkflowState.BOOKING_IN_PROGRESS}
    ),
    WorkflowState.BOOKING_IN_PROGRESS: frozenset({WorkflowState.CONFIRMED, WorkflowState.ERROR}),
    WorkflowState.CONFIRMED: frozenset({WorkflowState.SEARCHING}),
    WorkflowState.ERROR: frozenset({WorkflowState.SEARCHING, WorkflowState.BOOKING_IN_PROGRESS}),
}


class WorkflowStateError(SkyBookError):
    """Raised when a step is attempted from a state that does not allow it."""


def _parse_passengers(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError("passengers must be a whole number") from exc


def _check_passenger_count(passengers: int) -> None:
    if not 1 <= passengers <= config.MAX_PASSENGERS:
        raise ValidationError(f"passengers must be between 1 and {config.MAX_PASSENGERS}")


@dataclass
class SearchRequest:
    from_city: str
    to_city: str
    departure_date: Optional[date]
    passengers: int = 1

    @classmethod
    def from_form(
        cls,
        from_city: Optional[str],
        to_city: Optional[str],
        departure_date: Optional[str],
        passengers: object = 1,
    ) -> "SearchRequest":
        parsed_date: Optional[date] = None
        if departure_date:
            try:
                parsed_date = date.fromisoformat(departure_date.strip())
            except ValueError as exc:
                raise ValidationError("departure date must look like YYYY-MM-DD") from exc
        return cls(
            from_city=(from_city or "").strip(),
            to_city=(to_city or "").strip(),
            departure_date=parsed_date,
            passengers=_parse_passengers(passengers),
        )

    def validate(self) -> None:
        missing = [
            label
            for label, value in (
                ("origin city", self.from_city),
                ("destination city", self.to_city),
                ("departure date", self.departure_date),
            )
            if not value
        ]
        if missing:
            raise ValidationError(f"please fill in the {', '.join(missing)}")
        _check_passenger_count(self.passengers)


@dataclass
class BookingRequest:
    flight_id: str
    passenger_name: str
    email: str
    seat_class: str = DEFAULT_SEAT_CLASS
    passengers: int = 1

    def validate(self) -> None:
        missing = [
            label
            for label, value in (("passenger name", self.passenger_name), ("email", self.email))
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(f"please fill in the {', '.join(missing)}")
        if "@" not in self.email:
            raise ValidationError("a valid email address is required")
        if get_seat_class(self.seat_class) is None:
            raise ValidationError(f"unknown seat class '{self.seat_class}'")
        _check_passenger_count(self.passengers)


@dataclass
class FlightSelection:
    flight: Flight
    seat_class: str
    passengers: int
    unit_price: float

    @property
    def total_price(self) -> float:
        return self.unit_price * self.passengers


@dataclass
class BookingConfirmation:
    booking_id: str
    flight_number: str
    airline: str
    from_city: str
    to_city: str
    departure_time: Optional[datetime]
    passenger_name: str
    email: str
    seat_class: str
    passengers: int
    unit_price: float
    total_price: float

    @property
    def route(self) -> str:
        return f"{self.from_city} → {self.to_city}"


@dataclass
class BookingWorkflow:
    session_factory: sessionmaker[Session]
    state: WorkflowState = WorkflowState.IDLE
    search_request: Optional[SearchRequest] = None
    results: List[Flight] = field(default_factory=list)
    selection: Optional[FlightSelection] = None
    confirmation: Optional[BookingConfirmation] = None
    error: Optional[Exception] = None
    _last_step: Optional[Tuple[Callable[..., object], tuple]] = field(default=None, repr=False)

    @property
    def retryable(self) -> bool:
        return self.state is WorkflowState.ERROR and getattr(self.error, "retryable", False)

    def _transition(self, target: WorkflowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise WorkflowStateError(f"cannot move from {self.state.value} to {target.value}")
        logger.debug("Workflow %s -> %s", self.state.value, target.value)
        self.state = target

    def _fail(self, exc: Exception) -> None:
        self.error = exc
        self._transition(WorkflowState.ERROR)
        logger.warning("Workflow step failed: %s", exc)

    def search(self, request: SearchRequest) -> List[Flight]:
        """Run a search; invalid requests are rejected without changing state."""

        request.validate()
        self._transition(WorkflowState.SEARCHING)
        self._last_step = (self.search, (request,))
        self.search_request = request
        self.selection = None
        self.error = None
        try:
            with session_scope(self.session_factory) as session:
                flights = search_flights(
                    session,
                    from_city=request.from_city,
                    to_city=request.to_city,
                    departure_date=request.departure_date,
                    min_seats=request.passengers,
                )
        except (SkyBookError, SQLAlchemyError) as exc:
            self._fail(exc)
            raise
        self.results = flights
        self._transition(WorkflowState.RESULTS_SHOWN)
        return flights

    def open_flight(self, flight_id: str) -> Flight:
        """Show a single flight picked from a listing as the result set."""

        self._transition(WorkflowState.SEARCHING)
        self._last_step = (self.open_flight, (flight_id,))
        self.selection = None
        self.error = None
        try:
            with session_scope(self.session_factory) as session:
                flight = get_flight(session, flight_id)
            if flight is None:
                raise FlightNotFoundError(flight_id)
        except (SkyBookError, SQLAlchemyError) as exc:
            self._fail(exc)
            raise
        self.results = [flight]
        self._transition(WorkflowState.RESULTS_SHOWN)
        return flight

    def select_flight(
        self,
        flight_id: str,
        seat_class: str = DEFAULT_SEAT_CLASS,
        passengers: Optional[int] = None,
    ) -> FlightSelection:
        if self.state is not WorkflowState.RESULTS_SHOWN:
            raise WorkflowStateError("a flight can only be selected from search results")
        flight = next((candidate for candidate in self.results if candidate.id == flight_id), None)
        if flight is None:
            raise ValidationError("please choose one of the listed flights")
        allocation = flight.allocation_for(seat_class)
        if allocation is None:
            raise ValidationError(f"{seat_class} seats are not offered on {flight.flight_number}")
        if passengers is None:
            passengers = self.search_request.passengers if self.search_request else 1
        _check_passenger_count(passengers)
        self.selection = FlightSelection(
            flight=flight,
            seat_class=seat_class,
            passengers=passengers,
            unit_price=allocation.price,
        )
        return self.selection

    def submit_booking(self, passenger_name: str, email: str) -> BookingConfirmation:
        if self.selection is None:
            raise WorkflowStateError("select a flight before booking")
        selection = self.selection
        request = BookingRequest(
            flight_id=selection.flight.id,
            passenger_name=passenger_name,
            email=email,
            seat_class=selection.seat_class,
            passengers=selection.passengers,
        )
        request.validate()
        self._transition(WorkflowState.BOOKING_IN_PROGRESS)
        self._last_step = (self.submit_booking, (passenger_name, email))
        self.error = None
        try:
            with session_scope(self.session_factory) as session:
                booking = create_booking(
                    session,
                    flight_id=request.flight_id,
                    passenger_name=request.passenger_name,
                    email=request.email,
                    passengers=request.passengers,
                    seat_class=request.seat_class,
                )
                flight = booking.flight
                confirmation = BookingConfirmation(
                    booking_id=booking.id,
                    flight_number=flight.flight_number,
                    airline=flight.airline,
                    from_city=flight.from_city,
                    to_city=flight.to_city,
                    departure_time=flight.departure_time,
                    passenger_name=booking.passenger_name,
                    email=booking.email,
                    seat_class=booking.seat_class,
                    passengers=booking.passengers,
                    unit_price=booking.total_price / booking.passengers,
                    total_price=booking.total_price,
                )
        except (SkyBookError, SQLAlchemyError) as exc:
            self._fail(exc)
            raise
        self.confirmation = confirmation
        self._transition(WorkflowState.CONFIRMED)
        return confirmation

    def book(self, request: BookingRequest) -> BookingConfirmation:
        """Select and book in one call, the entry point used by the web pages."""

        request.validate()
        self.select_flight(request.flight_id, request.seat_class, request.passengers)
        return self.submit_booking(request.passenger_name, request.email)

    def retry(self) -> object:
        """Re-submit the step that moved the workflow into ``error``."""

        if self.state is not WorkflowState.ERROR or self._last_step is None:
            raise WorkflowStateError("there is nothing to retry")
        step, args = self._last_step
        return step(*args)
