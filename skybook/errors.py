"""Exception hierarchy shared by the repositories, workflow and web layer."""
from __future__ import annotations


class SkyBookError(RuntimeError):
    """Base class for errors raised by SkyBook."""

    retryable = False


class ValidationError(SkyBookError, ValueError):
    """Raised when user supplied data is missing or malformed."""


class NotFoundError(SkyBookError):
    """Raised when a write targets a record that does not exist."""


class FlightNotFoundError(NotFoundError):
    def __init__(self, flight_id: str):
        super().__init__(f"flight {flight_id} not found")
        self.flight_id = flight_id


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: str):
        super().__init__(f"booking {booking_id} not found")
        self.booking_id = booking_id


class InsufficientSeatsError(SkyBookError):
    """Raised when a flight cannot cover the requested number of seats."""

    def __init__(self, flight_id: str, requested: int, seat_class: str):
        super().__init__(
            f"insufficient seats: {requested} {seat_class} seat(s) requested on flight {flight_id}"
        )
        self.flight_id = flight_id
        self.requested = requested
        self.seat_class = seat_class


class NotAuthenticatedError(SkyBookError):
    """Raised when a user scoped operation has no identity to work with."""


class TransientError(SkyBookError):
    """Raised when the database could not be reached; safe to retry."""

    retryable = True
