"""Booking repository: create, list, re-status and delete bookings."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import config
from .errors import BookingNotFoundError, NotAuthenticatedError, ValidationError
from .flights import release_seats, reserve_seats
from .models import BOOKING_STATUSES, Booking, Flight
from .seat_classes import DEFAULT_SEAT_CLASS, get_seat_class

logger = logging.getLogger(__name__)


def _require_identity(email: Optional[str]) -> str:
    if email is None or not email.strip():
        raise NotAuthenticatedError("an email address is required to access bookings")
    return email.strip()


def _check_status(status: str) -> str:
    if status not in BOOKING_STATUSES:
        raise ValidationError(f"unknown booking status '{status}'")
    return status


def _check_passengers(passengers: int) -> int:
    if not 1 <= passengers <= config.MAX_PASSENGERS:
        raise ValidationError(f"passengers must be between 1 and {config.MAX_PASSENGERS}")
    return passengers


def create_booking(
    session: Session,
    *,
    flight_id: str,
    passenger_name: str,
    email: str,
    passengers: int = 1,
    seat_class: str = DEFAULT_SEAT_CLASS,
    seat_number: Optional[str] = None,
    status: str = "confirmed",
) -> Booking:
    """Reserve seats and record the booking in the caller's transaction.

    Nothing is persisted unless the caller commits; a failed reservation or
    insert leaves the flight inventory untouched once the session rolls back.
    """

    email = _require_identity(email)
    if not passenger_name or not passenger_name.strip():
        raise ValidationError("passenger name is required")
    if "@" not in email:
        raise ValidationError("a valid email address is required")
    _check_passengers(passengers)
    if _check_status(status) == "cancelled":
        raise ValidationError("a new booking cannot start cancelled")
    if get_seat_class(seat_class) is None:
        raise ValidationError(f"unknown seat class '{seat_class}'")

    reserve_seats(session, flight_id, passengers, seat_class)
    flight = session.get(Flight, flight_id)
    allocation = flight.allocation_for(seat_class)
    booking = Booking(
        flight=flight,
        passenger_name=passenger_name.strip(),
        email=email,
        passengers=passengers,
        seat_class=seat_class,
        seat_number=seat_number.strip().upper() if seat_number else None,
        status=status,
        total_price=allocation.price * passengers,
    )
    session.add(booking)
    try:
        session.flush()
    except IntegrityError as exc:
        raise ValidationError("seat already booked") from exc
    logger.info(
        "Booked %d %s seat(s) on %s for %s (booking %s)",
        passengers,
        seat_class,
        flight.flight_number,
        email,
        booking.id,
    )
    return booking


def _bookings_query():
    return select(Booking).options(joinedload(Booking.flight)).order_by(Booking.created_at.desc())


def list_bookings_for_user(session: Session, email: Optional[str]) -> List[Booking]:
    email = _require_identity(email)
    stmt = _bookings_query().where(func.lower(Booking.email) == email.lower())
    return list(session.scalars(stmt))


def list_all_bookings(session: Session) -> List[Booking]:
    return list(session.scalars(_bookings_query()))


def get_booking(session: Session, booking_id: str) -> Optional[Booking]:
    return session.get(Booking, booking_id, options=[joinedload(Booking.flight)])


def _require_booking(session: Session, booking_id: str) -> Booking:
    booking = get_booking(session, booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return booking


def update_booking_status(session: Session, booking_id: str, status: str) -> Booking:
    """Change a booking's status and keep the flight inventory in step.

    Cancelling returns the booking's seats and frees its seat number; reviving
    a cancelled booking takes the seats again and fails with
    ``InsufficientSeatsError`` if they are gone.
    """

    _check_status(status)
    booking = _require_booking(session, booking_id)
    if booking.status == status:
        return booking
    if status == "cancelled":
        release_seats(session, booking.flight_id, booking.passengers, booking.seat_class)
        booking.seat_number = None
    elif booking.status == "cancelled":
        reserve_seats(session, booking.flight_id, booking.passengers, booking.seat_class)
    previous = booking.status
    booking.status = status
    session.flush()
    logger.info("Booking %s moved from %s to %s", booking_id, previous, status)
    return booking


def cancel_booking(session: Session, booking_id: str) -> Booking:
    """Cancel a booking; cancelling twice is a no-op."""

    return update_booking_status(session, booking_id, "cancelled")


def delete_booking(session: Session, booking_id: str) -> None:
    booking = _require_booking(session, booking_id)
    if booking.holds_seats:
        release_seats(session, booking.flight_id, booking.passengers, booking.seat_class)
    session.delete(booking)
    session.flush()
    logger.info("Deleted booking %s", booking_id)


def booking_summary(booking: Booking) -> Dict[str, Any]:
    """Flatten a booking together with its flight's display fields."""

    flight = booking.flight
    return {
        "id": booking.id,
        "flight_id": booking.flight_id,
        "flight_number": flight.flight_number,
        "airline": flight.airline,
        "from_city": flight.from_city,
        "to_city": flight.to_city,
        "route": f"{flight.from_city} → {flight.to_city}",
        "price": flight.price,
        "duration": flight.duration,
        "departure_time": flight.departure_time,
        "passenger_name": booking.passenger_name,
        "email": booking.email,
        "booking_date": booking.booking_date,
        "status": booking.status,
        "seat_class": booking.seat_class,
        "seat_number": booking.seat_number,
        "passengers": booking.passengers,
        "total_price": booking.total_price,
    }
