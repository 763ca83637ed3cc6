"""Flight repository: CRUD, search and seat inventory for flights."""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from sqlalchemy import Select, and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import FlightNotFoundError, InsufficientSeatsError, ValidationError
from .models import Flight, SeatAllocation
from .seat_classes import DEFAULT_SEAT_CLASS, class_price, get_seat_class

logger = logging.getLogger(__name__)

FlightOrder = Literal["created", "departure"]
SortKey = Literal["price", "duration", "airline", "departure"]

UPDATABLE_FIELDS = frozenset(
    {
        "flight_number",
        "airline",
        "from_city",
        "to_city",
        "departure_time",
        "arrival_time",
        "price",
        "duration",
    }
)
_SEAT_FIELDS = frozenset({"total_seats", "available_seats", "seat_allocations"})

_DURATION_PATTERN = re.compile(r"(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?", re.IGNORECASE)


def duration_minutes(duration: str) -> int:
    """Parse durations such as ``"5h 30m"``; unparseable text sorts last."""

    match = _DURATION_PATTERN.fullmatch(duration.strip())
    if not match or not any(match.groups()):
        return 10**6
    hours, minutes = match.groups()
    return int(hours or 0) * 60 + int(minutes or 0)


def _require_text(name: str, value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


def _check_schedule(departure: Optional[datetime], arrival: Optional[datetime]) -> None:
    if departure and arrival and arrival <= departure:
        raise ValidationError("arrival time must be after departure time")


def _check_price(price: Any) -> float:
    try:
        value = float(price)
    except (TypeError, ValueError) as exc:
        raise ValidationError("price must be a number") from exc
    if value < 0:
        raise ValidationError("price must not be negative")
    return value


def _build_allocation(entry: Mapping[str, Any], base_price: float) -> SeatAllocation:
    seat_class_id = entry.get("seat_class") or DEFAULT_SEAT_CLASS
    seat_class = get_seat_class(seat_class_id)
    if seat_class is None:
        raise ValidationError(f"unknown seat class '{seat_class_id}'")
    total = int(entry.get("total_seats", 0))
    available = entry.get("available_seats")
    available = total if available is None else int(available)
    if total < 0 or not 0 <= available <= total:
        raise ValidationError(
            f"{seat_class_id}: available seats must be between 0 and the class total"
        )
    price = entry.get("price")
    if price is None:
        price = class_price(base_price, seat_class.price_multiplier)
    return SeatAllocation(
        seat_class=seat_class_id,
        total_seats=total,
        available_seats=available,
        price=_check_price(price),
    )


def _build_allocations(
    base_price: float,
    total_seats: Optional[int],
    available_seats: Optional[int],
    seat_allocations: Optional[Iterable[Mapping[str, Any]]],
) -> List[SeatAllocation]:
    if seat_allocations is not None:
        allocations = [_build_allocation(entry, base_price) for entry in seat_allocations]
        if not allocations:
            raise ValidationError("at least one seat allocation is required")
        classes = [allocation.seat_class for allocation in allocations]
        if len(set(classes)) != len(classes):
            raise ValidationError("each seat class may only be allocated once")
        if total_seats is not None and total_seats != sum(a.total_seats for a in allocations):
            raise ValidationError("total seats must equal the sum of the class allocations")
        return allocations
    if total_seats is None:
        raise ValidationError("total seats or seat allocations are required")
    entry = {
        "seat_class": DEFAULT_SEAT_CLASS,
        "total_seats": total_seats,
        "available_seats": available_seats,
    }
    return [_build_allocation(entry, base_price)]


def _flush(session: Session) -> None:
    try:
        session.flush()
    except IntegrityError as exc:
        raise ValidationError("a flight with this number already departs at that time") from exc


def list_flights(session: Session, *, order_by: FlightOrder = "created") -> List[Flight]:
    stmt = select(Flight)
    if order_by == "departure":
        stmt = stmt.order_by(Flight.departure_time.asc(), Flight.flight_number)
    else:
        stmt = stmt.order_by(Flight.created_at.desc(), Flight.flight_number)
    return list(session.scalars(stmt))


def search_flights(
    session: Session,
    *,
    from_city: Optional[str] = None,
    to_city: Optional[str] = None,
    departure_date: Optional[date] = None,
    min_seats: Optional[int] = None,
) -> List[Flight]:
    """Return flights matching every given filter, cheapest first.

    City filters are case-insensitive substring matches. ``departure_date``
    keeps flights departing on that calendar day; flights without a
    scheduled departure match any day.
    """

    stmt: Select[tuple[Flight]] = select(Flight)
    if from_city and from_city.strip():
        stmt = stmt.where(Flight.from_city.icontains(from_city.strip(), autoescape=True))
    if to_city and to_city.strip():
        stmt = stmt.where(Flight.to_city.icontains(to_city.strip(), autoescape=True))
    if departure_date:
        day = departure_date.date() if isinstance(departure_date, datetime) else departure_date
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
        stmt = stmt.where(
            or_(
                Flight.departure_time.is_(None),
                and_(Flight.departure_time >= start, Flight.departure_time < end),
            )
        )
    if min_seats:
        stmt = stmt.where(Flight.available_seats >= min_seats)
    stmt = stmt.order_by(Flight.price.asc(), Flight.departure_time.asc(), Flight.flight_number)
    return list(session.scalars(stmt))


def sort_flights(flights: Sequence[Flight], sort_by: SortKey = "price") -> List[Flight]:
    if sort_by == "duration":
        return sorted(flights, key=lambda flight: duration_minutes(flight.duration))
    if sort_by == "airline":
        return sorted(flights, key=lambda flight: flight.airline.lower())
    if sort_by == "departure":
        return sorted(flights, key=lambda flight: flight.from_city.lower())
    return sorted(flights, key=lambda flight: flight.price)


def get_flight(session: Session, flight_id: str) -> Optional[Flight]:
    return session.get(Flight, flight_id)


def _require_flight(session: Session, flight_id: str) -> Flight:
    flight = session.get(Flight, flight_id)
    if flight is None:
        raise FlightNotFoundError(flight_id)
    return flight


def create_flight(
    session: Session,
    *,
    flight_number: str,
    airline: str,
    from_city: str,
    to_city: str,
    price: float,
    total_seats: Optional[int] = None,
    available_seats: Optional[int] = None,
    duration: str = "",
    departure_time: Optional[datetime] = None,
    arrival_time: Optional[datetime] = None,
    seat_allocations: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Flight:
    """Create a flight entry together with its seat inventory."""

    base_price = _check_price(price)
    _check_schedule(departure_time, arrival_time)
    flight = Flight(
        flight_number=_require_text("flight number", flight_number).upper(),
        airline=_require_text("airline", airline),
        from_city=_require_text("origin city", from_city),
        to_city=_require_text("destination city", to_city),
        departure_time=departure_time,
        arrival_time=arrival_time,
        price=base_price,
        duration=(duration or "").strip(),
    )
    flight.seat_allocations = _build_allocations(
        base_price, total_seats, available_seats, seat_allocations
    )
    session.add(flight)
    _flush(session)
    session.refresh(flight)
    logger.info("Created flight %s (%s)", flight.flight_number, flight.id)
    return flight


def _booked_seats(allocation: SeatAllocation) -> int:
    return allocation.total_seats - allocation.available_seats


def _resize(allocation: SeatAllocation, total: int, available: Optional[Any] = None) -> None:
    """Change a class total while keeping its booked seats held."""

    booked = _booked_seats(allocation)
    if total < 0 or total < booked:
        raise ValidationError(
            f"{allocation.seat_class}: {booked} seat(s) are booked; total cannot drop below that"
        )
    if available is not None and int(available) != total - booked:
        raise ValidationError(
            f"{allocation.seat_class}: available seats must equal the total minus the {booked} booked"
        )
    allocation.total_seats = total
    allocation.available_seats = total - booked


def _apply_seat_changes(flight: Flight, changes: Mapping[str, Any]) -> None:
    if "seat_allocations" in changes:
        entries = list(changes["seat_allocations"])
        requested = {(entry.get("seat_class") or DEFAULT_SEAT_CLASS): entry for entry in entries}
        replacements = _build_allocations(flight.price, None, None, entries)
        incoming = {allocation.seat_class: allocation for allocation in replacements}
        for current in list(flight.seat_allocations):
            replacement = incoming.pop(current.seat_class, None)
            if replacement is None:
                if _booked_seats(current) > 0:
                    raise ValidationError(
                        f"cannot remove {current.seat_class} seats while bookings hold them"
                    )
                flight.seat_allocations.remove(current)
                continue
            _resize(
                current,
                replacement.total_seats,
                requested[current.seat_class].get("available_seats"),
            )
            current.price = replacement.price
        flight.seat_allocations.extend(incoming.values())
        return

    if len(flight.seat_allocations) != 1:
        raise ValidationError("flight has per-class seats; update seat_allocations instead")
    allocation = flight.seat_allocations[0]
    _resize(
        allocation,
        int(changes.get("total_seats", allocation.total_seats)),
        changes.get("available_seats"),
    )


def update_flight(session: Session, flight_id: str, changes: Mapping[str, Any]) -> Flight:
    """Merge ``changes`` into the stored flight and return it."""

    unknown = set(changes) - UPDATABLE_FIELDS - _SEAT_FIELDS
    if unknown:
        raise ValidationError(f"unknown flight fields: {', '.join(sorted(unknown))}")
    flight = _require_flight(session, flight_id)

    values: Dict[str, Any] = {key: changes[key] for key in UPDATABLE_FIELDS if key in changes}
    for key in ("flight_number", "airline", "from_city", "to_city"):
        if key in values:
            values[key] = _require_text(key.replace("_", " "), values[key])
    if "flight_number" in values:
        values["flight_number"] = values["flight_number"].upper()
    if "price" in values:
        new_price = _check_price(values["price"])
        for allocation in flight.seat_allocations:
            seat_class = get_seat_class(allocation.seat_class)
            # Only reprice classes still following the catalog multiplier.
            if seat_class and allocation.price == class_price(flight.price, seat_class.price_multiplier):
                allocation.price = class_price(new_price, seat_class.price_multiplier)
        values["price"] = new_price
    _check_schedule(
        values.get("departure_time", flight.departure_time),
        values.get("arrival_time", flight.arrival_time),
    )
    for key, value in values.items():
        setattr(flight, key, value)
    if _SEAT_FIELDS & set(changes):
        _apply_seat_changes(flight, changes)

    _flush(session)
    session.refresh(flight)
    logger.info("Updated flight %s fields=%s", flight_id, sorted(changes))
    return flight


def delete_flight(session: Session, flight_id: str) -> None:
    flight = _require_flight(session, flight_id)
    session.delete(flight)
    session.flush()
    logger.info("Deleted flight %s", flight_id)


def _expire_inventory(session: Session, flight_id: str) -> None:
    flight = session.get(Flight, flight_id)
    if flight is None:
        return
    for allocation in flight.seat_allocations:
        session.expire(allocation)
    session.expire(flight, ["total_seats", "available_seats"])


def _missing_inventory(session: Session, flight_id: str, seat_class: str) -> None:
    flight = session.get(Flight, flight_id)
    if flight is None:
        raise FlightNotFoundError(flight_id)
    if flight.allocation_for(seat_class) is None:
        raise ValidationError(f"flight {flight.flight_number} has no {seat_class} seats")


def reserve_seats(
    session: Session,
    flight_id: str,
    seats: int,
    seat_class: str = DEFAULT_SEAT_CLASS,
) -> None:
    """Atomically take ``seats`` seats of ``seat_class`` off a flight.

    The availability check and the decrement are one conditional UPDATE, so
    concurrent bookings cannot oversell the last seats.
    """

    if seats < 1:
        raise ValidationError("at least one seat must be booked")
    result = session.execute(
        update(SeatAllocation)
        .where(
            SeatAllocation.flight_id == flight_id,
            SeatAllocation.seat_class == seat_class,
            SeatAllocation.available_seats >= seats,
        )
        .values(available_seats=SeatAllocation.available_seats - seats)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _missing_inventory(session, flight_id, seat_class)
        logger.info("Rejected %d %s seat(s) on flight %s: sold out", seats, seat_class, flight_id)
        raise InsufficientSeatsError(flight_id, seats, seat_class)
    _expire_inventory(session, flight_id)
    logger.debug("Reserved %d %s seat(s) on flight %s", seats, seat_class, flight_id)


decrement_availability = reserve_seats


def release_seats(
    session: Session,
    flight_id: str,
    seats: int,
    seat_class: str = DEFAULT_SEAT_CLASS,
) -> None:
    """Atomically return seats to a flight, never beyond the class total."""

    if seats < 1:
        raise ValidationError("at least one seat must be released")
    result = session.execute(
        update(SeatAllocation)
        .where(
            SeatAllocation.flight_id == flight_id,
            SeatAllocation.seat_class == seat_class,
            SeatAllocation.available_seats + seats <= SeatAllocation.total_seats,
        )
        .values(available_seats=SeatAllocation.available_seats + seats)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _missing_inventory(session, flight_id, seat_class)
        raise ValidationError(
            f"cannot release {seats} {seat_class} seat(s) on flight {flight_id}: class is not booked"
        )
    _expire_inventory(session, flight_id)
    logger.debug("Released %d %s seat(s) on flight %s", seats, seat_class, flight_id)
