"""Utilities to populate the database with sample data for tests and demos."""
from __future__ import annotations

import logging
import random
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from . import config
from .auth import create_admin_user, get_admin_user
from .bookings import create_booking
from .errors import SkyBookError
from .flights import create_flight, duration_minutes
from .models import Flight
from .seat_classes import SEAT_CLASS_IDS

logger = logging.getLogger(__name__)

# flight number, airline, from, to, base price, total seats, duration
SAMPLE_FLIGHTS: Sequence[Tuple[str, str, str, str, float, int, str]] = (
    ("AA101", "American Airlines", "New York", "Los Angeles", 299, 180, "5h 30m"),
    ("UA202", "United Airlines", "New York", "Los Angeles", 349, 160, "5h 45m"),
    ("DL303", "Delta Airlines", "New York", "Los Angeles", 279, 200, "5h 40m"),
    ("SW404", "Southwest Airlines", "Chicago", "Miami", 199, 150, "3h 45m"),
    ("JB505", "JetBlue Airways", "Boston", "San Francisco", 389, 140, "6h 35m"),
    ("AS106", "Alaska Airlines", "Seattle", "Portland", 129, 120, "1h 15m"),
    ("F9207", "Frontier Airlines", "Denver", "Las Vegas", 159, 180, "2h 10m"),
    ("B6308", "JetBlue Airways", "Miami", "New York", 249, 162, "3h 20m"),
    ("WN409", "Southwest Airlines", "Los Angeles", "Phoenix", 89, 143, "1h 25m"),
    ("NK510", "Spirit Airlines", "Orlando", "Atlanta", 79, 182, "1h 40m"),
    ("LH441", "Lufthansa", "New York", "Frankfurt", 850, 250, "7h 45m"),
    ("BA189", "British Airways", "Los Angeles", "London", 920, 275, "10h 30m"),
    ("QF12", "Qantas", "Los Angeles", "Sydney", 1200, 280, "15h 20m"),
)

# Share of the cabin given to each class, in catalog order.
CABIN_SPLIT: Sequence[float] = (0.7, 0.15, 0.1, 0.05)

FIRST_NAMES = ("Ava", "Noah", "Liam", "Mia", "Lucas", "Emma", "Ethan", "Isabella")
LAST_NAMES = ("Johnson", "Williams", "Smith", "Brown", "Garcia", "Lee")


def split_cabin(total_seats: int, split: Sequence[float] = CABIN_SPLIT) -> List[Dict[str, object]]:
    """Divide ``total_seats`` across the catalog classes; economy takes the remainder."""

    allocations: List[Dict[str, object]] = []
    assigned = 0
    for seat_class, share in list(zip(SEAT_CLASS_IDS, split))[1:]:
        seats = int(total_seats * share)
        if seats:
            allocations.append({"seat_class": seat_class, "total_seats": seats})
            assigned += seats
    allocations.insert(0, {"seat_class": SEAT_CLASS_IDS[0], "total_seats": total_seats - assigned})
    return allocations


def _departure(day: date) -> datetime:
    return datetime.combine(day, time(hour=random.randint(5, 22), minute=random.choice((0, 15, 30, 45))))


def ensure_admin(session: Session, username: str, password: str) -> bool:
    """Create the administrator account when it does not exist yet."""

    if not password or get_admin_user(session, username) is not None:
        return False
    create_admin_user(session, username=username, password=password)
    return True


def generate_sample_data(
    session_factory: sessionmaker[Session],
    *,
    start_date: Optional[date] = None,
    days: int = 7,
    bookings: int = 50,
    admin_username: Optional[str] = None,
    admin_password: Optional[str] = None,
) -> Dict[str, int]:
    """Populate the database with deterministic pseudo-random data.

    Every sample route is scheduled once per day for ``days`` days starting at
    ``start_date`` (tomorrow by default). Seeding is skipped when flights
    already exist.
    """

    random.seed(42)
    start_date = start_date or (datetime.utcnow().date() + timedelta(days=1))
    created_admin = False
    with session_factory() as session:
        created_admin = ensure_admin(
            session,
            admin_username or config.ADMIN_USERNAME,
            admin_password if admin_password is not None else config.ADMIN_PASSWORD,
        )
        if session.scalar(select(Flight.id).limit(1)) is not None:
            session.commit()
            logger.info("Database already contains flights; skipping seed")
            return {"flights": 0, "bookings": 0, "admins": int(created_admin)}
        flight_count = 0
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            for number, airline, origin, destination, price, seats, duration in SAMPLE_FLIGHTS:
                departure = _departure(day)
                create_flight(
                    session,
                    flight_number=number,
                    airline=airline,
                    from_city=origin,
                    to_city=destination,
                    price=price,
                    duration=duration,
                    departure_time=departure,
                    arrival_time=departure + timedelta(minutes=duration_minutes(duration)),
                    seat_allocations=split_cabin(seats),
                )
                flight_count += 1
        session.commit()

    successful = 0
    with session_factory() as session:
        flight_ids = list(session.scalars(select(Flight.id)))
        for index in range(bookings):
            first, last = random.choice(FIRST_NAMES), random.choice(LAST_NAMES)
            try:
                create_booking(
                    session,
                    flight_id=random.choice(flight_ids),
                    passenger_name=f"{first} {last}",
                    email=f"{first.lower()}.{last.lower()}{index}@example.com",
                    passengers=random.randint(1, 3),
                    seat_class=random.choice(SEAT_CLASS_IDS),
                )
                session.commit()
                successful += 1
            except SkyBookError as exc:
                session.rollback()
                logger.debug("Skipped sample booking: %s", exc)
    logger.info("Seeded %d flights and %d bookings", flight_count, successful)
    return {"flights": flight_count, "bookings": successful, "admins": int(created_admin)}
