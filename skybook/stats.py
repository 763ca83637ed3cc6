"""Admin dashboard figures and tabular exports."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List

import pandas as pd
from sqlalchemy.orm import Session

from .bookings import booking_summary, list_all_bookings
from .flights import list_flights
from .models import Booking, Flight


@dataclass
class FlightStats:
    """Summary of seat usage and revenue across the flight collection."""

    total_flights: int
    total_seats: int
    available_seats: int
    booked_seats: int
    total_revenue: float
    occupancy_rate: float
    average_price: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def compute_flight_stats(flights: Iterable[Flight]) -> FlightStats:
    flights = list(flights)
    total_seats = sum(flight.total_seats for flight in flights)
    available_seats = sum(flight.available_seats for flight in flights)
    booked_seats = total_seats - available_seats
    revenue = sum((flight.total_seats - flight.available_seats) * flight.price for flight in flights)
    return FlightStats(
        total_flights=len(flights),
        total_seats=total_seats,
        available_seats=available_seats,
        booked_seats=booked_seats,
        total_revenue=float(revenue),
        occupancy_rate=(booked_seats / total_seats * 100) if total_seats > 0 else 0.0,
        average_price=(sum(flight.price for flight in flights) / len(flights)) if flights else 0.0,
    )


def flight_stats(session: Session) -> FlightStats:
    return compute_flight_stats(list_flights(session))


def flights_dataframe(flights: Iterable[Flight]) -> pd.DataFrame:
    data: List[Dict[str, object]] = []
    for flight in flights:
        data.append(
            {
                "Flight": flight.flight_number,
                "Airline": flight.airline,
                "From": flight.from_city,
                "To": flight.to_city,
                "Departure": flight.departure_time,
                "Arrival": flight.arrival_time,
                "Duration": flight.duration,
                "Price": flight.price,
                "Total Seats": flight.total_seats,
                "Available Seats": flight.available_seats,
                "Booked Seats": flight.total_seats - flight.available_seats,
            }
        )
    return pd.DataFrame(
        data,
        columns=[
            "Flight",
            "Airline",
            "From",
            "To",
            "Departure",
            "Arrival",
            "Duration",
            "Price",
            "Total Seats",
            "Available Seats",
            "Booked Seats",
        ],
    )


_BOOKING_COLUMNS = {
    "id": "Booking",
    "flight_number": "Flight",
    "route": "Route",
    "passenger_name": "Passenger",
    "email": "Email",
    "booking_date": "Booked At",
    "status": "Status",
    "seat_class": "Seat Class",
    "seat_number": "Seat",
    "passengers": "Passengers",
    "total_price": "Total Price",
}


def bookings_dataframe(bookings: Iterable[Booking]) -> pd.DataFrame:
    rows = [booking_summary(booking) for booking in bookings]
    frame = pd.DataFrame(rows, columns=list(_BOOKING_COLUMNS))
    return frame.rename(columns=_BOOKING_COLUMNS)


def export_dataframe(session: Session, dataset: str) -> pd.DataFrame:
    if dataset == "flights":
        return flights_dataframe(list_flights(session, order_by="departure"))
    if dataset == "bookings":
        return bookings_dataframe(list_all_bookings(session))
    raise KeyError(dataset)
