"""Pydantic models for the JSON API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .seat_classes import DEFAULT_SEAT_CLASS

BookingStatus = Literal["confirmed", "pending", "cancelled"]


class SeatAllocationIn(BaseModel):
    seat_class: str = DEFAULT_SEAT_CLASS
    total_seats: int = Field(ge=0)
    available_seats: Optional[int] = Field(default=None, ge=0)
    price: Optional[float] = Field(default=None, ge=0)


class SeatAllocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seat_class: str
    total_seats: int
    available_seats: int
    price: float


class FlightIn(BaseModel):
    flight_number: str
    airline: str
    from_city: str
    to_city: str
    price: float = Field(ge=0)
    total_seats: Optional[int] = Field(default=None, ge=0)
    available_seats: Optional[int] = Field(default=None, ge=0)
    duration: str = ""
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    seat_allocations: Optional[List[SeatAllocationIn]] = None


class FlightUpdate(BaseModel):
    flight_number: Optional[str] = None
    airline: Optional[str] = None
    from_city: Optional[str] = None
    to_city: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    total_seats: Optional[int] = Field(default=None, ge=0)
    available_seats: Optional[int] = Field(default=None, ge=0)
    duration: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    seat_allocations: Optional[List[SeatAllocationIn]] = None


class FlightOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    flight_number: str
    airline: str
    from_city: str
    to_city: str
    departure_time: Optional[datetime]
    arrival_time: Optional[datetime]
    price: float
    duration: str
    total_seats: int
    available_seats: int
    seat_allocations: List[SeatAllocationOut]


class SeatsToBook(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    seats_to_book: int = Field(alias="seatsToBook", ge=1)
    seat_class: str = Field(default=DEFAULT_SEAT_CLASS, alias="seatClass")


class BookingIn(BaseModel):
    flight_id: str
    passenger_name: str
    email: str
    passengers: int = Field(default=1, ge=1)
    seat_class: str = DEFAULT_SEAT_CLASS
    seat_number: Optional[str] = None


class BookingOut(BaseModel):
    id: str
    flight_id: str
    flight_number: str
    airline: str
    from_city: str
    to_city: str
    price: float
    duration: str
    departure_time: Optional[datetime]
    passenger_name: str
    email: str
    booking_date: datetime
    status: BookingStatus
    seat_class: str
    seat_number: Optional[str]
    passengers: int
    total_price: float


class StatusChange(BaseModel):
    status: BookingStatus


class SeatClassOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    features: List[str]
    price_multiplier: float
    icon: str


class FlightStatsOut(BaseModel):
    total_flights: int
    total_seats: int
    available_seats: int
    booked_seats: int
    total_revenue: float
    occupancy_rate: float
    average_price: float
