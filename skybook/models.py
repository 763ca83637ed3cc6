"""SQLAlchemy models for the flight storefront."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, column_property, mapped_column, relationship

BOOKING_STATUSES = ("confirmed", "pending", "cancelled")


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        UniqueConstraint("flight_number", "departure_time", name="uq_flight_departure"),
        CheckConstraint("price >= 0", name="ck_price_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    flight_number: Mapped[str] = mapped_column(String(10), nullable=False)
    airline: Mapped[str] = mapped_column(String(80), nullable=False)
    from_city: Mapped[str] = mapped_column(String(80), nullable=False)
    to_city: Mapped[str] = mapped_column(String(80), nullable=False)
    departure_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    arrival_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    duration: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    seat_allocations: Mapped[List["SeatAllocation"]] = relationship(
        back_populates="flight",
        cascade="all, delete-orphan",
        order_by="SeatAllocation.id",
        lazy="selectin",
    )
    bookings: Mapped[List["Booking"]] = relationship(back_populates="flight", cascade="all, delete-orphan")

    def allocation_for(self, seat_class: str) -> Optional["SeatAllocation"]:
        for allocation in self.seat_allocations:
            if allocation.seat_class == seat_class:
                return allocation
        return None


class SeatAllocation(Base):
    """Seat inventory of one class on one flight; the only stored seat counter."""

    __tablename__ = "seat_allocations"
    __table_args__ = (
        UniqueConstraint("flight_id", "seat_class", name="uq_flight_seat_class"),
        CheckConstraint("total_seats >= 0", name="ck_class_total_non_negative"),
        CheckConstraint("available_seats >= 0", name="ck_class_available_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="ck_class_available_within_total"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    flight_id: Mapped[str] = mapped_column(ForeignKey("flights.id", ondelete="CASCADE"), nullable=False)
    seat_class: Mapped[str] = mapped_column(String(20), nullable=False)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)

    flight: Mapped[Flight] = relationship(back_populates="seat_allocations")


# Flight level counters are sums over the allocations so they cannot drift.
Flight.total_seats = column_property(
    select(func.coalesce(func.sum(SeatAllocation.total_seats), 0))
    .where(SeatAllocation.flight_id == Flight.id)
    .correlate_except(SeatAllocation)
    .scalar_subquery()
)
Flight.available_seats = column_property(
    select(func.coalesce(func.sum(SeatAllocation.available_seats), 0))
    .where(SeatAllocation.flight_id == Flight.id)
    .correlate_except(SeatAllocation)
    .scalar_subquery()
)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("flight_id", "seat_number", name="uq_flight_seat"),
        CheckConstraint("passengers >= 1", name="ck_passengers_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    flight_id: Mapped[str] = mapped_column(ForeignKey("flights.id", ondelete="CASCADE"), nullable=False)
    passenger_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    booking_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="confirmed", nullable=False)
    seat_class: Mapped[str] = mapped_column(String(20), default="economy", nullable=False)
    seat_number: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    passengers: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_price: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    flight: Mapped[Flight] = relationship(back_populates="bookings")

    @property
    def holds_seats(self) -> bool:
        return self.status != "cancelled"


class AdminUser(Base):
    __tablename__ = "admin_users"
    __table_args__ = (UniqueConstraint("username", name="uq_admin_username"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
