"""JSON API for flights, bookings and dashboard figures."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from . import bookings as booking_repo
from . import flights as flight_repo
from .database import session_scope
from .errors import (
    InsufficientSeatsError,
    NotAuthenticatedError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from .schemas import (
    BookingIn,
    BookingOut,
    FlightIn,
    FlightOut,
    FlightStatsOut,
    FlightUpdate,
    SeatClassOut,
    SeatsToBook,
    StatusChange,
)
from .seat_classes import SEAT_CLASSES
from .stats import flight_stats

router = APIRouter(prefix="/api", tags=["api"])


@contextmanager
def _scope(request: Request) -> Iterator[Session]:
    """Open a transaction and translate domain errors into HTTP errors."""

    try:
        with session_scope(request.app.state.session_factory) as session:
            yield session
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InsufficientSeatsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def require_admin(request: Request) -> str:
    username = request.session.get("admin")
    if not username:
        raise HTTPException(status_code=401, detail="administrator login required")
    return username


@router.get("/flights", response_model=List[FlightOut])
def list_flights(request: Request) -> List[FlightOut]:
    with _scope(request) as session:
        return [FlightOut.model_validate(flight) for flight in flight_repo.list_flights(session)]


@router.get("/flights/search", response_model=List[FlightOut])
def search_flights(
    request: Request,
    from_city: Optional[str] = Query(None, alias="fromCity"),
    to_city: Optional[str] = Query(None, alias="toCity"),
    departure_date: Optional[date] = Query(None, alias="departureDate"),
    passengers: Optional[int] = Query(None, ge=1),
) -> List[FlightOut]:
    with _scope(request) as session:
        flights = flight_repo.search_flights(
            session,
            from_city=from_city,
            to_city=to_city,
            departure_date=departure_date,
            min_seats=passengers,
        )
        return [FlightOut.model_validate(flight) for flight in flights]


@router.get("/flights/{flight_id}", response_model=FlightOut)
def get_flight(request: Request, flight_id: str) -> FlightOut:
    with _scope(request) as session:
        flight = flight_repo.get_flight(session, flight_id)
        if flight is None:
            raise HTTPException(status_code=404, detail=f"flight {flight_id} not found")
        return FlightOut.model_validate(flight)


@router.post("/flights", response_model=FlightOut, status_code=201)
def create_flight(request: Request, payload: FlightIn) -> FlightOut:
    require_admin(request)
    data = payload.model_dump()
    if payload.seat_allocations is not None:
        data["seat_allocations"] = [
            allocation.model_dump(exclude_none=True) for allocation in payload.seat_allocations
        ]
    with _scope(request) as session:
        return FlightOut.model_validate(flight_repo.create_flight(session, **data))


@router.put("/flights/{flight_id}", response_model=FlightOut)
def update_flight(request: Request, flight_id: str, payload: FlightUpdate) -> FlightOut:
    require_admin(request)
    changes = payload.model_dump(exclude_unset=True)
    if payload.seat_allocations is not None:
        changes["seat_allocations"] = [
            allocation.model_dump(exclude_none=True) for allocation in payload.seat_allocations
        ]
    with _scope(request) as session:
        return FlightOut.model_validate(flight_repo.update_flight(session, flight_id, changes))


@router.delete("/flights/{flight_id}", status_code=204)
def delete_flight(request: Request, flight_id: str) -> Response:
    require_admin(request)
    with _scope(request) as session:
        flight_repo.delete_flight(session, flight_id)
    return Response(status_code=204)


@router.patch("/flights/{flight_id}/book", response_model=FlightOut)
def book_seats(request: Request, flight_id: str, payload: SeatsToBook) -> FlightOut:
    require_admin(request)
    with _scope(request) as session:
        flight_repo.reserve_seats(session, flight_id, payload.seats_to_book, payload.seat_class)
        return FlightOut.model_validate(flight_repo.get_flight(session, flight_id))


@router.get("/bookings", response_model=List[BookingOut])
def list_bookings(request: Request, email: Optional[str] = Query(None)) -> List[BookingOut]:
    with _scope(request) as session:
        if email is None and request.session.get("admin"):
            found = booking_repo.list_all_bookings(session)
        else:
            found = booking_repo.list_bookings_for_user(session, email or request.session.get("email"))
        return [BookingOut.model_validate(booking_repo.booking_summary(b)) for b in found]


@router.post("/bookings", response_model=BookingOut, status_code=201)
def create_booking(request: Request, payload: BookingIn) -> BookingOut:
    with _scope(request) as session:
        booking = booking_repo.create_booking(session, **payload.model_dump())
        return BookingOut.model_validate(booking_repo.booking_summary(booking))


@router.patch("/bookings/{booking_id}/status", response_model=BookingOut)
def update_booking_status(request: Request, booking_id: str, payload: StatusChange) -> BookingOut:
    require_admin(request)
    with _scope(request) as session:
        booking = booking_repo.update_booking_status(session, booking_id, payload.status)
        return BookingOut.model_validate(booking_repo.booking_summary(booking))


@router.delete("/bookings/{booking_id}", status_code=204)
def delete_booking(request: Request, booking_id: str) -> Response:
    require_admin(request)
    with _scope(request) as session:
        booking_repo.delete_booking(session, booking_id)
    return Response(status_code=204)


@router.get("/stats", response_model=FlightStatsOut)
def stats(request: Request) -> FlightStatsOut:
    with _scope(request) as session:
        return FlightStatsOut(**flight_stats(session).as_dict())


@router.get("/seat-classes", response_model=List[SeatClassOut])
def seat_classes() -> List[SeatClassOut]:
    return [SeatClassOut.model_validate(seat_class) for seat_class in SEAT_CLASSES]
