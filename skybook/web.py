"""FastAPI application serving the flight storefront and admin dashboard."""
from __future__ import annotations

import logging
from datetime import datetime
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import pandas as pd
from fastapi import FastAPI, Form, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session, sessionmaker
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .api import router as api_router
from .auth import authenticate_admin
from .bookings import (
    booking_summary,
    cancel_booking,
    delete_booking,
    get_booking,
    list_all_bookings,
    list_bookings_for_user,
    update_booking_status,
)
from .database import init_db, session_scope
from .errors import (
    FlightNotFoundError,
    InsufficientSeatsError,
    NotAuthenticatedError,
    NotFoundError,
    SkyBookError,
    TransientError,
    ValidationError,
)
from .flights import SortKey, create_flight, delete_flight, list_flights, sort_flights, update_flight
from .models import BOOKING_STATUSES, Flight
from .seat_classes import DEFAULT_SEAT_CLASS, SEAT_CLASSES, class_prices, get_seat_class
from .stats import compute_flight_stats, export_dataframe
from .workflow import BookingRequest, BookingWorkflow, SearchRequest

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

ExportFormat = Literal["csv", "xlsx"]
ExportDataset = Literal["flights", "bookings"]

_FLIGHT_TEXT_FIELDS = ("flight_number", "airline", "from_city", "to_city", "duration")
_FLIGHT_TIME_FIELDS = ("departure_time", "arrival_time")


def _format_currency(value: float | None) -> str:
    if value is None:
        return "-"
    return f"${value:,.0f}"


def _format_percent(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:.1f}%"


def _format_departure(value: datetime | None) -> str:
    if value is None:
        return "Schedule to be announced"
    return value.strftime("%a %d %b %Y, %H:%M")


templates.env.filters["currency"] = _format_currency
templates.env.filters["percent"] = _format_percent
templates.env.filters["departure"] = _format_departure


def _error_status(exc: SkyBookError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InsufficientSeatsError):
        return 409
    if isinstance(exc, TransientError):
        return 503
    return 400


def _class_rows(flight: Flight, passengers: int) -> List[Dict[str, Any]]:
    rows = []
    catalog = class_prices(flight.price)
    for allocation in flight.seat_allocations:
        seat_class = get_seat_class(allocation.seat_class)
        rows.append(
            {
                "id": allocation.seat_class,
                "name": seat_class.name if seat_class else allocation.seat_class,
                "description": seat_class.description if seat_class else "",
                "features": seat_class.features if seat_class else (),
                "icon": seat_class.icon if seat_class else "",
                "available": allocation.available_seats,
                "price": allocation.price,
                "list_price": catalog.get(allocation.seat_class),
                "total": allocation.price * passengers,
                "bookable": allocation.available_seats >= passengers,
            }
        )
    return rows


def _parse_int(value: Any, label: str) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError(f"{label} must be a whole number") from exc


def _parse_float(value: Any, label: str) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValidationError(f"{label} must be a number") from exc


def _parse_datetime(value: Any, label: str) -> Optional[datetime]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"{label} must be a date and time") from exc


def _flight_form_values(form: Any) -> Dict[str, Any]:
    """Translate admin form fields into repository keyword arguments.

    Blank fields are left out so the same parser serves create and update.
    """

    values: Dict[str, Any] = {}
    for key in _FLIGHT_TEXT_FIELDS:
        text = (form.get(key) or "").strip()
        if text:
            values[key] = text
    for key in _FLIGHT_TIME_FIELDS:
        parsed = _parse_datetime(form.get(key), key.replace("_", " "))
        if parsed is not None:
            values[key] = parsed
    price = _parse_float(form.get("price"), "price")
    if price is not None:
        values["price"] = price
    allocations = []
    for seat_class in SEAT_CLASSES:
        seats = _parse_int(form.get(f"seats_{seat_class.id}"), f"{seat_class.name} seats")
        if seats:
            allocations.append({"seat_class": seat_class.id, "total_seats": seats})
    if allocations:
        values["seat_allocations"] = allocations
    else:
        total = _parse_int(form.get("total_seats"), "total seats")
        if total is not None:
            values["total_seats"] = total
    return values


def create_app(
    session_factory: Optional[sessionmaker[Session]] = None,
    *,
    secret_key: Optional[str] = None,
) -> FastAPI:
    """Return an application serving the storefront against ``session_factory``."""

    config.configure_logging()
    app = FastAPI(title="SkyBook", description="Flight search and booking")
    app.state.session_factory = session_factory or init_db()
    app.add_middleware(SessionMiddleware, secret_key=secret_key or config.SECRET_KEY)
    app.include_router(api_router)

    def _workflow() -> BookingWorkflow:
        return BookingWorkflow(app.state.session_factory)

    def _render_flight(
        request: Request,
        flight: Flight,
        *,
        passengers: int = 1,
        seat_class: str = DEFAULT_SEAT_CLASS,
        form: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        retryable: bool = False,
        status_code: int = 200,
    ) -> HTMLResponse:
        context = {
            "flight": flight,
            "classes": _class_rows(flight, passengers),
            "passengers": passengers,
            "seat_class": seat_class,
            "max_passengers": config.MAX_PASSENGERS,
            "form": form or {"passenger_name": "", "email": request.session.get("email", "")},
            "error": error,
            "retryable": retryable,
        }
        return templates.TemplateResponse(request, "flight.html", context, status_code=status_code)

    def _render_admin(
        request: Request,
        *,
        notice: Optional[str] = None,
        error: Optional[str] = None,
        status_code: int = 200,
    ) -> HTMLResponse:
        with session_scope(app.state.session_factory) as session:
            flights = list_flights(session)
            bookings = [booking_summary(booking) for booking in list_all_bookings(session)]
        context = {
            "admin": request.session.get("admin"),
            "stats": compute_flight_stats(flights),
            "flights": flights,
            "bookings": bookings,
            "statuses": BOOKING_STATUSES,
            "seat_classes": SEAT_CLASSES,
            "notice": notice,
            "error": error,
        }
        return templates.TemplateResponse(request, "admin.html", context, status_code=status_code)

    def _admin_redirect(request: Request, notice: str) -> RedirectResponse:
        url = request.url_for("admin_dashboard").include_query_params(notice=notice)
        return RedirectResponse(str(url), status_code=303)

    def _is_admin(request: Request) -> bool:
        return bool(request.session.get("admin"))

    @app.get("/", response_class=HTMLResponse)
    async def index(
        request: Request,
        from_city: str = Query("", description="Origin city"),
        to_city: str = Query("", description="Destination city"),
        departure_date: str = Query("", description="Departure day, YYYY-MM-DD"),
        passengers: str = Query("1", description="Number of travellers"),
        sort: SortKey = Query("price", description="Result ordering"),
    ) -> HTMLResponse:
        context: Dict[str, Any] = {
            "from_city": from_city,
            "to_city": to_city,
            "departure_date": departure_date,
            "passengers": passengers,
            "sort": sort,
            "max_passengers": config.MAX_PASSENGERS,
            "searched": False,
            "flights": [],
            "error": None,
            "retryable": False,
        }
        status_code = 200
        workflow = _workflow()
        try:
            if from_city or to_city or departure_date:
                search = SearchRequest.from_form(from_city, to_city, departure_date, passengers)
                context["flights"] = sort_flights(workflow.search(search), sort)
                context["searched"] = True
            else:
                with session_scope(app.state.session_factory) as session:
                    context["flights"] = sort_flights(list_flights(session, order_by="departure"), sort)
        except ValidationError as exc:
            context["error"] = str(exc)
        except TransientError as exc:
            context["error"] = f"{exc}. Please try again."
            context["retryable"] = True
            status_code = 503
        return templates.TemplateResponse(request, "index.html", context, status_code=status_code)

    @app.get("/flights/{flight_id}", response_class=HTMLResponse)
    async def flight_detail(
        request: Request,
        flight_id: str,
        passengers: int = Query(1, ge=1),
        seat_class: str = Query(DEFAULT_SEAT_CLASS),
    ) -> HTMLResponse:
        try:
            flight = _workflow().open_flight(flight_id)
        except FlightNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except TransientError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return _render_flight(
            request,
            flight,
            passengers=min(passengers, config.MAX_PASSENGERS),
            seat_class=seat_class,
        )

    @app.post("/flights/{flight_id}/book", response_class=HTMLResponse)
    async def book_flight(
        request: Request,
        flight_id: str,
        passenger_name: str = Form(""),
        email: str = Form(""),
        seat_class: str = Form(DEFAULT_SEAT_CLASS),
        passengers: str = Form("1"),
    ) -> HTMLResponse:
        workflow = _workflow()
        try:
            flight = workflow.open_flight(flight_id)
        except FlightNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except TransientError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        form = {"passenger_name": passenger_name, "email": email}
        party = 1
        try:
            parsed = _parse_int(passengers, "passengers")
            party = 1 if parsed is None else parsed
            confirmation = workflow.book(
                BookingRequest(
                    flight_id=flight_id,
                    passenger_name=passenger_name,
                    email=email,
                    seat_class=seat_class,
                    passengers=party,
                )
            )
        except SkyBookError as exc:
            if isinstance(exc, InsufficientSeatsError):
                try:
                    flight = _workflow().open_flight(flight_id)
                except FlightNotFoundError as missing:
                    raise HTTPException(status_code=404, detail=str(missing)) from missing
                except TransientError as failure:
                    raise HTTPException(status_code=503, detail=str(failure)) from failure
            return _render_flight(
                request,
                flight,
                passengers=max(1, min(party, config.MAX_PASSENGERS)),
                seat_class=seat_class,
                form=form,
                error=str(exc),
                retryable=exc.retryable,
                status_code=_error_status(exc),
            )
        request.session["email"] = confirmation.email
        return templates.TemplateResponse(
            request, "confirmation.html", {"confirmation": confirmation}
        )

    @app.get("/bookings", response_class=HTMLResponse)
    async def my_bookings(request: Request) -> HTMLResponse:
        context: Dict[str, Any] = {
            "email": request.session.get("email"),
            "bookings": None,
            "error": None,
        }
        try:
            with session_scope(app.state.session_factory) as session:
                found = list_bookings_for_user(session, context["email"])
                context["bookings"] = [booking_summary(booking) for booking in found]
        except NotAuthenticatedError:
            context["bookings"] = None
        except TransientError as exc:
            context["error"] = f"{exc}. Please try again."
        return templates.TemplateResponse(request, "bookings.html", context)

    @app.post("/bookings/identify")
    async def identify(request: Request, email: str = Form("")) -> RedirectResponse:
        email = email.strip()
        if email:
            request.session["email"] = email
        else:
            request.session.pop("email", None)
        return RedirectResponse(str(request.url_for("my_bookings")), status_code=303)

    @app.post("/bookings/{booking_id}/cancel")
    async def cancel_my_booking(request: Request, booking_id: str) -> RedirectResponse:
        email = request.session.get("email")
        if not email:
            raise HTTPException(status_code=401, detail="tell us your email address first")
        try:
            with session_scope(app.state.session_factory) as session:
                booking = get_booking(session, booking_id)
                if booking is None or booking.email.lower() != email.lower():
                    raise HTTPException(status_code=404, detail="booking not found")
                cancel_booking(session, booking_id)
        except TransientError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return RedirectResponse(str(request.url_for("my_bookings")), status_code=303)

    @app.get("/admin/login", response_class=HTMLResponse)
    async def admin_login_form(request: Request) -> HTMLResponse:
        return templates.TemplateResponse(request, "admin_login.html", {"error": None, "username": ""})

    @app.post("/admin/login", response_class=HTMLResponse)
    async def admin_login(
        request: Request,
        username: str = Form(""),
        password: str = Form(""),
    ):
        with session_scope(app.state.session_factory) as session:
            verified = authenticate_admin(session, username, password)
        if not verified:
            context = {"error": "Invalid username or password.", "username": username}
            return templates.TemplateResponse(request, "admin_login.html", context, status_code=401)
        request.session["admin"] = username.strip()
        logger.info("Admin %s signed in", username)
        return RedirectResponse(str(request.url_for("admin_dashboard")), status_code=303)

    @app.post("/admin/logout")
    async def admin_logout(request: Request) -> RedirectResponse:
        request.session.pop("admin", None)
        return RedirectResponse(str(request.url_for("admin_login_form")), status_code=303)

    @app.get("/admin", response_class=HTMLResponse)
    async def admin_dashboard(request: Request, notice: Optional[str] = Query(None)):
        if not _is_admin(request):
            return RedirectResponse(str(request.url_for("admin_login_form")), status_code=303)
        return _render_admin(request, notice=notice)

    @app.post("/admin/flights")
    async def admin_create_flight(request: Request):
        if not _is_admin(request):
            raise HTTPException(status_code=401, detail="administrator login required")
        form = await request.form()
        try:
            values = _flight_form_values(form)
            with session_scope(app.state.session_factory) as session:
                flight = create_flight(
                    session,
                    flight_number=values.pop("flight_number", ""),
                    airline=values.pop("airline", ""),
                    from_city=values.pop("from_city", ""),
                    to_city=values.pop("to_city", ""),
                    price=values.pop("price", 0.0),
                    **values,
                )
                number = flight.flight_number
        except SkyBookError as exc:
            return _render_admin(request, error=str(exc), status_code=_error_status(exc))
        return _admin_redirect(request, f"Flight {number} created.")

    @app.post("/admin/flights/{flight_id}")
    async def admin_update_flight(request: Request, flight_id: str):
        if not _is_admin(request):
            raise HTTPException(status_code=401, detail="administrator login required")
        form = await request.form()
        try:
            changes = _flight_form_values(form)
            with session_scope(app.state.session_factory) as session:
                number = update_flight(session, flight_id, changes).flight_number
        except SkyBookError as exc:
            return _render_admin(request, error=str(exc), status_code=_error_status(exc))
        return _admin_redirect(request, f"Flight {number} updated.")

    @app.post("/admin/flights/{flight_id}/delete")
    async def admin_delete_flight(request: Request, flight_id: str):
        if not _is_admin(request):
            raise HTTPException(status_code=401, detail="administrator login required")
        try:
            with session_scope(app.state.session_factory) as session:
                delete_flight(session, flight_id)
        except SkyBookError as exc:
            return _render_admin(request, error=str(exc), status_code=_error_status(exc))
        return _admin_redirect(request, "Flight deleted.")

    @app.post("/admin/bookings/{booking_id}/status")
    async def admin_booking_status(request: Request, booking_id: str, status: str = Form(...)):
        if not _is_admin(request):
            raise HTTPException(status_code=401, detail="administrator login required")
        try:
            with session_scope(app.state.session_factory) as session:
                update_booking_status(session, booking_id, status)
        except SkyBookError as exc:
            return _render_admin(request, error=str(exc), status_code=_error_status(exc))
        return _admin_redirect(request, f"Booking marked {status}.")

    @app.post("/admin/bookings/{booking_id}/delete")
    async def admin_delete_booking(request: Request, booking_id: str):
        if not _is_admin(request):
            raise HTTPException(status_code=401, detail="administrator login required")
        try:
            with session_scope(app.state.session_factory) as session:
                delete_booking(session, booking_id)
        except SkyBookError as exc:
            return _render_admin(request, error=str(exc), status_code=_error_status(exc))
        return _admin_redirect(request, "Booking deleted.")

    @app.get("/admin/download/{dataset}/{file_format}")
    async def download(
        request: Request,
        dataset: ExportDataset,
        file_format: ExportFormat,
    ) -> StreamingResponse:
        if not _is_admin(request):
            raise HTTPException(status_code=401, detail="administrator login required")
        with session_scope(app.state.session_factory) as session:
            dataframe = export_dataframe(session, dataset)

        filename = f"skybook_{dataset}.{file_format}"
        headers = {"Content-Disposition": f"attachment; filename=\"{filename}\""}

        if file_format == "csv":
            buffer = StringIO()
            dataframe.to_csv(buffer, index=False)
            buffer.seek(0)
            return StreamingResponse(
                iter([buffer.getvalue()]), media_type="text/csv", headers=headers
            )

        if file_format == "xlsx":
            buffer = BytesIO()
            with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
                dataframe.to_excel(writer, index=False, sheet_name=dataset.title())
            buffer.seek(0)
            return StreamingResponse(
                buffer,
                media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                headers=headers,
            )

        raise HTTPException(status_code=404, detail="Unsupported format")

    return app


__all__ = ["create_app"]
