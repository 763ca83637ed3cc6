from __future__ import annotations

from datetime import date, datetime

import pytest

from skybook import workflow
from skybook.errors import (
    FlightNotFoundError,
    InsufficientSeatsError,
    TransientError,
    ValidationError,
)
from skybook.workflow import (
    BookingRequest,
    BookingWorkflow,
    SearchRequest,
    WorkflowState,
    WorkflowStateError,
)


def _search(day=date(2030, 3, 14), passengers=1):
    return SearchRequest(
        from_city="New York",
        to_city="Los Angeles",
        departure_date=day,
        passengers=passengers,
    )


def test_search_shows_results(session_factory, add_flight):
    add_flight(flight_number="AA101", price=299)
    add_flight(flight_number="DL303", price=279, departure_time=datetime(2030, 3, 14, 18, 30))
    flow = BookingWorkflow(session_factory)
    assert flow.state is WorkflowState.IDLE

    flights = flow.search(_search())

    assert flow.state is WorkflowState.RESULTS_SHOWN
    assert [flight.flight_number for flight in flights] == ["DL303", "AA101"]
    assert flow.results == flights


def test_invalid_search_keeps_state(session_factory):
    flow = BookingWorkflow(session_factory)
    with pytest.raises(ValidationError, match="departure date"):
        flow.search(_search(day=None))
    with pytest.raises(ValidationError, match="passengers"):
        flow.search(_search(passengers=10))
    assert flow.state is WorkflowState.IDLE


def test_search_request_from_form():
    request = SearchRequest.from_form(" New York ", "Los Angeles", "2030-03-14", "2")
    assert request == SearchRequest("New York", "Los Angeles", date(2030, 3, 14), 2)
    with pytest.raises(ValidationError, match="YYYY-MM-DD"):
        SearchRequest.from_form("New York", "Los Angeles", "14/03/2030")
    with pytest.raises(ValidationError, match="whole number"):
        SearchRequest.from_form("New York", "Los Angeles", "2030-03-14", "two")


def test_booking_request_validation():
    request = BookingRequest(flight_id="x", passenger_name="Jane Doe", email="jane", passengers=1)
    with pytest.raises(ValidationError, match="valid email"):
        request.validate()
    with pytest.raises(ValidationError, match="passenger name"):
        BookingRequest(flight_id="x", passenger_name=" ", email="jane@example.com").validate()


def test_full_booking_produces_confirmation(session_factory, add_flight):
    flight_id = add_flight(total_seats=5)
    flow = BookingWorkflow(session_factory)
    flow.search(_search(passengers=2))

    selection = flow.select_flight(flight_id)
    assert selection.passengers == 2
    assert selection.total_price == 598

    confirmation = flow.submit_booking("Jane Doe", "jane@example.com")

    assert flow.state is WorkflowState.CONFIRMED
    assert confirmation.flight_number == "AA101"
    assert confirmation.route == "New York → Los Angeles"
    assert confirmation.passengers == 2
    assert confirmation.unit_price == 299
    assert confirmation.total_price == 598
    assert confirmation.seat_class == "economy"
    assert flow.confirmation is confirmation


def test_select_requires_results(session_factory, add_flight):
    flight_id = add_flight()
    flow = BookingWorkflow(session_factory)
    with pytest.raises(WorkflowStateError):
        flow.select_flight(flight_id)
    with pytest.raises(WorkflowStateError):
        flow.submit_booking("Jane Doe", "jane@example.com")

    flow.search(_search())
    with pytest.raises(ValidationError, match="listed flights"):
        flow.select_flight("missing")
    with pytest.raises(ValidationError, match="not offered"):
        flow.select_flight(flight_id, seat_class="first")
    assert flow.state is WorkflowState.RESULTS_SHOWN


def test_sold_out_moves_to_error(session_factory, add_flight):
    flight_id = add_flight(total_seats=1)
    flow = BookingWorkflow(session_factory)
    flow.open_flight(flight_id)
    flow.select_flight(flight_id, passengers=2)

    with pytest.raises(InsufficientSeatsError):
        flow.submit_booking("Jane Doe", "jane@example.com")

    assert flow.state is WorkflowState.ERROR
    assert isinstance(flow.error, InsufficientSeatsError)
    assert flow.retryable is False


def test_transient_failure_can_be_retried(session_factory, add_flight, monkeypatch):
    flight_id = add_flight(total_seats=3)
    real_create_booking = workflow.create_booking
    calls = []

    def flaky_create_booking(session, **kwargs):
        calls.append(kwargs["email"])
        if len(calls) == 1:
            raise TransientError("the booking database is temporarily unavailable")
        return real_create_booking(session, **kwargs)

    monkeypatch.setattr(workflow, "create_booking", flaky_create_booking)
    flow = BookingWorkflow(session_factory)
    flow.open_flight(flight_id)

    with pytest.raises(TransientError):
        flow.book(
            BookingRequest(
                flight_id=flight_id,
                passenger_name="Jane Doe",
                email="jane@example.com",
            )
        )
    assert flow.state is WorkflowState.ERROR
    assert flow.retryable is True

    confirmation = flow.retry()

    assert flow.state is WorkflowState.CONFIRMED
    assert confirmation.total_price == 299
    assert calls == ["jane@example.com", "jane@example.com"]


def test_retry_without_failure_is_rejected(session_factory):
    flow = BookingWorkflow(session_factory)
    with pytest.raises(WorkflowStateError):
        flow.retry()


def test_unknown_flight_moves_to_error(session_factory):
    flow = BookingWorkflow(session_factory)
    with pytest.raises(FlightNotFoundError):
        flow.open_flight("missing")
    assert flow.state is WorkflowState.ERROR
    assert flow.retryable is False
