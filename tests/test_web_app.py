from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from skybook.auth import create_admin_user
from skybook.bookings import list_all_bookings
from skybook.database import session_scope
from skybook.errors import TransientError
from skybook.flights import create_flight, get_flight, list_flights
from skybook.web import create_app
from skybook.workflow import BookingWorkflow


@pytest.fixture
def client(session_factory):
    return TestClient(create_app(session_factory, secret_key="test-secret"))


@pytest.fixture
def admin_client(session_factory, client):
    with session_scope(session_factory) as session:
        create_admin_user(session, username="admin", password="admin-password")
    response = client.post("/admin/login", data={"username": "admin", "password": "admin-password"})
    assert response.status_code == 200
    assert "Admin dashboard" in response.text
    return client


def _seed_routes(add_flight):
    add_flight(flight_number="AA101", price=299)
    add_flight(flight_number="UA202", airline="United Airlines", price=349, departure_time=datetime(2030, 3, 14, 12, 0))
    add_flight(flight_number="DL303", airline="Delta Airlines", price=279, departure_time=datetime(2030, 3, 14, 18, 30))
    add_flight(flight_number="QF12", airline="Qantas", from_city="Los Angeles", to_city="Sydney", price=1200, departure_time=None)


def _available(session_factory, flight_id):
    with session_scope(session_factory) as session:
        return get_flight(session, flight_id).available_seats


def test_home_page_lists_all_flights(client, add_flight):
    _seed_routes(add_flight)
    response = client.get("/")
    assert response.status_code == 200
    assert "All available flights" in response.text
    assert "QF12" in response.text
    assert "Schedule to be announced" in response.text


def test_search_results_sorted_by_price(client, add_flight):
    _seed_routes(add_flight)
    response = client.get(
        "/",
        params={"from_city": "New York", "to_city": "Los Angeles", "departure_date": "2030-03-14", "passengers": "1"},
    )
    assert response.status_code == 200
    text = response.text
    assert "Found 3 flights from New York to Los Angeles" in text
    assert text.index("DL303") < text.index("AA101") < text.index("UA202")
    assert "QF12" not in text

    by_airline = client.get(
        "/",
        params={"from_city": "New York", "to_city": "Los Angeles", "departure_date": "2030-03-14", "sort": "airline"},
    ).text
    assert by_airline.index("AA101") < by_airline.index("DL303") < by_airline.index("UA202")


def test_incomplete_search_shows_message(client):
    response = client.get("/", params={"from_city": "New York"})
    assert response.status_code == 200
    assert "please fill in the destination city, departure date" in response.text


def test_empty_search(client, add_flight):
    _seed_routes(add_flight)
    response = client.get("/", params={"from_city": "Paris", "to_city": "Rome", "departure_date": "2030-03-14"})
    assert "No flights match your search." in response.text


def test_flight_page_shows_class_prices(client, session_factory):
    with session_scope(session_factory) as session:
        flight_id = create_flight(
            session,
            flight_number="LH441",
            airline="Lufthansa",
            from_city="New York",
            to_city="Frankfurt",
            price=850,
            seat_allocations=[
                {"seat_class": "economy", "total_seats": 200},
                {"seat_class": "business", "total_seats": 40},
            ],
        ).id
    response = client.get(f"/flights/{flight_id}", params={"passengers": 2})
    assert response.status_code == 200
    assert "Business Class" in response.text
    assert "$2,550" in response.text
    assert "$5,100" in response.text
    assert client.get("/flights/missing").status_code == 404


def test_flight_page_marks_discounted_class(client, session_factory):
    with session_scope(session_factory) as session:
        flight_id = create_flight(
            session,
            flight_number="LH441",
            airline="Lufthansa",
            from_city="New York",
            to_city="Frankfurt",
            price=850,
            seat_allocations=[
                {"seat_class": "economy", "total_seats": 200},
                {"seat_class": "business", "total_seats": 40, "price": 2000},
            ],
        ).id
    text = client.get(f"/flights/{flight_id}").text
    assert "$2,000" in text
    assert "list <s>$2,550</s>" in text
    assert "<s>$850</s>" not in text


def test_booking_flow_and_my_bookings(client, session_factory, add_flight):
    flight_id = add_flight(total_seats=3)
    response = client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane@example.com", "seat_class": "economy", "passengers": "2"},
    )
    assert response.status_code == 200
    assert "Booking confirmed" in response.text
    assert "$598" in response.text
    assert _available(session_factory, flight_id) == 1

    bookings_page = client.get("/bookings")
    assert "AA101" in bookings_page.text
    assert "Jane Doe" in bookings_page.text

    with session_scope(session_factory) as session:
        booking_id = list_all_bookings(session)[0].id
    response = client.post(f"/bookings/{booking_id}/cancel")
    assert response.status_code == 200
    assert _available(session_factory, flight_id) == 3
    assert "cancelled" in response.text


def test_sold_out_booking_is_reported_inline(client, session_factory, add_flight):
    flight_id = add_flight(total_seats=1)
    response = client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane@example.com", "passengers": "2"},
    )
    assert response.status_code == 409
    assert "insufficient seats" in response.text
    assert 'value="Jane Doe"' in response.text
    assert _available(session_factory, flight_id) == 1


def test_zero_passengers_is_rejected(client, session_factory, add_flight):
    flight_id = add_flight(total_seats=3)
    response = client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane@example.com", "passengers": "0"},
    )
    assert response.status_code == 400
    assert "passengers must be between 1 and 9" in response.text
    assert _available(session_factory, flight_id) == 3


def test_sold_out_refresh_failure_is_unavailable(client, add_flight, monkeypatch):
    flight_id = add_flight(total_seats=1)
    real_open_flight = BookingWorkflow.open_flight
    calls = []

    def flaky_open_flight(self, requested_id):
        calls.append(requested_id)
        if len(calls) > 1:
            raise TransientError("database is locked")
        return real_open_flight(self, requested_id)

    monkeypatch.setattr(BookingWorkflow, "open_flight", flaky_open_flight)
    response = client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane@example.com", "passengers": "2"},
    )
    assert response.status_code == 503
    assert calls == [flight_id, flight_id]


def test_invalid_booking_form(client, add_flight):
    flight_id = add_flight()
    response = client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane", "passengers": "1"},
    )
    assert response.status_code == 400
    assert "valid email" in response.text
    assert client.post("/flights/missing/book", data={"passenger_name": "Jane Doe"}).status_code == 404


def test_other_users_cannot_cancel(client, session_factory, add_flight):
    flight_id = add_flight()
    client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane@example.com"},
    )
    with session_scope(session_factory) as session:
        booking_id = list_all_bookings(session)[0].id

    client.post("/bookings/identify", data={"email": "mallory@example.com"})
    assert "No bookings found for mallory@example.com" in client.get("/bookings").text
    assert client.post(f"/bookings/{booking_id}/cancel").status_code == 404


def test_admin_requires_login(client):
    response = client.get("/admin")
    assert response.status_code == 200
    assert "Administrator login" in response.text
    assert client.get("/admin/download/flights/csv").status_code == 401
    assert client.post("/admin/flights", data={"flight_number": "ZZ1"}).status_code == 401


def test_admin_login_rejects_bad_password(session_factory, client):
    with session_scope(session_factory) as session:
        create_admin_user(session, username="admin", password="admin-password")
    response = client.post("/admin/login", data={"username": "admin", "password": "nope"})
    assert response.status_code == 401
    assert "Invalid username or password." in response.text


def test_admin_manages_flights_and_bookings(admin_client, session_factory, add_flight):
    response = admin_client.post(
        "/admin/flights",
        data={
            "flight_number": "zz900",
            "airline": "Test Air",
            "from_city": "Denver",
            "to_city": "Las Vegas",
            "price": "159",
            "duration": "2h 10m",
            "departure_time": "2030-03-14T09:30",
            "seats_economy": "100",
            "seats_business": "10",
        },
    )
    assert response.status_code == 200
    assert "Flight ZZ900 created." in response.text

    with session_scope(session_factory) as session:
        flight = list_flights(session)[0]
        flight_id = flight.id
        assert flight.total_seats == 110
        assert flight.allocation_for("business").price == 477

    response = admin_client.post(f"/admin/flights/{flight_id}", data={"price": "200"})
    assert "Flight ZZ900 updated." in response.text
    with session_scope(session_factory) as session:
        assert get_flight(session, flight_id).price == 200

    admin_client.post(
        f"/flights/{flight_id}/book",
        data={"passenger_name": "Jane Doe", "email": "jane@example.com", "passengers": "3"},
    )
    with session_scope(session_factory) as session:
        booking_id = list_all_bookings(session)[0].id

    response = admin_client.post(f"/admin/bookings/{booking_id}/status", data={"status": "cancelled"})
    assert "Booking marked cancelled." in response.text
    assert _available(session_factory, flight_id) == 110

    response = admin_client.post(f"/admin/bookings/{booking_id}/delete")
    assert "Booking deleted." in response.text

    response = admin_client.post(f"/admin/flights/{flight_id}/delete")
    assert "Flight deleted." in response.text
    with session_scope(session_factory) as session:
        assert list_flights(session) == []

    response = admin_client.post("/admin/flights/missing/delete")
    assert response.status_code == 404


def test_admin_form_errors_render_dashboard(admin_client):
    response = admin_client.post(
        "/admin/flights",
        data={"flight_number": "ZZ900", "airline": "Test Air", "from_city": "Denver", "to_city": "Reno", "price": "abc"},
    )
    assert response.status_code == 400
    assert "price must be a number" in response.text


def test_admin_downloads(admin_client, add_flight):
    add_flight()
    csv_response = admin_client.get("/admin/download/flights/csv")
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert csv_response.text.splitlines()[0].startswith("Flight,Airline,From,To")
    assert "AA101" in csv_response.text

    xlsx_response = admin_client.get("/admin/download/bookings/xlsx")
    assert xlsx_response.status_code == 200
    assert xlsx_response.content[:2] == b"PK"

    assert admin_client.get("/admin/download/flights/pdf").status_code == 422


def test_admin_logout(admin_client):
    response = admin_client.post("/admin/logout")
    assert "Administrator login" in response.text
    assert "Administrator login" in admin_client.get("/admin").text


def test_api_flights(client, add_flight):
    _seed_routes(add_flight)
    flights = client.get("/api/flights").json()
    assert len(flights) == 4

    found = client.get(
        "/api/flights/search",
        params={"fromCity": "new york", "toCity": "los angeles", "departureDate": "2030-03-14"},
    ).json()
    assert [flight["flight_number"] for flight in found] == ["DL303", "AA101", "UA202"]

    flight = client.get(f"/api/flights/{found[0]['id']}").json()
    assert flight["total_seats"] == 180
    assert flight["seat_allocations"][0]["seat_class"] == "economy"
    assert client.get("/api/flights/missing").status_code == 404


def test_api_admin_endpoints(admin_client, client, session_factory):
    response = client.post(
        "/api/flights",
        json={
            "flight_number": "AA101",
            "airline": "American Airlines",
            "from_city": "New York",
            "to_city": "Los Angeles",
            "price": 299,
            "total_seats": 2,
        },
    )
    assert response.status_code == 201
    flight_id = response.json()["id"]

    response = client.patch(f"/api/flights/{flight_id}/book", json={"seatsToBook": 2})
    assert response.status_code == 200
    assert response.json()["available_seats"] == 0
    response = client.patch(f"/api/flights/{flight_id}/book", json={"seatsToBook": 1})
    assert response.status_code == 409

    response = client.put(f"/api/flights/{flight_id}", json={"total_seats": 5})
    assert response.status_code == 200
    assert response.json()["available_seats"] == 3

    assert client.get("/api/stats").json()["booked_seats"] == 2
    assert client.delete(f"/api/flights/{flight_id}").status_code == 204
    assert client.delete(f"/api/flights/{flight_id}").status_code == 404


def test_api_bookings(client, add_flight):
    flight_id = add_flight(total_seats=5)
    assert client.patch(f"/api/flights/{flight_id}/book", json={"seatsToBook": 1}).status_code == 401

    response = client.post(
        "/api/bookings",
        json={"flight_id": flight_id, "passenger_name": "Jane Doe", "email": "jane@example.com", "passengers": 2},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "confirmed"
    assert body["total_price"] == 598
    assert body["flight_number"] == "AA101"

    assert len(client.get("/api/bookings", params={"email": "jane@example.com"}).json()) == 1
    assert client.get("/api/bookings").status_code == 401
    response = client.post(
        "/api/bookings",
        json={"flight_id": flight_id, "passenger_name": "John Roe", "email": "john@example.com", "passengers": 4},
    )
    assert response.status_code == 409
    assert client.patch(f"/api/bookings/{body['id']}/status", json={"status": "cancelled"}).status_code == 401


def test_api_seat_classes(client):
    classes = client.get("/api/seat-classes").json()
    assert [seat_class["id"] for seat_class in classes] == ["economy", "premium-economy", "business", "first"]
    assert classes[2]["price_multiplier"] == 3.0
