from __future__ import annotations

from datetime import datetime

import pytest

from skybook.database import create_session_factory, session_scope
from skybook.flights import create_flight
from skybook.models import Base


@pytest.fixture
def session_factory(tmp_path):
    engine, factory = create_session_factory(f"sqlite+pysqlite:///{tmp_path / 'skybook.db'}")
    Base.metadata.create_all(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def add_flight(session_factory):
    """Return a helper that stores a flight and hands back its id."""

    def _add(**overrides):
        values = {
            "flight_number": "AA101",
            "airline": "American Airlines",
            "from_city": "New York",
            "to_city": "Los Angeles",
            "price": 299,
            "total_seats": 180,
            "duration": "5h 30m",
            "departure_time": datetime(2030, 3, 14, 8, 0),
        }
        values.update(overrides)
        with session_scope(session_factory) as session:
            return create_flight(session, **values).id

    return _add
