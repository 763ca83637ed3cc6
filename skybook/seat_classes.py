"""Static seat-class catalog and the class pricing rule."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

DEFAULT_SEAT_CLASS = "economy"


@dataclass(frozen=True)
class SeatClass:
    id: str
    name: str
    description: str
    features: Tuple[str, ...]
    price_multiplier: float
    icon: str


SEAT_CLASSES: Tuple[SeatClass, ...] = (
    SeatClass(
        id="economy",
        name="Economy Class",
        description="Comfortable and affordable travel",
        features=(
            "Standard seat pitch",
            "In-flight entertainment",
            "Complimentary snacks",
            "Free carry-on baggage",
        ),
        price_multiplier=1.0,
        icon="💺",
    ),
    SeatClass(
        id="premium-economy",
        name="Premium Economy",
        description="Extra comfort with enhanced services",
        features=(
            "Extra legroom",
            "Priority boarding",
            "Enhanced meal service",
            "Premium entertainment",
            "Free checked baggage",
        ),
        price_multiplier=1.5,
        icon="🛋️",
    ),
    SeatClass(
        id="business",
        name="Business Class",
        description="Premium comfort and luxury",
        features=(
            "Lie-flat seats",
            "Priority check-in",
            "Gourmet meals",
            "Airport lounge access",
            "Priority baggage handling",
            "Extra baggage allowance",
        ),
        price_multiplier=3.0,
        icon="✈️",
    ),
    SeatClass(
        id="first",
        name="First Class",
        description="Ultimate luxury experience",
        features=(
            "Private suites",
            "Personal concierge",
            "Chef-prepared meals",
            "Premium lounge access",
            "Chauffeur service",
            "Unlimited baggage",
            "Priority everything",
        ),
        price_multiplier=5.0,
        icon="👑",
    ),
)

_BY_ID: Dict[str, SeatClass] = {seat_class.id: seat_class for seat_class in SEAT_CLASSES}

SEAT_CLASS_IDS: Tuple[str, ...] = tuple(_BY_ID)


def get_seat_class(seat_class_id: str) -> Optional[SeatClass]:
    return _BY_ID.get(seat_class_id)


def class_price(base_price: float, multiplier: float) -> int:
    """Return ``base_price * multiplier`` rounded half up to a whole amount."""

    return int(math.floor(base_price * multiplier + 0.5))


def class_prices(base_price: float) -> Dict[str, int]:
    """Price of every catalog class for a flight with ``base_price``."""

    return {seat_class.id: class_price(base_price, seat_class.price_multiplier) for seat_class in SEAT_CLASSES}
