# cruise_watch/models/offer.py

"""Offer data models shared by the source adapter, store and manager."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class DisplayAttributes:
    """Descriptive snapshot of a cruise, never used for price logic."""

    vessel_name: str = ""
    departure_date: str = ""
    port_name: str = ""
    duration: int | None = None  # nights


@dataclass
class Offer:
    """An upstream offer as currently listed: id, price and attributes."""

    offer_id: str
    price: Decimal
    attributes: DisplayAttributes = field(
        default_factory=DisplayAttributes
    )


@dataclass(frozen=True)
class WatchedOffer:
    """A tracked offer row; immutable once created."""

    offer_id: str
    attributes: DisplayAttributes
    created_at: datetime
