# cruise_watch/models/price_observation.py

"""Temporal price observation model for price history tracking."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class PriceObservation:
    """A single price reading for an offer at a point in time."""

    offer_id: str
    price: Decimal
    recorded_at: datetime
