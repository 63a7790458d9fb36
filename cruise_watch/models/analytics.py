# cruise_watch/models/analytics.py

"""Derived price analytics for a watched offer."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from cruise_watch.models.offer import WatchedOffer
from cruise_watch.models.price_observation import PriceObservation


class Trend(str, Enum):
    """Where the current price sits relative to the historical minimum."""

    AT_MINIMUM = "at_minimum"
    ABOVE_MINIMUM = "above_minimum"


@dataclass(frozen=True)
class PriceAnalytics:
    """Price statistics computed from an offer's full history."""

    current_price: Decimal
    min_price: Decimal
    max_price: Decimal
    trend: Trend
    observation_count: int
    previous_low: PriceObservation | None = None
    change_since_previous: Decimal | None = None

    def describe(self) -> str:
        """Render a one-line price narrative, e.g. for a watch list row."""
        if self.trend is Trend.AT_MINIMUM:
            text = f"at its lowest recorded price ({self.min_price:.2f})"
        elif self.previous_low is not None:
            when = self.previous_low.recorded_at.strftime("%Y-%m-%d")
            text = f"up from {self.previous_low.price:.2f} on {when}"
        else:
            text = f"above its low of {self.min_price:.2f}"
        if self.change_since_previous:
            direction = (
                "dropped" if self.change_since_previous < 0 else "rose"
            )
            text += (
                f"; {direction} {abs(self.change_since_previous):.2f}"
                " since last check"
            )
        return text


@dataclass(frozen=True)
class WatchedOfferView:
    """A watched offer with its ascending history and analytics."""

    offer: WatchedOffer
    history: list[PriceObservation]
    analytics: PriceAnalytics
