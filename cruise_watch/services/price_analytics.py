# cruise_watch/services/price_analytics.py

"""Price analytics derived from an offer's raw observation history."""

from collections.abc import Sequence

from cruise_watch.errors import InconsistentState
from cruise_watch.models.analytics import PriceAnalytics, Trend
from cruise_watch.models.offer import WatchedOffer
from cruise_watch.models.price_observation import PriceObservation


def compute_analytics(
    offer: WatchedOffer,
    observations: Sequence[PriceObservation],
) -> PriceAnalytics:
    """Compute current / min / max price and the trend for one offer.

    Observations are taken in ``recorded_at`` order; the sort is stable, so
    equal timestamps keep their insertion order.  The initial watch-time
    observation counts like any other.

    When the current price is above the minimum, ``previous_low`` is the
    cheapest reading below it, the earliest one on ties.
    """
    if not observations:
        raise InconsistentState(
            f"watched offer {offer.offer_id} has no price observations"
        )

    observations = sorted(observations, key=lambda o: o.recorded_at)
    current = observations[-1]
    prices = [o.price for o in observations]
    min_price = min(prices)

    previous_low: PriceObservation | None = None
    if current.price == min_price:
        trend = Trend.AT_MINIMUM
    else:
        trend = Trend.ABOVE_MINIMUM
        for obs in observations:
            if obs.price >= current.price:
                continue
            # Strict < keeps the earliest of equal lows
            if previous_low is None or obs.price < previous_low.price:
                previous_low = obs

    change = None
    if len(observations) > 1:
        change = current.price - observations[-2].price

    return PriceAnalytics(
        current_price=current.price,
        min_price=min_price,
        max_price=max(prices),
        trend=trend,
        observation_count=len(observations),
        previous_low=previous_low,
        change_since_previous=change,
    )
