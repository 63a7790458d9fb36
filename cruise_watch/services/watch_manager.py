# cruise_watch/services/watch_manager.py

"""Business rules over the watch store: idempotent watches and analytics."""

import logging
from collections.abc import Sequence
from decimal import Decimal

from cruise_watch.errors import AlreadyWatched, NotWatched
from cruise_watch.models.analytics import PriceAnalytics, WatchedOfferView
from cruise_watch.models.offer import Offer, WatchedOffer
from cruise_watch.models.price_observation import PriceObservation
from cruise_watch.services.price_analytics import compute_analytics
from cruise_watch.services.refresh_orchestrator import (
    RefreshOrchestrator,
    RefreshReport,
)
from cruise_watch.sources.base_source import BasePriceSource
from cruise_watch.storage.watch_store import WatchStore

logger = logging.getLogger("cruise_watch.manager")


class WatchManager:
    """Caller-facing entry point for watching offers and refreshing prices.

    The store is strict about duplicates and missing rows; this layer turns
    both into idempotent no-ops.  It is the only writer to the store.
    """

    def __init__(
        self,
        store: WatchStore,
        source: BasePriceSource,
        refresh_timeout: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._orchestrator = RefreshOrchestrator(
            self,
            source,
            timeout=refresh_timeout,
            concurrency=concurrency,
        )

    # ── Watching ─────────────────────────────────────────

    def watch(self, offer: Offer) -> bool:
        """Start watching ``offer`` at its current price.

        Returns ``True`` if a new watch was created and ``False`` if the
        offer was already watched (nothing is written in that case).
        """
        try:
            self._store.create_watch(
                offer.offer_id, offer.attributes, offer.price,
            )
        except AlreadyWatched:
            logger.info(
                "Offer %s already watched, leaving history untouched",
                offer.offer_id,
            )
            return False
        return True

    def watch_by_id(self, offer_id: str) -> bool:
        """Look the offer up upstream, then watch it.

        Source errors propagate to the caller.
        """
        offer = self._source.fetch_current(offer_id)
        return self.watch(offer)

    def unwatch(self, offer_id: str) -> bool:
        """Stop watching ``offer_id`` and drop its history.

        Returns ``False`` when there was no watch to remove.
        """
        try:
            self._store.delete_watch(offer_id)
        except NotWatched:
            logger.info("Offer %s was not watched", offer_id)
            return False
        return True

    # ── Reading ──────────────────────────────────────────

    @staticmethod
    def analytics(
        watched_offer: WatchedOffer,
        observations: Sequence[PriceObservation],
    ) -> PriceAnalytics:
        """Derive current / minimum price and trend from raw history."""
        return compute_analytics(watched_offer, observations)

    def snapshot(
        self,
    ) -> list[tuple[WatchedOffer, list[PriceObservation]]]:
        """Raw watch list with history, as the store returns it."""
        return self._store.list_watches()

    def list(self) -> list[WatchedOfferView]:
        """Return every watched offer with its history and analytics."""
        return [
            WatchedOfferView(
                offer=offer,
                history=history,
                analytics=self.analytics(offer, history),
            )
            for offer, history in self.snapshot()
        ]

    # ── Refreshing ───────────────────────────────────────

    def record_price(
        self, offer_id: str, price: Decimal,
    ) -> tuple[PriceObservation, bool]:
        """Append a price reading stamped with the store's clock.

        The flag is ``False`` when the clock did not advance past the last
        observation and nothing was written.
        """
        return self._store.append_observation(
            offer_id, price, self._store.now(),
        )

    async def refresh_all(self) -> RefreshReport:
        """Re-fetch and record the price of every watched offer."""
        return await self._orchestrator.refresh_all()
