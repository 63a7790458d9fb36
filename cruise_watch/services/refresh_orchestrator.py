# cruise_watch/services/refresh_orchestrator.py

"""Batch price refresh with bounded fan-out and per-offer isolation."""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from cruise_watch.config.settings import Settings
from cruise_watch.errors import NotWatched, SourceError, StoreFailure
from cruise_watch.models.offer import Offer
from cruise_watch.sources.base_source import BasePriceSource

if TYPE_CHECKING:
    from cruise_watch.services.watch_manager import WatchManager

logger = logging.getLogger("cruise_watch.refresh")


class RefreshStage(str, Enum):
    """Steps of one offer's refresh; the last three are terminal."""

    PENDING = "pending"
    FETCHING = "fetching"
    FETCHED = "fetched"
    APPENDED = "appended"
    FETCH_FAILED = "fetch_failed"
    APPEND_FAILED = "append_failed"


class RefreshStatus(str, Enum):
    """Outcome of one offer's refresh."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class RefreshOutcome:
    """Result of refreshing a single offer."""

    offer_id: str
    status: RefreshStatus
    stage: RefreshStage
    error: str = ""
    price: Decimal | None = None


@dataclass
class RefreshReport:
    """Per-offer outcomes of one refresh pass, in watch-list order."""

    outcomes: list[RefreshOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[RefreshOutcome]:
        return [
            o for o in self.outcomes if o.status is RefreshStatus.SUCCESS
        ]

    @property
    def failed(self) -> list[RefreshOutcome]:
        return [
            o for o in self.outcomes if o.status is RefreshStatus.FAILED
        ]

    def summary(self) -> str:
        """E.g. ``'9 of 10 updated, 1 failed: offer X: HTTP 503'``."""
        total = len(self.outcomes)
        text = f"{len(self.succeeded)} of {total} updated"
        if self.failed:
            details = "; ".join(
                f"offer {o.offer_id}: {o.error}" for o in self.failed
            )
            text += f", {len(self.failed)} failed: {details}"
        return text


class RefreshOrchestrator:
    """Refreshes every watched offer's price in one pass.

    Offers are fetched concurrently, at most ``concurrency`` at a time.
    Each offer is an isolated unit: its fetch has its own timeout and any
    failure becomes that offer's outcome without touching the others.

    A timed-out fetch cannot be interrupted inside its worker thread, so
    fetch threads also take a slot from a thread-level semaphore that is
    released only when ``fetch_current`` actually returns.  Live fetch
    threads never exceed ``concurrency``.
    """

    def __init__(
        self,
        manager: "WatchManager",
        source: BasePriceSource,
        timeout: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        self._manager = manager
        self._source = source
        self._timeout = (
            timeout if timeout is not None else Settings.REFRESH_TIMEOUT
        )
        self._concurrency = max(
            1, concurrency or Settings.REFRESH_CONCURRENCY,
        )
        self._fetch_slots = threading.BoundedSemaphore(self._concurrency)

    # ── Per-offer unit of work ───────────────────────────

    def _fetch_blocking(self, offer_id: str) -> Offer:
        """Worker-thread fetch holding a slot until the call returns."""
        if not self._fetch_slots.acquire(timeout=self._timeout):
            raise TimeoutError(f"no free fetch slot for offer {offer_id}")
        try:
            return self._source.fetch_current(offer_id)
        finally:
            self._fetch_slots.release()

    async def _fetch(self, offer_id: str) -> Offer:
        return await asyncio.wait_for(
            asyncio.to_thread(self._fetch_blocking, offer_id),
            timeout=self._timeout,
        )

    async def _refresh_one(
        self,
        offer_id: str,
        semaphore: asyncio.Semaphore,
    ) -> RefreshOutcome:
        """Fetch then append for one offer; never raises for its failures."""
        async with semaphore:
            logger.debug(
                "Offer %s: %s", offer_id, RefreshStage.FETCHING.value,
            )
            try:
                offer = await self._fetch(offer_id)
            except (asyncio.TimeoutError, TimeoutError):
                return self._failed(
                    offer_id,
                    RefreshStage.FETCH_FAILED,
                    f"timed out after {self._timeout:g}s",
                )
            except SourceError as exc:
                return self._failed(
                    offer_id, RefreshStage.FETCH_FAILED, exc.reason,
                )
            except Exception as exc:
                logger.error(
                    "Unexpected fetch error for offer %s",
                    offer_id,
                    exc_info=True,
                )
                return self._failed(
                    offer_id,
                    RefreshStage.FETCH_FAILED,
                    f"unexpected error: {exc}",
                )

            logger.debug(
                "Offer %s: %s at %s",
                offer_id,
                RefreshStage.FETCHED.value,
                offer.price,
            )
            try:
                stored, inserted = await asyncio.to_thread(
                    self._manager.record_price, offer_id, offer.price,
                )
            except NotWatched:
                return self._failed(
                    offer_id,
                    RefreshStage.APPEND_FAILED,
                    "no longer watched",
                )
            except (StoreFailure, ValueError) as exc:
                return self._failed(
                    offer_id, RefreshStage.APPEND_FAILED, str(exc),
                )
            except Exception as exc:
                logger.error(
                    "Unexpected store error for offer %s",
                    offer_id,
                    exc_info=True,
                )
                return self._failed(
                    offer_id,
                    RefreshStage.APPEND_FAILED,
                    f"unexpected error: {exc}",
                )

        if not inserted:
            return self._failed(
                offer_id,
                RefreshStage.APPEND_FAILED,
                "clock did not advance past the last observation "
                f"({stored.recorded_at.isoformat()})",
            )

        logger.info("Offer %s refreshed at %s", offer_id, stored.price)
        return RefreshOutcome(
            offer_id=offer_id,
            status=RefreshStatus.SUCCESS,
            stage=RefreshStage.APPENDED,
            price=stored.price,
        )

    @staticmethod
    def _failed(
        offer_id: str, stage: RefreshStage, error: str,
    ) -> RefreshOutcome:
        logger.warning(
            "Offer %s refresh failed (%s): %s",
            offer_id,
            stage.value,
            error,
        )
        return RefreshOutcome(
            offer_id=offer_id,
            status=RefreshStatus.FAILED,
            stage=stage,
            error=error,
        )

    # ── Batch entry point ────────────────────────────────

    async def refresh_all(self) -> RefreshReport:
        """Refresh every watched offer and report each outcome.

        Raises only if the watch list itself cannot be read.  Cancelling
        the call cancels the in-flight offers; a cancelled fetch never
        leads to a write.
        """
        watches = await asyncio.to_thread(self._manager.snapshot)
        offer_ids = [offer.offer_id for offer, _ in watches]
        logger.info(
            "Refreshing %d watched offers (concurrency=%d, timeout=%gs)",
            len(offer_ids),
            self._concurrency,
            self._timeout,
        )

        semaphore = asyncio.Semaphore(self._concurrency)
        results = await asyncio.gather(
            *(self._refresh_one(oid, semaphore) for oid in offer_ids),
            return_exceptions=True,
        )

        report = RefreshReport()
        for result in results:
            # Per-offer failures are already outcomes; only a
            # cancellation of the pass can surface here.
            if isinstance(result, BaseException):
                raise result
            report.outcomes.append(result)

        logger.info("Refresh pass complete: %s", report.summary())
        return report
