# cruise_watch/storage/watch_store.py

"""SQLite-backed store for watched offers and their price history."""

import logging
import sqlite3
import threading
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from cruise_watch.config.settings import Settings
from cruise_watch.errors import (
    AlreadyWatched,
    InconsistentState,
    NotWatched,
    StoreFailure,
)
from cruise_watch.models.offer import DisplayAttributes, WatchedOffer
from cruise_watch.models.price_observation import PriceObservation

logger = logging.getLogger("cruise_watch.store")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS watched_offers (
    offer_id       TEXT PRIMARY KEY,
    vessel_name    TEXT NOT NULL DEFAULT '',
    departure_date TEXT NOT NULL DEFAULT '',
    port_name      TEXT NOT NULL DEFAULT '',
    duration       INTEGER,
    created_at     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS price_observations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    offer_id    TEXT    NOT NULL
                REFERENCES watched_offers(offer_id) ON DELETE CASCADE,
    price       TEXT    NOT NULL,
    recorded_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_observations_offer_time
    ON price_observations(offer_id, recorded_at);
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(at: datetime) -> datetime:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc)


def _format_ts(at: datetime) -> str:
    # Fixed-width UTC text sorts chronologically in SQL
    return _to_utc(at).isoformat(timespec="microseconds")


def _check_price(price: Decimal) -> Decimal:
    value = Decimal(price)
    if not value.is_finite() or value < 0:
        raise ValueError(f"price must be a non-negative amount, got {price!r}")
    return value


class WatchStore:
    """SQLite store for watched offers and their price observations.

    Every call opens its own short-lived connection so that worker threads
    never share transaction state.  Mutations on one offer id are serialized
    by a per-key lock; different offers only contend inside SQLite itself.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = db_path or Settings.DB_PATH
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock or _utcnow
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreFailure(
                f"cannot initialise database at {self._path}: {exc}"
            ) from exc
        finally:
            conn.close()
        logger.debug("WatchStore opened at %s", self._path)

    def now(self) -> datetime:
        """Return the store's current UTC time."""
        return _to_utc(self._clock())

    # ── Connection / locking helpers ─────────────────────

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                str(self._path),
                timeout=Settings.DB_BUSY_TIMEOUT,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as exc:
            raise StoreFailure(
                f"cannot open database at {self._path}: {exc}"
            ) from exc
        return conn

    @contextmanager
    def _transaction(
        self, mode: str = "IMMEDIATE",
    ) -> Iterator[sqlite3.Connection]:
        """Run the body in one transaction, committing only on success."""
        conn = self._connect()
        try:
            conn.execute(f"BEGIN {mode}")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            raise StoreFailure(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def _offer_lock(self, offer_id: str) -> Iterator[None]:
        """Hold the mutual-exclusion lock for one offer id."""
        with self._locks_guard:
            lock = self._locks.get(offer_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[offer_id] = lock
        with lock:
            yield

    # ── Mutations ────────────────────────────────────────

    def create_watch(
        self,
        offer_id: str,
        display_attributes: DisplayAttributes,
        initial_price: Decimal,
    ) -> WatchedOffer:
        """Insert a watch and its first observation as a single unit.

        Raises ``AlreadyWatched`` if the offer already has a watch.
        """
        price = _check_price(initial_price)
        with self._offer_lock(offer_id), self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM watched_offers WHERE offer_id = ?",
                (offer_id,),
            ).fetchone()
            if exists:
                raise AlreadyWatched(offer_id)

            created_at = self.now()
            ts = _format_ts(created_at)
            attrs = display_attributes
            conn.execute(
                "INSERT INTO watched_offers "
                "(offer_id, vessel_name, departure_date, port_name, "
                " duration, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    offer_id,
                    attrs.vessel_name,
                    attrs.departure_date,
                    attrs.port_name,
                    attrs.duration,
                    ts,
                ),
            )
            conn.execute(
                "INSERT INTO price_observations "
                "(offer_id, price, recorded_at) VALUES (?, ?, ?)",
                (offer_id, str(price), ts),
            )

        logger.info(
            "Watching offer %s at %s (%s)",
            offer_id,
            price,
            attrs.vessel_name or "unknown vessel",
        )
        return WatchedOffer(
            offer_id=offer_id,
            attributes=display_attributes,
            created_at=created_at,
        )

    def delete_watch(self, offer_id: str) -> None:
        """Delete a watch and, by cascade, all of its observations.

        Raises ``NotWatched`` if there is nothing to delete.
        """
        with self._offer_lock(offer_id), self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM watched_offers WHERE offer_id = ?",
                (offer_id,),
            )
            if cur.rowcount == 0:
                raise NotWatched(offer_id)
        logger.info("Stopped watching offer %s", offer_id)

    def append_observation(
        self,
        offer_id: str,
        price: Decimal,
        at: datetime,
    ) -> tuple[PriceObservation, bool]:
        """Append one price reading for a watched offer.

        Returns the offer's latest observation and whether it was inserted
        by this call.  If ``at`` does not advance past the last observation,
        nothing is written and the existing record comes back with
        ``False``.  Raises ``NotWatched`` if the offer is not tracked.
        """
        value = _check_price(price)
        at = _to_utc(at)
        with self._offer_lock(offer_id), self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM watched_offers WHERE offer_id = ?",
                (offer_id,),
            ).fetchone()
            if not exists:
                raise NotWatched(offer_id)

            last = conn.execute(
                "SELECT price, recorded_at FROM price_observations "
                "WHERE offer_id = ? "
                "ORDER BY recorded_at DESC, id DESC LIMIT 1",
                (offer_id,),
            ).fetchone()
            if last is not None:
                last_at = datetime.fromisoformat(last[1])
                if at <= last_at:
                    logger.debug(
                        "Clock did not advance for offer %s "
                        "(%s <= %s), keeping last observation",
                        offer_id,
                        at.isoformat(),
                        last[1],
                    )
                    kept = PriceObservation(
                        offer_id=offer_id,
                        price=Decimal(last[0]),
                        recorded_at=last_at,
                    )
                    return kept, False

            conn.execute(
                "INSERT INTO price_observations "
                "(offer_id, price, recorded_at) VALUES (?, ?, ?)",
                (offer_id, str(value), _format_ts(at)),
            )

        logger.debug(
            "Recorded %s for offer %s at %s",
            value,
            offer_id,
            at.isoformat(),
        )
        observation = PriceObservation(
            offer_id=offer_id, price=value, recorded_at=at,
        )
        return observation, True

    # ── Querying ─────────────────────────────────────────

    def list_watches(
        self,
    ) -> list[tuple[WatchedOffer, list[PriceObservation]]]:
        """Snapshot every watch with its observations, oldest first.

        Both tables are read inside one transaction, so a concurrent
        watch or unwatch is either fully visible or not at all.
        """
        with self._transaction("DEFERRED") as conn:
            offer_rows = conn.execute(
                "SELECT offer_id, vessel_name, departure_date, "
                "       port_name, duration, created_at "
                "FROM watched_offers "
                "ORDER BY created_at ASC, offer_id ASC",
            ).fetchall()
            obs_rows = conn.execute(
                "SELECT offer_id, price, recorded_at "
                "FROM price_observations "
                "ORDER BY offer_id, recorded_at ASC, id ASC",
            ).fetchall()

        history: dict[str, list[PriceObservation]] = {}
        for r in obs_rows:
            history.setdefault(r[0], []).append(
                PriceObservation(
                    offer_id=r[0],
                    price=Decimal(r[1]),
                    recorded_at=datetime.fromisoformat(r[2]),
                )
            )

        result: list[tuple[WatchedOffer, list[PriceObservation]]] = []
        for r in offer_rows:
            offer = WatchedOffer(
                offer_id=r[0],
                attributes=DisplayAttributes(
                    vessel_name=r[1],
                    departure_date=r[2],
                    port_name=r[3],
                    duration=r[4],
                ),
                created_at=datetime.fromisoformat(r[5]),
            )
            observations = history.get(offer.offer_id, [])
            if not observations:
                raise InconsistentState(
                    f"watched offer {offer.offer_id} has no price "
                    "observations"
                )
            result.append((offer, observations))
        return result

    def get_history(self, offer_id: str) -> list[PriceObservation]:
        """Return all observations for one offer, oldest first.

        Raises ``NotWatched`` if the offer is not tracked.
        """
        with self._transaction("DEFERRED") as conn:
            exists = conn.execute(
                "SELECT 1 FROM watched_offers WHERE offer_id = ?",
                (offer_id,),
            ).fetchone()
            if not exists:
                raise NotWatched(offer_id)
            rows = conn.execute(
                "SELECT price, recorded_at FROM price_observations "
                "WHERE offer_id = ? "
                "ORDER BY recorded_at ASC, id ASC",
                (offer_id,),
            ).fetchall()
        if not rows:
            raise InconsistentState(
                f"watched offer {offer_id} has no price observations"
            )
        return [
            PriceObservation(
                offer_id=offer_id,
                price=Decimal(r[0]),
                recorded_at=datetime.fromisoformat(r[1]),
            )
            for r in rows
        ]
