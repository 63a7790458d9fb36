# tests/test_watch_store.py

"""Tests for the SQLite watch store."""

import sqlite3
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

from cruise_watch.errors import (
    AlreadyWatched,
    InconsistentState,
    NotWatched,
    StoreFailure,
)
from cruise_watch.models.offer import DisplayAttributes
from cruise_watch.storage.watch_store import WatchStore

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current += timedelta(minutes=1)
        return now


def _failing_connect(db_path: Path, fail_on: str):
    """Build a ``_connect`` replacement whose statements starting with
    ``fail_on`` raise an OperationalError."""

    class FailingConnection(sqlite3.Connection):
        def execute(self, sql, *args):  # type: ignore[override]
            if sql.startswith(fail_on):
                raise sqlite3.OperationalError("disk I/O error")
            return super().execute(sql, *args)

    def connect() -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(db_path),
            isolation_level=None,
            factory=FailingConnection,
        )
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    return connect


def _attrs() -> DisplayAttributes:
    return DisplayAttributes(
        vessel_name="MSC Seashore",
        departure_date="14/03/2026",
        port_name="Port Canaveral",
        duration=7,
    )


class TestWatchStore(unittest.TestCase):
    """Tests for the WatchStore class."""

    def setUp(self) -> None:
        """Create a fresh temp DB for each test."""
        self.tmp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.tmp_dir) / "test.db"
        self.clock = TickingClock()
        self.store = WatchStore(db_path=self.db_path, clock=self.clock)

    def _count_rows(self, table: str, offer_id: str) -> int:
        conn = sqlite3.connect(str(self.db_path))
        try:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {table} WHERE offer_id = ?",
                (offer_id,),
            ).fetchone()
        finally:
            conn.close()
        return int(row[0])

    # ── create_watch ─────────────────────────────────────

    def test_create_watch_writes_initial_observation(self) -> None:
        """A new watch carries exactly one observation at its price."""
        watched = self.store.create_watch("A1", _attrs(), Decimal("100"))
        self.assertEqual(watched.offer_id, "A1")
        self.assertEqual(watched.attributes.vessel_name, "MSC Seashore")

        history = self.store.get_history("A1")
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].price, Decimal("100"))
        self.assertEqual(history[0].recorded_at, watched.created_at)

    def test_create_watch_duplicate_raises(self) -> None:
        """A second create for the same offer is rejected."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        with self.assertRaises(AlreadyWatched):
            self.store.create_watch("A1", _attrs(), Decimal("90"))
        self.assertEqual(self._count_rows("watched_offers", "A1"), 1)
        self.assertEqual(self._count_rows("price_observations", "A1"), 1)

    def test_create_watch_rejects_negative_price(self) -> None:
        """Negative prices never reach the database."""
        with self.assertRaises(ValueError):
            self.store.create_watch("A1", _attrs(), Decimal("-1"))
        self.assertEqual(self._count_rows("watched_offers", "A1"), 0)

    def test_create_watch_is_atomic(self) -> None:
        """If the observation insert fails, the watch row is rolled back."""
        failing = _failing_connect(
            self.db_path, "INSERT INTO price_observations",
        )
        with patch.object(self.store, "_connect", side_effect=failing):
            with self.assertRaises(StoreFailure):
                self.store.create_watch("A1", _attrs(), Decimal("100"))

        self.assertEqual(self._count_rows("watched_offers", "A1"), 0)
        self.assertEqual(self.store.list_watches(), [])

    # ── delete_watch ─────────────────────────────────────

    def test_delete_watch_cascades(self) -> None:
        """Deleting a watch removes every observation for it."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        self.store.append_observation("A1", Decimal("90"), self.clock())
        self.store.delete_watch("A1")

        self.assertEqual(self._count_rows("watched_offers", "A1"), 0)
        self.assertEqual(self._count_rows("price_observations", "A1"), 0)

    def test_delete_watch_twice_raises(self) -> None:
        """The store is strict: a second delete is an error."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        self.store.delete_watch("A1")
        with self.assertRaises(NotWatched):
            self.store.delete_watch("A1")

    def test_delete_leaves_other_offers(self) -> None:
        """Only the targeted offer's history is removed."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        self.store.create_watch("B2", _attrs(), Decimal("200"))
        self.store.delete_watch("A1")
        self.assertEqual(len(self.store.get_history("B2")), 1)

    # ── append_observation ───────────────────────────────

    def test_append_unknown_offer_raises(self) -> None:
        """Appending to an untracked offer fails."""
        with self.assertRaises(NotWatched):
            self.store.append_observation(
                "nope", Decimal("10"), self.clock(),
            )
        self.assertEqual(self._count_rows("price_observations", "nope"), 0)

    def test_append_accumulates_in_order(self) -> None:
        """Observations come back oldest first."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        for price in ("120", "90", "110"):
            self.store.append_observation(
                "A1", Decimal(price), self.clock(),
            )

        history = self.store.get_history("A1")
        self.assertEqual(
            [o.price for o in history],
            [Decimal("100"), Decimal("120"), Decimal("90"), Decimal("110")],
        )
        stamps = [o.recorded_at for o in history]
        self.assertEqual(stamps, sorted(stamps))

    def test_append_same_tick_keeps_last_record(self) -> None:
        """A non-advancing clock does not duplicate the last record."""
        watched = self.store.create_watch("A1", _attrs(), Decimal("100"))
        kept, inserted = self.store.append_observation(
            "A1", Decimal("80"), watched.created_at,
        )
        self.assertFalse(inserted)
        self.assertEqual(kept.price, Decimal("100"))
        self.assertEqual(len(self.store.get_history("A1")), 1)

    def test_append_out_of_order_not_inserted(self) -> None:
        """An older timestamp never lands behind newer history."""
        watched = self.store.create_watch("A1", _attrs(), Decimal("100"))
        earlier = watched.created_at - timedelta(hours=1)
        self.store.append_observation("A1", Decimal("70"), earlier)

        history = self.store.get_history("A1")
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].price, Decimal("100"))

    def test_append_naive_timestamp_treated_as_utc(self) -> None:
        """Naive datetimes are stored as UTC."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        obs, inserted = self.store.append_observation(
            "A1", Decimal("95"), datetime(2026, 4, 1, 12, 0),
        )
        self.assertTrue(inserted)
        self.assertEqual(obs.recorded_at.tzinfo, timezone.utc)
        self.assertEqual(
            self.store.get_history("A1")[-1].recorded_at,
            datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_price_precision_preserved(self) -> None:
        """Decimal amounts round-trip without float drift."""
        self.store.create_watch("A1", _attrs(), Decimal("2713.10"))
        self.assertEqual(
            self.store.get_history("A1")[0].price, Decimal("2713.10"),
        )

    # ── list_watches ─────────────────────────────────────

    def test_list_watches_snapshot(self) -> None:
        """Every watch is listed with its full ascending history."""
        self.store.create_watch("A1", _attrs(), Decimal("100"))
        self.store.create_watch("B2", DisplayAttributes(), Decimal("50"))
        self.store.append_observation("A1", Decimal("90"), self.clock())

        watches = self.store.list_watches()
        self.assertEqual([w.offer_id for w, _ in watches], ["A1", "B2"])
        self.assertEqual(len(watches[0][1]), 2)
        self.assertEqual(len(watches[1][1]), 1)
        self.assertEqual(watches[1][0].attributes.duration, None)

    def test_list_watches_empty(self) -> None:
        """No watches returns an empty list."""
        self.assertEqual(self.store.list_watches(), [])

    def test_list_watches_flags_missing_history(self) -> None:
        """A watch without observations is reported as corruption."""
        conn = sqlite3.connect(str(self.db_path))
        conn.execute(
            "INSERT INTO watched_offers (offer_id, created_at) "
            "VALUES ('ghost', ?)",
            (T0.isoformat(),),
        )
        conn.commit()
        conn.close()

        with self.assertRaises(InconsistentState):
            self.store.list_watches()

    def test_get_history_unknown_offer(self) -> None:
        """History of an untracked offer is an error."""
        with self.assertRaises(NotWatched):
            self.store.get_history("nope")

    # ── Concurrency ──────────────────────────────────────

    def test_concurrent_appends_to_different_offers(self) -> None:
        """Parallel writers on distinct offers all land."""
        ids = [f"O{i}" for i in range(8)]
        for oid in ids:
            self.store.create_watch(oid, _attrs(), Decimal("100"))

        later = T0 + timedelta(days=1)
        errors: list[BaseException] = []

        def worker(oid: str) -> None:
            try:
                for step in range(5):
                    self.store.append_observation(
                        oid,
                        Decimal(90 - step),
                        later + timedelta(seconds=step),
                    )
            except BaseException as exc:  # pragma: no cover
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(oid,)) for oid in ids
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        for oid in ids:
            self.assertEqual(len(self.store.get_history(oid)), 6)

    def test_unwatch_racing_append_leaves_no_orphans(self) -> None:
        """A delete and an append on one offer never orphan a row."""
        for round_no in range(10):
            oid = f"R{round_no}"
            self.store.create_watch(oid, _attrs(), Decimal("100"))
            at = T0 + timedelta(days=2, seconds=round_no)

            def append() -> None:
                try:
                    self.store.append_observation(oid, Decimal("1"), at)
                except NotWatched:
                    pass

            t1 = threading.Thread(target=append)
            t2 = threading.Thread(target=self.store.delete_watch, args=(oid,))
            t1.start()
            t2.start()
            t1.join()
            t2.join()

            self.assertEqual(self._count_rows("watched_offers", oid), 0)
            self.assertEqual(self._count_rows("price_observations", oid), 0)


class TestWatchStoreFailures(unittest.TestCase):
    """Database errors surface as StoreFailure."""

    def test_unopenable_database(self) -> None:
        """A path that cannot hold a database raises StoreFailure."""
        tmp_dir = Path(tempfile.mkdtemp())
        blocker = tmp_dir / "db_dir"
        blocker.mkdir()
        with self.assertRaises(StoreFailure):
            WatchStore(db_path=blocker)

    def test_sqlite_error_wrapped(self) -> None:
        """Operational errors mid-call surface as StoreFailure."""
        tmp_dir = Path(tempfile.mkdtemp())
        db_path = tmp_dir / "x.db"
        store = WatchStore(db_path=db_path)
        failing = _failing_connect(db_path, "SELECT")
        with patch.object(store, "_connect", side_effect=failing):
            with self.assertRaises(StoreFailure):
                store.list_watches()
            with self.assertRaises(StoreFailure):
                store.append_observation(
                    "A1", Decimal("1"), T0,
                )


if __name__ == "__main__":
    unittest.main()
