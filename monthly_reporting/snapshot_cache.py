# monthly_reporting_core/monthly_reporting/snapshot_cache.py
# Time-bounded, single-flight cache of the monthly records table.

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import pandas as pd

from config import app_config
from .helpers import normalize_monthly_records

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, eq=False)
class Snapshot:
    """
    A complete, normalized copy of the monthly table and the moment it was captured.

    Snapshots are never mutated; a refresh builds a new one and swaps the cache reference.
    Equality and hashing are by identity so per-snapshot derivations can be memoized.
    """
    records: pd.DataFrame
    captured_at: datetime

    @classmethod
    def capture(cls, raw_records: pd.DataFrame, captured_at: Optional[datetime] = None) -> "Snapshot":
        return cls(records=normalize_monthly_records(raw_records), captured_at=captured_at or _utc_now())

    def __len__(self) -> int:
        return len(self.records)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.captured_at).total_seconds()


class SnapshotCache:
    """
    Serves the current Snapshot, refreshing it from `fetch_records` once it is older than the TTL.

    Only one refresh runs at a time; callers arriving during a refresh wait for it and reuse its
    result. A failed fetch propagates to the caller and leaves the previous snapshot in place.
    """

    def __init__(
        self,
        fetch_records: Callable[[], pd.DataFrame],
        ttl_seconds: int = app_config.CACHE_TTL_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
        source_context: str = "SnapshotCache"
    ):
        self._fetch_records = fetch_records
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._source_context = source_context
        self._snapshot: Optional[Snapshot] = None
        self._stale = False
        self._refresh_lock = threading.Lock()

    def _is_fresh(self, snapshot: Optional[Snapshot]) -> bool:
        if snapshot is None or self._stale:
            return False
        return snapshot.age_seconds(self._clock()) < self.ttl_seconds

    def get(self) -> Snapshot:
        snapshot = self._snapshot
        if self._is_fresh(snapshot):
            logger.debug(f"({self._source_context}) Serving cached snapshot captured at {snapshot.captured_at.isoformat()}")
            return snapshot
        with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock.
            snapshot = self._snapshot
            if self._is_fresh(snapshot):
                return snapshot
            return self._refresh()

    def _refresh(self) -> Snapshot:
        logger.info(f"({self._source_context}) Refreshing snapshot from data source.")
        try:
            raw_records = self._fetch_records()
            new_snapshot = Snapshot.capture(raw_records, captured_at=self._clock())
        except Exception as e:
            logger.error(f"({self._source_context}) Snapshot refresh failed, previous snapshot kept: {e}")
            raise
        self._snapshot = new_snapshot
        self._stale = False
        logger.info(f"({self._source_context}) Snapshot refreshed: {len(new_snapshot)} records.")
        return new_snapshot

    def peek(self) -> Optional[Snapshot]:
        """The current snapshot without triggering a refresh (None before the first fetch)."""
        return self._snapshot

    def invalidate(self) -> None:
        """Forces the next get() to refresh; the current snapshot stays until replaced."""
        with self._refresh_lock:
            self._stale = True
