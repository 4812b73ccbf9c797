"""TTL-bounded in-memory store of the latest snapshot per market address."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from app.domain import MarketSnapshot

DEFAULT_TTL_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class CacheEntry:
    snapshot: MarketSnapshot
    fetched_at: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    total: int
    valid: int
    expired: int
    ttl_seconds: float

    def to_dict(self) -> dict[str, float | int]:
        return {
            "total": self.total,
            "valid": self.valid,
            "expired": self.expired,
            "ttl_seconds": self.ttl_seconds,
        }


class LiveCache:
    """Expired entries read as missing but are only dropped on overwrite or invalidation."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.fetched_at <= self.ttl_seconds

    def get(self, address: str) -> MarketSnapshot | None:
        with self._lock:
            entry = self._entries.get(address)
        if entry is None or not self._is_fresh(entry, self._clock()):
            return None
        return entry.snapshot

    def put(self, address: str, snapshot: MarketSnapshot) -> None:
        entry = CacheEntry(snapshot=snapshot, fetched_at=self._clock())
        with self._lock:
            self._entries[address] = entry

    def invalidate(self, address: str | None = None) -> None:
        with self._lock:
            if address is None:
                self._entries.clear()
            else:
                self._entries.pop(address, None)
        if address is None:
            logger.info("Cleared all cached market snapshots")
        else:
            logger.debug("Cleared cached snapshot for {}", address)

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        valid = sum(1 for entry in entries if self._is_fresh(entry, now))
        return CacheStats(
            total=len(entries),
            valid=valid,
            expired=len(entries) - valid,
            ttl_seconds=self.ttl_seconds,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
