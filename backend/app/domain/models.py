"""Typed domain representations shared by the ledger readers, services, and APIs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class MarketStatus(str, Enum):
    ACTIVE = "Active"
    RESOLVED = "Resolved"
    CANCELLED = "Cancelled"

    @classmethod
    def from_byte(cls, value: int) -> "MarketStatus":
        return _STATUS_BY_BYTE[value]


_STATUS_BY_BYTE = {0: MarketStatus.ACTIVE, 1: MarketStatus.RESOLVED, 2: MarketStatus.CANCELLED}


class DataSource(str, Enum):
    LIVE_LEDGER = "live_ledger"
    CACHE = "cache"
    PERSISTED_FALLBACK = "persisted_fallback"


class AccountKind(str, Enum):
    MARKET = "market"
    PARTICIPATION = "participation"


@dataclass(frozen=True, slots=True)
class RawAccount:
    """Undecoded ledger account as returned by the RPC node."""

    address: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class MarketRecord:
    """Market account decoded field by field from its fixed on-ledger layout."""

    authority: str
    creator: str
    market_kind: int
    question: str
    question_len: int
    options: tuple[str, ...]
    option_count: int
    resolution_timestamp: int
    creator_fee_rate: int
    min_bet_amount: int
    token_mint: str
    status: MarketStatus
    winning_option: int | None
    pools: tuple[int, int, int, int]
    total_pool: int
    market_id: str
    category: str
    address: str | None = None

    @property
    def option_pools(self) -> tuple[int, ...]:
        return self.pools[: self.option_count]

    @property
    def resolution_date(self) -> datetime | None:
        if self.resolution_timestamp <= 0:
            return None
        try:
            return datetime.fromtimestamp(self.resolution_timestamp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["options"] = list(self.options)
        payload["pools"] = list(self.pools)
        payload["resolution_date"] = self.resolution_date
        return payload


@dataclass(frozen=True, slots=True)
class ParticipationRecord:
    """A single participant's stake in one market option."""

    owner: str
    market: str
    amount: int
    option_index: int
    timestamp: int
    claimed: bool
    address: str | None = None


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Point-in-time reconstruction of a market's ledger state."""

    address: str
    question: str
    options: tuple[str, ...]
    status: MarketStatus
    winning_option: int | None
    option_pools: tuple[float, ...]
    total_pool: float
    option_percentages: tuple[float, ...]
    participant_count: int
    last_updated: datetime
    data_source: DataSource
    category: str | None = None
    resolution_date: datetime | None = None

    @property
    def total_volume(self) -> float:
        return self.total_pool

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "question": self.question,
            "options": list(self.options),
            "status": self.status.value,
            "winning_option": self.winning_option,
            "option_pools": list(self.option_pools),
            "total_pool": self.total_pool,
            "total_volume": self.total_volume,
            "option_percentages": list(self.option_percentages),
            "participant_count": self.participant_count,
            "last_updated": self.last_updated,
            "data_source": self.data_source.value,
            "category": self.category,
            "resolution_date": self.resolution_date,
        }


@dataclass(frozen=True, slots=True)
class MarketRow:
    """Detached copy of a persisted market row."""

    market_address: str
    question: str
    status: str
    resolved_option: int | None = None
    options: tuple[str, ...] = ()
    option_volumes: tuple[float, ...] = ()
    total_volume: float | None = None
    participant_count: int | None = None
    category: str | None = None
    resolution_date: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status == MarketStatus.RESOLVED.value


@dataclass(slots=True)
class SnapshotError:
    address: str
    error: str
    kind: str

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "error": self.error, "kind": self.kind}


@dataclass(slots=True)
class SnapshotBatch:
    snapshots: list[MarketSnapshot] = field(default_factory=list)
    errors: list[SnapshotError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshots": [snapshot.to_dict() for snapshot in self.snapshots],
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass(slots=True)
class ReconcileOutcome:
    """Result of reconciling one market's settlement state into the store."""

    address: str
    was_resolved: bool = False
    winning_option: int | None = None
    updated: bool = False
    status: MarketStatus | None = None
    ledger_status: MarketStatus | None = None
    message: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "was_resolved": self.was_resolved,
            "winning_option": self.winning_option,
            "updated": self.updated,
            "status": self.status.value if self.status else None,
            "ledger_status": self.ledger_status.value if self.ledger_status else None,
            "message": self.message,
            "error": self.error,
        }


@dataclass(slots=True)
class ResolutionStatus:
    """Read-only comparison between persisted and ledger settlement state."""

    address: str
    store_status: str
    store_resolved_option: int | None
    ledger_status: MarketStatus | None = None
    ledger_winning_option: int | None = None
    ledger_error: str | None = None

    @property
    def status_mismatch(self) -> bool | None:
        if self.ledger_status is None:
            return None
        return self.store_status != self.ledger_status.value

    @property
    def needs_sync(self) -> bool | None:
        if self.ledger_status is None:
            return None
        return (
            self.ledger_status is MarketStatus.RESOLVED
            and self.store_status != MarketStatus.RESOLVED.value
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "store_status": self.store_status,
            "store_resolved_option": self.store_resolved_option,
            "ledger_status": self.ledger_status.value if self.ledger_status else None,
            "ledger_winning_option": self.ledger_winning_option,
            "ledger_error": self.ledger_error,
            "status_mismatch": self.status_mismatch,
            "needs_sync": self.needs_sync,
        }


@dataclass(slots=True)
class ReconcileStatistics:
    total_markets: int = 0
    newly_resolved: int = 0
    already_resolved: int = 0
    still_active: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class BatchReconcileReport:
    statistics: ReconcileStatistics = field(default_factory=ReconcileStatistics)
    resolved_markets: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "statistics": self.statistics.to_dict(),
            "resolved_markets": self.resolved_markets,
            "errors": self.errors,
        }
