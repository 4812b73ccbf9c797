from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class MarketSnapshot(BaseModel):
    address: str
    question: str
    options: list[str]
    status: str
    winning_option: int | None = None
    option_pools: list[float]
    total_pool: float
    total_volume: float
    option_percentages: list[float]
    participant_count: int
    last_updated: datetime
    data_source: str
    category: str | None = None
    resolution_date: datetime | None = None


class SnapshotError(BaseModel):
    address: str
    error: str
    kind: str


class SnapshotBatchRequest(BaseModel):
    addresses: list[str] = Field(min_length=1, max_length=200)


class SnapshotBatch(BaseModel):
    snapshots: list[MarketSnapshot] = Field(default_factory=list)
    errors: list[SnapshotError] = Field(default_factory=list)


class ReconcileOutcome(BaseModel):
    address: str
    was_resolved: bool
    winning_option: int | None = None
    updated: bool
    status: str | None = None
    ledger_status: str | None = None
    message: str | None = None
    error: str | None = None


class ReconcileStatistics(BaseModel):
    total_markets: int
    newly_resolved: int
    already_resolved: int
    still_active: int
    errors: int


class BatchReconcileReport(BaseModel):
    statistics: ReconcileStatistics
    resolved_markets: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)


class ResolutionStatus(BaseModel):
    address: str
    store_status: str
    store_resolved_option: int | None = None
    ledger_status: str | None = None
    ledger_winning_option: int | None = None
    ledger_error: str | None = None
    status_mismatch: bool | None = None
    needs_sync: bool | None = None


class MissingMarket(BaseModel):
    address: str
    question: str
    options: list[str]
    status: str
    winning_option: int | None = None
    total_pool: int
    category: str | None = None
    resolution_date: datetime | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _blank_category(cls, value: Any) -> str | None:
        if not value:
            return None
        return value


class MissingMarketList(BaseModel):
    total: int
    items: list[MissingMarket]


class CacheStats(BaseModel):
    total: int
    valid: int
    expired: int
    ttl_seconds: float


class VolumeSyncResult(BaseModel):
    address: str
    updated: bool
