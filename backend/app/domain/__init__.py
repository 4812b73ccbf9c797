"""Domain models representing decoded ledger state and reconciliation results."""

from .models import (
    AccountKind,
    BatchReconcileReport,
    DataSource,
    MarketRecord,
    MarketRow,
    MarketSnapshot,
    MarketStatus,
    ParticipationRecord,
    RawAccount,
    ReconcileOutcome,
    ReconcileStatistics,
    ResolutionStatus,
    SnapshotBatch,
    SnapshotError,
)

__all__ = [
    "AccountKind",
    "BatchReconcileReport",
    "DataSource",
    "MarketRecord",
    "MarketRow",
    "MarketSnapshot",
    "MarketStatus",
    "ParticipationRecord",
    "RawAccount",
    "ReconcileOutcome",
    "ReconcileStatistics",
    "ResolutionStatus",
    "SnapshotBatch",
    "SnapshotError",
]
