"""Facade wiring the ledger client, cache, and reconciliation services together."""

from __future__ import annotations

from typing import Sequence

import httpx
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.db import create_session_factory, engine_for
from app.domain import (
    BatchReconcileReport,
    MarketRecord,
    MarketRow,
    MarketSnapshot,
    ReconcileOutcome,
    ResolutionStatus,
    SnapshotBatch,
)
from app.repositories import MarketStore
from ledger.classifier import AccountClassifier, ClassifierThresholds
from ledger.client import LedgerClient
from ledger.decoder import MARKET_MIN_SIZE, PARTICIPATION_SIZE

from .batch_reconciler import BatchReconciler
from .cache import CacheStats, LiveCache
from .drift_scanner import DriftScanner
from .participants import ParticipantAggregator
from .reconciler import ResolutionReconciler
from .snapshot_service import SnapshotService


def classifier_thresholds(settings: Settings) -> ClassifierThresholds:
    return ClassifierThresholds(
        market_min_size=settings.classifier_market_min_size or MARKET_MIN_SIZE,
        market_max_size=settings.classifier_market_max_size,
        participation_min_size=settings.classifier_participation_min_size or PARTICIPATION_SIZE,
        participation_max_size=settings.classifier_participation_max_size,
    )


class LedgerSyncEngine:
    """Single entry point used by the API and the command line jobs."""

    def __init__(
        self,
        *,
        client: LedgerClient,
        store: MarketStore,
        snapshots: SnapshotService,
        reconciler: ResolutionReconciler,
        batch: BatchReconciler,
        scanner: DriftScanner,
    ) -> None:
        self.client = client
        self.store = store
        self.snapshots = snapshots
        self.reconciler = reconciler
        self.batch = batch
        self.scanner = scanner

    def get_snapshot(self, address: str) -> MarketSnapshot:
        return self.snapshots.get_snapshot(address)

    def get_snapshot_batch(self, addresses: Sequence[str]) -> SnapshotBatch:
        return self.snapshots.get_snapshot_batch(addresses)

    def fallback_snapshot(self, address: str) -> MarketSnapshot | None:
        row: MarketRow | None = self.store.get_market_row(address)
        if row is None:
            return None
        return self.snapshots.fallback_snapshot(row)

    def reconcile(self, address: str) -> ReconcileOutcome:
        return self.reconciler.reconcile(address)

    def reconcile_all(self) -> BatchReconcileReport:
        return self.batch.reconcile_all()

    def find_missing(self) -> list[MarketRecord]:
        return self.scanner.find_missing()

    def resolution_status(self, address: str) -> ResolutionStatus | None:
        return self.reconciler.resolution_status(address)

    def sync_live_volumes(self, address: str) -> bool:
        return self.reconciler.sync_live_volumes(address)

    def invalidate_cache(self, address: str | None = None) -> None:
        self.snapshots.cache.invalidate(address)

    def cache_stats(self) -> CacheStats:
        return self.snapshots.cache.stats()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "LedgerSyncEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_engine(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> LedgerSyncEngine:
    """Assemble a ``LedgerSyncEngine`` from configuration."""

    settings = settings or get_settings()
    client = LedgerClient(settings=settings, transport=transport)
    if session_factory is None:
        session_factory = create_session_factory(engine_for(settings.resolved_database_url))
    store = MarketStore(session_factory)
    classifier = AccountClassifier(classifier_thresholds(settings))
    program_id = settings.resolved_program_id

    aggregator = ParticipantAggregator(client, program_id, classifier)
    snapshots = SnapshotService(
        client,
        aggregator,
        LiveCache(settings.snapshot_cache_ttl_seconds),
        token_decimals=settings.resolved_token_decimals,
        max_workers=settings.snapshot_batch_workers,
    )
    reconciler = ResolutionReconciler(snapshots, store)
    batch = BatchReconciler(
        reconciler,
        store,
        batch_size=settings.reconcile_batch_size,
        batch_delay_seconds=settings.reconcile_batch_delay_seconds,
        error_detail_limit=settings.reconcile_error_detail_limit,
    )
    scanner = DriftScanner(
        client,
        store,
        program_id,
        classifier=classifier,
        data_size=settings.drift_scan_data_size,
    )
    return LedgerSyncEngine(
        client=client,
        store=store,
        snapshots=snapshots,
        reconciler=reconciler,
        batch=batch,
        scanner=scanner,
    )
