"""Reconcile every persisted market in rate-limited concurrent windows."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, Sequence

from loguru import logger

from app.domain import BatchReconcileReport, MarketRow, ReconcileOutcome
from app.repositories import MarketStore, StoreError

from .reconciler import ResolutionReconciler


def _chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for index in range(0, len(items), size):
        yield items[index : index + size]


class BatchReconciler:
    def __init__(
        self,
        reconciler: ResolutionReconciler,
        store: MarketStore,
        *,
        batch_size: int = 5,
        batch_delay_seconds: float = 1.0,
        error_detail_limit: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_delay_seconds < 0:
            raise ValueError("batch_delay_seconds must not be negative")
        self._reconciler = reconciler
        self._store = store
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.error_detail_limit = error_detail_limit
        self._sleep = sleep

    def _reconcile_safely(self, address: str) -> ReconcileOutcome:
        try:
            return self._reconciler.reconcile(address)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error reconciling {}", address)
            return ReconcileOutcome(address=address, error=str(exc))

    def _record(
        self, report: BatchReconcileReport, row: MarketRow, outcome: ReconcileOutcome
    ) -> None:
        stats = report.statistics
        if outcome.error is not None:
            stats.errors += 1
            logger.error("Reconciliation failed for {}: {}", row.market_address, outcome.error)
            if len(report.errors) < self.error_detail_limit:
                report.errors.append({"market_address": row.market_address, "error": outcome.error})
        elif outcome.updated:
            stats.newly_resolved += 1
            report.resolved_markets.append(
                {
                    "market_address": row.market_address,
                    "question": row.question[:50],
                    "winning_option": outcome.winning_option,
                }
            )
        elif outcome.was_resolved:
            stats.already_resolved += 1
        else:
            stats.still_active += 1

    def reconcile_all(self) -> BatchReconcileReport:
        report = BatchReconcileReport()
        try:
            rows = self._store.read_market_rows()
        except StoreError as exc:
            logger.error("Batch reconciliation could not list markets: {}", exc)
            report.statistics.errors = 1
            report.errors.append({"market_address": None, "error": str(exc)})
            return report

        report.statistics.total_markets = len(rows)
        window_count = (len(rows) + self.batch_size - 1) // self.batch_size
        logger.info(
            "Starting batch reconciliation: markets={} windows={} batch_size={}",
            len(rows),
            window_count,
            self.batch_size,
        )

        with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix="reconcile") as executor:
            for index, window in enumerate(_chunked(rows, self.batch_size), start=1):
                logger.debug("Processing window {}/{}", index, window_count)
                futures = [executor.submit(self._reconcile_safely, row.market_address) for row in window]
                for row, future in zip(window, futures):
                    self._record(report, row, future.result())
                if index < window_count and self.batch_delay_seconds > 0:
                    self._sleep(self.batch_delay_seconds)

        stats = report.statistics
        logger.info(
            "Batch reconciliation finished: newly_resolved={} already_resolved={} still_active={} errors={}",
            stats.newly_resolved,
            stats.already_resolved,
            stats.still_active,
            stats.errors,
        )
        for market in report.resolved_markets:
            logger.info(
                "Newly resolved {} - {} (winner: option {})",
                market["market_address"],
                market["question"],
                market["winning_option"],
            )
        return report
