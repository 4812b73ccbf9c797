"""One-directional reconciliation of settlement state from the ledger into the store."""

from __future__ import annotations

from loguru import logger

from app.domain import MarketStatus, ReconcileOutcome, ResolutionStatus
from app.repositories import MarketStore, StoreError
from ledger.errors import LedgerError

from .snapshot_service import SnapshotService


class ResolutionReconciler:
    """Advance persisted markets to ``Resolved`` once the ledger reports settlement.

    The store is never moved back from ``Resolved``: a ledger read reporting an
    active market for a row already resolved is treated as informational.
    Failures come back in ``ReconcileOutcome.error`` instead of being raised.
    """

    def __init__(self, snapshots: SnapshotService, store: MarketStore) -> None:
        self._snapshots = snapshots
        self._store = store

    def reconcile(self, address: str) -> ReconcileOutcome:
        outcome = ReconcileOutcome(address=address)
        try:
            row = self._store.get_market_row(address)
            record = self._snapshots.read_record(address)
        except (LedgerError, StoreError, ValueError) as exc:
            logger.warning("Reconciliation read failed for {}: {}", address, exc)
            outcome.error = str(exc)
            return outcome

        outcome.ledger_status = record.status
        if row is None:
            outcome.error = "Market not found in store"
            logger.warning("Market {} exists on the ledger but not in the store", address)
            return outcome

        if record.status is not MarketStatus.RESOLVED:
            if row.is_resolved:
                outcome.was_resolved = True
                outcome.winning_option = row.resolved_option
                outcome.status = MarketStatus.RESOLVED
                outcome.message = f"still {record.status.value.lower()} on ledger; store keeps Resolved"
                logger.info(
                    "Market {} is Resolved in store but {} on ledger; leaving store untouched",
                    address,
                    record.status.value,
                )
            else:
                outcome.status = record.status
                if record.status is MarketStatus.CANCELLED:
                    outcome.message = "cancelled on ledger; cancellation is not reconciled"
                else:
                    outcome.message = "still active on ledger"
            return outcome

        winning_option = record.winning_option
        if winning_option is None:
            outcome.error = "Ledger reports Resolved without a winning option"
            return outcome

        outcome.was_resolved = True
        outcome.winning_option = winning_option
        outcome.status = MarketStatus.RESOLVED
        if row.is_resolved and row.resolved_option == winning_option:
            outcome.message = "already resolved in store"
            return outcome

        if row.is_resolved:
            logger.warning(
                "Store winner {} for {} disagrees with ledger winner {}; correcting store",
                row.resolved_option,
                address,
                winning_option,
            )

        try:
            rows = self._store.write_market_resolution(address, winning_option)
        except StoreError as exc:
            outcome.error = str(exc)
            return outcome
        finally:
            self._snapshots.cache.invalidate(address)

        if rows == 0:
            outcome.error = "Market not found in store"
            return outcome

        outcome.updated = True
        outcome.message = "resolved on ledger; store updated"
        logger.info(
            "Market {} resolved on ledger with winning option {}; store updated",
            address,
            winning_option,
        )
        return outcome

    def resolution_status(self, address: str) -> ResolutionStatus | None:
        """Compare store and ledger settlement without writing; ``None`` if the row is missing."""

        row = self._store.get_market_row(address)
        if row is None:
            return None

        status = ResolutionStatus(
            address=address,
            store_status=row.status,
            store_resolved_option=row.resolved_option,
        )
        try:
            record = self._snapshots.read_record(address)
        except LedgerError as exc:
            logger.warning("Could not read ledger status for {}: {}", address, exc)
            status.ledger_error = str(exc)
            return status

        status.ledger_status = record.status
        status.ledger_winning_option = (
            record.winning_option if record.status is MarketStatus.RESOLVED else None
        )
        return status

    def sync_live_volumes(self, address: str) -> bool:
        """Persist fresh pool volumes and participant count; ``False`` when no row was updated."""

        self._snapshots.cache.invalidate(address)
        snapshot = self._snapshots.get_snapshot(address)
        rows = self._store.write_live_volumes(
            address,
            snapshot.option_pools,
            snapshot.total_pool,
            snapshot.participant_count,
        )
        if rows == 0:
            logger.warning("No market row found in store for {}", address)
            return False
        logger.info("Stored live volumes for {}: total={:.2f}", address, snapshot.total_pool)
        return True
