"""Standalone job that reconciles ledger settlements into the market store."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import engine_for, init_db
from app.domain import BatchReconcileReport
from app.repositories import StoreError
from app.services.sync_engine import LedgerSyncEngine, build_engine
from ledger.errors import LedgerError


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Advance stored markets to Resolved once the ledger reports settlement",
    )
    parser.add_argument(
        "--market",
        dest="markets",
        action="append",
        help="Reconcile only this market address (can be provided multiple times)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Override the number of markets reconciled concurrently per window",
    )
    parser.add_argument(
        "--batch-delay",
        type=float,
        default=None,
        help="Override the pause in seconds between reconciliation windows",
    )
    parser.add_argument(
        "--sync-volumes",
        action="store_true",
        help="Also persist live pool volumes for each market given with --market",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(payload: dict, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, default=str, indent=2))
    logger.info("Resolution summary written to {}", path)


def _reconcile_selected(
    engine: LedgerSyncEngine, addresses: Sequence[str], *, sync_volumes: bool
) -> BatchReconcileReport:
    report = BatchReconcileReport()
    stats = report.statistics
    stats.total_markets = len(addresses)
    for address in addresses:
        outcome = engine.reconcile(address)
        if outcome.error is not None:
            stats.errors += 1
            report.errors.append({"market_address": address, "error": outcome.error})
            continue
        if outcome.updated:
            stats.newly_resolved += 1
            report.resolved_markets.append(
                {"market_address": address, "winning_option": outcome.winning_option}
            )
        elif outcome.was_resolved:
            stats.already_resolved += 1
        else:
            stats.still_active += 1
        if sync_volumes:
            try:
                engine.sync_live_volumes(address)
            except (LedgerError, StoreError) as exc:
                logger.warning("Volume sync failed for {}: {}", address, exc)
    return report


def run(
    settings: Settings,
    *,
    markets: Sequence[str] | None = None,
    sync_volumes: bool = False,
    engine: LedgerSyncEngine | None = None,
) -> BatchReconcileReport:
    init_db(engine_for(settings.resolved_database_url))
    engine = engine or build_engine(settings)
    try:
        if markets:
            logger.info("Reconciling {} selected markets", len(markets))
            return _reconcile_selected(engine, markets, sync_volumes=sync_volumes)
        return engine.reconcile_all()
    finally:
        engine.close()


def main(argv: Sequence[str] | None = None) -> BatchReconcileReport:
    args = _parse_args(argv)
    settings = get_settings()
    overrides = {}
    if args.batch_size is not None:
        overrides["reconcile_batch_size"] = args.batch_size
    if args.batch_delay is not None:
        overrides["reconcile_batch_delay_seconds"] = args.batch_delay
    if overrides:
        settings = settings.model_copy(update=overrides)

    report = run(settings, markets=args.markets, sync_volumes=args.sync_volumes)
    if args.summary_path:
        _write_summary(report.to_dict(), args.summary_path)
    return report


if __name__ == "__main__":
    main()
