"""Report ledger markets that never made it into the market store.

The scan is read-only; recovering the listed markets is a manual step.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Sequence

from loguru import logger

from app.core.config import get_settings
from app.db import engine_for, init_db
from app.services.sync_engine import LedgerSyncEngine, build_engine


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="List ledger market accounts that have no stored market row",
    )
    parser.add_argument(
        "--data-size",
        type=int,
        default=None,
        help="Only list program accounts of exactly this many bytes",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where the missing markets will be written as JSON",
    )
    return parser.parse_args(argv)


def _write_summary(payload: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, default=str, indent=2))
    logger.info("Drift report written to {}", path)


def run(engine: LedgerSyncEngine) -> dict[str, Any]:
    try:
        missing = engine.find_missing()
    finally:
        engine.close()
    return {
        "missing_count": len(missing),
        "markets": [record.to_dict() for record in missing],
    }


def main(argv: Sequence[str] | None = None) -> dict[str, Any]:
    args = _parse_args(argv)
    settings = get_settings()
    if args.data_size is not None:
        settings = settings.model_copy(update={"drift_scan_data_size": args.data_size})

    init_db(engine_for(settings.resolved_database_url))
    payload = run(build_engine(settings))
    if payload["missing_count"]:
        logger.info("Use the listed addresses to import the missing markets")
    if args.summary_path:
        _write_summary(payload, args.summary_path)
    return payload


if __name__ == "__main__":
    main()
