from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

from app.domain import BatchReconcileReport, MarketStatus, ReconcileOutcome
from factories import encode_market, make_address
from ledger.decoder import decode_market
from ledger.errors import LedgerUnavailable
from pipelines import drift_scan, resolution_run


@patch("pipelines.resolution_run.init_db")
def test_resolution_run_reconciles_everything_by_default(mock_init_db, test_settings):
    engine = MagicMock()
    engine.reconcile_all.return_value = BatchReconcileReport()

    report = resolution_run.run(test_settings, engine=engine)

    assert report is engine.reconcile_all.return_value
    engine.reconcile.assert_not_called()
    engine.close.assert_called_once()
    mock_init_db.assert_called_once()


@patch("pipelines.resolution_run.init_db")
def test_resolution_run_selected_markets(mock_init_db, test_settings):
    """Selected markets are reconciled one by one and tallied."""
    resolved, failing = make_address("resolved"), make_address("failing")
    engine = MagicMock()
    engine.reconcile.side_effect = [
        ReconcileOutcome(
            address=resolved, was_resolved=True, updated=True, winning_option=1,
            status=MarketStatus.RESOLVED,
        ),
        ReconcileOutcome(address=failing, error="getAccountInfo returned HTTP 503"),
    ]
    engine.sync_live_volumes.side_effect = LedgerUnavailable("down")

    report = resolution_run.run(
        test_settings, markets=[resolved, failing], sync_volumes=True, engine=engine
    )

    assert report.statistics.newly_resolved == 1
    assert report.statistics.errors == 1
    assert report.errors == [{"market_address": failing, "error": "getAccountInfo returned HTTP 503"}]
    engine.sync_live_volumes.assert_called_once_with(resolved)


@patch("pipelines.resolution_run.build_engine")
@patch("pipelines.resolution_run.init_db")
def test_resolution_run_main_writes_summary(mock_init_db, mock_build_engine, test_settings, tmp_path):
    report = BatchReconcileReport()
    report.statistics.total_markets = 4
    mock_build_engine.return_value.reconcile_all.return_value = report
    summary_path = tmp_path / "reports" / "resolution.json"

    resolution_run.main(["--batch-size", "2", "--summary-path", str(summary_path)])

    used_settings = mock_build_engine.call_args.args[0]
    assert used_settings.reconcile_batch_size == 2
    assert json.loads(summary_path.read_text())["statistics"]["total_markets"] == 4


@patch("pipelines.drift_scan.build_engine")
@patch("pipelines.drift_scan.init_db")
def test_drift_scan_main_reports_missing(mock_init_db, mock_build_engine, test_settings, tmp_path):
    address = make_address("missing")
    mock_build_engine.return_value.find_missing.return_value = [
        decode_market(encode_market(question="Lost market?"), address)
    ]
    summary_path = tmp_path / "drift.json"

    payload = drift_scan.main(["--data-size", "626", "--summary-path", str(summary_path)])

    assert payload["missing_count"] == 1
    assert mock_build_engine.call_args.args[0].drift_scan_data_size == 626
    written = json.loads(summary_path.read_text())
    assert written["markets"][0]["address"] == address
    assert written["markets"][0]["question"] == "Lost market?"
    mock_build_engine.return_value.close.assert_called_once()
