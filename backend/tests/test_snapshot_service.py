from __future__ import annotations

import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.domain import DataSource, MarketRow, MarketStatus
from app.services.cache import LiveCache
from app.services.participants import ParticipantAggregator
from app.services.snapshot_service import SnapshotService, option_percentages
from factories import encode_market, make_address, participation_account
from ledger.errors import DecodeError, LedgerUnavailable, MarketNotFound

FETCHED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger():
    client = MagicMock()
    client.get_program_accounts.return_value = []
    return client


@pytest.fixture
def service(ledger, clock) -> SnapshotService:
    aggregator = ParticipantAggregator(ledger, make_address("program"))
    return SnapshotService(
        ledger,
        aggregator,
        LiveCache(ttl_seconds=30, clock=clock),
        token_decimals=6,
        now=lambda: FETCHED_AT,
    )


def test_snapshot_scales_pools_and_computes_percentages(service, ledger):
    """Raw pools of 4.875 and 2.925 tokens at six decimals."""
    address = make_address("market")
    ledger.get_account_info.return_value = encode_market(pools=(4_875_000, 2_925_000))
    ledger.get_program_accounts.return_value = [
        participation_account(make_address("alice"), address),
        participation_account(make_address("bob"), address, option_index=1),
    ]

    snapshot = service.get_snapshot(address)

    assert snapshot.option_pools == pytest.approx((4.875, 2.925))
    assert snapshot.total_pool == pytest.approx(7.8)
    assert snapshot.option_percentages == pytest.approx((62.5, 37.5))
    assert sum(snapshot.option_percentages) == pytest.approx(100.0)
    assert snapshot.total_pool == pytest.approx(sum(snapshot.option_pools))
    assert snapshot.participant_count == 2
    assert snapshot.status is MarketStatus.ACTIVE
    assert snapshot.winning_option is None
    assert snapshot.data_source is DataSource.LIVE_LEDGER
    assert snapshot.last_updated == FETCHED_AT
    assert snapshot.options == ("Yes", "No")


def test_second_read_within_ttl_is_served_from_cache(service, ledger, clock):
    address = make_address("market")
    ledger.get_account_info.return_value = encode_market(pools=(1, 1))

    first = service.get_snapshot(address)
    clock.advance(10)
    second = service.get_snapshot(address)

    assert first.data_source is DataSource.LIVE_LEDGER
    assert second.data_source is DataSource.CACHE
    assert second.total_pool == first.total_pool
    ledger.get_account_info.assert_called_once_with(address)


def test_expired_entry_triggers_fresh_read(service, ledger, clock):
    address = make_address("market")
    ledger.get_account_info.return_value = encode_market()

    service.get_snapshot(address)
    clock.advance(31)
    snapshot = service.get_snapshot(address)

    assert snapshot.data_source is DataSource.LIVE_LEDGER
    assert ledger.get_account_info.call_count == 2


def test_zero_volume_market_has_zero_percentages(service, ledger):
    ledger.get_account_info.return_value = encode_market(options=("A", "B", "C"), pools=(0, 0, 0))

    snapshot = service.get_snapshot(make_address("market"))

    assert snapshot.option_percentages == (0.0, 0.0, 0.0)
    assert snapshot.total_pool == 0


def test_resolved_market_reports_winner(service, ledger):
    ledger.get_account_info.return_value = encode_market(
        status=MarketStatus.RESOLVED, winning_option=1, pools=(10, 30)
    )

    snapshot = service.get_snapshot(make_address("market"))

    assert snapshot.status is MarketStatus.RESOLVED
    assert snapshot.winning_option == 1


def test_missing_account_raises_market_not_found(service, ledger):
    ledger.get_account_info.return_value = None
    with pytest.raises(MarketNotFound):
        service.get_snapshot(make_address("gone"))


def test_ledger_failure_propagates(service, ledger):
    ledger.get_account_info.side_effect = LedgerUnavailable("getAccountInfo timed out after 10s")
    with pytest.raises(LedgerUnavailable):
        service.get_snapshot(make_address("market"))


def test_invalid_address_is_rejected_before_any_read(service, ledger):
    with pytest.raises(ValueError):
        service.get_snapshot("not-an-address")
    ledger.get_account_info.assert_not_called()


def test_participant_listing_failure_does_not_fail_snapshot(service, ledger):
    ledger.get_account_info.return_value = encode_market(pools=(5, 5))
    ledger.get_program_accounts.side_effect = LedgerUnavailable("getProgramAccounts returned HTTP 503")

    snapshot = service.get_snapshot(make_address("market"))

    assert snapshot.participant_count == 0


def test_batch_collects_per_address_failures(service, ledger):
    """One missing and one malformed market never fail the rest of the batch."""
    good = [make_address(f"good-{index}") for index in range(3)]
    missing = make_address("missing")
    broken = make_address("broken")
    payloads = {address: encode_market(pools=(1, 2)) for address in good}
    payloads[broken] = encode_market()[:100]
    ledger.get_account_info.side_effect = lambda address: payloads.get(address)

    batch = service.get_snapshot_batch([good[0], missing, good[1], broken, good[2], "bad"])

    assert [snapshot.address for snapshot in batch.snapshots] == good
    assert [(error.address, error.kind) for error in batch.errors] == [
        (missing, "not_found"),
        (broken, "decode_error"),
        ("bad", "invalid_address"),
    ]
    assert batch.to_dict()["errors"][0]["address"] == missing


def test_empty_batch(service, ledger):
    batch = service.get_snapshot_batch([])
    assert batch.snapshots == [] and batch.errors == []
    ledger.get_account_info.assert_not_called()


def test_read_record_bypasses_cache(service, ledger):
    address = make_address("market")
    ledger.get_account_info.return_value = encode_market()

    service.get_snapshot(address)
    record = service.read_record(address)

    assert record.address == address
    assert ledger.get_account_info.call_count == 2


def test_fallback_snapshot_uses_stored_row(service):
    row = MarketRow(
        market_address=make_address("market"),
        question="Will it rain?",
        status="Pending Resolution",
        options=("Yes", "No"),
        option_volumes=(3.0, 1.0),
        participant_count=4,
        updated_at=FETCHED_AT,
    )

    snapshot = service.fallback_snapshot(row)

    assert snapshot.data_source is DataSource.PERSISTED_FALLBACK
    assert snapshot.status is MarketStatus.ACTIVE
    assert snapshot.winning_option is None
    assert snapshot.total_pool == 4.0
    assert snapshot.option_percentages == (75.0, 25.0)
    assert snapshot.last_updated == FETCHED_AT


def test_option_percentages_helper():
    assert option_percentages([1, 3]) == (25.0, 75.0)
    assert option_percentages([0, 0]) == (0.0, 0.0)


def test_decode_error_kind_is_raised_for_single_reads(service, ledger):
    ledger.get_account_info.return_value = b"\x00" * 10
    with pytest.raises(DecodeError):
        service.get_snapshot(make_address("market"))


def test_resolved_account_without_winner_is_rejected_and_not_cached(service, ledger):
    address = make_address("market")
    ledger.get_account_info.return_value = encode_market(status=MarketStatus.RESOLVED, pools=(1, 2))

    with pytest.raises(DecodeError):
        service.get_snapshot(address)
    assert service.cache.get(address) is None


def test_fallback_serves_resolved_row_without_winner_as_active(service):
    row = MarketRow(
        market_address=make_address("market"),
        question="Will it rain?",
        status="Resolved",
        resolved_option=None,
        options=("Yes", "No"),
        option_volumes=(1.0, 1.0),
    )

    snapshot = service.fallback_snapshot(row)

    assert snapshot.status is MarketStatus.ACTIVE
    assert snapshot.winning_option is None


def test_fallback_keeps_stored_winner(service):
    row = MarketRow(
        market_address=make_address("market"),
        question="Will it rain?",
        status="Resolved",
        resolved_option=0,
        options=("Yes", "No"),
        option_volumes=(2.0, 0.0),
    )

    snapshot = service.fallback_snapshot(row)

    assert snapshot.status is MarketStatus.RESOLVED
    assert snapshot.winning_option == 0


def test_batch_reads_run_concurrently(service, ledger):
    """Three reads meet at a barrier, which a sequential loop would never reach."""
    addresses = [make_address(f"concurrent-{index}") for index in range(3)]
    barrier = threading.Barrier(len(addresses), timeout=5)

    def read(address):
        barrier.wait()
        return encode_market(pools=(1, 1))

    ledger.get_account_info.side_effect = read

    batch = service.get_snapshot_batch(addresses)

    assert batch.errors == []
    assert [snapshot.address for snapshot in batch.snapshots] == addresses
