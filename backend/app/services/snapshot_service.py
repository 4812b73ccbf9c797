"""Market snapshots read live from the ledger, cached for a short TTL."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Sequence

from loguru import logger

from app.domain import (
    DataSource,
    MarketRecord,
    MarketRow,
    MarketSnapshot,
    MarketStatus,
    SnapshotBatch,
    SnapshotError,
)
from ledger.client import LedgerClient
from ledger.decoder import decode_market
from ledger.errors import DecodeError, LedgerUnavailable, MarketNotFound
from ledger.reader import validate_address

from .cache import LiveCache
from .participants import ParticipantAggregator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def option_percentages(pools: Sequence[int | float]) -> tuple[float, ...]:
    """Share of each pool in percent; every share is zero when nothing is staked."""

    total = sum(pools)
    if total <= 0:
        return tuple(0.0 for _ in pools)
    return tuple(pool / total * 100 for pool in pools)


def build_snapshot(
    record: MarketRecord,
    *,
    address: str,
    token_decimals: int,
    participant_count: int,
    fetched_at: datetime,
) -> MarketSnapshot:
    scale = 10**token_decimals
    raw_pools = record.option_pools
    resolved = record.status is MarketStatus.RESOLVED
    return MarketSnapshot(
        address=address,
        question=record.question,
        options=record.options,
        status=record.status,
        winning_option=record.winning_option if resolved else None,
        option_pools=tuple(pool / scale for pool in raw_pools),
        total_pool=sum(raw_pools) / scale,
        option_percentages=option_percentages(raw_pools),
        participant_count=participant_count,
        last_updated=fetched_at,
        data_source=DataSource.LIVE_LEDGER,
        category=record.category or None,
        resolution_date=record.resolution_date,
    )


class SnapshotService:
    """Serve market snapshots from the live cache or a fresh ledger read."""

    def __init__(
        self,
        client: LedgerClient,
        aggregator: ParticipantAggregator,
        cache: LiveCache,
        *,
        token_decimals: int,
        max_workers: int = 8,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._client = client
        self._aggregator = aggregator
        self.cache = cache
        self.token_decimals = token_decimals
        self.max_workers = max_workers
        self._now = now

    def read_record(self, address: str) -> MarketRecord:
        """Read and decode the market account, bypassing the cache."""

        validate_address(address)
        data = self._client.get_account_info(address)
        if data is None:
            raise MarketNotFound(address)
        return decode_market(data, address)

    def get_snapshot(self, address: str) -> MarketSnapshot:
        cached = self.cache.get(address)
        if cached is not None:
            logger.debug("Using cached snapshot for {}", address)
            return replace(cached, data_source=DataSource.CACHE)

        record = self.read_record(address)
        participant_count = self._aggregator.count_participants(address)
        snapshot = build_snapshot(
            record,
            address=address,
            token_decimals=self.token_decimals,
            participant_count=participant_count,
            fetched_at=self._now(),
        )
        self.cache.put(address, snapshot)
        logger.info(
            "Live snapshot for {}: status={} total_pool={:.2f} participants={}",
            address,
            snapshot.status.value,
            snapshot.total_pool,
            snapshot.participant_count,
        )
        return snapshot

    def get_snapshot_batch(self, addresses: Sequence[str]) -> SnapshotBatch:
        batch = SnapshotBatch()
        if not addresses:
            return batch

        workers = min(self.max_workers, len(addresses))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="snapshot") as executor:
            futures = [(address, executor.submit(self.get_snapshot, address)) for address in addresses]
            for address, future in futures:
                try:
                    batch.snapshots.append(future.result())
                except MarketNotFound as exc:
                    batch.errors.append(SnapshotError(address, str(exc), "not_found"))
                except LedgerUnavailable as exc:
                    batch.errors.append(SnapshotError(address, str(exc), "ledger_unavailable"))
                except DecodeError as exc:
                    batch.errors.append(SnapshotError(address, str(exc), "decode_error"))
                except ValueError as exc:
                    batch.errors.append(SnapshotError(address, str(exc), "invalid_address"))
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Unexpected error fetching snapshot for {}", address)
                    batch.errors.append(SnapshotError(address, str(exc), "unexpected"))

        if batch.errors:
            logger.warning(
                "Snapshot batch finished with {} errors out of {} addresses",
                len(batch.errors),
                len(addresses),
            )
        return batch

    def fallback_snapshot(self, row: MarketRow) -> MarketSnapshot:
        """Build a stale snapshot from the persisted row when the ledger is unreachable."""

        try:
            status = MarketStatus(row.status)
        except ValueError:
            # store-only statuses such as "Pending Resolution"
            status = MarketStatus.ACTIVE
        if status is MarketStatus.RESOLVED and row.resolved_option is None:
            logger.warning(
                "Stored market {} is Resolved without a winner; serving it as Active",
                row.market_address,
            )
            status = MarketStatus.ACTIVE
        pools = tuple(row.option_volumes)
        return MarketSnapshot(
            address=row.market_address,
            question=row.question,
            options=row.options,
            status=status,
            winning_option=row.resolved_option if status is MarketStatus.RESOLVED else None,
            option_pools=pools,
            total_pool=float(sum(pools)),
            option_percentages=option_percentages(pools),
            participant_count=row.participant_count or 0,
            last_updated=row.updated_at or self._now(),
            data_source=DataSource.PERSISTED_FALLBACK,
            category=row.category,
            resolution_date=row.resolution_date,
        )
