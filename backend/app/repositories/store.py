"""Session-per-call facade over ``MarketRepository`` for concurrent callers."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db import session_scope
from app.domain import MarketRow

from .errors import StoreError, StoreWriteFailure
from .market_repository import MarketRepository


class MarketStore:
    """Persisted market rows as seen by the reconciliation services.

    Every call opens its own session so worker threads never share one.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    def read_market_rows(self) -> list[MarketRow]:
        try:
            with session_scope(self._session_factory) as session:
                return MarketRepository(session).list_market_rows()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to read market rows: {exc}") from exc

    def get_market_row(self, market_address: str) -> MarketRow | None:
        try:
            with session_scope(self._session_factory) as session:
                return MarketRepository(session).get_market_row(market_address)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to read market {market_address}: {exc}") from exc

    def market_addresses(self) -> set[str]:
        try:
            with session_scope(self._session_factory) as session:
                return MarketRepository(session).list_market_addresses()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to list market addresses: {exc}") from exc

    def write_market_resolution(self, market_address: str, winning_option: int) -> int:
        try:
            with session_scope(self._session_factory) as session:
                rows = MarketRepository(session).mark_resolved(market_address, winning_option)
        except SQLAlchemyError as exc:
            logger.error("Resolution write failed for {}: {}", market_address, exc)
            raise StoreWriteFailure(f"failed to write resolution for {market_address}: {exc}") from exc
        return rows

    def write_live_volumes(
        self,
        market_address: str,
        option_pools: Sequence[float],
        total_volume: float,
        participant_count: int,
    ) -> int:
        try:
            with session_scope(self._session_factory) as session:
                rows = MarketRepository(session).update_live_volumes(
                    market_address, option_pools, total_volume, participant_count
                )
        except SQLAlchemyError as exc:
            logger.error("Live volume write failed for {}: {}", market_address, exc)
            raise StoreWriteFailure(f"failed to write live volumes for {market_address}: {exc}") from exc
        return rows
