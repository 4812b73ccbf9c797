"""Market-focused data access helpers."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from app.domain import MarketRow, MarketStatus
from app.models import Market, MarketStatusChange, utcnow


def _to_row(market: Market) -> MarketRow:
    total = market.total_volume
    return MarketRow(
        market_address=market.market_address,
        question=market.question,
        status=market.status,
        resolved_option=market.resolved_option,
        options=tuple(market.options or ()),
        option_volumes=tuple(float(value) for value in market.option_volumes or ()),
        total_volume=float(total) if total is not None else None,
        participant_count=market.participant_count,
        category=market.category,
        resolution_date=market.resolution_date,
        updated_at=market.updated_at,
    )


class MarketRepository:
    """Encapsulate market persistence for one session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def mark_resolved(
        self,
        market_address: str,
        winning_option: int,
        *,
        change_type: str = "ledger_reconciliation",
    ) -> int:
        market = self._session.get(Market, market_address)
        if market is None:
            return 0

        previous_status = market.status
        previous_option = market.resolved_option
        market.status = MarketStatus.RESOLVED.value
        market.resolved_option = winning_option
        market.updated_at = utcnow()
        self._session.add(
            MarketStatusChange(
                market_address=market_address,
                from_status=previous_status,
                to_status=MarketStatus.RESOLVED.value,
                change_type=change_type,
                details={
                    "winning_option": winning_option,
                    "previous_resolved_option": previous_option,
                },
            )
        )
        return 1

    def update_live_volumes(
        self,
        market_address: str,
        option_volumes: Sequence[float],
        total_volume: float,
        participant_count: int,
    ) -> int:
        market = self._session.get(Market, market_address)
        if market is None:
            return 0

        market.option_volumes = [float(value) for value in option_volumes]
        market.total_volume = Decimal(str(total_volume))
        market.participant_count = participant_count
        market.updated_at = utcnow()
        return 1

    # ------------------------------------------------------------------
    # Queries

    def list_market_rows(self) -> list[MarketRow]:
        query = select(Market).order_by(desc(Market.created_at), Market.market_address)
        return [_to_row(market) for market in self._session.execute(query).scalars().all()]

    def get_market_row(self, market_address: str) -> MarketRow | None:
        market = self._session.get(Market, market_address)
        return _to_row(market) if market is not None else None

    def list_market_addresses(self) -> set[str]:
        query = select(Market.market_address)
        return set(self._session.execute(query).scalars().all())

