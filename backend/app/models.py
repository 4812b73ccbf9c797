from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain import MarketStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Market(Base):
    __tablename__ = "markets"

    market_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=MarketStatus.ACTIVE.value, index=True
    )
    resolved_option: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolution_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    option_volumes: Mapped[list | None] = mapped_column(JSON, nullable=True)
    total_volume: Mapped[float | None] = mapped_column(Numeric(24, 9), nullable=True)
    participant_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    status_changes: Mapped[list["MarketStatusChange"]] = relationship(
        "MarketStatusChange", back_populates="market", cascade="all, delete-orphan"
    )


class MarketStatusChange(Base):
    __tablename__ = "market_status_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_address: Mapped[str] = mapped_column(
        String(64), ForeignKey("markets.market_address"), nullable=False, index=True
    )
    from_status: Mapped[str | None] = mapped_column(String, nullable=True)
    to_status: Mapped[str] = mapped_column(String, nullable=False)
    change_type: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    market: Mapped[Market] = relationship("Market", back_populates="status_changes")
