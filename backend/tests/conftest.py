from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.db import create_db_engine, create_session_factory, init_db, session_scope
from app.models import Market
from app.repositories import MarketStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'ledger_sync.db'}",
        ledger_network="devnet",
        ledger_rpc_url="http://ledger.test",
        ledger_retry_backoff_seconds="0",
        reconcile_batch_delay_seconds=0,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path/'store.db'}")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> MarketStore:
    return MarketStore(session_factory)


@pytest.fixture
def seed_market(session_factory):
    """Persist a decoded market record as a store row."""

    def _seed(record, *, address: str | None = None, status: str | None = None):
        with session_scope(session_factory) as session:
            session.add(
                Market(
                    market_address=address or record.address,
                    question=record.question,
                    category=record.category or None,
                    options=list(record.options),
                    status=status or record.status.value,
                    resolved_option=record.winning_option,
                    resolution_date=record.resolution_date,
                )
            )
        return address or record.address

    return _seed
