from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query
from loguru import logger

from ledger.errors import DecodeError, LedgerUnavailable, MarketNotFound
from ledger.reader import validate_address

from . import schemas
from .core.config import settings
from .db import init_db
from .repositories import StoreError
from .services.sync_engine import LedgerSyncEngine, build_engine

app = FastAPI(title="Ledger Sync API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create the market tables when the API boots."""

    init_db()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


@lru_cache
def _shared_engine() -> LedgerSyncEngine:
    return build_engine(settings)


def _sync_engine() -> Iterator[LedgerSyncEngine]:
    """Provide the process-wide engine; the live cache is shared across requests."""

    yield _shared_engine()


def _validated_address(address: str) -> str:
    try:
        return validate_address(address)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/markets/{address}/snapshot", response_model=schemas.MarketSnapshot, tags=["markets"])
def get_snapshot(
    address: str,
    fallback: Annotated[
        bool, Query(description="Serve the stored row when the ledger is unreachable")
    ] = False,
    engine: LedgerSyncEngine = Depends(_sync_engine),
):
    """Return the live ledger snapshot of a market."""

    _validated_address(address)
    try:
        return engine.get_snapshot(address).to_dict()
    except MarketNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DecodeError as exc:
        raise HTTPException(status_code=502, detail=f"Malformed market account: {exc}") from exc
    except LedgerUnavailable as exc:
        if fallback:
            try:
                stale = engine.fallback_snapshot(address)
            except StoreError:
                stale = None
            if stale is not None:
                logger.warning("Serving stored snapshot for {}: {}", address, exc)
                return stale.to_dict()
        raise HTTPException(status_code=503, detail="Ledger unavailable") from exc


@app.post("/markets/snapshots", response_model=schemas.SnapshotBatch, tags=["markets"])
def get_snapshot_batch(
    request: schemas.SnapshotBatchRequest,
    engine: LedgerSyncEngine = Depends(_sync_engine),
):
    """Fetch snapshots for many markets; per-market failures are listed separately."""

    return engine.get_snapshot_batch(request.addresses).to_dict()


@app.get(
    "/markets/{address}/resolution",
    response_model=schemas.ResolutionStatus,
    tags=["reconciliation"],
)
def get_resolution_status(address: str, engine: LedgerSyncEngine = Depends(_sync_engine)):
    """Compare stored and ledger settlement state without writing."""

    _validated_address(address)
    try:
        status = engine.resolution_status(address)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail="Store unavailable") from exc
    if status is None:
        raise HTTPException(status_code=404, detail="Market not found")
    return status.to_dict()


@app.post(
    "/markets/{address}/reconcile",
    response_model=schemas.ReconcileOutcome,
    tags=["reconciliation"],
)
def reconcile_market(address: str, engine: LedgerSyncEngine = Depends(_sync_engine)):
    """Advance the stored market to Resolved when the ledger has settled it."""

    _validated_address(address)
    return engine.reconcile(address).to_dict()


@app.post("/reconcile", response_model=schemas.BatchReconcileReport, tags=["reconciliation"])
def reconcile_all(engine: LedgerSyncEngine = Depends(_sync_engine)):
    """Reconcile every stored market in rate-limited windows."""

    return engine.reconcile_all().to_dict()


@app.post(
    "/markets/{address}/volumes",
    response_model=schemas.VolumeSyncResult,
    tags=["reconciliation"],
)
def sync_live_volumes(address: str, engine: LedgerSyncEngine = Depends(_sync_engine)):
    """Persist the current ledger pool volumes and participant count."""

    _validated_address(address)
    try:
        updated = engine.sync_live_volumes(address)
    except MarketNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (LedgerUnavailable, DecodeError) as exc:
        raise HTTPException(status_code=503, detail="Ledger unavailable") from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail="Store unavailable") from exc
    return schemas.VolumeSyncResult(address=address, updated=updated)


@app.get("/drift", response_model=schemas.MissingMarketList, tags=["reconciliation"])
def find_missing_markets(engine: LedgerSyncEngine = Depends(_sync_engine)):
    """List ledger markets that have no stored row."""

    try:
        missing = engine.find_missing()
    except LedgerUnavailable as exc:
        raise HTTPException(status_code=503, detail="Ledger unavailable") from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail="Store unavailable") from exc
    items = [record.to_dict() for record in missing]
    return schemas.MissingMarketList(total=len(items), items=items)


@app.get("/cache", response_model=schemas.CacheStats, tags=["system"])
def get_cache_stats(engine: LedgerSyncEngine = Depends(_sync_engine)):
    """Report live cache occupancy."""

    return engine.cache_stats().to_dict()


@app.delete("/cache", status_code=204, tags=["system"])
def clear_cache(
    address: Annotated[str | None, Query(description="Only clear this market")] = None,
    engine: LedgerSyncEngine = Depends(_sync_engine),
) -> None:
    """Drop cached snapshots so the next read goes to the ledger."""

    engine.invalidate_cache(address)
