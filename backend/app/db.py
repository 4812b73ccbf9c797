import re
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings

_VERSION_PREFIX = re.compile(r"^(\d+)\.(\d+)")


def _legacy_psycopg(version: str) -> bool:
    """True for psycopg releases that still take ``prepared_statement_cache_size``."""

    match = _VERSION_PREFIX.match(version)
    if match is None:
        return False
    return (int(match.group(1)), int(match.group(2))) < (3, 2)


def _sqlite_connect_args(url: URL) -> dict[str, object]:
    database = url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    # reconciliation windows write from worker threads
    return {"check_same_thread": False}


def _postgres_connect_args(url: URL) -> dict[str, object]:
    connect_args: dict[str, object] = {
        "keepalives": 1,
        "keepalives_idle": 120,
        "keepalives_interval": 30,
        "keepalives_count": 5,
    }
    if url.get_driver_name() != "psycopg":
        return connect_args

    # Transaction poolers reject PREPARE.
    connect_args["prepare_threshold"] = None
    import psycopg

    if _legacy_psycopg(psycopg.__version__):
        connect_args["prepared_statement_cache_size"] = 0
    return connect_args


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    parsed = make_url(url)
    backend = parsed.get_backend_name()
    engine_kwargs: dict[str, object] = {"echo": echo, "future": True, "pool_pre_ping": True}

    if backend == "sqlite":
        engine_kwargs["connect_args"] = _sqlite_connect_args(parsed)
    else:
        engine_kwargs["pool_recycle"] = 300
        if backend.startswith("postgresql"):
            engine_kwargs["connect_args"] = _postgres_connect_args(parsed)

    return create_engine(url, **engine_kwargs)


def create_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autoflush=True, future=True, expire_on_commit=False)


engine = create_db_engine(settings.resolved_database_url, echo=settings.debug)
SessionLocal = create_session_factory(engine)
Base = declarative_base()


@lru_cache
def engine_for(url: str) -> Engine:
    """Engine bound to ``url``; the module engine when the URL is the configured one."""

    if make_url(url) == engine.url:
        return engine
    return create_db_engine(url, echo=settings.debug)


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Commit on success, roll back and re-raise on any error."""

    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Engine | None = None) -> None:
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
