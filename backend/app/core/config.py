from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NETWORK_PRESETS: dict[str, dict[str, Any]] = {
    "devnet": {
        "program_id": "F3cFKHXtoYeTnKE6hd7iy21oAZFGyz7dm2WQKS31M46Y",
        "rpc_url": "https://api.devnet.solana.com",
        "token_decimals": 6,
    },
    "mainnet": {
        "program_id": "APESCaeLW5RuxNnpNARtDZnSgeVFC5f37Z3VFNKupJUS",
        "rpc_url": "https://api.mainnet-beta.solana.com",
        "token_decimals": 9,
    },
}


def _psycopg_url(value: str) -> str:
    """Point any Postgres URL at the sync psycopg driver with TLS required."""

    parsed = urlparse(value)
    if not parsed.scheme.lower().startswith("postgres"):
        return value

    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query.setdefault("sslmode", "require")
    query.setdefault("target_session_attrs", "read-write")
    return urlunparse(
        parsed._replace(scheme="postgresql+psycopg", query=urlencode(query, doseq=True))
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///./data/ledger_sync.db",
        description="SQLAlchemy compatible database URL",
    )
    supabase_db_url: AnyUrl | str | None = Field(
        default=None,
        description="Pooled Postgres connection string for production runs",
    )
    ledger_network: str = Field(
        default="devnet",
        description="Ledger network preset (devnet|mainnet) selecting program id, RPC URL and token decimals",
    )
    ledger_rpc_url: AnyUrl | str | None = Field(
        default=None,
        description="Override for the JSON-RPC endpoint of the selected network",
    )
    ledger_program_id: str | None = Field(
        default=None,
        description="Override for the market program id of the selected network",
    )
    ledger_token_decimals: int | None = Field(
        default=None,
        description="Override for the decimal scale of the market token",
        ge=0,
        le=18,
    )
    ledger_commitment: str = Field(
        default="confirmed",
        description="Commitment level used for ledger reads",
    )
    ledger_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every ledger RPC request",
        gt=0,
    )
    ledger_retry_attempts: int = Field(
        default=2,
        description="Attempts per ledger RPC call when transient errors occur",
        ge=1,
    )
    ledger_retry_backoff_seconds: list[float] | tuple[float, ...] | str = Field(
        default_factory=lambda: [0.5, 1.0],
        description="Comma-separated list or array of delays (seconds) between ledger retry attempts",
    )
    snapshot_cache_ttl_seconds: float = Field(
        default=30.0,
        description="Seconds a fetched market snapshot stays fresh in the live cache",
        gt=0,
    )
    snapshot_batch_workers: int = Field(
        default=8,
        description="Maximum concurrent ledger reads when fetching snapshot batches",
        ge=1,
    )
    reconcile_batch_size: int = Field(
        default=5,
        description="Number of markets reconciled concurrently per window",
        ge=1,
    )
    reconcile_batch_delay_seconds: float = Field(
        default=1.0,
        description="Pause between reconciliation windows to rate-limit ledger reads",
        ge=0,
    )
    reconcile_error_detail_limit: int = Field(
        default=10,
        description="Maximum number of error details retained in a batch reconciliation report",
        ge=0,
    )
    classifier_market_min_size: int | None = Field(
        default=None,
        description="Smallest account size treated as a market candidate (defaults to the layout minimum)",
        ge=1,
    )
    classifier_market_max_size: int = Field(
        default=1024,
        description="Largest account size treated as a market candidate",
        ge=1,
    )
    classifier_participation_min_size: int | None = Field(
        default=None,
        description="Smallest account size treated as a participation candidate (defaults to the layout size)",
        ge=1,
    )
    classifier_participation_max_size: int = Field(
        default=399,
        description="Largest account size treated as a participation candidate",
        ge=1,
    )
    drift_scan_data_size: int | None = Field(
        default=None,
        description="Optional exact dataSize filter applied when listing market accounts for drift scans",
        ge=1,
    )

    @field_validator("ledger_network")
    @classmethod
    def _validate_network(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in NETWORK_PRESETS:
            raise ValueError(
                "LEDGER_NETWORK must be one of: " + ", ".join(sorted(NETWORK_PRESETS))
            )
        return normalized

    @field_validator("ledger_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> list[float]:
        if value in (None, "", []):
            return [0.5, 1.0]
        if isinstance(value, str):
            tokens = [token.strip() for token in value.split(",") if token.strip()]
            if not tokens:
                raise ValueError("LEDGER_RETRY_BACKOFF_SECONDS must contain at least one value")
            value = tokens
        if isinstance(value, (list, tuple)):
            backoff: list[float] = []
            for item in value:
                try:
                    delay = float(item)
                except (TypeError, ValueError) as exc:
                    raise ValueError("LEDGER_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
                if delay < 0:
                    raise ValueError("LEDGER_RETRY_BACKOFF_SECONDS entries must not be negative")
                backoff.append(delay)
            if not backoff:
                raise ValueError("LEDGER_RETRY_BACKOFF_SECONDS must contain at least one value")
            return backoff
        raise ValueError(
            "LEDGER_RETRY_BACKOFF_SECONDS must be provided as a comma-separated string or list of numbers"
        )

    @property
    def resolved_database_url(self) -> str:
        environment = self.environment.lower()
        if environment == "production":
            if not self.supabase_db_url:
                raise ValueError(
                    "SUPABASE_DB_URL must be set when ENVIRONMENT=production"
                )
            return _psycopg_url(str(self.supabase_db_url))
        return _psycopg_url(str(self.database_url))

    @property
    def network_preset(self) -> dict[str, Any]:
        return NETWORK_PRESETS[self.ledger_network]

    @property
    def resolved_ledger_rpc_url(self) -> str:
        return str(self.ledger_rpc_url or self.network_preset["rpc_url"])

    @property
    def resolved_program_id(self) -> str:
        return self.ledger_program_id or self.network_preset["program_id"]

    @property
    def resolved_token_decimals(self) -> int:
        if self.ledger_token_decimals is not None:
            return self.ledger_token_decimals
        return int(self.network_preset["token_decimals"])

    @property
    def ledger_retry_backoff_schedule(self) -> tuple[float, ...]:
        sequence = tuple(float(value) for value in self.ledger_retry_backoff_seconds)
        if not sequence:
            return (0.5,)
        return sequence


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
