from __future__ import annotations

import base64
import itertools
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import httpx
from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import RawAccount

from .errors import LedgerUnavailable

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True, slots=True)
class DataSizeFilter:
    size: int

    def to_param(self) -> dict[str, Any]:
        return {"dataSize": self.size}


@dataclass(frozen=True, slots=True)
class MemcmpFilter:
    """Offset-anchored equality filter; ``value`` is base58 encoded."""

    offset: int
    value: str

    def to_param(self) -> dict[str, Any]:
        return {"memcmp": {"offset": self.offset, "bytes": self.value}}


AccountFilter = DataSizeFilter | MemcmpFilter


class _RetryableRpcError(Exception):
    pass


def _decode_account_data(data: Any) -> bytes:
    if isinstance(data, list) and len(data) == 2 and data[1] == "base64":
        data = data[0]
    if not isinstance(data, str):
        raise LedgerUnavailable(f"unexpected account data encoding: {data!r:.80}")
    try:
        return base64.b64decode(data, validate=True)
    except ValueError as exc:
        raise LedgerUnavailable("account data is not valid base64") from exc


class LedgerClient:
    """Read-only JSON-RPC client for the ledger node."""

    def __init__(
        self,
        *,
        rpc_url: str | None = None,
        commitment: str | None = None,
        timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_backoff: Sequence[float] | None = None,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = settings or get_settings()
        self.rpc_url = rpc_url or settings.resolved_ledger_rpc_url
        self.commitment = commitment or settings.ledger_commitment
        self.timeout = timeout if timeout is not None else settings.ledger_timeout_seconds
        self.retry_attempts = retry_attempts or settings.ledger_retry_attempts
        self.retry_backoff = tuple(
            retry_backoff if retry_backoff is not None else settings.ledger_retry_backoff_schedule
        )
        self._sleep = sleep
        self._ids = itertools.count(1)
        self.client = httpx.Client(timeout=self.timeout, transport=transport)

    def _backoff_for(self, attempt: int) -> float:
        if not self.retry_backoff:
            return 0.0
        return self.retry_backoff[min(attempt - 1, len(self.retry_backoff) - 1)]

    def _post(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self.client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as exc:
            raise _RetryableRpcError(f"{method} timed out after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise _RetryableRpcError(f"{method} transport error: {exc}") from exc

        if response.status_code in _RETRYABLE_STATUS_CODES:
            raise _RetryableRpcError(f"{method} returned HTTP {response.status_code}")
        try:
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            raise LedgerUnavailable(f"{method} failed: {exc}") from exc

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise LedgerUnavailable(f"{method} RPC error: {message}")
        if not isinstance(body, dict) or "result" not in body:
            raise LedgerUnavailable(f"{method} returned a malformed response")
        return body["result"]

    def call(self, method: str, params: list[Any]) -> Any:
        """Issue one RPC call, retrying transient failures a bounded number of times."""

        last_error: _RetryableRpcError | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return self._post(method, params)
            except _RetryableRpcError as exc:
                last_error = exc
                retryable = attempt < self.retry_attempts
                logger.warning(
                    "Ledger RPC {} failed attempt={}/{} retryable={}: {}",
                    method,
                    attempt,
                    self.retry_attempts,
                    retryable,
                    exc,
                )
                if retryable:
                    self._sleep(self._backoff_for(attempt))
        raise LedgerUnavailable(str(last_error)) from last_error

    def get_account_info(self, address: str) -> bytes | None:
        result = self.call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.commitment}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        if value is None:
            return None
        return _decode_account_data(value.get("data"))

    def get_program_accounts(
        self, program_id: str, filters: Sequence[AccountFilter] = ()
    ) -> list[RawAccount]:
        config: dict[str, Any] = {"encoding": "base64", "commitment": self.commitment}
        if filters:
            config["filters"] = [item.to_param() for item in filters]
        logger.info("Ledger getProgramAccounts program={} filters={}", program_id, config.get("filters"))
        result = self.call("getProgramAccounts", [program_id, config])
        if isinstance(result, dict) and "value" in result:
            result = result["value"]
        if not isinstance(result, list):
            raise LedgerUnavailable("getProgramAccounts returned a non-list result")

        accounts: list[RawAccount] = []
        for entry in result:
            try:
                address = entry["pubkey"]
                data = _decode_account_data(entry["account"]["data"])
            except (KeyError, TypeError, ValueError, LedgerUnavailable):
                logger.debug("Skipping malformed program account entry {!r:.80}", entry)
                continue
            accounts.append(RawAccount(address=address, data=data))
        return accounts

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "LedgerClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["AccountFilter", "DataSizeFilter", "LedgerClient", "MemcmpFilter"]
