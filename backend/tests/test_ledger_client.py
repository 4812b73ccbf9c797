from __future__ import annotations

import base64
import json

import httpx
import pytest

from factories import make_address
from ledger.client import DataSizeFilter, LedgerClient, MemcmpFilter
from ledger.errors import LedgerUnavailable


def _rpc_result(request: httpx.Request, result) -> httpx.Response:
    payload = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})


def _client(test_settings, handler, sleeps: list[float] | None = None, **kwargs) -> LedgerClient:
    return LedgerClient(
        settings=test_settings,
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
        **kwargs,
    )


def test_get_account_info_decodes_base64_payload(test_settings):
    address = make_address("market")
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        encoded = base64.b64encode(b"account-bytes").decode("ascii")
        return _rpc_result(request, {"context": {"slot": 1}, "value": {"data": [encoded, "base64"]}})

    with _client(test_settings, handler) as client:
        assert client.get_account_info(address) == b"account-bytes"

    assert seen[0]["method"] == "getAccountInfo"
    assert seen[0]["params"] == [address, {"encoding": "base64", "commitment": "confirmed"}]


def test_get_account_info_returns_none_for_missing_account(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return _rpc_result(request, {"context": {"slot": 1}, "value": None})

    with _client(test_settings, handler) as client:
        assert client.get_account_info(make_address("missing")) is None


def test_transient_http_errors_are_retried_with_backoff(test_settings):
    """A 503 followed by success costs one retry and one backoff sleep."""
    calls: list[int] = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(503)
        return _rpc_result(request, {"value": None})

    with _client(test_settings, handler, sleeps, retry_attempts=3, retry_backoff=[0.5, 1.0]) as client:
        assert client.get_account_info(make_address("x")) is None

    assert len(calls) == 2
    assert sleeps == [0.5]


def test_exhausted_retries_raise_ledger_unavailable(test_settings):
    calls: list[int] = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(429)

    with _client(test_settings, handler, sleeps, retry_attempts=3, retry_backoff=[0.5, 1.0]) as client:
        with pytest.raises(LedgerUnavailable):
            client.get_account_info(make_address("x"))

    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_timeouts_are_reported_as_ledger_unavailable(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with _client(test_settings, handler, retry_attempts=2) as client:
        with pytest.raises(LedgerUnavailable, match="timed out"):
            client.get_account_info(make_address("x"))


def test_rpc_error_body_is_not_retried(test_settings):
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid param"}}
        )

    with _client(test_settings, handler, retry_attempts=3) as client:
        with pytest.raises(LedgerUnavailable, match="Invalid param"):
            client.get_account_info(make_address("x"))

    assert len(calls) == 1


def test_get_program_accounts_sends_filters_and_skips_malformed_entries(test_settings):
    program_id = make_address("program")
    market = make_address("market")
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        good = base64.b64encode(b"\x01" * 90).decode("ascii")
        return _rpc_result(
            request,
            [
                {"pubkey": make_address("p1"), "account": {"data": [good, "base64"]}},
                {"pubkey": make_address("p2"), "account": {"data": ["%%%", "base64"]}},
                {"account": {"data": [good, "base64"]}},
            ],
        )

    with _client(test_settings, handler) as client:
        accounts = client.get_program_accounts(
            program_id, [DataSizeFilter(90), MemcmpFilter(offset=40, value=market)]
        )

    assert [account.address for account in accounts] == [make_address("p1")]
    assert accounts[0].size == 90
    params = seen[0]["params"]
    assert params[0] == program_id
    assert params[1]["filters"] == [
        {"dataSize": 90},
        {"memcmp": {"offset": 40, "bytes": market}},
    ]


def test_non_list_program_accounts_result_raises(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return _rpc_result(request, "unexpected")

    with _client(test_settings, handler) as client:
        with pytest.raises(LedgerUnavailable):
            client.get_program_accounts(make_address("program"))
