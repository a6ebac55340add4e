from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import plaid
import pytest

from finledger.config import PlaidSettings
from finledger.errors import AuthRequiredError, BankSyncError, RateLimitedError
from finledger.sync.plaid_client import PlaidBankSyncProvider, classify_api_exception
from finledger.sync.provider import BankSyncProvider


def _api_exception(status: int, body: dict[str, Any] | None = None) -> plaid.ApiException:
    exc = plaid.ApiException(status=status, reason="error")
    exc.body = json.dumps(body) if body is not None else None
    return exc


def test_http_429_is_rate_limited():
    err = classify_api_exception(_api_exception(429))
    assert isinstance(err, RateLimitedError)
    assert err.code == "RATE_LIMIT_EXCEEDED"


def test_rate_limit_error_type_is_rate_limited():
    err = classify_api_exception(
        _api_exception(
            400,
            {
                "error_type": "RATE_LIMIT_EXCEEDED",
                "error_code": "TRANSACTIONS_SYNC_LIMIT",
                "error_message": "slow down",
            },
        )
    )
    assert isinstance(err, RateLimitedError)
    assert (err.code, err.message) == ("TRANSACTIONS_SYNC_LIMIT", "slow down")


def test_login_required_needs_relinking():
    err = classify_api_exception(
        _api_exception(
            400,
            {
                "error_type": "ITEM_ERROR",
                "error_code": "ITEM_LOGIN_REQUIRED",
                "error_message": "the login details of this item have changed",
            },
        )
    )
    assert isinstance(err, AuthRequiredError)
    assert str(err) == "ITEM_LOGIN_REQUIRED: the login details of this item have changed"


def test_other_errors_keep_the_provider_code():
    err = classify_api_exception(
        _api_exception(400, {"error_code": "INVALID_ACCESS_TOKEN", "error_message": "bad token"})
    )
    assert type(err) is BankSyncError
    assert (err.code, err.message) == ("INVALID_ACCESS_TOKEN", "bad token")


def test_errors_without_a_body_fall_back_to_http_status():
    err = classify_api_exception(_api_exception(500))
    assert type(err) is BankSyncError
    assert err.code == "HTTP_500"


class FakePlaidApi:
    """Records requests and replays canned responses per SDK method."""

    def __init__(self, **responses: Any) -> None:
        self.responses = responses
        self.requests: list[tuple[str, Any, Any]] = []

    def __getattr__(self, name: str):
        if name not in self.responses:
            raise AttributeError(name)

        def _call(request, _request_timeout=None):
            self.requests.append((name, request, _request_timeout))
            out = self.responses[name]
            if isinstance(out, Exception):
                raise out
            return out

        return _call


def _provider(api: FakePlaidApi) -> PlaidBankSyncProvider:
    return PlaidBankSyncProvider(
        PlaidSettings(client_id="cid", secret="sec", timeout_sec=7.0), api=api
    )


def test_provider_satisfies_the_protocol():
    assert isinstance(_provider(FakePlaidApi()), BankSyncProvider)


def test_sync_transactions_maps_the_response():
    api = FakePlaidApi(
        transactions_sync=SimpleNamespace(
            added=[
                {
                    "transaction_id": "tx-1",
                    "account_id": "acc-1",
                    "date": date(2025, 1, 15),
                    "amount": 85.25,
                    "name": None,
                    "merchant_name": "Whole Foods",
                    "pending": False,
                    "category": ["Shops"],
                }
            ],
            modified=[],
            removed=[{"transaction_id": "tx-0", "account_id": "acc-1"}],
            next_cursor="c1",
            has_more=False,
        )
    )

    result = _provider(api).sync_transactions("access-1", None)

    name, request, timeout = api.requests[0]
    assert (name, timeout) == ("transactions_sync", 7.0)
    assert "cursor" not in request.to_dict()
    assert result.next_cursor == "c1" and result.has_more is False
    tx = result.added[0]
    assert (tx.transaction_id, tx.date, tx.amount, tx.description) == (
        "tx-1",
        date(2025, 1, 15),
        Decimal("85.25"),
        "Whole Foods",
    )
    assert [r.transaction_id for r in result.removed] == ["tx-0"]


def test_sync_transactions_sends_the_stored_cursor():
    api = FakePlaidApi(
        transactions_sync=SimpleNamespace(
            added=[], modified=[], removed=[], next_cursor="c2", has_more=True
        )
    )
    result = _provider(api).sync_transactions("access-1", "c1")
    assert api.requests[0][1].to_dict()["cursor"] == "c1"
    assert result.has_more is True


def test_sdk_errors_are_translated():
    api = FakePlaidApi(transactions_sync=_api_exception(429))
    with pytest.raises(RateLimitedError):
        _provider(api).sync_transactions("access-1", None)


def test_balances_accounts_and_token_exchange():
    api = FakePlaidApi(
        accounts_balance_get=SimpleNamespace(
            accounts=[{"account_id": "acc-1", "balances": {"current": 100.5, "available": None}}]
        ),
        accounts_get=SimpleNamespace(
            accounts=[
                {
                    "account_id": "acc-1",
                    "name": "Plaid Checking",
                    "type": "depository",
                    "subtype": "checking",
                    "mask": "0000",
                }
            ]
        ),
        item_public_token_exchange=SimpleNamespace(item_id="item-x", access_token="access-x"),
    )
    provider = _provider(api)

    [bal] = provider.get_balances("access-1")
    assert (bal.account_id, bal.current, bal.available) == ("acc-1", Decimal("100.5"), None)
    [acct] = provider.get_accounts("access-1")
    assert (acct.name, acct.type, acct.mask) == ("Plaid Checking", "depository", "0000")
    assert provider.exchange_public_token("public-sandbox-1") == ("item-x", "access-x")


def test_remove_item_calls_item_remove():
    api = FakePlaidApi(item_remove=SimpleNamespace(request_id="req-1"))
    _provider(api).remove_item("access-1")
    name, request, timeout = api.requests[0]
    assert (name, timeout) == ("item_remove", 7.0)
    assert request.to_dict()["access_token"] == "access-1"


def test_settings_require_credentials(monkeypatch):
    with pytest.raises(RuntimeError, match="PLAID_CLIENT_ID"):
        PlaidSettings.from_env()

    monkeypatch.setenv("PLAID_CLIENT_ID", "cid")
    monkeypatch.setenv("PLAID_SECRET", "sec")
    monkeypatch.setenv("PLAID_ENV", "moon")
    with pytest.raises(RuntimeError, match="Unsupported PLAID_ENV"):
        PlaidSettings.from_env()

    # Plaid retired the development host.
    monkeypatch.setenv("PLAID_ENV", "development")
    with pytest.raises(RuntimeError, match="Unsupported PLAID_ENV"):
        PlaidSettings.from_env()

    monkeypatch.setenv("PLAID_ENV", "Production")
    settings = PlaidSettings.from_env()
    assert (settings.environment, settings.timeout_sec) == ("production", 30.0)
