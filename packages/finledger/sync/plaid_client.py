"""Plaid implementation of :class:`~finledger.sync.provider.BankSyncProvider`.

Thin wrapper over the official ``plaid-python`` SDK: requests are built from
the SDK models, responses are converted to the package DTOs via ``to_dict()``
and ``plaid.ApiException`` is translated into ``finledger.errors``:

- HTTP 429 or ``RATE_LIMIT_EXCEEDED`` -> ``RateLimitedError``
- ``ITEM_LOGIN_REQUIRED`` -> ``AuthRequiredError``
- anything else -> ``BankSyncError`` carrying Plaid's ``error_code``

Each call is bounded by ``PlaidSettings.timeout_sec``.
"""

from __future__ import annotations

import json
from typing import Any

import plaid
from plaid.api import plaid_api
from plaid.model.accounts_balance_get_request import AccountsBalanceGetRequest
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.transactions_sync_request import TransactionsSyncRequest

from ..config import PlaidSettings
from ..errors import AuthRequiredError, BankSyncError, RateLimitedError
from ..logging_setup import get_logger
from .provider import (
    AccountBalance,
    ProviderAccount,
    ProviderTransaction,
    RemovedTransaction,
    SyncPage,
)

_logger = get_logger("finledger.sync.plaid_client")

_HOSTS: dict[str, str] = {
    "sandbox": "https://sandbox.plaid.com",
    "production": "https://production.plaid.com",
}

_RATE_LIMIT_CODES: frozenset[str] = frozenset({"RATE_LIMIT_EXCEEDED", "RATE_LIMIT"})
_AUTH_CODES: frozenset[str] = frozenset({"ITEM_LOGIN_REQUIRED"})


def _error_payload(exc: plaid.ApiException) -> dict[str, Any]:
    body = getattr(exc, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def classify_api_exception(exc: plaid.ApiException) -> BankSyncError:
    """Translate a Plaid SDK exception into the package error taxonomy."""

    payload = _error_payload(exc)
    code = str(payload.get("error_code") or "").strip()
    error_type = str(payload.get("error_type") or "").strip()
    message = str(payload.get("error_message") or getattr(exc, "reason", "") or "").strip()
    status = getattr(exc, "status", None)

    if status == 429 or code in _RATE_LIMIT_CODES or error_type == "RATE_LIMIT_EXCEEDED":
        return RateLimitedError(
            message or "rate limit exceeded", code=code or "RATE_LIMIT_EXCEEDED"
        )
    if code in _AUTH_CODES:
        return AuthRequiredError(message or "login required", code=code)
    return BankSyncError(code or (f"HTTP_{status}" if status else "UNKNOWN"), message)


def _to_dict(model: Any) -> dict[str, Any]:
    return model.to_dict() if hasattr(model, "to_dict") else dict(model)


class PlaidBankSyncProvider:
    """Bank-sync provider backed by the Plaid API."""

    def __init__(self, settings: PlaidSettings, *, api: plaid_api.PlaidApi | None = None) -> None:
        self._settings = settings
        if api is None:
            configuration = plaid.Configuration(
                host=_HOSTS[settings.environment],
                api_key={"clientId": settings.client_id, "secret": settings.secret},
            )
            api = plaid_api.PlaidApi(plaid.ApiClient(configuration))
        self._api = api
        _logger.debug("plaid:client_ready environment=%s", settings.environment)

    @classmethod
    def from_env(cls) -> PlaidBankSyncProvider:
        return cls(PlaidSettings.from_env())

    def _call(self, name: str, request: Any) -> Any:
        method = getattr(self._api, name)
        try:
            return method(request, _request_timeout=self._settings.timeout_sec)
        except plaid.ApiException as e:
            err = classify_api_exception(e)
            _logger.warning("plaid:call_failed method=%s code=%s", name, err.code)
            raise err from e

    def sync_transactions(self, access_token: str, cursor: str | None) -> SyncPage:
        params: dict[str, Any] = {"access_token": access_token}
        # The first sync omits the cursor entirely.
        if cursor:
            params["cursor"] = cursor
        response = self._call("transactions_sync", TransactionsSyncRequest(**params))
        return SyncPage(
            added=tuple(ProviderTransaction.model_validate(_to_dict(t)) for t in response.added),
            modified=tuple(
                ProviderTransaction.model_validate(_to_dict(t)) for t in response.modified
            ),
            removed=tuple(
                RemovedTransaction.model_validate(_to_dict(t)) for t in response.removed
            ),
            next_cursor=response.next_cursor,
            has_more=bool(response.has_more),
        )

    def get_balances(self, access_token: str) -> list[AccountBalance]:
        response = self._call(
            "accounts_balance_get", AccountsBalanceGetRequest(access_token=access_token)
        )
        out: list[AccountBalance] = []
        for acct in response.accounts:
            data = _to_dict(acct)
            balances = data.get("balances") or {}
            out.append(
                AccountBalance(
                    account_id=data["account_id"],
                    current=balances.get("current"),
                    available=balances.get("available"),
                )
            )
        return out

    def exchange_public_token(self, public_token: str) -> tuple[str, str]:
        response = self._call(
            "item_public_token_exchange",
            ItemPublicTokenExchangeRequest(public_token=public_token),
        )
        return str(response.item_id), str(response.access_token)

    def get_accounts(self, access_token: str) -> list[ProviderAccount]:
        response = self._call("accounts_get", AccountsGetRequest(access_token=access_token))
        return [ProviderAccount.model_validate(_to_dict(a)) for a in response.accounts]

    def remove_item(self, access_token: str) -> None:
        self._call("item_remove", ItemRemoveRequest(access_token=access_token))


__all__ = ["PlaidBankSyncProvider", "classify_api_exception"]
