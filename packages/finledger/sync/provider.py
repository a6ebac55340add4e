"""Bank-sync provider capability and the DTOs it exchanges with the engine.

The engine only talks to a :class:`BankSyncProvider`; the Plaid adapter in
``finledger.sync.plaid_client`` is one implementation and tests use a scripted
fake. Amounts on :class:`ProviderTransaction` are in the provider's sign
convention (money out is positive); the engine converts them.

Providers signal failures by raising the classes in ``finledger.errors``:
``RateLimitedError`` (retried), ``AuthRequiredError`` (item needs re-linking)
or any other ``BankSyncError`` (transient).
"""

from __future__ import annotations

from datetime import date as date_type
from decimal import Decimal
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, field_validator

from ..normalizers import normalize_date


class _Dto(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)


class ProviderTransaction(_Dto):
    transaction_id: str
    account_id: str
    date: date_type
    amount: Decimal
    name: str | None = None
    merchant_name: str | None = None
    pending: bool = False

    @field_validator("transaction_id", "account_id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("identifier must be non-empty")
        return v

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, v: object) -> object:
        parsed = normalize_date(v)
        return parsed if parsed is not None else v

    @property
    def description(self) -> str:
        return self.name or self.merchant_name or "Unknown"


class RemovedTransaction(_Dto):
    transaction_id: str


class SyncPage(_Dto):
    added: tuple[ProviderTransaction, ...] = ()
    modified: tuple[ProviderTransaction, ...] = ()
    removed: tuple[RemovedTransaction, ...] = ()
    next_cursor: str
    has_more: bool = False


class AccountBalance(_Dto):
    account_id: str
    current: Decimal | None = None
    available: Decimal | None = None


class ProviderAccount(_Dto):
    account_id: str
    name: str
    type: str | None = None
    subtype: str | None = None
    mask: str | None = None


@runtime_checkable
class BankSyncProvider(Protocol):
    def sync_transactions(self, access_token: str, cursor: str | None) -> SyncPage:
        """Return the next page of deltas after ``cursor`` (``None`` = from start)."""
        ...

    def get_balances(self, access_token: str) -> list[AccountBalance]: ...

    def exchange_public_token(self, public_token: str) -> tuple[str, str]:
        """Return ``(external_item_id, access_token)`` for a Link public token."""
        ...

    def get_accounts(self, access_token: str) -> list[ProviderAccount]: ...

    def remove_item(self, access_token: str) -> None:
        """Revoke the credential at the provider; the item stops producing data."""
        ...


__all__ = [
    "AccountBalance",
    "BankSyncProvider",
    "ProviderAccount",
    "ProviderTransaction",
    "RemovedTransaction",
    "SyncPage",
]
