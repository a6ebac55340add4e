"""Exception types raised by bank-sync providers.

Row-level ingestion problems are never raised; they are reported as strings
in ``IngestResult.errors``. Provider adapters translate their SDK failures
into the classes below and the sync engine turns them into item state.
"""

from __future__ import annotations


class FinledgerError(Exception):
    """Base class for package errors."""


class BankSyncError(FinledgerError):
    """A provider call failed; ``code`` is the provider's error code."""

    def __init__(self, code: str, message: str = "") -> None:
        self.code = code or "UNKNOWN"
        self.message = message or self.code
        super().__init__(f"{self.code}: {self.message}")


class RateLimitedError(BankSyncError):
    """The provider asked us to slow down; retried with backoff."""

    def __init__(self, message: str = "rate limit exceeded", code: str = "RATE_LIMIT_EXCEEDED"):
        super().__init__(code, message)


class AuthRequiredError(BankSyncError):
    """The stored credential is no longer valid; the user must re-link."""

    def __init__(self, message: str = "login required", code: str = "ITEM_LOGIN_REQUIRED"):
        super().__init__(code, message)


__all__ = [
    "AuthRequiredError",
    "BankSyncError",
    "FinledgerError",
    "RateLimitedError",
]
