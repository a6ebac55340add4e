"""Environment-driven settings for the sync engine and the Plaid adapter.

Everything is read from environment variables (the CLI loads a local ``.env``
first via ``python-dotenv``). Malformed numeric values fall back to the
defaults instead of failing the run.

- ``FINLEDGER_SYNC_MAX_ATTEMPTS``: total attempts per page on rate limiting (3)
- ``FINLEDGER_SYNC_BACKOFF_BASE_SEC``: first retry delay, doubled each time (1.0)
- ``PLAID_CLIENT_ID`` / ``PLAID_SECRET`` / ``PLAID_ENV`` (``sandbox``)
- ``FINLEDGER_PLAID_TIMEOUT_SEC``: per-request timeout for provider calls (30)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_MAX_ATTEMPTS: int = 3
_DEFAULT_BACKOFF_BASE_SEC: float = 1.0
_DEFAULT_PLAID_TIMEOUT_SEC: float = 30.0

PLAID_ENVIRONMENTS: tuple[str, ...] = ("sandbox", "production")


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(minimum, value)


def _env_float(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw else default
    except ValueError:
        value = default
    return max(minimum, value)


@dataclass(frozen=True, slots=True)
class SyncSettings:
    """Retry policy for one sync page."""

    max_attempts: int = _DEFAULT_MAX_ATTEMPTS
    backoff_base_sec: float = _DEFAULT_BACKOFF_BASE_SEC

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or self.max_attempts < 1:
            raise ValueError("SyncSettings.max_attempts must be a positive integer")
        if self.backoff_base_sec < 0:
            raise ValueError("SyncSettings.backoff_base_sec must be >= 0")

    def backoff_delay(self, attempt_no: int) -> float:
        """Delay before retrying after failed attempt ``attempt_no`` (1-based)."""

        return self.backoff_base_sec * (2 ** (attempt_no - 1))

    @classmethod
    def from_env(cls) -> SyncSettings:
        return cls(
            max_attempts=_env_int("FINLEDGER_SYNC_MAX_ATTEMPTS", _DEFAULT_MAX_ATTEMPTS),
            backoff_base_sec=_env_float(
                "FINLEDGER_SYNC_BACKOFF_BASE_SEC", _DEFAULT_BACKOFF_BASE_SEC
            ),
        )


@dataclass(frozen=True, slots=True)
class PlaidSettings:
    client_id: str
    secret: str
    environment: str = "sandbox"
    timeout_sec: float = _DEFAULT_PLAID_TIMEOUT_SEC

    @classmethod
    def from_env(cls) -> PlaidSettings:
        """Build settings from ``PLAID_*`` variables.

        Raises ``RuntimeError`` when credentials are missing or the environment
        name is unknown, so misconfiguration surfaces before any sync starts.
        """

        client_id = (os.getenv("PLAID_CLIENT_ID") or "").strip()
        secret = (os.getenv("PLAID_SECRET") or "").strip()
        if not client_id or not secret:
            raise RuntimeError("PLAID_CLIENT_ID and PLAID_SECRET must be set")
        environment = (os.getenv("PLAID_ENV") or "sandbox").strip().lower()
        if environment not in PLAID_ENVIRONMENTS:
            raise RuntimeError(
                f"Unsupported PLAID_ENV: {environment!r}. Allowed: {list(PLAID_ENVIRONMENTS)}"
            )
        return cls(
            client_id=client_id,
            secret=secret,
            environment=environment,
            timeout_sec=_env_float(
                "FINLEDGER_PLAID_TIMEOUT_SEC", _DEFAULT_PLAID_TIMEOUT_SEC, minimum=1.0
            ),
        )


__all__ = ["PLAID_ENVIRONMENTS", "PlaidSettings", "SyncSettings"]
