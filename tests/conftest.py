"""Pytest configuration for test isolation.

The database client keeps one process-wide engine bound to the first URL it
sees. Every test gets its own file-backed SQLite database, so the engine is
disposed after each test and ``DATABASE_URL`` is cleared to make sure nothing
falls back to a developer's real database.

The workspace packages (``packages/`` and ``libs/db/src``) are put on
``sys.path`` so the suite also runs from a plain checkout without an install.
"""

# ruff: noqa: E402
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

import pytest
from db.client import dispose_engine

from tests.helpers.db import bootstrap_sqlite_db, seed_default_categories


@pytest.fixture(autouse=True)
def _isolate_database(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop ambient DB/provider configuration and reset the shared engine."""

    for name in ("DATABASE_URL", "PLAID_CLIENT_ID", "PLAID_SECRET", "PLAID_ENV"):
        monkeypatch.delenv(name, raising=False)
    dispose_engine()
    yield
    dispose_engine()


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    """Empty ledger schema in a per-test SQLite file."""

    return bootstrap_sqlite_db(tmp_path / "ledger.db")


@pytest.fixture()
def seeded_url(database_url: str) -> str:
    """Ledger schema plus the bundled default keyword categories."""

    seed_default_categories(database_url=database_url)
    return database_url
