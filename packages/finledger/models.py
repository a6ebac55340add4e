"""Shared value types for ``finledger``.

Closed vocabularies are plain ``Literal`` aliases matching the CHECK
constraints in ``db.models.ledger``. Results handed back to callers are frozen
dataclasses so batch and sync outcomes can be logged and compared safely.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

type TransactionKind = Literal["expense", "income", "transfer"]
type TransactionSource = Literal["manual", "import", "plaid"]
type SyncStatus = Literal["active", "error"]
type SyncLogStatus = Literal["success", "error"]

TRANSACTION_KINDS: frozenset[str] = frozenset({"expense", "income", "transfer"})

type RawRow = Mapping[str, Any]
"""One incoming row: ``{"date", "amount", "description"}`` plus an optional
``"type"`` (expense/income/transfer). Values are usually raw strings."""


@dataclass(frozen=True, slots=True)
class IngestResult:
    """Outcome of one ingestion batch.

    ``errors`` holds one ``"row N: <reason>"`` string per rejected row (N is
    1-based). ``category_counts`` maps category name (or ``None`` for
    uncategorized) to the number of imported rows that received it.
    """

    imported: int = 0
    duplicates: int = 0
    errors: tuple[str, ...] = ()
    category_counts: Mapping[str | None, int] = field(default_factory=dict)
    income_records_created: int = 0
    inserted_ids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Outcome of syncing one item. ``error`` is ``None`` on success."""

    item_id: int
    institution_name: str | None = None
    added: int = 0
    modified: int = 0
    removed: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "TRANSACTION_KINDS",
    "IngestResult",
    "RawRow",
    "SyncLogStatus",
    "SyncResult",
    "SyncStatus",
    "TransactionKind",
    "TransactionSource",
]
