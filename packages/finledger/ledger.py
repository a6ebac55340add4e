"""Manual entry and user edits on ledger transactions.

Manual entries go through the ingestion pipeline (same normalization and
duplicate rules as imports) with ``source="manual"``. User edits may only
touch the fields the user owns, ``category_id`` and ``notes``; sync never
writes those, so edits survive later provider updates.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Final

from db.models.ledger import Category, Transaction
from sqlalchemy.orm import Session

from .ingest.pipeline import ingest_rows
from .logging_setup import get_logger
from .models import IngestResult
from .normalizers import SignConvention

_logger = get_logger("finledger.ledger")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


def add_manual_transaction(
    session: Session,
    *,
    account_id: int,
    date: date | str,
    amount: Decimal | float | str,
    description: str,
    notes: str | None = None,
    type: str | None = None,
    sign_convention: SignConvention = "negative_expenses",
) -> IngestResult:
    """Record one hand-entered transaction; returns the single-row result."""

    row: dict[str, Any] = {"date": date, "amount": amount, "description": description}
    if type:
        row["type"] = type
    return ingest_rows(
        session,
        [row],
        account_id=account_id,
        sign_convention=sign_convention,
        source="manual",
        notes=notes,
    )


def edit_transaction(
    session: Session,
    transaction_id: int,
    *,
    category_id: int | None | _Unset = UNSET,
    notes: str | None | _Unset = UNSET,
) -> Transaction:
    """Update the user-owned fields of a transaction.

    Pass ``None`` to clear a field; omitted fields are left unchanged. Raises
    ``LookupError`` for an unknown transaction or category id.
    """

    tx = session.get(Transaction, transaction_id)
    if tx is None:
        raise LookupError(f"transaction {transaction_id} not found")

    if not isinstance(category_id, _Unset):
        if category_id is not None and session.get(Category, category_id) is None:
            raise LookupError(f"category {category_id} not found")
        tx.category_id = category_id
    if not isinstance(notes, _Unset):
        tx.notes = notes
    session.flush()
    _logger.debug("ledger:edited tx_id=%d", transaction_id)
    return tx


__all__ = ["UNSET", "add_manual_transaction", "edit_transaction"]
