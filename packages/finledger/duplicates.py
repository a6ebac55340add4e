"""Fingerprint index: the identity rules that keep the ledger duplicate-free.

Three identities, checked in this order by the callers:

- ``external_id``: the provider's transaction id. Once a row carries one it is
  matched by that id only.
- fingerprint: SHA-256 over ``(date, amount, description, account)``.
- secondary key: ``(date, amount, account)``, which catches the same
  transaction rendered with a different description by another source.

Lookups that can match several rows resolve to the lowest ``id`` so the
outcome never depends on storage order.
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import date
from decimal import Decimal

from db.models.ledger import Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .normalizers import format_amount, format_date


class DuplicateMatch(enum.StrEnum):
    FINGERPRINT = "fingerprint"
    SECONDARY_KEY = "secondary_key"


def compute_fingerprint(
    *,
    date: date,
    amount: Decimal,
    description: str,
    account_id: int,
) -> str:
    """Stable SHA-256 hex over the canonical identity fields.

    Fields: date (``YYYY-MM-DD``), amount (2dp string), description (trimmed),
    account id.
    """

    payload = {
        "account_id": int(account_id),
        "amount": format_amount(amount),
        "date": format_date(date),
        "description": (description or "").strip(),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def find_by_external_id(session: Session, external_id: str) -> Transaction | None:
    return session.execute(
        select(Transaction).where(Transaction.external_id == external_id)
    ).scalar_one_or_none()


def find_by_fingerprint(
    session: Session, fingerprint: str, *, unsynced_only: bool = False
) -> Transaction | None:
    stmt = select(Transaction).where(Transaction.fingerprint == fingerprint)
    if unsynced_only:
        stmt = stmt.where(Transaction.external_id.is_(None))
    return session.execute(stmt.order_by(Transaction.id).limit(1)).scalar_one_or_none()


def find_by_secondary_key(
    session: Session,
    *,
    date: date,
    amount: Decimal,
    account_id: int,
    unsynced_only: bool = False,
) -> Transaction | None:
    stmt = select(Transaction).where(
        Transaction.date == date,
        Transaction.amount == amount,
        Transaction.account_id == account_id,
    )
    if unsynced_only:
        stmt = stmt.where(Transaction.external_id.is_(None))
    return session.execute(stmt.order_by(Transaction.id).limit(1)).scalar_one_or_none()


def find_duplicate(
    session: Session,
    *,
    fingerprint: str,
    date: date,
    amount: Decimal,
    account_id: int,
) -> tuple[Transaction | None, DuplicateMatch | None]:
    """Return the existing row an ingested row would duplicate, and why."""

    row = find_by_fingerprint(session, fingerprint)
    if row is not None:
        return row, DuplicateMatch.FINGERPRINT
    row = find_by_secondary_key(session, date=date, amount=amount, account_id=account_id)
    if row is not None:
        return row, DuplicateMatch.SECONDARY_KEY
    return None, None


def find_upgrade_candidate(
    session: Session,
    *,
    fingerprint: str,
    date: date,
    amount: Decimal,
    account_id: int,
) -> tuple[Transaction | None, DuplicateMatch | None]:
    """Like :func:`find_duplicate` but only over rows without an external id.

    A provider row that matches one of these claims it in place instead of
    inserting a second copy.
    """

    row = find_by_fingerprint(session, fingerprint, unsynced_only=True)
    if row is not None:
        return row, DuplicateMatch.FINGERPRINT
    row = find_by_secondary_key(
        session, date=date, amount=amount, account_id=account_id, unsynced_only=True
    )
    if row is not None:
        return row, DuplicateMatch.SECONDARY_KEY
    return None, None


__all__ = [
    "DuplicateMatch",
    "compute_fingerprint",
    "find_by_external_id",
    "find_by_fingerprint",
    "find_by_secondary_key",
    "find_duplicate",
    "find_upgrade_candidate",
]
