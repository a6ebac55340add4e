"""Batch ingestion of ``{date, amount, description}`` rows into the ledger.

One call handles one batch from a single account and a single source
(manual entry, CSV import or PDF extraction). Each row is validated,
normalized, categorized and checked against the fingerprint index before it
is inserted. Rows are independent: a bad row is reported as
``"row N: <reason>"`` and the rest of the batch carries on. The database work
for a row runs inside a SAVEPOINT so a failing insert never leaves partial
state behind.

``ingest_rows`` works on a caller-owned session; ``import_rows`` wraps it in
``session_scope`` so the whole batch commits (or rolls back) as one unit.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from db.client import session_scope
from db.models.ledger import Account, IncomeRecord, Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..categorizer import INCOME_CATEGORY, KeywordCategorizer, kind_for_import
from ..duplicates import compute_fingerprint, find_duplicate
from ..logging_setup import get_logger
from ..models import IngestResult, RawRow, TransactionKind, TransactionSource
from ..normalizers import SignConvention, apply_sign_convention, normalize_date, parse_amount

_logger = get_logger("finledger.ingest.pipeline")

# Companion payroll records match an existing one within a cent.
_INCOME_TOLERANCE = Decimal("0.01")


class _RowRejected(Exception):
    """Validation failure for a single row; the message is the reason."""


@dataclass(frozen=True, slots=True)
class _PreparedRow:
    date: date
    amount: Decimal
    description: str
    category_id: int | None
    category_name: str | None
    kind: TransactionKind
    fingerprint: str


def _cell(row: RawRow, key: str) -> str:
    v = row.get(key)
    return "" if v is None else str(v).strip()


def _prepare(
    row: RawRow,
    *,
    account_id: int,
    sign_convention: SignConvention,
    categorizer: KeywordCategorizer,
) -> _PreparedRow:
    raw_date = row.get("date")
    description = _cell(row, "description")
    if raw_date is None or not str(raw_date).strip() or not description:
        raise _RowRejected("missing date or description")

    amount = parse_amount(row.get("amount"))
    if amount is None:
        raise _RowRejected(f'invalid amount "{_cell(row, "amount")}"')

    d = normalize_date(raw_date)
    if d is None:
        raise _RowRejected(f'could not parse date "{str(raw_date).strip()}"')

    amount = apply_sign_convention(amount, sign_convention)
    rule = categorizer.categorize(description)
    category_name = rule.name if rule else None
    return _PreparedRow(
        date=d,
        amount=amount,
        description=description,
        category_id=rule.id if rule else None,
        category_name=category_name,
        kind=kind_for_import(amount, category_name, _cell(row, "type") or None),
        fingerprint=compute_fingerprint(
            date=d, amount=amount, description=description, account_id=account_id
        ),
    )


def _ensure_income_record(
    session: Session, prepared: _PreparedRow, *, source: TransactionSource
) -> bool:
    existing = session.execute(
        select(IncomeRecord.id)
        .where(
            IncomeRecord.date == prepared.date,
            IncomeRecord.net_pay > prepared.amount - _INCOME_TOLERANCE,
            IncomeRecord.net_pay < prepared.amount + _INCOME_TOLERANCE,
        )
        .limit(1)
    ).first()
    if existing is not None:
        return False
    session.add(
        IncomeRecord(
            date=prepared.date,
            gross_pay=prepared.amount,
            net_pay=prepared.amount,
            employer=prepared.description,
            source=source,
        )
    )
    return True


def ingest_rows(
    session: Session,
    rows: Iterable[RawRow],
    *,
    account_id: int,
    sign_convention: SignConvention = "negative_expenses",
    source: TransactionSource = "import",
    categorizer: KeywordCategorizer | None = None,
    notes: str | None = None,
) -> IngestResult:
    """Ingest ``rows`` for ``account_id`` using the caller's session.

    Returns counts of imported and duplicate rows plus one error string per
    rejected row. Commit/rollback is left to the caller.

    Raises ``LookupError`` when ``account_id`` does not exist; every
    row-level problem is reported in ``IngestResult.errors`` instead.
    """

    if session.get(Account, account_id) is None:
        raise LookupError(f"account {account_id} not found")

    categorizer = categorizer or KeywordCategorizer.from_session(session)

    imported = 0
    duplicates = 0
    income_created = 0
    errors: list[str] = []
    category_counts: Counter[str | None] = Counter()
    inserted_ids: list[int] = []

    for idx, row in enumerate(rows, start=1):
        try:
            prepared = _prepare(
                row,
                account_id=account_id,
                sign_convention=sign_convention,
                categorizer=categorizer,
            )
        except _RowRejected as e:
            errors.append(f"row {idx}: {e}")
            continue
        except Exception as e:  # noqa: BLE001
            _logger.warning("ingest:row_unprepared row=%d error=%s", idx, e.__class__.__name__)
            errors.append(f"row {idx}: {e}")
            continue

        try:
            with session.begin_nested():
                existing, match = find_duplicate(
                    session,
                    fingerprint=prepared.fingerprint,
                    date=prepared.date,
                    amount=prepared.amount,
                    account_id=account_id,
                )
                if existing is not None:
                    _logger.debug(
                        "ingest:duplicate row=%d match=%s existing_id=%d",
                        idx,
                        match,
                        existing.id,
                    )
                    duplicates += 1
                    continue

                tx = Transaction(
                    date=prepared.date,
                    amount=prepared.amount,
                    description=prepared.description,
                    category_id=prepared.category_id,
                    account_id=account_id,
                    kind=prepared.kind,
                    source=source,
                    fingerprint=prepared.fingerprint,
                    notes=notes,
                )
                session.add(tx)
                session.flush()
                created_income = False
                if prepared.category_name == INCOME_CATEGORY and prepared.amount > 0:
                    created_income = _ensure_income_record(session, prepared, source=source)
                    session.flush()
        except Exception as e:  # noqa: BLE001
            _logger.warning(
                "ingest:row_failed row=%d error=%s", idx, e.__class__.__name__
            )
            errors.append(f"row {idx}: {e}")
            continue

        imported += 1
        inserted_ids.append(tx.id)
        category_counts[prepared.category_name] += 1
        if created_income:
            income_created += 1

    _logger.info(
        "ingest:batch_done account_id=%d source=%s imported=%d duplicates=%d errors=%d",
        account_id,
        source,
        imported,
        duplicates,
        len(errors),
    )
    return IngestResult(
        imported=imported,
        duplicates=duplicates,
        errors=tuple(errors),
        category_counts=dict(category_counts),
        income_records_created=income_created,
        inserted_ids=tuple(inserted_ids),
    )


def import_rows(
    rows: Iterable[RawRow],
    *,
    account_id: int,
    sign_convention: SignConvention = "negative_expenses",
    source: TransactionSource = "import",
    database_url: str | None = None,
) -> IngestResult:
    """Run :func:`ingest_rows` in its own transaction and commit the batch."""

    with session_scope(database_url=database_url) as session:
        return ingest_rows(
            session,
            rows,
            account_id=account_id,
            sign_convention=sign_convention,
            source=source,
        )


__all__ = ["import_rows", "ingest_rows"]
