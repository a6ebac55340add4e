"""Map arbitrary CSV statement columns onto ingestion rows.

Bank exports disagree on column names and on how they express direction: some
have a single signed amount column, others split money out and money in into
``debit``/``credit`` columns. A :class:`ColumnMapping` names the columns to
read and :func:`rows_from_csv` produces ``{date, amount, description[, type]}``
rows for :func:`finledger.ingest.pipeline.ingest_rows`. Values are passed
through as text; all parsing happens in the pipeline so errors are reported
per row.

Parsing follows RFC 4180 via the stdlib :mod:`csv` module.

Mappings can be saved per institution (optionally narrowed to one account) so
the next export from the same bank imports without restating its columns.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from io import StringIO
from pathlib import Path
from typing import Any

from db.models.ledger import ColumnMappingRecord
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..logging_setup import get_logger
from ..normalizers import format_amount, parse_amount

_logger = get_logger("finledger.ingest.csv_rows")


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Names of the CSV columns holding each row field.

    Either ``amount`` or both ``debit`` and ``credit`` must be set. ``type``
    optionally names a column holding ``expense``/``income``/``transfer``.
    """

    date: str
    description: str
    amount: str | None = None
    debit: str | None = None
    credit: str | None = None
    type: str | None = None

    def __post_init__(self) -> None:
        if not self.date or not self.description:
            raise ValueError("ColumnMapping requires date and description columns")
        if self.amount is None and not (self.debit and self.credit):
            raise ValueError("ColumnMapping requires an amount column or both debit and credit")

    @property
    def uses_debit_credit(self) -> bool:
        return bool(self.debit and self.credit)

    def required_columns(self) -> tuple[str, ...]:
        cols = [self.date, self.description]
        if self.uses_debit_credit:
            cols += [self.debit or "", self.credit or ""]
        else:
            cols.append(self.amount or "")
        if self.type:
            cols.append(self.type)
        return tuple(cols)

    def to_dict(self) -> dict[str, str]:
        fields = {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "debit": self.debit,
            "credit": self.credit,
            "type": self.type,
        }
        return {k: v for k, v in fields.items() if v}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ColumnMapping:
        return cls(
            date=str(data.get("date") or ""),
            description=str(data.get("description") or ""),
            amount=data.get("amount") or None,
            debit=data.get("debit") or None,
            credit=data.get("credit") or None,
            type=data.get("type") or None,
        )


def read_csv_rows(csv_text: str) -> list[dict[str, str]]:
    """Load CSV text into header-keyed dicts (extra unnamed cells dropped)."""

    with StringIO(csv_text) as f:
        reader = csv.DictReader(f)
        rows: list[dict[str, str]] = []
        for row in reader:
            # DictReader collects surplus cells under a None key; drop them so
            # every value stays a string.
            normalized = {k: (v if v is not None else "") for k, v in row.items() if k is not None}
            rows.append(normalized)
        return rows


def read_csv_text(path: str | Path) -> str:
    # utf-8-sig tolerates the BOM many bank exports start with.
    with open(path, encoding="utf-8-sig", newline="") as f:
        return f.read()


def missing_columns(headers: Iterable[str], mapping: ColumnMapping) -> list[str]:
    present = set(headers)
    return sorted(c for c in mapping.required_columns() if c not in present)


def _debit_credit_amount(debit_raw: str, credit_raw: str) -> str:
    # Blank cells count as zero. A positive credit wins; otherwise the debit
    # is money out regardless of how the bank signed it.
    credit = parse_amount(credit_raw) if credit_raw.strip() else parse_amount("0")
    debit = parse_amount(debit_raw) if debit_raw.strip() else parse_amount("0")
    if credit is None:
        return credit_raw
    if credit > 0:
        return format_amount(credit)
    if debit is None:
        return debit_raw
    return format_amount(-abs(debit))


def map_row(row: Mapping[str, str], mapping: ColumnMapping) -> dict[str, str]:
    out: dict[str, str] = {
        "date": (row.get(mapping.date) or "").strip(),
        "description": (row.get(mapping.description) or "").strip(),
    }
    if mapping.uses_debit_credit:
        out["amount"] = _debit_credit_amount(
            row.get(mapping.debit or "") or "", row.get(mapping.credit or "") or ""
        )
    else:
        out["amount"] = (row.get(mapping.amount or "") or "").strip()
    if mapping.type:
        t = (row.get(mapping.type) or "").strip()
        if t:
            out["type"] = t
    return out


def rows_from_csv(csv_text: str, mapping: ColumnMapping) -> list[dict[str, str]]:
    """Return ingestion rows from ``csv_text`` using ``mapping``.

    Raises ``ValueError`` when the header lacks a mapped column.
    """

    rows = read_csv_rows(csv_text)
    headers = next(csv.reader(StringIO(csv_text)), [])
    missing = missing_columns(headers, mapping)
    if missing:
        raise ValueError("CSV is missing mapped columns: " + ", ".join(missing))
    return [map_row(row, mapping) for row in rows]


# ---- Saved mappings -----------------------------------------------------------


def save_column_mapping(
    session: Session,
    institution: str,
    mapping: ColumnMapping,
    *,
    account_id: int | None = None,
) -> int:
    """Store ``mapping`` for ``institution``/``account_id``; return the record id.

    An existing mapping for the same pair is overwritten.
    """

    institution = institution.strip()
    if not institution:
        raise ValueError("institution is required to save a column mapping")
    account_filter = (
        ColumnMappingRecord.account_id.is_(None)
        if account_id is None
        else ColumnMappingRecord.account_id == account_id
    )
    record = session.execute(
        select(ColumnMappingRecord).where(
            ColumnMappingRecord.institution == institution, account_filter
        )
    ).scalar_one_or_none()
    if record is None:
        record = ColumnMappingRecord(
            institution=institution, account_id=account_id, mapping=mapping.to_dict()
        )
        session.add(record)
    else:
        record.mapping = mapping.to_dict()
    session.flush()
    _logger.info(
        "csv:mapping_saved institution=%s account_id=%s id=%d", institution, account_id, record.id
    )
    return record.id


def load_column_mapping(
    session: Session, institution: str, *, account_id: int | None = None
) -> ColumnMapping | None:
    """Return the saved mapping for ``institution``, or ``None``.

    A mapping saved for ``account_id`` wins over the institution-wide one.
    """

    records = session.execute(
        select(ColumnMappingRecord)
        .where(ColumnMappingRecord.institution == institution.strip())
        .order_by(ColumnMappingRecord.id.desc())
    ).scalars()
    fallback: ColumnMappingRecord | None = None
    for record in records:
        if account_id is not None and record.account_id == account_id:
            return ColumnMapping.from_dict(record.mapping)
        if record.account_id is None and fallback is None:
            fallback = record
    return ColumnMapping.from_dict(fallback.mapping) if fallback is not None else None


__all__ = [
    "ColumnMapping",
    "load_column_mapping",
    "map_row",
    "missing_columns",
    "read_csv_text",
    "read_csv_rows",
    "rows_from_csv",
    "save_column_mapping",
]
