"""Deterministic keyword categorizer and transaction-kind rules.

Categories carry an ordered keyword list. A description is matched by a single
pass over the categories in ``(sort_order, id)`` order; the first category
with a keyword contained in the lower-cased description wins. Identical input
against an identical category list always yields the same category.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from db.models.ledger import Category
from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import TRANSACTION_KINDS, TransactionKind

TRANSFER_CATEGORY = "Transfer"
INCOME_CATEGORY = "Income"

# Descriptions that mark a bank-sync row as money moving between accounts.
_TRANSFER_KEYWORDS: tuple[str, ...] = ("transfer", "zelle", "venmo", "payment", "mobile payment")


def parse_keywords(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalize a keyword list: comma-separated text or a sequence.

    Entries are trimmed and lower-cased; blanks are dropped and order is kept.
    """

    if value is None:
        return ()
    parts = value.split(",") if isinstance(value, str) else list(value)
    out: list[str] = []
    for p in parts:
        k = str(p).strip().lower()
        if k:
            out.append(k)
    return tuple(out)


@dataclass(frozen=True, slots=True)
class CategoryRule:
    id: int
    name: str
    keywords: tuple[str, ...]


class KeywordCategorizer:
    """First-match keyword classifier over an ordered list of rules."""

    def __init__(self, rules: Sequence[CategoryRule]) -> None:
        self._rules: tuple[CategoryRule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[CategoryRule, ...]:
        return self._rules

    @classmethod
    def from_session(cls, session: Session) -> KeywordCategorizer:
        rows = session.execute(
            select(Category.id, Category.name, Category.keywords).order_by(
                Category.sort_order, Category.id
            )
        ).all()
        return cls(
            [
                CategoryRule(id=int(cid), name=str(name), keywords=parse_keywords(kw))
                for cid, name, kw in rows
            ]
        )

    def by_name(self, name: str) -> CategoryRule | None:
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    def categorize(self, description: str | None) -> CategoryRule | None:
        """Return the first matching rule, or ``None`` when uncategorized."""

        text = (description or "").lower()
        if not text:
            return None
        for rule in self._rules:
            if not rule.keywords:
                continue
            for kw in rule.keywords:
                if kw in text:
                    return rule
        return None


def kind_for_import(
    amount: Decimal,
    category_name: str | None,
    explicit_type: str | None = None,
) -> TransactionKind:
    """Kind for rows from manual entry, CSV or PDF sources.

    A ``Transfer`` category wins, then a valid explicit row type, then the sign
    of the amount (strictly positive is income).
    """

    if category_name == TRANSFER_CATEGORY:
        return "transfer"
    t = (explicit_type or "").strip().lower()
    if t in TRANSACTION_KINDS:
        return t  # type: ignore[return-value]
    return "income" if amount > 0 else "expense"


def kind_for_bank_sync(amount: Decimal, description: str | None) -> TransactionKind:
    """Kind for provider rows; ``amount`` is already in ledger sign."""

    text = (description or "").lower()
    if any(kw in text for kw in _TRANSFER_KEYWORDS):
        return "transfer"
    return "income" if amount >= 0 else "expense"


__all__ = [
    "INCOME_CATEGORY",
    "TRANSFER_CATEGORY",
    "CategoryRule",
    "KeywordCategorizer",
    "kind_for_bank_sync",
    "kind_for_import",
    "parse_keywords",
]
