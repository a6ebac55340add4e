from __future__ import annotations

# Seeder for the keyword category table.
#
# Usage (example):
#   python -m finledger.ingest.seed_categories \
#     --database-url sqlite:///ledger.db \
#     --file packages/finledger/ingest/seeds/categories.v1.json
#
# Categories are matched by name: existing rows get their keywords and
# sort_order refreshed, missing ones are inserted. File order becomes
# sort_order, which is the categorizer's first-match order. Rows not present
# in the file are left alone so transactions keep their category references.
import argparse
import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from db.client import session_scope
from db.models.ledger import Category
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..categorizer import parse_keywords
from ..logging_setup import get_logger

DEFAULT_SEED_FILE = Path(__file__).resolve().parent / "seeds" / "categories.v1.json"

_logger = get_logger("finledger.ingest.seed_categories")


def load_seed_file(path: Path = DEFAULT_SEED_FILE) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError("Seed JSON must be a list of {name, keywords} objects")
    return data


def seed_categories(session: Session, categories: Sequence[Mapping[str, Any]]) -> int:
    """Insert or refresh ``categories`` in the given order; return rows touched."""

    existing = {c.name: c for c in session.execute(select(Category)).scalars()}
    touched = 0
    for order, entry in enumerate(categories):
        name = str(entry.get("name") or "").strip()
        if not name:
            raise ValueError(f"category #{order + 1} has no name")
        keywords = list(parse_keywords(entry.get("keywords")))
        row = existing.get(name)
        if row is None:
            row = Category(name=name, keywords=keywords, sort_order=order)
            session.add(row)
            existing[name] = row
        else:
            row.keywords = keywords
            row.sort_order = order
        touched += 1
    session.flush()
    _logger.info("seed_categories:done count=%d", touched)
    return touched


def reseed_from_file(*, database_url: str | None, file: Path = DEFAULT_SEED_FILE) -> int:
    data = load_seed_file(file)
    with session_scope(database_url=database_url) as session:
        return seed_categories(session, data)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Seed the keyword category table")
    ap.add_argument(
        "--database-url",
        required=False,
        default=None,
        help="SQLAlchemy database URL; falls back to $DATABASE_URL when not set",
    )
    ap.add_argument("--file", type=Path, required=False, default=DEFAULT_SEED_FILE)
    args = ap.parse_args(argv)

    reseed_from_file(database_url=args.database_url or None, file=args.file)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual utility
    raise SystemExit(main())
