"""DB helpers for tests: bootstrap a temporary SQLite DB and build fixtures."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.ledger import Account, Category, SyncItem, Transaction
from sqlalchemy import func, select
from sqlalchemy import text as sql_text
from sqlalchemy.orm import Session

from finledger.duplicates import compute_fingerprint
from finledger.ingest.seed_categories import load_seed_file, seed_categories


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)
    _assert_partial_fingerprint_index(url)
    return url


def seed_default_categories(*, database_url: str) -> None:
    with session_scope(database_url=database_url) as session:
        seed_categories(session, load_seed_file())


def create_sync_item(
    *,
    database_url: str,
    external_item_id: str = "item-ext-1",
    access_token: str = "access-1",
    institution_name: str | None = "Test Bank",
    status: str = "active",
) -> int:
    with session_scope(database_url=database_url) as session:
        item = SyncItem(
            external_item_id=external_item_id,
            access_token=access_token,
            institution_name=institution_name,
            status=status,
        )
        session.add(item)
        session.flush()
        return item.id


def create_account(
    *,
    database_url: str,
    name: str = "Checking",
    type: str = "checking",
    sync_item_id: int | None = None,
    external_account_id: str | None = None,
) -> int:
    with session_scope(database_url=database_url) as session:
        account = Account(
            name=name,
            type=type,
            sync_item_id=sync_item_id,
            external_account_id=external_account_id,
        )
        session.add(account)
        session.flush()
        return account.id


def insert_transaction(
    session: Session,
    *,
    account_id: int,
    date: date,
    amount: str,
    description: str,
    external_id: str | None = None,
    source: str = "import",
) -> Transaction:
    """Insert a row directly, bypassing the pipeline's duplicate checks."""

    value = Decimal(amount)
    tx = Transaction(
        date=date,
        amount=value,
        description=description,
        account_id=account_id,
        kind="income" if value > 0 else "expense",
        source=source,
        fingerprint=compute_fingerprint(
            date=date, amount=value, description=description, account_id=account_id
        ),
        external_id=external_id,
    )
    session.add(tx)
    session.flush()
    return tx


def category_id(session: Session, name: str) -> int:
    return session.execute(select(Category.id).where(Category.name == name)).scalar_one()


def count_transactions(database_url: str) -> int:
    with session_scope(database_url=database_url) as session:
        return session.execute(select(func.count()).select_from(Transaction)).scalar_one()


def _assert_partial_fingerprint_index(database_url: str) -> None:
    """The fingerprint uniqueness must only cover rows without a provider id."""

    with session_scope(database_url=database_url) as session:
        ddl = session.execute(
            sql_text(
                "SELECT sql FROM sqlite_master "
                "WHERE type = 'index' AND name = 'uq_transactions_fingerprint_unsynced'"
            )
        ).scalar_one()
    assert "WHERE external_id IS NULL" in ddl, ddl
