from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.ledger import Transaction

from finledger.ledger import add_manual_transaction, edit_transaction
from tests.helpers.db import category_id, create_account


@pytest.fixture()
def account_id(seeded_url: str) -> int:
    return create_account(database_url=seeded_url)


def test_manual_entry_uses_the_pipeline(seeded_url, account_id):
    with session_scope(database_url=seeded_url) as session:
        res = add_manual_transaction(
            session,
            account_id=account_id,
            date=date(2025, 4, 1),
            amount=Decimal("-1800.00"),
            description="April rent",
            notes="paid by check",
        )
        [tx_id] = res.inserted_ids
        tx = session.get(Transaction, tx_id)
        assert (tx.source, tx.kind, tx.notes, tx.amount) == (
            "manual",
            "expense",
            "paid by check",
            Decimal("-1800.00"),
        )
        assert tx.category_id == category_id(session, "Housing")

        again = add_manual_transaction(
            session,
            account_id=account_id,
            date="04/01/2025",
            amount="-1,800",
            description="Rent April",
        )
        assert (again.imported, again.duplicates) == (0, 1)


def test_manual_entry_reports_bad_input(seeded_url, account_id):
    with session_scope(database_url=seeded_url) as session:
        res = add_manual_transaction(
            session, account_id=account_id, date="yesterday", amount="5", description="Lunch"
        )
    assert res.imported == 0
    assert res.errors == ('row 1: could not parse date "yesterday"',)


def test_manual_entry_with_explicit_type(seeded_url, account_id):
    with session_scope(database_url=seeded_url) as session:
        res = add_manual_transaction(
            session,
            account_id=account_id,
            date="2025-04-02",
            amount="300",
            description="Moved from savings",
            type="transfer",
        )
        assert session.get(Transaction, res.inserted_ids[0]).kind == "transfer"


def test_edit_transaction_updates_only_given_fields(seeded_url, account_id):
    with session_scope(database_url=seeded_url) as session:
        res = add_manual_transaction(
            session,
            account_id=account_id,
            date="2025-04-03",
            amount="-12.00",
            description="Farmers market",
            notes="cash",
        )
        tx_id = res.inserted_ids[0]
        groceries = category_id(session, "Groceries")

        tx = edit_transaction(session, tx_id, category_id=groceries)
        assert (tx.category_id, tx.notes) == (groceries, "cash")

        tx = edit_transaction(session, tx_id, notes=None)
        assert (tx.category_id, tx.notes) == (groceries, None)

        tx = edit_transaction(session, tx_id, category_id=None)
        assert tx.category_id is None


def test_edit_transaction_rejects_unknown_ids(seeded_url, account_id):
    with session_scope(database_url=seeded_url) as session:
        with pytest.raises(LookupError, match="transaction 404"):
            edit_transaction(session, 404, notes="x")
        res = add_manual_transaction(
            session, account_id=account_id, date="2025-04-04", amount="-1", description="Gum"
        )
        with pytest.raises(LookupError, match="category 9999"):
            edit_transaction(session, res.inserted_ids[0], category_id=9999)
