from __future__ import annotations

from datetime import date
from decimal import Decimal

from db.client import session_scope

from finledger.duplicates import (
    DuplicateMatch,
    compute_fingerprint,
    find_duplicate,
    find_upgrade_candidate,
)
from tests.helpers.db import create_account, insert_transaction

D = date(2025, 1, 15)


def _fp(amount: str = "-85.23", description: str = "WHOLE FOODS MARKET", account_id: int = 1):
    return compute_fingerprint(
        date=D, amount=Decimal(amount), description=description, account_id=account_id
    )


def test_fingerprint_is_stable_hex():
    fp = _fp()
    assert fp == _fp()
    assert len(fp) == 64
    assert int(fp, 16) >= 0


def test_fingerprint_uses_canonical_amount_and_trimmed_description():
    assert _fp(amount="5") == _fp(amount="5.00")
    assert _fp(description="  WHOLE FOODS MARKET ") == _fp()


def test_fingerprint_changes_with_each_identity_field():
    base = _fp()
    assert _fp(amount="-85.24") != base
    assert _fp(description="WHOLE FOODS MKT") != base
    assert _fp(account_id=2) != base
    other_day = compute_fingerprint(
        date=date(2025, 1, 16),
        amount=Decimal("-85.23"),
        description="WHOLE FOODS MARKET",
        account_id=1,
    )
    assert other_day != base


def test_find_duplicate_prefers_fingerprint_then_secondary_key(database_url):
    acct = create_account(database_url=database_url)
    with session_scope(database_url=database_url) as session:
        first = insert_transaction(
            session, account_id=acct, date=D, amount="-85.23", description="Whole Foods Mkt"
        )
        second = insert_transaction(
            session, account_id=acct, date=D, amount="-85.23", description="WHOLE FOODS MARKET"
        )

        row, match = find_duplicate(
            session,
            fingerprint=_fp(account_id=acct),
            date=D,
            amount=Decimal("-85.23"),
            account_id=acct,
        )
        assert (row.id, match) == (second.id, DuplicateMatch.FINGERPRINT)

        row, match = find_duplicate(
            session,
            fingerprint=_fp(description="WFM #10", account_id=acct),
            date=D,
            amount=Decimal("-85.23"),
            account_id=acct,
        )
        # Several secondary-key matches resolve to the lowest id.
        assert (row.id, match) == (first.id, DuplicateMatch.SECONDARY_KEY)

        row, match = find_duplicate(
            session,
            fingerprint=_fp(description="WFM #10", account_id=acct),
            date=D,
            amount=Decimal("-85.23"),
            account_id=acct + 1,
        )
        assert (row, match) == (None, None)


def test_upgrade_candidates_exclude_rows_with_provider_ids(database_url):
    acct = create_account(database_url=database_url)
    with session_scope(database_url=database_url) as session:
        insert_transaction(
            session,
            account_id=acct,
            date=D,
            amount="-85.23",
            description="WHOLE FOODS MARKET",
            external_id="tx-old",
            source="plaid",
        )
        row, match = find_upgrade_candidate(
            session,
            fingerprint=_fp(account_id=acct),
            date=D,
            amount=Decimal("-85.23"),
            account_id=acct,
        )
        assert (row, match) == (None, None)

        unsynced = insert_transaction(
            session, account_id=acct, date=D, amount="-85.23", description="Whole Foods"
        )
        row, match = find_upgrade_candidate(
            session,
            fingerprint=_fp(account_id=acct),
            date=D,
            amount=Decimal("-85.23"),
            account_id=acct,
        )
        assert (row.id, match) == (unsynced.id, DuplicateMatch.SECONDARY_KEY)
