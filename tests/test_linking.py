from __future__ import annotations

from datetime import date

import pytest
from db.client import session_scope
from db.models.ledger import Account, SyncItem, SyncLog
from sqlalchemy import select

from finledger.errors import BankSyncError
from finledger.sync.linking import (
    link_item,
    list_items,
    map_account_type,
    reauthorize_item,
    recent_sync_log,
    unlink_item,
)
from finledger.sync.provider import ProviderAccount
from tests.helpers.bank_stub import ScriptedBankProvider
from tests.helpers.db import count_transactions, create_sync_item, insert_transaction


@pytest.mark.parametrize(
    ("provider_type", "subtype", "expected"),
    [
        ("depository", "checking", "checking"),
        ("depository", "savings", "savings"),
        ("depository", "cd", "checking"),
        ("credit", "credit card", "credit_card"),
        ("investment", "401k", "investment"),
        ("loan", "mortgage", "loan"),
        ("brokerage", None, "other"),
        (None, None, "other"),
    ],
)
def test_map_account_type(provider_type, subtype, expected):
    assert map_account_type(provider_type, subtype) == expected


def _provider(access_token: str = "access-1") -> ScriptedBankProvider:
    return ScriptedBankProvider(
        accounts=[
            ProviderAccount(
                account_id="acc-ext-1",
                name="Plaid Checking",
                type="depository",
                subtype="checking",
                mask="0000",
            ),
            ProviderAccount(account_id="acc-ext-2", name="Plaid Credit Card", type="credit"),
        ],
        exchange=("item-ext-1", access_token),
    )


def _accounts(url: str) -> list[tuple[str, str, str | None, int | None, str | None]]:
    with session_scope(database_url=url) as session:
        return [
            (a.name, a.type, a.last_four, a.sync_item_id, a.external_account_id)
            for a in session.execute(select(Account).order_by(Account.id)).scalars()
        ]


def test_link_creates_item_and_accounts(database_url):
    with session_scope(database_url=database_url) as session:
        item = link_item(session, _provider(), "public-sandbox-1", institution_name="Chase")
        item_id = item.id
        assert (item.status, item.access_token, item.cursor) == ("active", "access-1", None)

    assert _accounts(database_url) == [
        ("Plaid Checking", "checking", "0000", item_id, "acc-ext-1"),
        ("Plaid Credit Card", "credit_card", None, item_id, "acc-ext-2"),
    ]


def test_relinking_updates_the_credential_without_duplicating_accounts(database_url):
    with session_scope(database_url=database_url) as session:
        first_id = link_item(session, _provider(), "public-1", institution_name="Chase").id
    with session_scope(database_url=database_url) as session:
        item = link_item(session, _provider("access-2"), "public-2")
        assert (item.id, item.access_token, item.institution_name) == (
            first_id,
            "access-2",
            "Chase",
        )

    assert len(_accounts(database_url)) == 2


def test_reauthorize_item(database_url):
    item_id = create_sync_item(database_url=database_url, status="error")
    with session_scope(database_url=database_url) as session:
        item = reauthorize_item(session, item_id, access_token="access-new")
        # Status only flips back after the next successful sync.
        assert (item.access_token, item.status) == ("access-new", "error")

    with session_scope(database_url=database_url) as session:
        with pytest.raises(LookupError, match="sync item 999"):
            reauthorize_item(session, 999)


def test_recent_sync_log_is_newest_first(database_url):
    item_id = create_sync_item(database_url=database_url, institution_name="Chase")
    with session_scope(database_url=database_url) as session:
        session.add(SyncLog(sync_item_id=item_id, status="success", added=3))
        session.add(SyncLog(sync_item_id=item_id, status="error", error_message="X: y"))

    with session_scope(database_url=database_url) as session:
        entries = recent_sync_log(session)
        limited = recent_sync_log(session, limit=1)

    assert [(e.status, e.added, e.error_message, e.institution_name) for e in entries] == [
        ("error", 0, "X: y", "Chase"),
        ("success", 3, None, "Chase"),
    ]
    assert [e.status for e in limited] == ["error"]


def test_list_items_shows_account_names(database_url):
    with session_scope(database_url=database_url) as session:
        item_id = link_item(session, _provider(), "public-1", institution_name="Chase").id
    bare_id = create_sync_item(
        database_url=database_url, external_item_id="item-ext-2", access_token="access-2"
    )

    with session_scope(database_url=database_url) as session:
        items = {i.id: i for i in list_items(session)}

    assert items[item_id].account_names == ("Plaid Checking", "Plaid Credit Card")
    assert items[item_id].account_count == 2
    assert (items[bare_id].account_count, items[bare_id].status) == (0, "active")


def test_unlink_item_detaches_accounts_and_keeps_transactions(database_url):
    with session_scope(database_url=database_url) as session:
        item_id = link_item(session, _provider(), "public-1", institution_name="Chase").id
        checking = session.execute(
            select(Account.id).where(Account.external_account_id == "acc-ext-1")
        ).scalar_one()
        insert_transaction(
            session,
            account_id=checking,
            date=date(2025, 1, 15),
            amount="-85.23",
            description="WHOLE FOODS MARKET",
            external_id="tx-1",
            source="plaid",
        )
        session.add(SyncLog(sync_item_id=item_id, status="success", added=1))

    provider = _provider()
    with session_scope(database_url=database_url) as session:
        assert unlink_item(session, provider, item_id) == 2

    assert provider.removed_tokens == ["access-1"]
    assert _accounts(database_url) == [
        ("Plaid Checking", "checking", "0000", None, None),
        ("Plaid Credit Card", "credit_card", None, None, None),
    ]
    assert count_transactions(database_url) == 1
    with session_scope(database_url=database_url) as session:
        assert session.get(SyncItem, item_id) is None
        assert list_items(session) == []
        assert recent_sync_log(session) == []


def test_unlink_item_continues_when_the_provider_refuses(database_url):
    item_id = create_sync_item(database_url=database_url)
    provider = _provider()
    provider.remove_error = BankSyncError("ITEM_NOT_FOUND", "already removed")

    with session_scope(database_url=database_url) as session:
        assert unlink_item(session, provider, item_id) == 0
    with session_scope(database_url=database_url) as session:
        assert session.get(SyncItem, item_id) is None

    with session_scope(database_url=database_url) as session:
        with pytest.raises(LookupError, match=f"sync item {item_id}"):
            unlink_item(session, provider, item_id)
