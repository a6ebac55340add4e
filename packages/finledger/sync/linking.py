"""Linking bank-sync items and the operational sync-log view.

``link_item`` turns a Link public token into a stored :class:`SyncItem` plus
one local :class:`Account` per provider account. ``reauthorize_item`` records
a refreshed credential after the user re-links; the item stays in its current
status until the next successful sync. ``unlink_item`` disconnects an item and
turns its accounts back into manual ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from db.models.ledger import Account, SyncItem, SyncLog
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..logging_setup import get_logger
from .provider import BankSyncProvider

_logger = get_logger("finledger.sync.linking")


def map_account_type(provider_type: str | None, subtype: str | None = None) -> str:
    """Map a provider account type/subtype onto the local account types."""

    t = (provider_type or "").strip().lower()
    st = (subtype or "").strip().lower()
    if t == "depository":
        return "savings" if st == "savings" else "checking"
    if t == "credit":
        return "credit_card"
    if t in {"investment", "loan"}:
        return t
    return "other"


def link_item(
    session: Session,
    provider: BankSyncProvider,
    public_token: str,
    *,
    institution_name: str | None = None,
) -> SyncItem:
    """Exchange ``public_token`` and persist the item with its accounts.

    Provider accounts that are already linked locally (same external account
    id) are re-pointed at the new item instead of duplicated.
    """

    external_item_id, access_token = provider.exchange_public_token(public_token)
    item = session.execute(
        select(SyncItem).where(SyncItem.external_item_id == external_item_id)
    ).scalar_one_or_none()
    if item is None:
        item = SyncItem(
            external_item_id=external_item_id,
            access_token=access_token,
            institution_name=institution_name,
            status="active",
        )
        session.add(item)
    else:
        item.access_token = access_token
        if institution_name:
            item.institution_name = institution_name
    session.flush()

    created = 0
    for acct in provider.get_accounts(access_token):
        local = session.execute(
            select(Account).where(Account.external_account_id == acct.account_id)
        ).scalar_one_or_none()
        if local is None:
            session.add(
                Account(
                    name=acct.name,
                    type=map_account_type(acct.type, acct.subtype),
                    institution=item.institution_name,
                    last_four=acct.mask[-4:] if acct.mask else None,
                    sync_item_id=item.id,
                    external_account_id=acct.account_id,
                )
            )
            created += 1
        else:
            local.sync_item_id = item.id
    session.flush()
    _logger.info(
        "link:item_linked item_id=%d external_item_id=%s accounts_created=%d",
        item.id,
        external_item_id,
        created,
    )
    return item


def reauthorize_item(
    session: Session, item_id: int, *, access_token: str | None = None
) -> SyncItem:
    """Store a refreshed credential for ``item_id``.

    Raises ``LookupError`` when the item does not exist.
    """

    item = session.get(SyncItem, item_id)
    if item is None:
        raise LookupError(f"sync item {item_id} not found")
    if access_token:
        item.access_token = access_token
    session.flush()
    _logger.info("link:item_reauthorized item_id=%d status=%s", item.id, item.status)
    return item


@dataclass(frozen=True, slots=True)
class SyncItemSummary:
    id: int
    institution_name: str | None
    status: str
    error_code: str | None
    last_synced_at: datetime | None
    account_names: tuple[str, ...]

    @property
    def account_count(self) -> int:
        return len(self.account_names)


def list_items(session: Session) -> list[SyncItemSummary]:
    """Linked items, newest first, with the names of their local accounts."""

    items = session.execute(
        select(SyncItem).order_by(SyncItem.created_at.desc(), SyncItem.id.desc())
    ).scalars()
    names: dict[int, list[str]] = {}
    for item_id, name in session.execute(
        select(Account.sync_item_id, Account.name)
        .where(Account.sync_item_id.is_not(None))
        .order_by(Account.id)
    ).all():
        names.setdefault(int(item_id), []).append(name)
    return [
        SyncItemSummary(
            id=item.id,
            institution_name=item.institution_name,
            status=item.status,
            error_code=item.error_code,
            last_synced_at=item.last_synced_at,
            account_names=tuple(names.get(item.id, ())),
        )
        for item in items
    ]


def unlink_item(session: Session, provider: BankSyncProvider, item_id: int) -> int:
    """Disconnect ``item_id``; return the number of accounts detached.

    The credential is revoked at the provider first. A provider failure is
    logged and local cleanup continues, so a bank that already revoked access
    can still be detached. The item and its sync history are deleted; its
    accounts and their transactions stay, as manual accounts.

    Raises ``LookupError`` when the item does not exist.
    """

    item = session.get(SyncItem, item_id)
    if item is None:
        raise LookupError(f"sync item {item_id} not found")

    try:
        provider.remove_item(item.access_token)
    except Exception as e:  # noqa: BLE001
        _logger.warning(
            "link:provider_remove_failed item_id=%d error=%s", item_id, e.__class__.__name__
        )

    detached = session.execute(
        update(Account)
        .where(Account.sync_item_id == item_id)
        .values(sync_item_id=None, external_account_id=None)
    ).rowcount
    session.execute(delete(SyncLog).where(SyncLog.sync_item_id == item_id))
    session.delete(item)
    session.flush()
    _logger.info("link:item_unlinked item_id=%d accounts_detached=%d", item_id, detached)
    return detached


@dataclass(frozen=True, slots=True)
class SyncLogEntry:
    id: int
    item_id: int
    institution_name: str | None
    status: str
    added: int
    modified: int
    removed: int
    error_message: str | None
    created_at: datetime


def recent_sync_log(session: Session, *, limit: int = 50) -> list[SyncLogEntry]:
    """Most recent sync attempts first."""

    rows = session.execute(
        select(SyncLog, SyncItem.institution_name)
        .join(SyncItem, SyncItem.id == SyncLog.sync_item_id)
        .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
        .limit(limit)
    ).all()
    return [
        SyncLogEntry(
            id=log.id,
            item_id=log.sync_item_id,
            institution_name=institution,
            status=log.status,
            added=log.added,
            modified=log.modified,
            removed=log.removed,
            error_message=log.error_message,
            created_at=log.created_at,
        )
        for log, institution in rows
    ]


__all__ = [
    "SyncItemSummary",
    "SyncLogEntry",
    "link_item",
    "list_items",
    "map_account_type",
    "reauthorize_item",
    "recent_sync_log",
    "unlink_item",
]
