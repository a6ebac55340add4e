"""Incremental bank-sync engine.

``sync_item`` drives one linked item through its provider's cursor:

1. load the item (credential, stored cursor) and its account map
2. fetch pages until ``has_more`` is false; each page is applied, and the new
   cursor saved, in one transaction, so a crash mid-sync resumes after the
   last committed page
3. mark the item active, stamp ``last_synced_at`` and append a success row to
   ``sync_log``
4. refresh balances, best effort

Rate-limited fetches are retried with exponential backoff. An
authentication failure flips the item to ``error`` until it is re-linked;
anything else is logged as transient and leaves the status untouched. Every
attempt appends exactly one ``sync_log`` row, and no provider or data failure
escapes as an exception.

Applied deltas go through the same fingerprint index as ingestion:

- ``added``: skipped when the provider id is known; otherwise claims a
  matching row without a provider id (fingerprint first, then
  date/amount/account; lowest id wins) or inserts a new row
- ``modified``: rewrites date, amount, description, pending and fingerprint;
  category and notes belong to the user and are never touched
- ``removed``: hard-deletes the row
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal

from db.client import session_scope
from db.models.ledger import Account, Balance, SyncItem, SyncLog, Transaction
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..categorizer import CategoryRule, KeywordCategorizer, kind_for_bank_sync
from ..config import SyncSettings
from ..duplicates import compute_fingerprint, find_by_external_id, find_upgrade_candidate
from ..errors import AuthRequiredError, BankSyncError, RateLimitedError
from ..logging_setup import get_logger
from ..models import SyncResult
from ..normalizers import from_bank_sync_amount, parse_amount
from .provider import BankSyncProvider, ProviderTransaction, SyncPage

_logger = get_logger("finledger.sync.engine")

type SleepFn = Callable[[float], None]


@dataclass(frozen=True, slots=True)
class _ItemSnapshot:
    item_id: int
    access_token: str
    cursor: str | None
    institution_name: str | None
    accounts: Mapping[str, int]
    rules: tuple[CategoryRule, ...]


@dataclass(slots=True)
class _PageCounts:
    added: int = 0
    modified: int = 0
    removed: int = 0


# ---- Page fetch with retry ----------------------------------------------------


def _fetch_page(
    provider: BankSyncProvider,
    snapshot: _ItemSnapshot,
    cursor: str | None,
    *,
    settings: SyncSettings,
    sleep: SleepFn,
) -> SyncPage:
    attempt = 0
    while True:
        attempt += 1
        try:
            return provider.sync_transactions(snapshot.access_token, cursor)
        except RateLimitedError as e:
            if attempt >= settings.max_attempts:
                _logger.error(
                    "sync:rate_limited_terminal item_id=%d attempts=%d code=%s",
                    snapshot.item_id,
                    attempt,
                    e.code,
                )
                raise
            delay = settings.backoff_delay(attempt)
            _logger.warning(
                "sync:rate_limited_retry item_id=%d attempt=%d delay_sec=%.2f",
                snapshot.item_id,
                attempt,
                delay,
            )
            sleep(delay)


# ---- Delta application --------------------------------------------------------


def _ledger_amount(tx: ProviderTransaction) -> Decimal | None:
    try:
        return from_bank_sync_amount(tx.amount)
    except ValueError:
        _logger.warning(
            "sync:invalid_amount external_id=%s amount=%s", tx.transaction_id, tx.amount
        )
        return None


def _apply_added(
    session: Session,
    tx: ProviderTransaction,
    *,
    account_id: int,
    categorizer: KeywordCategorizer,
) -> bool:
    if find_by_external_id(session, tx.transaction_id) is not None:
        return False

    amount = _ledger_amount(tx)
    if amount is None:
        return False
    description = tx.description
    fingerprint = compute_fingerprint(
        date=tx.date, amount=amount, description=description, account_id=account_id
    )

    # Only rows without a provider id can be claimed. Two provider rows with
    # the same fingerprint are both kept: they are treated as two genuine
    # purchases. Whether they should collapse into one is still an open
    # product question.
    existing, match = find_upgrade_candidate(
        session,
        fingerprint=fingerprint,
        date=tx.date,
        amount=amount,
        account_id=account_id,
    )
    if existing is not None:
        existing.external_id = tx.transaction_id
        existing.source = "plaid"
        existing.is_pending = tx.pending
        session.flush()
        _logger.debug(
            "sync:upgraded tx_id=%d external_id=%s match=%s",
            existing.id,
            tx.transaction_id,
            match,
        )
        return True

    rule = categorizer.categorize(description)
    session.add(
        Transaction(
            date=tx.date,
            amount=amount,
            description=description,
            category_id=rule.id if rule else None,
            account_id=account_id,
            kind=kind_for_bank_sync(amount, description),
            source="plaid",
            fingerprint=fingerprint,
            external_id=tx.transaction_id,
            is_pending=tx.pending,
        )
    )
    session.flush()
    return True


def _apply_modified(session: Session, tx: ProviderTransaction) -> bool:
    row = find_by_external_id(session, tx.transaction_id)
    if row is None:
        return False
    amount = _ledger_amount(tx)
    if amount is None:
        return False
    description = tx.description
    row.date = tx.date
    row.amount = amount
    row.description = description
    row.is_pending = tx.pending
    row.fingerprint = compute_fingerprint(
        date=tx.date, amount=amount, description=description, account_id=row.account_id
    )
    session.flush()
    return True


def _apply_removed(session: Session, external_id: str) -> bool:
    row = find_by_external_id(session, external_id)
    if row is None:
        return False
    session.delete(row)
    session.flush()
    return True


def apply_page(
    session: Session,
    page: SyncPage,
    *,
    accounts: Mapping[str, int],
    categorizer: KeywordCategorizer,
) -> tuple[int, int, int]:
    """Apply one page of deltas; return ``(added, modified, removed)``.

    Deltas for provider accounts missing from ``accounts`` are skipped.
    """

    counts = _PageCounts()
    for tx in page.added:
        account_id = accounts.get(tx.account_id)
        if account_id is None:
            _logger.debug("sync:unknown_account external_account_id=%s", tx.account_id)
            continue
        if _apply_added(session, tx, account_id=account_id, categorizer=categorizer):
            counts.added += 1
    for tx in page.modified:
        if tx.account_id not in accounts:
            _logger.debug("sync:unknown_account external_account_id=%s", tx.account_id)
            continue
        if _apply_modified(session, tx):
            counts.modified += 1
    for removed in page.removed:
        if _apply_removed(session, removed.transaction_id):
            counts.removed += 1
    return counts.added, counts.modified, counts.removed


# ---- Item bookkeeping ---------------------------------------------------------


def _load_snapshot(session: Session, item_id: int) -> _ItemSnapshot | None:
    item = session.get(SyncItem, item_id)
    if item is None:
        return None
    accounts = {
        str(ext): int(aid)
        for aid, ext in session.execute(
            select(Account.id, Account.external_account_id).where(
                Account.sync_item_id == item_id,
                Account.external_account_id.is_not(None),
            )
        ).all()
    }
    return _ItemSnapshot(
        item_id=item.id,
        access_token=item.access_token,
        cursor=item.cursor,
        institution_name=item.institution_name,
        accounts=accounts,
        rules=KeywordCategorizer.from_session(session).rules,
    )


def _record_success(session: Session, item_id: int, result: SyncResult) -> None:
    session.execute(
        update(SyncItem)
        .where(SyncItem.id == item_id)
        .values(
            status="active",
            error_code=None,
            error_message=None,
            last_synced_at=datetime.now(UTC),
        )
    )
    session.add(
        SyncLog(
            sync_item_id=item_id,
            status="success",
            added=result.added,
            modified=result.modified,
            removed=result.removed,
        )
    )


def _record_failure(
    session: Session,
    item_id: int,
    *,
    code: str,
    message: str,
    auth_required: bool,
    counts: _PageCounts,
) -> None:
    values: dict[str, object] = {"error_code": code, "error_message": message}
    if auth_required:
        values["status"] = "error"
    session.execute(update(SyncItem).where(SyncItem.id == item_id).values(**values))
    session.add(
        SyncLog(
            sync_item_id=item_id,
            status="error",
            added=counts.added,
            modified=counts.modified,
            removed=counts.removed,
            error_message=f"{code}: {message}",
        )
    )


def _upsert_balance(session: Session, *, account_id: int, day: date, amount: Decimal) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        existing = session.execute(
            select(Balance).where(Balance.account_id == account_id, Balance.date == day)
        ).scalar_one_or_none()
        if existing is None:
            session.add(Balance(account_id=account_id, date=day, balance=amount, source="plaid"))
        else:
            existing.balance = amount
            existing.source = "plaid"
        return

    stmt = insert(Balance).values(account_id=account_id, date=day, balance=amount, source="plaid")
    stmt = stmt.on_conflict_do_update(
        index_elements=[Balance.account_id, Balance.date],
        set_={"balance": stmt.excluded.balance, "source": stmt.excluded.source},
    )
    session.execute(stmt)


def refresh_balances(
    provider: BankSyncProvider,
    snapshot_accounts: Mapping[str, int],
    access_token: str,
    *,
    database_url: str | None = None,
    today: date | None = None,
) -> int:
    """Upsert today's balance for every mapped account; return rows written."""

    day = today or date.today()
    balances = provider.get_balances(access_token)
    written = 0
    with session_scope(database_url=database_url) as session:
        for bal in balances:
            account_id = snapshot_accounts.get(bal.account_id)
            current = parse_amount(bal.current) if bal.current is not None else None
            if account_id is None or current is None:
                continue
            _upsert_balance(session, account_id=account_id, day=day, amount=current)
            written += 1
    return written


# ---- Public entry points ------------------------------------------------------


def sync_item(
    item_id: int,
    *,
    provider: BankSyncProvider,
    database_url: str | None = None,
    settings: SyncSettings | None = None,
    sleep: SleepFn = time.sleep,
    today: date | None = None,
) -> SyncResult:
    """Pull and apply all pending deltas for one item.

    Runs regardless of the item's current status, so an explicit sync after
    re-linking restores ``active`` on success. Returns a :class:`SyncResult`;
    ``error`` carries ``"CODE: message"`` when the attempt failed.
    """

    settings = settings or SyncSettings.from_env()

    with session_scope(database_url=database_url) as session:
        snapshot = _load_snapshot(session, item_id)
    if snapshot is None:
        _logger.warning("sync:item_not_found item_id=%d", item_id)
        return SyncResult(item_id=item_id, error="NOT_FOUND: sync item does not exist")

    categorizer = KeywordCategorizer(snapshot.rules)
    added = modified = removed = 0
    cursor = snapshot.cursor
    t0 = time.perf_counter()

    try:
        while True:
            page = _fetch_page(provider, snapshot, cursor, settings=settings, sleep=sleep)
            with session_scope(database_url=database_url) as session:
                a, m, r = apply_page(
                    session, page, accounts=snapshot.accounts, categorizer=categorizer
                )
                session.execute(
                    update(SyncItem)
                    .where(SyncItem.id == item_id)
                    .values(cursor=page.next_cursor)
                )
            added, modified, removed = added + a, modified + m, removed + r
            cursor = page.next_cursor
            _logger.info(
                "sync:page_applied item_id=%d added=%d modified=%d removed=%d has_more=%s",
                item_id,
                a,
                m,
                r,
                page.has_more,
            )
            if not page.has_more:
                break

        result = SyncResult(
            item_id=item_id,
            institution_name=snapshot.institution_name,
            added=added,
            modified=modified,
            removed=removed,
        )
        with session_scope(database_url=database_url) as session:
            _record_success(session, item_id, result)
    except Exception as e:  # noqa: BLE001
        counts = _PageCounts(added=added, modified=modified, removed=removed)
        return _fail(item_id, snapshot, e, counts=counts, database_url=database_url)

    _logger.info(
        "sync:item_done item_id=%d added=%d modified=%d removed=%d latency_ms=%.2f",
        item_id,
        added,
        modified,
        removed,
        (time.perf_counter() - t0) * 1000.0,
    )

    try:
        refresh_balances(
            provider,
            snapshot.accounts,
            snapshot.access_token,
            database_url=database_url,
            today=today,
        )
    except Exception as e:  # noqa: BLE001
        _logger.warning(
            "sync:balance_refresh_failed item_id=%d error=%s", item_id, e.__class__.__name__
        )

    return result


def _fail(
    item_id: int,
    snapshot: _ItemSnapshot,
    exc: Exception,
    *,
    counts: _PageCounts,
    database_url: str | None,
) -> SyncResult:
    # Pages applied before the failure stay committed; their counts are kept.
    if isinstance(exc, BankSyncError):
        code, message = exc.code, exc.message
    else:
        code, message = "UNKNOWN", str(exc) or exc.__class__.__name__
    auth_required = isinstance(exc, AuthRequiredError)

    if auth_required:
        _logger.error("sync:auth_required item_id=%d code=%s", item_id, code)
    else:
        _logger.warning(
            "sync:transient_failure item_id=%d code=%s error=%s",
            item_id,
            code,
            exc.__class__.__name__,
        )

    try:
        with session_scope(database_url=database_url) as session:
            _record_failure(
                session,
                item_id,
                code=code,
                message=message,
                auth_required=auth_required,
                counts=counts,
            )
    except Exception as log_exc:  # noqa: BLE001
        _logger.error(
            "sync:failure_not_recorded item_id=%d error=%s",
            item_id,
            log_exc.__class__.__name__,
        )

    return SyncResult(
        item_id=item_id,
        institution_name=snapshot.institution_name,
        added=counts.added,
        modified=counts.modified,
        removed=counts.removed,
        error=f"{code}: {message}",
    )


def sync_all_items(
    *,
    provider: BankSyncProvider,
    database_url: str | None = None,
    settings: SyncSettings | None = None,
    sleep: SleepFn = time.sleep,
    today: date | None = None,
) -> list[SyncResult]:
    """Sync every ``active`` item in id order, one at a time.

    Items in ``error`` status are skipped until they are re-linked and synced
    explicitly. A failure in one item never stops the others.
    """

    settings = settings or SyncSettings.from_env()
    with session_scope(database_url=database_url) as session:
        item_ids = list(
            session.execute(
                select(SyncItem.id).where(SyncItem.status == "active").order_by(SyncItem.id)
            ).scalars()
        )

    results: list[SyncResult] = []
    for item_id in item_ids:
        try:
            res = sync_item(
                item_id,
                provider=provider,
                database_url=database_url,
                settings=settings,
                sleep=sleep,
                today=today,
            )
        except Exception as e:  # noqa: BLE001
            _logger.error("sync:item_crashed item_id=%d error=%s", item_id, e.__class__.__name__)
            res = SyncResult(item_id=item_id, error=f"UNKNOWN: {e}")
        results.append(res)

    ok = sum(1 for r in results if r.ok)
    _logger.info("sync:all_done items=%d ok=%d failed=%d", len(results), ok, len(results) - ok)
    return results


__all__ = ["apply_page", "refresh_balances", "sync_all_items", "sync_item"]
