# ruff: noqa: I001
"""CLI for the ``finledger`` package.

Command handlers (``cmd_*``) return a process exit code and report failures on
stderr; the Typer commands below are thin wrappers around them. Environment
variables (``DATABASE_URL``, ``PLAID_*``, ``FINLEDGER_*``) are loaded from a
local ``.env`` via ``python-dotenv`` before any command runs. Business logic
lives in ``finledger.ingest`` and ``finledger.sync``.
"""

from __future__ import annotations

import csv
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import IngestResult, SyncResult
from .normalizers import SIGN_CONVENTIONS

console = Console()


# ---- Small module-level helpers used by CLI commands -------------------------


def _build_provider():
    """Construct the bank-sync provider from ``PLAID_*`` settings."""

    from .sync.plaid_client import PlaidBankSyncProvider

    return PlaidBankSyncProvider.from_env()


def _print_ingest_result(result: IngestResult) -> None:
    console.print(
        f"imported={result.imported} duplicates={result.duplicates} errors={len(result.errors)}"
    )
    if result.category_counts:
        table = Table(title="Categories")
        table.add_column("Category")
        table.add_column("Rows", justify="right")
        for name, count in sorted(
            result.category_counts.items(), key=lambda kv: (-kv[1], kv[0] or "")
        ):
            table.add_row(name or "(uncategorized)", str(count))
        console.print(table)
    for err in result.errors:
        print(err, file=sys.stderr)


def _print_sync_results(results: list[SyncResult]) -> None:
    table = Table(title="Sync results")
    table.add_column("Item", justify="right")
    table.add_column("Institution")
    table.add_column("Added", justify="right")
    table.add_column("Modified", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Error")
    for r in results:
        table.add_row(
            str(r.item_id),
            r.institution_name or "",
            str(r.added),
            str(r.modified),
            str(r.removed),
            r.error or "",
        )
    console.print(table)


# ---- Command handlers ---------------------------------------------------------


def cmd_init_db(*, database_url: str | None, seed: bool = True) -> int:
    """Create all tables from the ORM metadata (and seed categories)."""

    from db import metadata
    from db.client import get_engine, session_scope

    from .ingest.seed_categories import load_seed_file, seed_categories

    try:
        metadata.create_all(bind=get_engine(database_url=database_url))
        if seed:
            with session_scope(database_url=database_url) as session:
                seed_categories(session, load_seed_file())
    except Exception as e:
        print(f"Error: init-db failed: {e}", file=sys.stderr)
        return 1
    console.print("database ready")
    return 0


def cmd_seed_categories(*, database_url: str | None, file: Path | None) -> int:
    from .ingest.seed_categories import DEFAULT_SEED_FILE, reseed_from_file

    try:
        count = reseed_from_file(database_url=database_url, file=file or DEFAULT_SEED_FILE)
    except FileNotFoundError:
        print(f"Error: File not found: {file}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: seeding categories failed: {e}", file=sys.stderr)
        return 1
    console.print(f"seeded {count} categories")
    return 0


def cmd_add_account(
    *,
    name: str,
    account_type: str,
    institution: str | None,
    database_url: str | None,
) -> int:
    from db.client import session_scope
    from db.models.ledger import ACCOUNT_TYPES, Account

    if account_type not in ACCOUNT_TYPES:
        print(
            f"Error: unsupported account type {account_type!r}. Allowed: {list(ACCOUNT_TYPES)}",
            file=sys.stderr,
        )
        return 1
    try:
        with session_scope(database_url=database_url) as session:
            account = Account(name=name, type=account_type, institution=institution)
            session.add(account)
            session.flush()
            account_id = account.id
    except Exception as e:
        print(f"Error: creating account failed: {e}", file=sys.stderr)
        return 1
    console.print(f"account_id={account_id}")
    return 0


def cmd_import_csv(
    csv_path: str,
    *,
    account_id: int,
    date_col: str | None,
    description_col: str | None,
    amount_col: str | None,
    debit_col: str | None,
    credit_col: str | None,
    type_col: str | None,
    sign_convention: str,
    database_url: str | None,
    institution: str | None = None,
    save_mapping: bool = False,
) -> int:
    """Import a CSV statement into ``account_id`` and print the batch summary.

    With ``institution`` and no column options, the mapping saved for that
    institution is used (falling back to the default column names).
    ``save_mapping`` stores the mapping in effect for the next import.

    Per-row problems are listed on stderr but do not fail the command; only
    unreadable input, a bad column mapping or storage failures return non-zero.
    """

    from db.client import session_scope

    from .ingest.csv_rows import (
        ColumnMapping,
        load_column_mapping,
        read_csv_text,
        rows_from_csv,
        save_column_mapping,
    )
    from .ingest.pipeline import import_rows

    if sign_convention not in SIGN_CONVENTIONS:
        print(
            f"Error: unsupported sign convention {sign_convention!r}. "
            f"Allowed: {list(SIGN_CONVENTIONS)}",
            file=sys.stderr,
        )
        return 1
    if save_mapping and not institution:
        print("Error: --save-mapping requires --institution", file=sys.stderr)
        return 1

    columns = (date_col, description_col, amount_col, debit_col, credit_col, type_col)
    mapping: ColumnMapping | None = None
    if institution and all(c is None for c in columns):
        try:
            with session_scope(database_url=database_url) as session:
                mapping = load_column_mapping(session, institution, account_id=account_id)
        except Exception as e:
            print(f"Error: failed to load saved mapping: {e}", file=sys.stderr)
            return 1

    if mapping is None:
        if amount_col is None and not (debit_col and credit_col):
            amount_col = "Amount"
        try:
            mapping = ColumnMapping(
                date=date_col or "Date",
                description=description_col or "Description",
                amount=amount_col,
                debit=debit_col,
                credit=credit_col,
                type=type_col,
            )
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    try:
        rows = rows_from_csv(read_csv_text(csv_path), mapping)
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {csv_path}", file=sys.stderr)
        return 1
    except (csv.Error, ValueError) as e:
        print(f"Error: Failed to parse CSV: {e}", file=sys.stderr)
        return 1

    if save_mapping and institution:
        try:
            with session_scope(database_url=database_url) as session:
                save_column_mapping(session, institution, mapping)
        except Exception as e:
            print(f"Error: failed to save mapping: {e}", file=sys.stderr)
            return 1

    try:
        result = import_rows(
            rows,
            account_id=account_id,
            sign_convention=sign_convention,  # type: ignore[arg-type]
            database_url=database_url,
        )
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: import failed: {e}", file=sys.stderr)
        return 1

    _print_ingest_result(result)
    return 0


def cmd_link_item(
    *, public_token: str, institution: str | None, database_url: str | None
) -> int:
    from db.client import session_scope

    from .sync.linking import link_item

    try:
        provider = _build_provider()
        with session_scope(database_url=database_url) as session:
            item = link_item(session, provider, public_token, institution_name=institution)
            item_id = item.id
    except Exception as e:
        print(f"Error: linking failed: {e}", file=sys.stderr)
        return 1
    console.print(f"item_id={item_id}")
    return 0


def cmd_items(*, database_url: str | None) -> int:
    from db.client import session_scope

    from .sync.linking import list_items

    try:
        with session_scope(database_url=database_url) as session:
            items = list_items(session)
    except Exception as e:
        print(f"Error: failed to list items: {e}", file=sys.stderr)
        return 1

    table = Table(title="Linked items")
    for col in ("Item", "Institution", "Status", "Last synced", "Accounts"):
        table.add_column(col)
    for item in items:
        table.add_row(
            str(item.id),
            item.institution_name or "",
            item.status if item.error_code is None else f"{item.status} ({item.error_code})",
            item.last_synced_at.strftime("%Y-%m-%d %H:%M:%S") if item.last_synced_at else "never",
            f"{item.account_count}: {', '.join(item.account_names)}"
            if item.account_names
            else "0",
        )
    console.print(table)
    return 0


def cmd_unlink_item(*, item_id: int, database_url: str | None) -> int:
    """Revoke an item at the provider and detach its accounts locally."""

    from db.client import session_scope

    from .sync.linking import unlink_item

    try:
        provider = _build_provider()
    except Exception as e:
        print(f"Error: bank-sync provider unavailable: {e}", file=sys.stderr)
        return 1

    try:
        with session_scope(database_url=database_url) as session:
            detached = unlink_item(session, provider, item_id)
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: unlinking failed: {e}", file=sys.stderr)
        return 1
    console.print(f"item {item_id} unlinked; accounts_detached={detached}")
    return 0


def cmd_sync(*, item_id: int | None, database_url: str | None) -> int:
    """Sync one item (any status) or every active item; non-zero if any failed."""

    from .config import SyncSettings
    from .sync.engine import sync_all_items, sync_item

    try:
        provider = _build_provider()
    except Exception as e:
        print(f"Error: bank-sync provider unavailable: {e}", file=sys.stderr)
        return 1

    settings = SyncSettings.from_env()
    try:
        if item_id is not None:
            results = [
                sync_item(
                    item_id, provider=provider, database_url=database_url, settings=settings
                )
            ]
        else:
            results = sync_all_items(
                provider=provider, database_url=database_url, settings=settings
            )
    except Exception as e:
        print(f"Error: sync failed: {e}", file=sys.stderr)
        return 1

    _print_sync_results(results)
    return 0 if all(r.ok for r in results) else 1


def cmd_sync_log(*, limit: int, database_url: str | None) -> int:
    from db.client import session_scope

    from .sync.linking import recent_sync_log

    try:
        with session_scope(database_url=database_url) as session:
            entries = recent_sync_log(session, limit=limit)
    except Exception as e:
        print(f"Error: failed to read sync log: {e}", file=sys.stderr)
        return 1

    table = Table(title="Sync log")
    for col in ("When", "Item", "Institution", "Status", "+", "~", "-", "Error"):
        table.add_column(col)
    for e in entries:
        table.add_row(
            e.created_at.strftime("%Y-%m-%d %H:%M:%S") if e.created_at else "",
            str(e.item_id),
            e.institution_name or "",
            e.status,
            str(e.added),
            str(e.modified),
            str(e.removed),
            e.error_message or "",
        )
    console.print(table)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Ingest statements and bank-sync deltas into a deduplicated transaction ledger. "
        "Loads DATABASE_URL and PLAID_* from a local .env before running."
    ),
)

# Module-level option object to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to the CSV statement to import",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("init-db")
def init_db_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    seed: bool = typer.Option(True, help="Seed the default keyword categories."),
) -> None:
    """Create tables directly from the ORM models (use Alembic for managed DBs)."""

    _exit(cmd_init_db(database_url=database_url, seed=seed))


@app.command("seed-categories")
def seed_categories_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    file: Path | None = typer.Option(None, help="Seed JSON; defaults to the bundled table."),
) -> None:
    """Insert or refresh keyword categories in file order."""

    _exit(cmd_seed_categories(database_url=database_url, file=file))


@app.command("add-account")
def add_account_cmd(
    name: str = typer.Option(..., help="Display name of the account."),
    account_type: str = typer.Option("checking", "--type", help="Account type."),
    institution: str | None = typer.Option(None, help="Bank or institution name."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Create a local account to import statements into."""

    _exit(
        cmd_add_account(
            name=name,
            account_type=account_type,
            institution=institution,
            database_url=database_url,
        )
    )


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    account_id: int = typer.Option(..., help="Local account receiving the rows."),
    date_col: str | None = typer.Option(
        None, help="Column holding the transaction date (Date when unset)."
    ),
    description_col: str | None = typer.Option(
        None, help="Column holding the description (Description when unset)."
    ),
    amount_col: str | None = typer.Option(None, help="Signed amount column."),
    debit_col: str | None = typer.Option(None, help="Money-out column (with --credit-col)."),
    credit_col: str | None = typer.Option(None, help="Money-in column (with --debit-col)."),
    type_col: str | None = typer.Option(None, help="Optional expense/income/transfer column."),
    sign_convention: str = typer.Option(
        "negative_expenses",
        help="negative_expenses (default) or positive_expenses for statements listing "
        "spending as positive numbers.",
    ),
    institution: str | None = typer.Option(
        None, help="Use the column mapping saved for this institution."
    ),
    save_mapping: bool = typer.Option(
        False, "--save-mapping", help="Save the column mapping for --institution."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Import a CSV statement; duplicates across sources are skipped."""

    _exit(
        cmd_import_csv(
            str(csv_path),
            account_id=account_id,
            date_col=date_col,
            description_col=description_col,
            amount_col=amount_col,
            debit_col=debit_col,
            credit_col=credit_col,
            type_col=type_col,
            sign_convention=sign_convention,
            database_url=database_url,
            institution=institution,
            save_mapping=save_mapping,
        )
    )


@app.command("link-item")
def link_item_cmd(
    public_token: str = typer.Option(..., help="Public token returned by Plaid Link."),
    institution: str | None = typer.Option(None, help="Institution display name."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Exchange a Link token and create the item with its accounts."""

    _exit(
        cmd_link_item(public_token=public_token, institution=institution, database_url=database_url)
    )


@app.command("items")
def items_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """List linked bank-sync items with their accounts."""

    _exit(cmd_items(database_url=database_url))


@app.command("unlink-item")
def unlink_item_cmd(
    item_id: int = typer.Option(..., help="Item to disconnect."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Disconnect an item; its accounts and transactions are kept as manual ones."""

    _exit(cmd_unlink_item(item_id=item_id, database_url=database_url))


@app.command("sync")
def sync_cmd(
    item_id: int | None = typer.Option(
        None, help="Sync only this item (also retries items in error status)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Pull incremental bank-sync deltas into the ledger."""

    _exit(cmd_sync(item_id=item_id, database_url=database_url))


@app.command("sync-log")
def sync_log_cmd(
    limit: int = typer.Option(50, min=1, help="Number of recent attempts to show."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Show recent sync attempts, newest first."""

    _exit(cmd_sync_log(limit=limit, database_url=database_url))


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, help="Log level name or number (falls back to FINLEDGER_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps already-set environment variables
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:  # pragma: no cover - console-script entry
    app()


if __name__ == "__main__":  # pragma: no cover - `python -m finledger.cli`
    main()
