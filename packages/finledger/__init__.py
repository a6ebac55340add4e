"""Public interface for the ``finledger`` package.

Symbol re-exports only; the Plaid adapter lives in
``finledger.sync.plaid_client`` and is imported on demand.
"""

from .categorizer import KeywordCategorizer, kind_for_bank_sync, kind_for_import
from .duplicates import compute_fingerprint, find_duplicate, find_upgrade_candidate
from .errors import AuthRequiredError, BankSyncError, FinledgerError, RateLimitedError
from .ingest.csv_rows import ColumnMapping, rows_from_csv
from .ingest.pipeline import import_rows, ingest_rows
from .ingest.seed_categories import seed_categories
from .ledger import add_manual_transaction, edit_transaction
from .models import IngestResult, SyncResult
from .normalizers import (
    apply_sign_convention,
    from_bank_sync_amount,
    normalize_date,
    parse_amount,
)
from .sync.engine import sync_all_items, sync_item
from .sync.linking import link_item, map_account_type, reauthorize_item, recent_sync_log
from .sync.provider import BankSyncProvider, SyncPage

__all__ = [
    # Normalizer
    "normalize_date",
    "parse_amount",
    "apply_sign_convention",
    "from_bank_sync_amount",
    # Categorizer
    "KeywordCategorizer",
    "kind_for_import",
    "kind_for_bank_sync",
    "seed_categories",
    # Fingerprint index
    "compute_fingerprint",
    "find_duplicate",
    "find_upgrade_candidate",
    # Ingestion
    "ColumnMapping",
    "rows_from_csv",
    "ingest_rows",
    "import_rows",
    "add_manual_transaction",
    "edit_transaction",
    "IngestResult",
    # Sync
    "BankSyncProvider",
    "SyncPage",
    "SyncResult",
    "sync_item",
    "sync_all_items",
    "link_item",
    "reauthorize_item",
    "recent_sync_log",
    "map_account_type",
    # Errors
    "FinledgerError",
    "BankSyncError",
    "RateLimitedError",
    "AuthRequiredError",
]
