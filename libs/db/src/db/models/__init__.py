"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models used by ``finledger``.
"""

from .ledger import (
    ACCOUNT_TYPES,
    Account,
    Balance,
    Base,
    Category,
    ColumnMappingRecord,
    IncomeRecord,
    SyncItem,
    SyncLog,
    Transaction,
)

__all__ = [
    "ACCOUNT_TYPES",
    "Account",
    "Balance",
    "Base",
    "Category",
    "ColumnMappingRecord",
    "IncomeRecord",
    "SyncItem",
    "SyncLog",
    "Transaction",
]
