from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# SQLite only autoincrements an ``INTEGER PRIMARY KEY`` (rowid alias); keep
# BIGINT everywhere else.
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Ordered, lower-cased keyword list; matched as case-insensitive substrings.
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # Categorizer iteration order is (sort_order, id). Keep it explicit so the
    # first-match-wins rule never depends on storage order.
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Bank-sync items
# ---------------------------


class SyncItem(Base):
    __tablename__ = "sync_items"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    external_item_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    institution_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Opaque provider token; NULL until the first successful page.
    cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'active'"))
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("status in ('active','error')", name="ck_sync_items_status"),
    )


class SyncLog(Base):
    __tablename__ = "sync_log"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    sync_item_id: Mapped[int] = mapped_column(
        _PK, ForeignKey("sync_items.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False)
    added: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    modified: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    removed: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("status in ('success','error')", name="ck_sync_log_status"),
        Index("ix_sync_log_item_created", "sync_item_id", "created_at"),
    )


# ---------------------------
# Accounts
# ---------------------------


ACCOUNT_TYPES: tuple[str, ...] = (
    "checking",
    "savings",
    "credit_card",
    "investment",
    "loan",
    "payroll",
    "other",
)


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'checking'"))
    institution: Mapped[str | None] = mapped_column(String, nullable=True)
    last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    # External linkage for bank-sync accounts; NULL for manual/import-only ones.
    sync_item_id: Mapped[int | None] = mapped_column(
        _PK, ForeignKey("sync_items.id", ondelete="SET NULL"), nullable=True
    )
    external_account_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('checking','savings','credit_card','investment','loan','payroll','other')",
            name="ck_accounts_type",
        ),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    # Signed: negative is money out of the account.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        _PK, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    account_id: Mapped[int] = mapped_column(
        _PK, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'expense'"))
    source: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'manual'"))
    fingerprint: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    # Provider transaction id. Once set it is the only identity used for
    # matching this row during sync.
    external_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    is_pending: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    # User-owned; never written by sync.
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("kind in ('expense','income','transfer')", name="ck_transactions_kind"),
        CheckConstraint("source in ('manual','import','plaid')", name="ck_transactions_source"),
        # Fingerprints only identify rows that have not been claimed by a
        # provider id yet.
        Index(
            "uq_transactions_fingerprint_unsynced",
            "fingerprint",
            unique=True,
            sqlite_where=text("external_id IS NULL"),
            postgresql_where=text("external_id IS NULL"),
        ),
        Index("ix_transactions_secondary_key", "date", "amount", "account_id"),
    )


# ---------------------------
# Payroll detail
# ---------------------------


class IncomeRecord(Base):
    __tablename__ = "income_records"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    employer: Mapped[str | None] = mapped_column(String, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'manual'"))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Saved CSV column mappings
# ---------------------------


class ColumnMappingRecord(Base):
    __tablename__ = "column_mappings"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    institution: Mapped[str] = mapped_column(String, nullable=False)
    # NULL means the mapping applies to every account at the institution.
    account_id: Mapped[int | None] = mapped_column(
        _PK, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=True
    )
    mapping: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    file_type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'csv'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("ix_column_mappings_institution", "institution", "account_id"),)


# ---------------------------
# Balance snapshots
# ---------------------------


class Balance(Base):
    __tablename__ = "balances"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        _PK, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'manual'"))

    __table_args__ = (UniqueConstraint("account_id", "date", name="uq_balances_account_date"),)


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
