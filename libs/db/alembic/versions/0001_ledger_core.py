# ruff: noqa: I001
"""Ledger core tables: accounts, categories, transactions, sync state.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )


def _fk_int() -> sa.types.TypeEngine:
    return sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "categories",
        _pk(),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
    )

    op.create_table(
        "sync_items",
        _pk(),
        sa.Column("external_item_id", sa.String(), nullable=False, unique=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("institution_name", sa.String(), nullable=True),
        sa.Column("cursor", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'active'")),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("status in ('active','error')", name="ck_sync_items_status"),
    )

    op.create_table(
        "sync_log",
        _pk(),
        sa.Column(
            "sync_item_id",
            _fk_int(),
            sa.ForeignKey("sync_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("added", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("modified", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("removed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint("status in ('success','error')", name="ck_sync_log_status"),
    )
    op.create_index("ix_sync_log_item_created", "sync_log", ["sync_item_id", "created_at"])

    op.create_table(
        "accounts",
        _pk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default=sa.text("'checking'")),
        sa.Column("institution", sa.String(), nullable=True),
        sa.Column("last_four", sa.String(length=4), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "sync_item_id",
            _fk_int(),
            sa.ForeignKey("sync_items.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_account_id", sa.String(), nullable=True, unique=True),
        _created_at(),
        sa.CheckConstraint(
            "type in ('checking','savings','credit_card','investment','loan','payroll','other')",
            name="ck_accounts_type",
        ),
    )

    op.create_table(
        "transactions",
        _pk(),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "category_id",
            _fk_int(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "account_id",
            _fk_int(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(), nullable=False, server_default=sa.text("'expense'")),
        sa.Column("source", sa.String(), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("fingerprint", sa.CHAR(64), nullable=False),
        sa.Column("external_id", sa.String(), nullable=True, unique=True),
        sa.Column("is_pending", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("kind in ('expense','income','transfer')", name="ck_transactions_kind"),
        sa.CheckConstraint(
            "source in ('manual','import','plaid')", name="ck_transactions_source"
        ),
    )
    # Fingerprint identity only applies until a provider id claims the row.
    op.create_index(
        "uq_transactions_fingerprint_unsynced",
        "transactions",
        ["fingerprint"],
        unique=True,
        sqlite_where=sa.text("external_id IS NULL"),
        postgresql_where=sa.text("external_id IS NULL"),
    )
    op.create_index(
        "ix_transactions_secondary_key",
        "transactions",
        ["date", "amount", "account_id"],
    )

    op.create_table(
        "income_records",
        _pk(),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("gross_pay", sa.Numeric(18, 2), nullable=False),
        sa.Column("net_pay", sa.Numeric(18, 2), nullable=False),
        sa.Column("employer", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("details", sa.JSON(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "balances",
        _pk(),
        sa.Column(
            "account_id",
            _fk_int(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("balance", sa.Numeric(18, 2), nullable=False),
        sa.Column("source", sa.String(), nullable=False, server_default=sa.text("'manual'")),
        sa.UniqueConstraint("account_id", "date", name="uq_balances_account_date"),
    )


def downgrade() -> None:
    op.drop_table("balances")
    op.drop_table("income_records")
    op.drop_index("ix_transactions_secondary_key", table_name="transactions")
    op.drop_index("uq_transactions_fingerprint_unsynced", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("accounts")
    op.drop_index("ix_sync_log_item_created", table_name="sync_log")
    op.drop_table("sync_log")
    op.drop_table("sync_items")
    op.drop_table("categories")
