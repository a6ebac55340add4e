# ruff: noqa: I001
"""Saved CSV column mappings per institution.

Revision ID: 0002_column_mappings
Revises: 0001_ledger_core
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_column_mappings"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _int() -> sa.types.TypeEngine:
    return sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "column_mappings",
        sa.Column("id", _int(), primary_key=True, autoincrement=True),
        sa.Column("institution", sa.String(), nullable=False),
        sa.Column(
            "account_id",
            _int(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("mapping", sa.JSON(), nullable=False),
        sa.Column("file_type", sa.String(), nullable=False, server_default=sa.text("'csv'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_column_mappings_institution", "column_mappings", ["institution", "account_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_column_mappings_institution", table_name="column_mappings")
    op.drop_table("column_mappings")
