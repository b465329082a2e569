"""initial budget ledger

Revision ID: 202602010900
Revises:
Create Date: 2026-02-01 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202602010900"
down_revision = None
branch_labels = None
depends_on = None

CATEGORY_VALUES = ("FixedCost", "BusinessExpense", "Tax", "LivingCost", "Other")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "budget_entries",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("item", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_budget_entries_amount_positive"),
    )
    op.create_index("ix_budget_entries_date", "budget_entries", ["date"])

    op.create_table(
        "budget_entry_details",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "parent_id",
            sa.String(length=64),
            sa.ForeignKey("budget_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "amount >= 0", name="ck_budget_entry_details_amount_positive"
        ),
    )
    op.create_index(
        "ix_budget_entry_details_parent",
        "budget_entry_details",
        ["parent_id", "position"],
    )

    op.create_table(
        "budget_keywords",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category", sa.Enum(*CATEGORY_VALUES, name="budgetcategory"), nullable=False
        ),
        sa.Column("word", sa.String(length=100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("category", "word", name="uq_budget_keyword_category_word"),
    )

    op.create_table(
        "budget_month_extras",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year_month", sa.String(length=7), nullable=False),
        sa.Column(
            "category", sa.Enum(*CATEGORY_VALUES, name="budgetcategory"), nullable=False
        ),
        sa.Column("word", sa.String(length=100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index(
        "ix_budget_month_extras_month",
        "budget_month_extras",
        ["year_month", "category"],
    )

    op.create_table(
        "budget_meta",
        sa.Column("key", sa.String(length=40), primary_key=True),
        sa.Column("value", sa.String(length=200), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("budget_meta")
    op.drop_index("ix_budget_month_extras_month", table_name="budget_month_extras")
    op.drop_table("budget_month_extras")
    op.drop_table("budget_keywords")
    op.drop_index("ix_budget_entry_details_parent", table_name="budget_entry_details")
    op.drop_table("budget_entry_details")
    op.drop_index("ix_budget_entries_date", table_name="budget_entries")
    op.drop_table("budget_entries")
