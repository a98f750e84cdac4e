"""Baseline schema: users, categories, expenses and debts.

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18 00:00:01.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


expense_type_enum = postgresql.ENUM("expense", "income", name="expensetype", create_type=False)
debt_type_enum = postgresql.ENUM("borrowed", "lent", name="debttype", create_type=False)
debt_status_enum = postgresql.ENUM(
    "pending", "partially_paid", "paid", name="debtstatus", create_type=False
)
repayment_kind_enum = postgresql.ENUM(
    "payment", "adjustment", name="repaymentkind", create_type=False
)

_ENUMS = (expense_type_enum, debt_type_enum, debt_status_enum, repayment_kind_enum)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("timezone('utc', now())"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("timezone('utc', now())"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum in _ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "categories",
        *_base_columns(),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False, server_default=sa.text("'#3B82F6'")),
        sa.Column("icon", sa.String(length=16), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index(
        "uq_categories_user_lower_name",
        "categories",
        ["user_id", sa.text("lower(name)")],
        unique=True,
    )

    op.create_table(
        "expenses",
        *_base_columns(),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("type", expense_type_enum, nullable=False, server_default=sa.text("'expense'")),
        sa.Column("description", sa.String(length=100), nullable=False, server_default=sa.text("''")),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=sa.text("''")),
        sa.Column("source", sa.String(length=32), nullable=False, server_default=sa.text("'manual'")),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_expenses_user_occurred_on", "expenses", ["user_id", "occurred_on"])
    op.create_index("ix_expenses_user_category", "expenses", ["user_id", "category_id"])

    op.create_table(
        "debts",
        *_base_columns(),
        sa.Column("person_name", sa.String(length=128), nullable=False),
        sa.Column("type", debt_type_enum, nullable=False),
        sa.Column("principal", sa.Numeric(14, 2), nullable=False),
        sa.Column("current_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", debt_status_enum, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.CheckConstraint("principal > 0", name="ck_debts_principal_positive"),
        sa.CheckConstraint(
            "current_amount >= 0 AND current_amount <= principal",
            name="ck_debts_current_amount_range",
        ),
    )
    op.create_index("ix_debts_user_type", "debts", ["user_id", "type"])
    op.create_index("ix_debts_user_status", "debts", ["user_id", "status"])

    op.create_table(
        "debt_repayments",
        *_base_columns(),
        sa.Column(
            "debt_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("debts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("paid_on", sa.Date(), nullable=False),
        sa.Column("kind", repayment_kind_enum, nullable=False, server_default=sa.text("'payment'")),
        sa.Column("note", sa.String(length=500), nullable=True),
    )
    op.create_index("ix_debt_repayments_debt_id", "debt_repayments", ["debt_id"])


def downgrade() -> None:
    op.drop_index("ix_debt_repayments_debt_id", table_name="debt_repayments")
    op.drop_table("debt_repayments")
    op.drop_index("ix_debts_user_status", table_name="debts")
    op.drop_index("ix_debts_user_type", table_name="debts")
    op.drop_table("debts")
    op.drop_index("ix_expenses_user_category", table_name="expenses")
    op.drop_index("ix_expenses_user_occurred_on", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("uq_categories_user_lower_name", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in reversed(_ENUMS):
        enum.drop(bind, checkfirst=True)
