from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, Enum as SqlEnum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class ExpenseType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class Expense(Base):
    """A single expense or income record."""

    __tablename__ = "expenses"
    __table_args__ = (
        Index("ix_expenses_user_occurred_on", "user_id", "occurred_on"),
        Index("ix_expenses_user_category", "user_id", "category_id"),
    )

    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[ExpenseType] = mapped_column(
        SqlEnum(
            ExpenseType,
            name="expensetype",
            values_callable=lambda members: [member.value for member in members],
        ),
        default=ExpenseType.EXPENSE,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    notes: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    source: Mapped[str] = mapped_column(String(32), default="manual", nullable=False)
    category_id: Mapped[UUID] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    category: Mapped["Category"] = relationship(back_populates="expenses")
    user: Mapped["User"] = relationship(back_populates="expenses")


from .category import Category  # noqa: E402  # avoid circular import at runtime
from .user import User  # noqa: E402
