from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Enum as SqlEnum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _enum_values(members) -> list[str]:
    return [member.value for member in members]


class DebtType(str, Enum):
    BORROWED = "borrowed"
    LENT = "lent"


class DebtStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class RepaymentKind(str, Enum):
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"


class Debt(Base):
    """Money borrowed from or lent to a counterparty, with its outstanding balance."""

    __tablename__ = "debts"
    __table_args__ = (
        CheckConstraint("principal > 0", name="principal_positive"),
        CheckConstraint(
            "current_amount >= 0 AND current_amount <= principal",
            name="current_amount_range",
        ),
        Index("ix_debts_user_type", "user_id", "type"),
        Index("ix_debts_user_status", "user_id", "status"),
    )

    person_name: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[DebtType] = mapped_column(
        SqlEnum(DebtType, name="debttype", values_callable=_enum_values), nullable=False
    )
    principal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[DebtStatus] = mapped_column(
        SqlEnum(DebtStatus, name="debtstatus", values_callable=_enum_values),
        default=DebtStatus.PENDING,
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    history: Mapped[list["DebtRepayment"]] = relationship(
        back_populates="debt",
        cascade="all, delete-orphan",
        order_by="DebtRepayment.created_at",
    )
    user: Mapped["User"] = relationship(back_populates="debts")


class DebtRepayment(Base):
    """Append-only history entry recorded against a debt."""

    __tablename__ = "debt_repayments"

    debt_id: Mapped[UUID] = mapped_column(
        ForeignKey("debts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    paid_on: Mapped[dt.date] = mapped_column(Date, nullable=False)
    kind: Mapped[RepaymentKind] = mapped_column(
        SqlEnum(RepaymentKind, name="repaymentkind", values_callable=_enum_values),
        default=RepaymentKind.PAYMENT,
        nullable=False,
    )
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    debt: Mapped[Debt] = relationship(back_populates="history")


from .user import User  # noqa: E402  # avoid circular import during definition
