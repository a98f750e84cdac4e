from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..models.debt import DebtStatus, DebtType, RepaymentKind


class DebtRepaymentRead(BaseModel):
    """Read model representing a single history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: Decimal
    date: dt.date = Field(validation_alias=AliasChoices("paid_on", "date"))
    note: Optional[str] = None
    kind: RepaymentKind
    created_at: dt.datetime


class DebtRead(BaseModel):
    """Read model for a debt including its repayment history."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    person_name: str
    type: DebtType
    principal: Decimal
    current_amount: Decimal
    status: DebtStatus
    date: dt.date
    due_date: Optional[dt.date] = None
    notes: Optional[str] = None
    user_id: UUID
    created_at: dt.datetime
    updated_at: dt.datetime
    history: list[DebtRepaymentRead] = Field(default_factory=list)


class DebtCreateRequest(BaseModel):
    """External API payload for recording a debt.

    Value rules (non-empty name, positive principal, known type) are enforced
    by the ledger service so direct callers get the same errors.
    """

    person_name: str = Field(max_length=128)
    type: str = Field(max_length=16)
    principal: Decimal = Field(validation_alias=AliasChoices("principal", "amount"))
    date: dt.date
    due_date: Optional[dt.date] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class DebtCreate(DebtCreateRequest):
    """Internal payload for persisting a new debt."""

    user_id: UUID


class DebtUpdate(BaseModel):
    """Editable, non-financial debt fields.

    Unknown keys are rejected so principal, type and balance can never be
    changed through an edit.
    """

    model_config = ConfigDict(extra="forbid")

    person_name: Optional[str] = Field(default=None, max_length=128)
    date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class RepaymentRequest(BaseModel):
    amount: Decimal
    date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=500)


class DebtSummary(BaseModel):
    """Outstanding totals across a user's debts."""

    total_payable: Decimal = Decimal("0.00")
    total_receivable: Decimal = Decimal("0.00")
    active_borrowed: int = 0
    active_lent: int = 0
