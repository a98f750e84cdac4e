from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.expense import ExpenseType

MAX_EXPENSE_AMOUNT = Decimal("999999.99")


def _coerce_expense_type(value: ExpenseType | str) -> ExpenseType:
    """Allow case-insensitive expense types from external clients."""
    if isinstance(value, ExpenseType):
        return value
    if isinstance(value, str):
        try:
            return ExpenseType(value.lower())
        except ValueError as exc:
            raise ValueError("Unsupported expense type") from exc
    raise TypeError("Expense type must be a string or ExpenseType instance")


class ExpenseCreateRequest(BaseModel):
    """External API payload for adding an expense or income record."""

    amount: Decimal = Field(gt=0, le=MAX_EXPENSE_AMOUNT)
    occurred_on: date
    category_id: UUID
    description: str = Field(default="", max_length=100)
    type: ExpenseType = Field(default=ExpenseType.EXPENSE)
    notes: str = Field(default="", max_length=500)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: ExpenseType | str) -> ExpenseType:
        return _coerce_expense_type(value)

    @field_validator("description", "notes", mode="before")
    @classmethod
    def _strip_text(cls, value: str | None) -> str:
        return (value or "").strip()


class ExpenseCreate(ExpenseCreateRequest):
    """Internal payload for persisting a new expense."""

    user_id: UUID
    source: str = Field(default="manual", max_length=32)


class ExpenseUpdate(BaseModel):
    """Partial edit of an expense.

    Fields left out of the body keep their value. ``source`` and ownership are
    not editable, so unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    amount: Optional[Decimal] = Field(default=None, gt=0, le=MAX_EXPENSE_AMOUNT)
    occurred_on: Optional[date] = None
    category_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=100)
    type: Optional[ExpenseType] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: ExpenseType | str | None) -> Optional[ExpenseType]:
        if value is None:
            return None
        return _coerce_expense_type(value)

    @field_validator("description", "notes", mode="before")
    @classmethod
    def _strip_text(cls, value: str | None) -> str:
        return (value or "").strip()


class ExpenseBulkCreateRequest(BaseModel):
    expenses: list[ExpenseCreateRequest] = Field(min_length=1, max_length=5000)


class ExpenseRead(BaseModel):
    """API response shape for expenses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: Decimal
    occurred_on: date
    category_id: UUID
    description: str
    type: ExpenseType
    notes: str
    source: str
    user_id: UUID
    created_at: datetime
    updated_at: datetime


class ExpenseBulkResult(BaseModel):
    inserted_count: int
    items: list[ExpenseRead]
