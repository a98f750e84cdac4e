from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from .category import CategoryStat


class ExpenseTotals(BaseModel):
    expenses: Decimal = Decimal("0.00")
    income: Decimal = Decimal("0.00")
    net: Decimal = Decimal("0.00")
    expense_count: int = 0
    income_count: int = 0


class ExpenseStats(BaseModel):
    """Totals for a date window, the current month and a per-category breakdown.

    ``categories`` covers ``categories_from``..``categories_to``, which default
    to the start of the current year and today when no window is given.
    """

    start: Optional[date] = None
    end: Optional[date] = None
    totals: ExpenseTotals
    current_month: ExpenseTotals
    categories_from: date
    categories_to: date
    categories: list[CategoryStat] = Field(default_factory=list)


class MonthTrend(BaseModel):
    month: int
    label: str
    expenses: Decimal = Decimal("0.00")
    income: Decimal = Decimal("0.00")
    net: Decimal = Decimal("0.00")


class ExpenseTrends(BaseModel):
    year: int
    months: list[MonthTrend]
