"""Aggregated views over a user's expenses: totals, category breakdown and monthly trends."""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Select, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.category import Category
from ..models.expense import Expense, ExpenseType
from ..schemas.analytics import ExpenseStats, ExpenseTotals, ExpenseTrends, MonthTrend
from ..schemas.category import CategoryStat
from .errors import ValidationError

_CENT = Decimal("0.01")


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _check_window(start: Optional[date], end: Optional[date]) -> None:
    if start and end and start > end:
        raise ValidationError("Start date must not be after end date")


def _within(stmt: Select, start: Optional[date], end: Optional[date]) -> Select:
    if start:
        stmt = stmt.where(Expense.occurred_on >= start)
    if end:
        stmt = stmt.where(Expense.occurred_on <= end)
    return stmt


def fold_totals(rows: Iterable[tuple[Any, Any, int]]) -> ExpenseTotals:
    """Collapse ``(type, sum, count)`` rows into expense/income/net totals."""
    totals = ExpenseTotals()
    for kind, total, count in rows:
        if ExpenseType(kind) == ExpenseType.INCOME:
            totals.income += _money(total)
            totals.income_count += int(count)
        else:
            totals.expenses += _money(total)
            totals.expense_count += int(count)
    totals.net = totals.income - totals.expenses
    return totals


def build_trends(year: int, rows: Iterable[tuple[Any, Any, Any]]) -> ExpenseTrends:
    """Twelve months of ``(month, type, sum)`` rows; months without records are zero."""
    months = {
        number: MonthTrend(month=number, label=calendar.month_abbr[number])
        for number in range(1, 13)
    }
    for month, kind, total in rows:
        trend = months[int(month)]
        if ExpenseType(kind) == ExpenseType.INCOME:
            trend.income += _money(total)
        else:
            trend.expenses += _money(total)
    for trend in months.values():
        trend.net = trend.income - trend.expenses
    return ExpenseTrends(year=year, months=list(months.values()))


async def expense_totals(
    session: AsyncSession,
    user_id: UUID,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> ExpenseTotals:
    stmt = (
        select(Expense.type, func.coalesce(func.sum(Expense.amount), 0), func.count(Expense.id))
        .where(Expense.user_id == user_id)
        .group_by(Expense.type)
    )
    result = await session.execute(_within(stmt, start, end))
    return fold_totals(result.all())


async def category_breakdown(
    session: AsyncSession,
    user_id: UUID,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[CategoryStat]:
    """Spending (income excluded) per category, largest total first."""
    _check_window(start, end)
    total = func.sum(Expense.amount)
    stmt = (
        select(Category.id, Category.name, Category.color, total, func.count(Expense.id))
        .join(Expense, Expense.category_id == Category.id)
        .where(Expense.user_id == user_id, Expense.type == ExpenseType.EXPENSE)
        .group_by(Category.id, Category.name, Category.color)
        .order_by(total.desc())
    )
    result = await session.execute(_within(stmt, start, end))
    return [
        CategoryStat(
            category_id=category_id,
            name=name,
            color=color,
            total_amount=_money(amount),
            count=int(count),
        )
        for category_id, name, color, amount, count in result.all()
    ]


async def expense_stats(
    session: AsyncSession,
    user_id: UUID,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> ExpenseStats:
    """Totals over the window plus this month's totals and a category breakdown.

    Missing window bounds fall back to January 1st of the end date's year and to
    today for the category breakdown.
    """
    _check_window(start, end)
    today = today or date.today()
    month_start = today.replace(day=1)
    month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    categories_from = start or date((end or today).year, 1, 1)
    categories_to = end or max(today, categories_from)

    return ExpenseStats(
        start=start,
        end=end,
        totals=await expense_totals(session, user_id, start=start, end=end),
        current_month=await expense_totals(session, user_id, start=month_start, end=month_end),
        categories_from=categories_from,
        categories_to=categories_to,
        categories=await category_breakdown(
            session, user_id, start=categories_from, end=categories_to
        ),
    )


async def expense_trends(session: AsyncSession, user_id: UUID, year: int) -> ExpenseTrends:
    if not 1 <= year <= 9999:
        raise ValidationError("Year must be between 1 and 9999")
    month = extract("month", Expense.occurred_on)
    stmt = (
        select(month, Expense.type, func.sum(Expense.amount))
        .where(
            Expense.user_id == user_id,
            Expense.occurred_on >= date(year, 1, 1),
            Expense.occurred_on <= date(year, 12, 31),
        )
        .group_by(month, Expense.type)
    )
    result = await session.execute(stmt)
    return build_trends(year, result.all())
