from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.category import Category
from ..models.expense import Expense, ExpenseType
from ..schemas.expense import ExpenseCreate, ExpenseUpdate
from .errors import (
    ImportSubmissionError,
    NotFoundError,
    ValidationError,
    category_not_found,
    expense_not_found,
)

logger = logging.getLogger(__name__)


def _build_expense(payload: ExpenseCreate) -> Expense:
    return Expense(
        amount=payload.amount,
        occurred_on=payload.occurred_on,
        category_id=payload.category_id,
        description=payload.description,
        type=payload.type,
        notes=payload.notes,
        source=payload.source,
        user_id=payload.user_id,
    )


async def _ensure_categories_owned(
    session: AsyncSession, user_id: UUID, category_ids: set[UUID]
) -> None:
    if not category_ids:
        return
    result = await session.execute(
        select(Category.id).where(Category.user_id == user_id, Category.id.in_(category_ids))
    )
    owned = set(result.scalars().all())
    if owned != category_ids:
        raise NotFoundError(category_not_found())


async def create_expense(session: AsyncSession, payload: ExpenseCreate) -> Expense:
    """Persist a single expense after checking its category belongs to the user."""
    await _ensure_categories_owned(session, payload.user_id, {payload.category_id})
    expense = _build_expense(payload)
    session.add(expense)
    await session.commit()
    await session.refresh(expense)
    return expense


async def bulk_create_expenses(
    session: AsyncSession, user_id: UUID, payloads: Sequence[ExpenseCreate]
) -> list[Expense]:
    """Insert a batch of expenses in one transaction.

    Either every record is committed or none is; database failures surface as
    ImportSubmissionError.
    """
    if any(payload.user_id != user_id for payload in payloads):
        raise ValueError("All expenses in a batch must belong to the same user")
    await _ensure_categories_owned(session, user_id, {p.category_id for p in payloads})

    expenses = [_build_expense(payload) for payload in payloads]
    session.add_all(expenses)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Bulk insert of %d expenses failed", len(expenses))
        raise ImportSubmissionError("Failed to save imported expenses") from exc
    return expenses


async def list_expenses(
    session: AsyncSession,
    user_id: UUID,
    *,
    limit: int = 50,
    offset: int = 0,
    expense_type: Optional[ExpenseType] = None,
    category_id: Optional[UUID] = None,
    occurred_after: Optional[date] = None,
    occurred_before: Optional[date] = None,
) -> Sequence[Expense]:
    stmt: Select[tuple[Expense]] = (
        select(Expense)
        .where(Expense.user_id == user_id)
        .order_by(Expense.occurred_on.desc(), Expense.created_at.desc())
    )
    if expense_type:
        stmt = stmt.where(Expense.type == expense_type)
    if category_id:
        stmt = stmt.where(Expense.category_id == category_id)
    if occurred_after:
        stmt = stmt.where(Expense.occurred_on >= occurred_after)
    if occurred_before:
        stmt = stmt.where(Expense.occurred_on <= occurred_before)
    result = await session.execute(stmt.limit(limit).offset(offset))
    return result.scalars().all()


async def get_expense_for_user(session: AsyncSession, user_id: UUID, expense_id: UUID) -> Expense:
    expense = await session.get(Expense, expense_id)
    if not expense or expense.user_id != user_id:
        raise NotFoundError(expense_not_found())
    return expense


async def update_expense(
    session: AsyncSession, user_id: UUID, expense_id: UUID, payload: ExpenseUpdate
) -> Expense:
    """Apply the fields present in ``payload``; a new category must belong to the user."""
    expense = await get_expense_for_user(session, user_id, expense_id)

    fields = payload.model_fields_set
    if not fields:
        return expense

    for name in ("amount", "occurred_on", "category_id", "type"):
        if name in fields and getattr(payload, name) is None:
            raise ValidationError(f"{name} cannot be empty")

    if "category_id" in fields and payload.category_id != expense.category_id:
        await _ensure_categories_owned(session, user_id, {payload.category_id})
        expense.category_id = payload.category_id
    if "amount" in fields:
        expense.amount = payload.amount
    if "occurred_on" in fields:
        expense.occurred_on = payload.occurred_on
    if "type" in fields:
        expense.type = payload.type
    if "description" in fields:
        expense.description = payload.description
    if "notes" in fields:
        expense.notes = payload.notes

    await session.commit()
    await session.refresh(expense)
    return expense


async def delete_expense(session: AsyncSession, user_id: UUID, expense_id: UUID) -> None:
    expense = await get_expense_for_user(session, user_id, expense_id)
    await session.delete(expense)
    await session.commit()
