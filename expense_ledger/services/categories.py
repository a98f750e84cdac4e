from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.category import DEFAULT_CATEGORY_COLOR, DEFAULT_CATEGORY_ICON, Category
from ..models.expense import Expense
from ..schemas.category import CategoryUpdate
from .errors import (
    CategoryCreationError,
    ConflictError,
    DuplicateCategoryError,
    NotFoundError,
    ProtectedCategoryError,
    ValidationError,
    category_not_found,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 30

# Built-in categories every user starts with: (name, color, icon).
DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("Meal", "#EF4444", "🍽️"),
    ("House Rent", "#10B981", "🏠"),
    ("Travel", "#3B82F6", "✈️"),
    ("Loan", "#F59E0B", "💳"),
    ("Shopping", "#8B5CF6", "🛍️"),
    ("Transportation", "#06B6D4", "🚗"),
    ("Healthcare", "#EC4899", "🏥"),
    ("Entertainment", "#F97316", "🎬"),
    ("Education", "#84CC16", "📚"),
    ("Utilities", "#6366F1", "⚡"),
)


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Category name cannot exceed {MAX_NAME_LENGTH} characters")
    return cleaned


async def list_categories(session: AsyncSession, user_id: UUID) -> Sequence[Category]:
    result = await session.execute(
        select(Category).where(Category.user_id == user_id).order_by(Category.name.asc())
    )
    return result.scalars().all()


async def get_category_for_user(
    session: AsyncSession, user_id: UUID, category_id: UUID
) -> Category:
    category = await session.get(Category, category_id)
    if not category or category.user_id != user_id:
        raise NotFoundError(category_not_found())
    return category


async def find_category_by_name(
    session: AsyncSession, user_id: UUID, name: str
) -> Optional[Category]:
    """Case-insensitive lookup of a category by its trimmed name."""
    result = await session.execute(
        select(Category).where(
            Category.user_id == user_id,
            func.lower(Category.name) == name.strip().lower(),
        )
    )
    return result.scalars().first()


async def create_category(
    session: AsyncSession,
    user_id: UUID,
    name: str,
    *,
    color: Optional[str] = None,
    icon: Optional[str] = None,
) -> Category:
    """Persist a category.

    Raises DuplicateCategoryError when the owner already has the name in any
    casing, including when a concurrent request created it first.
    """
    cleaned = _clean_name(name)
    if await find_category_by_name(session, user_id, cleaned):
        raise DuplicateCategoryError("Category with this name already exists")

    category = Category(
        name=cleaned,
        color=color or DEFAULT_CATEGORY_COLOR,
        icon=icon or DEFAULT_CATEGORY_ICON,
        user_id=user_id,
        is_default=False,
    )
    session.add(category)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateCategoryError("Category with this name already exists") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise CategoryCreationError(f"Failed to create category '{cleaned}'") from exc
    await session.refresh(category)
    return category


async def ensure_default_categories(session: AsyncSession, user_id: UUID) -> list[Category]:
    """Add whichever built-in categories the user lacks and return the new rows.

    A user category that already carries a default's name (in any casing)
    stands in for it. Running this twice creates nothing the second time.
    """
    existing = {category.name.lower() for category in await list_categories(session, user_id)}
    created = [
        Category(name=name, color=color, icon=icon, is_default=True, user_id=user_id)
        for name, color, icon in DEFAULT_CATEGORIES
        if name.lower() not in existing
    ]
    if not created:
        return []

    session.add_all(created)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Categories changed while adding defaults; try again") from exc
    for category in created:
        await session.refresh(category)
    logger.info("Added %d default categories for user %s", len(created), user_id)
    return created


async def update_category(
    session: AsyncSession, user_id: UUID, category_id: UUID, payload: CategoryUpdate
) -> Category:
    category = await get_category_for_user(session, user_id, category_id)
    if category.is_default:
        raise ProtectedCategoryError("Cannot modify default categories")

    fields = payload.model_fields_set
    if "name" in fields:
        cleaned = _clean_name(payload.name)
        if cleaned.lower() != category.name.lower():
            clash = await find_category_by_name(session, user_id, cleaned)
            if clash and clash.id != category.id:
                raise DuplicateCategoryError("Category with this name already exists")
        category.name = cleaned
    if "color" in fields and payload.color:
        category.color = payload.color
    if "icon" in fields and payload.icon:
        category.icon = payload.icon

    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateCategoryError("Category with this name already exists") from exc
    await session.refresh(category)
    return category


async def delete_category(session: AsyncSession, user_id: UUID, category_id: UUID) -> None:
    category = await get_category_for_user(session, user_id, category_id)
    if category.is_default:
        raise ProtectedCategoryError("Cannot delete default categories")

    in_use = await session.scalar(
        select(func.count(Expense.id)).where(Expense.category_id == category_id)
    )
    if in_use:
        raise ConflictError(
            f"Cannot delete category '{category.name}': it is used by {in_use} expense(s)"
        )
    await session.delete(category)
    await session.commit()
