from __future__ import annotations

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

DEFAULT_CATEGORY_COLOR = "#3B82F6"
DEFAULT_CATEGORY_ICON = "💰"


class Category(Base):
    """User-defined bucket for expenses and income."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(30), nullable=False)
    color: Mapped[str] = mapped_column(String(7), default=DEFAULT_CATEGORY_COLOR, nullable=False)
    icon: Mapped[str] = mapped_column(String(16), default=DEFAULT_CATEGORY_ICON, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    user: Mapped["User"] = relationship(back_populates="categories")
    expenses: Mapped[list["Expense"]] = relationship(back_populates="category")


# Names are unique per owner regardless of case.
Index(
    "uq_categories_user_lower_name",
    Category.user_id,
    func.lower(Category.name),
    unique=True,
)


from .expense import Expense  # noqa: E402
from .user import User  # noqa: E402
