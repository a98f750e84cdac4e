from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class CategoryCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=30)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, max_length=16)


class CategoryUpdate(BaseModel):
    """Partial edit of a user category; only fields present in the body change."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=30)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, max_length=16)


class CategoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    color: str
    icon: str
    is_default: bool
    user_id: UUID
    created_at: datetime
    updated_at: datetime


class CategoryStat(BaseModel):
    """Spending booked against one category."""

    category_id: UUID
    name: str
    color: str
    total_amount: Decimal
    count: int
