from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ColumnMapping(BaseModel):
    """Source column chosen for each canonical expense field."""

    model_config = ConfigDict(frozen=True)

    amount: str
    date: str
    category: str
    description: Optional[str] = None
    type: Optional[str] = None
    notes: Optional[str] = None


class RowRejection(BaseModel):
    """Why a single data row was left out of the import batch."""

    row_number: int = Field(description="1-based position of the row among the data rows")
    reason: str


class ImportPreview(BaseModel):
    filename: str
    headers: list[str]
    suggested_mapping: dict[str, str]
    row_count: int
    preview: list[dict[str, Any]]


class ImportResult(BaseModel):
    """Aggregate outcome of one import run."""

    total_rows: int
    accepted: int
    rejected: int
    inserted: int = 0
    created_categories: list[str] = Field(default_factory=list)
    rejections: list[RowRejection] = Field(default_factory=list)
