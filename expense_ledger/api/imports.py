import json
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from ..config import get_settings
from ..schemas.imports import ImportPreview, ImportResult
from ..services import preview_import, run_import
from ..services.errors import (
    EmptyFileError,
    ImportSubmissionError,
    NoValidRowsError,
    ParseError,
    UnsupportedFormatError,
    ValidationError,
)
from .dependencies import CurrentUser, SessionDep

router = APIRouter()

_FILE_ERRORS = (UnsupportedFormatError, ParseError, EmptyFileError)


async def _read_upload(file: UploadFile) -> bytes:
    limit = get_settings().import_max_upload_bytes
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {limit} byte upload limit.",
        )
    return content


def _parse_mapping(raw: Optional[str]) -> Optional[dict[str, Optional[str]]]:
    if raw is None or not raw.strip():
        return None
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Mapping must be a JSON object.") from exc
    if not isinstance(mapping, dict) or not all(
        isinstance(value, str) or value is None for value in mapping.values()
    ):
        raise HTTPException(
            status_code=400, detail="Mapping must map field names to column names."
        )
    return mapping


@router.post("/preview", response_model=ImportPreview)
async def preview_import_endpoint(
    current_user: CurrentUser,
    file: UploadFile = File(...),
) -> ImportPreview:
    """Parse an upload and return its headers, a suggested mapping and sample rows."""
    content = await _read_upload(file)
    try:
        return preview_import(
            file.filename or "", content, preview_rows=get_settings().import_preview_rows
        )
    except _FILE_ERRORS as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("", response_model=ImportResult, status_code=status.HTTP_201_CREATED)
async def import_expenses_endpoint(
    session: SessionDep,
    current_user: CurrentUser,
    file: UploadFile = File(...),
    mapping: Optional[str] = Form(default=None),
) -> ImportResult:
    """Import expenses from a spreadsheet.

    ``mapping`` is a JSON object from field name (amount, date, category,
    description, type, notes) to column header. When omitted the suggested
    mapping is used.
    """
    raw_mapping = _parse_mapping(mapping)
    content = await _read_upload(file)
    try:
        return await run_import(session, current_user.id, file.filename or "", content, raw_mapping)
    except _FILE_ERRORS as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NoValidRowsError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ImportSubmissionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
