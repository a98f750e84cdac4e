"""Spreadsheet import: column mapping, category reconciliation and bulk insert."""

from __future__ import annotations

import logging
import math
import random
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional, Protocol
from uuid import UUID

from dateutil import parser as date_parser
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models.expense import ExpenseType
from ..schemas.expense import MAX_EXPENSE_AMOUNT, ExpenseCreate
from ..schemas.imports import ColumnMapping, ImportPreview, ImportResult, RowRejection
from .categories import create_category, find_category_by_name, list_categories
from .errors import (
    CategoryCreationError,
    DomainError,
    DuplicateCategoryError,
    ImportSubmissionError,
    NoValidRowsError,
    ValidationError,
    missing_mapping_fields,
)
from .expenses import bulk_create_expenses
from .parsers import ParsedFile, parse_tabular_file

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("amount", "date", "category")
OPTIONAL_FIELDS = ("description", "type", "notes")
CANONICAL_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS

# Substring hints tried when a header is not literally a field name.
HEADER_HINTS: dict[str, tuple[str, ...]] = {
    "amount": ("cost", "price"),
    "date": ("day", "time", "when", "date"),
    "category": ("cat",),
    "description": ("desc", "detail"),
    "type": ("kind",),
    "notes": ("memo", "comment"),
}

# Day 25569 in the 1900 date system is 1970-01-01.
EXCEL_EPOCH_OFFSET_DAYS = 25569
SECONDS_PER_DAY = 86400

_UNIX_EPOCH = datetime(1970, 1, 1)
_DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))
_CENT = Decimal("0.01")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_CURRENCY_NOISE = re.compile(r"[$€£¥\s]")
# A single comma followed by exactly two digits is a decimal separator ("12,50").
_DECIMAL_COMMA = re.compile(r"^[^.,]*,\d{2}\)?$")

ColorFactory = Callable[[], str]


def random_color() -> str:
    """Random ``#rrggbb`` colour for a new category."""
    return "#{:06x}".format(random.randrange(0x1000000))


class ImportStage(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PROCESSING = "processing"
    DONE = "done"


class CategoryGateway(Protocol):
    """Category store operations the reconciliation needs."""

    async def create(self, name: str, *, color: str, icon: str) -> Any: ...

    async def find_by_name(self, name: str) -> Optional[Any]: ...


class SessionCategoryGateway:
    """CategoryGateway backed by the database session of the current request."""

    def __init__(self, session: AsyncSession, user_id: UUID) -> None:
        self.session = session
        self.user_id = user_id

    async def create(self, name: str, *, color: str, icon: str):
        return await create_category(self.session, self.user_id, name, color=color, icon=icon)

    async def find_by_name(self, name: str):
        return await find_category_by_name(self.session, self.user_id, name)


def normalise_header(header: str) -> str:
    return _NON_ALNUM.sub("", str(header).lower())


def suggest_mapping(headers: Sequence[str]) -> dict[str, str]:
    """Guess which column feeds each canonical field.

    Headers are scanned in order; a header whose normalised form equals a field
    name claims that field for good. Otherwise every hint it contains claims the
    hinted field unless an exact header already owns it. Among hint matches a
    later header overrides an earlier one.
    """
    mapping: dict[str, str] = {}
    exact: set[str] = set()
    for header in headers:
        normalised = normalise_header(header)
        if not normalised:
            continue
        if normalised in CANONICAL_FIELDS:
            mapping[normalised] = header
            exact.add(normalised)
            continue
        for field_name, hints in HEADER_HINTS.items():
            if field_name not in exact and any(hint in normalised for hint in hints):
                mapping[field_name] = header
    return mapping


def build_mapping(raw: Mapping[str, Optional[str]], headers: Sequence[str]) -> ColumnMapping:
    """Validate a user supplied field -> column mapping."""
    unknown = sorted(set(raw) - set(CANONICAL_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown import field(s): {', '.join(unknown)}")

    chosen = {name: str(raw.get(name) or "").strip() or None for name in CANONICAL_FIELDS}
    missing = [name for name in REQUIRED_FIELDS if not chosen[name]]
    if missing:
        raise ValidationError(missing_mapping_fields(missing))

    known_headers = set(headers)
    absent = sorted({column for column in chosen.values() if column and column not in known_headers})
    if absent:
        raise ValidationError(f"Mapped column(s) not found in file: {', '.join(absent)}")
    return ColumnMapping(**chosen)


def excel_serial_to_iso_date(serial: float) -> str:
    """Convert a spreadsheet serial day number to ``YYYY-MM-DD``.

    Spreadsheets store dates as days since 1899-12-30, so serial 25569 is the
    Unix epoch. The fractional part is the time of day and does not change the
    date unless it rounds up to the next millisecond past midnight.
    """
    milliseconds = round((serial - EXCEL_EPOCH_OFFSET_DAYS) * SECONDS_PER_DAY * 1000)
    return (_UNIX_EPOCH + timedelta(milliseconds=milliseconds)).date().isoformat()


def normalise_date(value: Any) -> Optional[date]:
    """Best-effort conversion of a cell to a calendar date.

    Text must name a day, month and year; fragments such as "14:30" or "12.50"
    would otherwise be completed from today's date and are treated as
    unparseable (None).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return date.fromisoformat(excel_serial_to_iso_date(value))
        except (OverflowError, ValueError):
            return None
    text = str(value or "").strip()
    if not text:
        return None
    # Parsing against two different defaults exposes any part the text left out.
    try:
        first = date_parser.parse(text, default=_DATE_DEFAULTS[0])
        second = date_parser.parse(text, default=_DATE_DEFAULTS[1])
    except (ValueError, OverflowError):
        return None
    if first.date() != second.date():
        return None
    return first.date()


def parse_amount(value: Any) -> Optional[Decimal]:
    """Absolute amount of a cell rounded to cents; None unless finite and non-zero.

    The sign in the source file is not trusted: "-12.50" and "(12.50)" both
    yield 12.50. Commas are thousands separators except in the "12,50" form.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _CURRENCY_NOISE.sub("", str(value or ""))
        if _DECIMAL_COMMA.match(text):
            text = text.replace(",", ".")
        else:
            text = text.replace(",", "")
        if text.startswith("(") and text.endswith(")"):
            text = text[1:-1]
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    try:
        amount = Decimal(str(abs(number))).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return amount if amount > 0 else None


def _cell_text(row: Mapping[str, Any], column: Optional[str]) -> str:
    if not column:
        return ""
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


@dataclass
class Reconciliation:
    """Expense commands built from the rows plus the bookkeeping behind them."""

    commands: list[ExpenseCreate] = field(default_factory=list)
    rejections: list[RowRejection] = field(default_factory=list)
    created_categories: list[str] = field(default_factory=list)
    total_rows: int = 0

    def to_result(self, inserted: int = 0) -> ImportResult:
        return ImportResult(
            total_rows=self.total_rows,
            accepted=len(self.commands),
            rejected=len(self.rejections),
            inserted=inserted,
            created_categories=list(self.created_categories),
            rejections=list(self.rejections),
        )


def discover_new_categories(
    rows: Sequence[Mapping[str, Any]], column: str, known: Mapping[str, Any]
) -> dict[str, str]:
    """Category names referenced by rows but absent from ``known``.

    Keys are lower-cased names, values the first spelling seen (trimmed).
    ``known`` must be keyed by lower-cased name.
    """
    pending: dict[str, str] = {}
    for row in rows:
        name = _cell_text(row, column)
        if not name:
            continue
        key = name.lower()
        if key not in known and key not in pending:
            pending[key] = name
    return pending


async def materialise_categories(
    pending: Mapping[str, str],
    gateway: CategoryGateway,
    *,
    color_factory: ColorFactory,
    icon: str,
) -> tuple[dict[str, UUID], list[str]]:
    """Create each pending category once.

    Returns the lower-cased name -> id entries that now exist and the names
    actually created. A name lost to a concurrent creation is re-resolved from
    the store; any other failure is logged and the name stays unresolved.
    """
    resolved: dict[str, UUID] = {}
    created: list[str] = []
    for key, name in pending.items():
        try:
            category = await gateway.create(name, color=color_factory(), icon=icon)
        except DuplicateCategoryError:
            category = await gateway.find_by_name(name)
            if category is None:
                logger.warning("Category %r reported as duplicate but could not be found", name)
                continue
        except (CategoryCreationError, ValidationError) as exc:
            logger.warning("Failed to create category %r during import: %s", name, exc)
            continue
        else:
            created.append(category.name)
        resolved[key] = category.id
    return resolved, created


def convert_rows(
    rows: Sequence[Mapping[str, Any]],
    mapping: ColumnMapping,
    categories: Mapping[str, UUID],
    *,
    user_id: UUID,
) -> tuple[list[ExpenseCreate], list[RowRejection]]:
    """Turn mapped rows into expense commands, dropping rows that fail a check."""
    commands: list[ExpenseCreate] = []
    rejections: list[RowRejection] = []

    for row_number, row in enumerate(rows, start=1):
        amount = parse_amount(row.get(mapping.amount))
        if amount is None:
            rejections.append(RowRejection(row_number=row_number, reason="invalid amount"))
            continue
        if amount > MAX_EXPENSE_AMOUNT:
            rejections.append(RowRejection(row_number=row_number, reason="amount too large"))
            continue

        occurred_on = normalise_date(row.get(mapping.date))
        if occurred_on is None:
            rejections.append(RowRejection(row_number=row_number, reason="invalid date"))
            continue

        category_name = _cell_text(row, mapping.category)
        if not category_name:
            rejections.append(RowRejection(row_number=row_number, reason="missing category"))
            continue
        category_id = categories.get(category_name.lower())
        if category_id is None:
            rejections.append(
                RowRejection(row_number=row_number, reason=f"unknown category '{category_name}'")
            )
            continue

        is_income = _cell_text(row, mapping.type).lower() == ExpenseType.INCOME.value
        try:
            command = ExpenseCreate(
                amount=amount,
                occurred_on=occurred_on,
                category_id=category_id,
                description=_cell_text(row, mapping.description),
                type=ExpenseType.INCOME if is_income else ExpenseType.EXPENSE,
                notes=_cell_text(row, mapping.notes),
                user_id=user_id,
                source="import",
            )
        except PydanticValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors() if error["loc"])
            rejections.append(RowRejection(row_number=row_number, reason=f"invalid {fields}"))
            continue
        commands.append(command)

    return commands, rejections


async def reconcile_rows(
    rows: Sequence[Mapping[str, Any]],
    mapping: ColumnMapping,
    known_categories: Mapping[str, UUID],
    gateway: CategoryGateway,
    *,
    user_id: UUID,
    color_factory: ColorFactory = random_color,
    icon: str = "📝",
) -> Reconciliation:
    """Discover and create missing categories, then convert every row."""
    categories = {name.lower(): category_id for name, category_id in known_categories.items()}
    pending = discover_new_categories(rows, mapping.category, categories)
    created: list[str] = []
    if pending:
        logger.info("Creating %d new categories for import", len(pending))
        resolved, created = await materialise_categories(
            pending, gateway, color_factory=color_factory, icon=icon
        )
        categories.update(resolved)

    commands, rejections = convert_rows(rows, mapping, categories, user_id=user_id)
    return Reconciliation(
        commands=commands,
        rejections=rejections,
        created_categories=created,
        total_rows=len(rows),
    )


SubmitBatch = Callable[[list[ExpenseCreate]], Awaitable[Sequence[Any]]]


class ImportFlow:
    """Upload -> mapping -> processing -> done.

    Failures keep the flow at the step the user has to redo: file errors stay
    in ``upload``; mapping, reconciliation and submission errors return to
    ``mapping``.
    """

    def __init__(self) -> None:
        self.stage = ImportStage.UPLOAD
        self.parsed: Optional[ParsedFile] = None
        self.suggested_mapping: dict[str, str] = {}
        self.mapping: Optional[ColumnMapping] = None
        self.result: Optional[ImportResult] = None

    def _require(self, *stages: ImportStage) -> None:
        if self.stage not in stages:
            expected = " or ".join(stage.value for stage in stages)
            raise RuntimeError(f"Import is in stage '{self.stage.value}', expected {expected}")

    def _require_file(self) -> ParsedFile:
        if self.parsed is None:
            raise RuntimeError("Import has no uploaded file")
        return self.parsed

    def upload(self, filename: str, content: bytes) -> ParsedFile:
        self._require(ImportStage.UPLOAD, ImportStage.MAPPING)
        self.stage = ImportStage.UPLOAD
        self.parsed = None
        self.mapping = None
        parsed = parse_tabular_file(filename, content)
        self.parsed = parsed
        self.suggested_mapping = suggest_mapping(parsed.headers)
        self.stage = ImportStage.MAPPING
        return parsed

    def choose_mapping(self, raw: Optional[Mapping[str, Optional[str]]] = None) -> ColumnMapping:
        """Validate ``raw`` (or the suggested mapping when omitted) against the file headers."""
        self._require(ImportStage.MAPPING)
        parsed = self._require_file()
        self.mapping = build_mapping(
            raw if raw is not None else self.suggested_mapping, parsed.headers
        )
        return self.mapping

    async def process(
        self,
        *,
        user_id: UUID,
        known_categories: Mapping[str, UUID],
        gateway: CategoryGateway,
        submit: SubmitBatch,
        color_factory: ColorFactory = random_color,
        icon: str = "📝",
    ) -> ImportResult:
        self._require(ImportStage.MAPPING)
        if self.mapping is None:
            raise ValidationError("Choose a column mapping before importing")
        parsed = self._require_file()

        self.stage = ImportStage.PROCESSING
        try:
            reconciliation = await reconcile_rows(
                parsed.rows,
                self.mapping,
                known_categories,
                gateway,
                user_id=user_id,
                color_factory=color_factory,
                icon=icon,
            )
            if not reconciliation.commands:
                raise NoValidRowsError("No valid expenses found to import")
            try:
                inserted = await submit(reconciliation.commands)
            except ImportSubmissionError:
                raise
            except DomainError as exc:
                raise ImportSubmissionError(str(exc)) from exc
        except Exception:
            self.stage = ImportStage.MAPPING
            raise

        self.result = reconciliation.to_result(inserted=len(inserted))
        self.stage = ImportStage.DONE
        return self.result


def preview_import(filename: str, content: bytes, *, preview_rows: int = 3) -> ImportPreview:
    """Parse an upload and suggest a mapping without touching the database."""
    flow = ImportFlow()
    parsed = flow.upload(filename, content)
    return ImportPreview(
        filename=filename,
        headers=parsed.headers,
        suggested_mapping=flow.suggested_mapping,
        row_count=len(parsed.rows),
        preview=parsed.rows[:preview_rows],
    )


async def run_import(
    session: AsyncSession,
    user_id: UUID,
    filename: str,
    content: bytes,
    raw_mapping: Optional[Mapping[str, Optional[str]]] = None,
    *,
    color_factory: ColorFactory = random_color,
) -> ImportResult:
    """Parse, reconcile and bulk insert an uploaded spreadsheet for ``user_id``."""
    settings = get_settings()
    flow = ImportFlow()
    flow.upload(filename, content)
    flow.choose_mapping(raw_mapping)

    existing = await list_categories(session, user_id)

    async def _submit(commands: list[ExpenseCreate]):
        return await bulk_create_expenses(session, user_id, commands)

    result = await flow.process(
        user_id=user_id,
        known_categories={category.name.lower(): category.id for category in existing},
        gateway=SessionCategoryGateway(session, user_id),
        submit=_submit,
        color_factory=color_factory,
        icon=settings.import_category_icon,
    )
    logger.info(
        "Imported %s for user %s: %d accepted, %d rejected, %d new categories",
        filename,
        user_id,
        result.accepted,
        result.rejected,
        len(result.created_categories),
    )
    return result
