"""Decode uploaded spreadsheets into header lists and row dictionaries."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import PurePath
from typing import Any

import pandas as pd

from .errors import EmptyFileError, ParseError, UnsupportedFormatError

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = frozenset({".csv"})
EXCEL_EXTENSIONS = frozenset({".xlsx", ".xls"})
SUPPORTED_EXTENSIONS = CSV_EXTENSIONS | EXCEL_EXTENSIONS


@dataclass
class ParsedFile:
    """Tabular content of an upload.

    CSV cells are strings. Spreadsheet cells keep their native type: numbers
    stay numbers and date cells become ``datetime`` objects. Empty cells are
    ``""``.
    """

    headers: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def parse_tabular_file(filename: str, content: bytes) -> ParsedFile:
    """Parse a .csv, .xlsx or .xls upload.

    Raises:
        UnsupportedFormatError: the extension is not supported.
        ParseError: the bytes cannot be decoded as the declared format.
        EmptyFileError: the file decodes but has no data rows.
    """
    extension = file_extension(filename)
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(
            f"Unsupported file format '{extension or filename}'. Upload a CSV or Excel file."
        )

    if extension in CSV_EXTENSIONS:
        parsed = _parse_csv(content)
    else:
        parsed = _parse_excel(content)

    if not parsed.rows:
        raise EmptyFileError("No data found in file")
    logger.debug("Parsed %s: %d columns, %d rows", filename, len(parsed.headers), len(parsed.rows))
    return parsed


def _parse_csv(content: bytes) -> ParsedFile:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Error parsing CSV: {exc}") from exc

    sample = text[:2048]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel

    try:
        reader = csv.DictReader(io.StringIO(text, newline=""), dialect=dialect)
        headers = [name.strip() for name in (reader.fieldnames or []) if name and name.strip()]
        rows: list[dict[str, Any]] = []
        for raw in reader:
            row = {
                (key or "").strip(): (value or "").strip() if isinstance(value, str) else ""
                for key, value in raw.items()
                if key is not None
            }
            if any(row.get(header) for header in headers):
                rows.append(row)
    except csv.Error as exc:
        raise ParseError(f"Error parsing CSV: {exc}") from exc

    if not headers:
        raise EmptyFileError("CSV file has no columns")
    return ParsedFile(headers=headers, rows=rows)


def _excel_cell(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if value is None or pd.isna(value):
        return ""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, (datetime, date, int, float)):
        return value
    if hasattr(value, "item"):
        # numpy scalars
        return value.item()
    return str(value).strip()


def _parse_excel(content: bytes) -> ParsedFile:
    try:
        frame = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object)
    except Exception as exc:  # pandas surfaces engine-specific error types
        raise ParseError(f"Error reading Excel file: {exc}") from exc

    frame = frame.dropna(how="all")
    headers = [str(column).strip() for column in frame.columns]
    rows = [
        {header: _excel_cell(value) for header, value in zip(headers, record)}
        for record in frame.itertuples(index=False, name=None)
    ]
    return ParsedFile(headers=headers, rows=rows)
