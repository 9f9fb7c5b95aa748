"""
Loaders for the two uploaded sources: the PDF template and the row data.

Both loaders work on in-memory byte buffers and raise ``SourceParseError``
when the buffer cannot be used, so a failed upload never leaves partial
state behind.
"""

from __future__ import annotations

import csv
import datetime as dt
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path

from openpyxl import load_workbook
from pypdf import PdfReader

from errors import SourceParseError

logger = logging.getLogger(__name__)

TABULAR_SUFFIXES = {".csv", ".xlsx", ".xlsm"}


@dataclass(frozen=True)
class Template:
    data: bytes
    page_count: int
    page_width: float
    page_height: float


@dataclass(frozen=True)
class TabularData:
    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)


def load_template(data: bytes) -> Template:
    if not data:
        raise SourceParseError("Template PDF is empty.")
    try:
        reader = PdfReader(io.BytesIO(data))
        page_count = len(reader.pages)
        if page_count == 0:
            raise SourceParseError("Template PDF has no pages.")
        first_page = reader.pages[0]
        page_w = float(first_page.mediabox.width)
        page_h = float(first_page.mediabox.height)
    except SourceParseError:
        raise
    except Exception as exc:
        raise SourceParseError(f"Could not read template PDF: {exc}") from exc

    logger.info("Loaded template: %d page(s), first page %.2f x %.2f points", page_count, page_w, page_h)
    return Template(data=bytes(data), page_count=page_count, page_width=page_w, page_height=page_h)


def format_cell(value) -> str:
    """Render a spreadsheet cell the way it reads on screen."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, dt.datetime):
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _load_csv(data: bytes) -> TabularData:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SourceParseError(f"CSV is not valid UTF-8: {exc}") from exc

    reader = csv.DictReader(io.StringIO(text, newline=""))
    try:
        columns = [name for name in (reader.fieldnames or []) if name]
        rows = []
        for raw in reader:
            row = {col: format_cell(raw.get(col)) for col in columns}
            if any(row.values()):
                rows.append(row)
    except csv.Error as exc:
        raise SourceParseError(f"Could not read CSV: {exc}") from exc
    return TabularData(columns=columns, rows=rows)


def _load_workbook(data: bytes) -> TabularData:
    try:
        wb = load_workbook(filename=io.BytesIO(data), data_only=True, read_only=True)
    except Exception as exc:
        raise SourceParseError(f"Could not read spreadsheet: {exc}") from exc

    try:
        ws = wb.worksheets[0]
        row_iter = ws.iter_rows(values_only=True)
        header = next(row_iter, None)
        if header is None:
            return TabularData()
        # Keep the sheet's column positions so values stay aligned with headers.
        positions = [(idx, format_cell(cell)) for idx, cell in enumerate(header)]
        positions = [(idx, name) for idx, name in positions if name]
        columns = [name for _, name in positions]

        rows = []
        for values in row_iter:
            row = {
                name: format_cell(values[idx]) if idx < len(values) else ""
                for idx, name in positions
            }
            if any(row.values()):
                rows.append(row)
    finally:
        wb.close()
    return TabularData(columns=columns, rows=rows)


def load_tabular(data: bytes, filename: str) -> TabularData:
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".xls":
        raise SourceParseError(
            "Legacy Excel (.xls) files are not supported. Save the sheet as .xlsx or .csv."
        )
    if suffix not in TABULAR_SUFFIXES:
        raise SourceParseError(
            f"Unsupported data file type '{suffix or filename}'. Use one of: {', '.join(sorted(TABULAR_SUFFIXES))}."
        )
    if not data:
        raise SourceParseError("Data file is empty.")

    table = _load_csv(data) if suffix == ".csv" else _load_workbook(data)
    if not table.columns:
        raise SourceParseError("Data file has no header row.")
    if len(set(table.columns)) != len(table.columns):
        raise SourceParseError("Data file has duplicate column names.")

    logger.info("Loaded data: %d column(s), %d row(s)", len(table.columns), len(table.rows))
    return table
