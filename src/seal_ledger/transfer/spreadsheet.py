"""Spreadsheet import and export for ledger records.

Import is best-effort.  The first sheet's first row is matched against a
bilingual alias table (exact text, then whitespace-trimmed).  If no header
cell matches at all, the sheet is read positionally in the export column
order and the first row is treated as data.  Rows without a usable date are
skipped with a warning.  Import produces records only; it never touches a
shared folder, so bad input cannot reach the lock or the control file.
"""

from __future__ import annotations

import io
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.utils.datetime import from_excel

from seal_ledger.records import LedgerRecord, renumber

logger = logging.getLogger(__name__)

SHEET_TITLE = "대장"

# Field -> accepted header texts.  The first alias is the one written on export.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "sequence_number": ("id", "연번"),
    "date": ("date", "일자"),
    "document_number": ("docNum", "문서번호"),
    "content": ("content", "내용"),
    "recipient": ("recipient", "수신처"),
    "author": ("author", "작성자"),
    "attachment_name": ("fileName", "파일명"),
}

_POSITIONAL = tuple(FIELD_ALIASES)

_DATE_FORMATS = ("%Y-%m-%d", "%Y.%m.%d", "%Y/%m/%d", "%Y%m%d")
_DATE_PREFIX = re.compile(r"^\s*(\d{4}[-./]\d{1,2}[-./]\d{1,2}|\d{8})")


# ── Cell helpers ──────────────────────────────────────────────────────────────


def parse_date(value: Any) -> date | None:
    """Best-effort conversion of a cell value to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 10_000_000 <= value <= 99_991_231:
            value = str(int(value))  # 20240305 typed as a number
        else:
            try:
                converted = from_excel(value)
            except (TypeError, ValueError, OverflowError):
                return None
            return converted.date() if isinstance(converted, datetime) else None
    if not isinstance(value, str):
        return None

    match = _DATE_PREFIX.match(value)
    if not match:
        return None
    text = match.group(1)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _match_header(cell: Any) -> str | None:
    if not isinstance(cell, str):
        return None
    for candidate in (cell, cell.strip()):
        for field_name, aliases in FIELD_ALIASES.items():
            if candidate in aliases:
                return field_name
    return None


def header_map(row: tuple[Any, ...]) -> dict[str, int]:
    """Map field names to column indexes for a header row.

    The first column that matches a field wins.  Returns an empty dict if
    nothing matches.
    """
    columns: dict[str, int] = {}
    for index, cell in enumerate(row):
        field_name = _match_header(cell)
        if field_name and field_name not in columns:
            columns[field_name] = index
    return columns


# ── Import ────────────────────────────────────────────────────────────────────


def records_from_rows(rows: list[tuple[Any, ...]]) -> list[LedgerRecord]:
    """Turn raw sheet rows (header included) into renumbered records."""
    if not rows:
        return []

    columns = header_map(rows[0])
    if columns:
        body, first_line = rows[1:], 2
    else:
        logger.warning("import: no recognised header, reading columns by position")
        columns = {name: i for i, name in enumerate(_POSITIONAL)}
        body, first_line = rows, 1

    def cell(row: tuple[Any, ...], field_name: str) -> Any:
        index = columns.get(field_name)
        if index is None or index >= len(row):
            return None
        return row[index]

    records = []
    for line, row in enumerate(body, start=first_line):
        if all(v is None or (isinstance(v, str) and not v.strip()) for v in row):
            continue
        when = parse_date(cell(row, "date"))
        if when is None:
            logger.warning("import: row %d skipped, no usable date (%r)", line, cell(row, "date"))
            continue
        records.append(
            LedgerRecord(
                sequence_number=len(records) + 1,
                date=when,
                document_number=_text(cell(row, "document_number")),
                content=_text(cell(row, "content")),
                recipient=_text(cell(row, "recipient")),
                author=_text(cell(row, "author")),
                attachment_name=_text(cell(row, "attachment_name")) or None,
            )
        )
    return renumber(records)


def import_workbook(source: str | Path | io.BytesIO) -> list[LedgerRecord]:
    """Read records from the first sheet of an ``.xlsx`` workbook."""
    workbook = load_workbook(source, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = [tuple(r) for r in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    records = records_from_rows(rows)
    logger.info("import: %d records read", len(records))
    return records


# ── Export ────────────────────────────────────────────────────────────────────


def build_workbook(records: list[LedgerRecord]) -> Workbook:
    """One sheet, one row per record, attachment bytes left out."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append([aliases[0] for aliases in FIELD_ALIASES.values()])
    for r in records:
        sheet.append(
            [
                r.sequence_number,
                r.date,
                r.document_number,
                r.content,
                r.recipient,
                r.author,
                r.attachment_name or "",
            ]
        )
        sheet.cell(row=sheet.max_row, column=2).number_format = "yyyy-mm-dd"
    return workbook


def workbook_bytes(records: list[LedgerRecord]) -> bytes:
    buffer = io.BytesIO()
    build_workbook(records).save(buffer)
    return buffer.getvalue()


def export_workbook(records: list[LedgerRecord], destination: str | Path) -> Path:
    """Write ``records`` to an ``.xlsx`` file and return its path."""
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    build_workbook(records).save(path)
    logger.info("export: %d records written to %s", len(records), path)
    return path
