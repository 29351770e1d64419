"""Spreadsheet parsing for the uploaded (id, image_name) table."""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

import openpyxl

from .errors import ValidationError
from .models import Record

logger = logging.getLogger("image_harvest")

ID_COLUMN = "id"
PHRASE_COLUMN = "image_name"
CSV_SUFFIXES = {".csv", ".txt"}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_blank(row: Sequence[Any]) -> bool:
    return all(value is None or (isinstance(value, str) and not value.strip()) for value in row)


def _read_xlsx_rows(data: bytes) -> List[Sequence[Any]]:
    """Return every row of the first worksheet as a tuple of cell values."""
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:  # pylint: disable=broad-except
        raise ValidationError(f"Could not read spreadsheet: {exc}") from exc
    try:
        if not workbook.worksheets:
            raise ValidationError("Excel file is empty")
        sheet = workbook.worksheets[0]
        return [tuple(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _read_csv_rows(data: bytes) -> List[Sequence[Any]]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"Could not read spreadsheet: {exc}") from exc
    return [tuple(row) for row in csv.reader(io.StringIO(text))]


def _build_records(rows: Iterable[Sequence[Any]]) -> List[Record]:
    iterator = iter(rows)
    header: Optional[Sequence[Any]] = None
    for row in iterator:
        if not _is_blank(row):
            header = row
            break
    if header is None:
        raise ValidationError("Excel file is empty")

    columns = [_cell_text(value) for value in header]
    body = [row for row in iterator if not _is_blank(row)]
    if not body:
        raise ValidationError("Excel file is empty")
    if ID_COLUMN not in columns or PHRASE_COLUMN not in columns:
        raise ValidationError('Excel file must have "id" and "image_name" columns')

    id_index = columns.index(ID_COLUMN)
    phrase_index = columns.index(PHRASE_COLUMN)

    def _at(row: Sequence[Any], index: int) -> Any:
        return row[index] if index < len(row) else None

    return [
        Record(id=_cell_text(_at(row, id_index)), phrase=_cell_text(_at(row, phrase_index)))
        for row in body
    ]


def parse_table(data: bytes, filename: Optional[str] = None) -> List[Record]:
    """Parse the first sheet of an uploaded table into records, in input order.

    Workbooks are read with openpyxl; a ``.csv`` filename switches to the CSV
    reader. The header row must name both ``id`` and ``image_name``.
    """
    if not data:
        raise ValidationError("Uploaded file is empty")
    suffix = Path(filename).suffix.lower() if filename else ""
    if suffix in CSV_SUFFIXES:
        rows = _read_csv_rows(data)
    else:
        rows = _read_xlsx_rows(data)
    records = _build_records(rows)
    logger.info("Parsed %d rows from %s", len(records), filename or "upload")
    return records


def build_template() -> bytes:
    """Sample workbook with the expected header and three example rows."""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Sheet1"
    sheet.append([ID_COLUMN, PHRASE_COLUMN])
    for row in (("001", "Laptop"), ("002", "Wireless Mouse"), ("003", "Mechanical Keyboard")):
        sheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
