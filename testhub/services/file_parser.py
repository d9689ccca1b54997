"""
File Parser — turns an uploaded CSV / XLSX file into ImportRow dicts.

Headers are trimmed but otherwise left as written; mapping them to
canonical fields is the field normalizer's job. Fully blank rows are
dropped so trailing spreadsheet padding does not count as failed rows.

The returned ``ParsedRows`` list remembers the source row number of every
kept row (header = 1), so diagnostics still point at the right line after
interior blank rows were dropped.
"""

import csv
import io
import logging

from openpyxl import load_workbook

from testhub.core.exceptions import ValidationError
from testhub.services.field_normalizer import ImportRow

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xlsm")


class ParsedRows(list):
    """ImportRow list plus ``row_numbers``, parallel to the rows."""

    def __init__(self, rows=(), row_numbers=()):
        super().__init__(rows)
        self.row_numbers = list(row_numbers)


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _is_blank(row: ImportRow) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def _rows_from_table(headers, records) -> ParsedRows:
    keys = [str(h).strip() if h is not None else "" for h in headers]
    rows: list[ImportRow] = []
    numbers: list[int] = []
    for row_number, record in enumerate(records, start=2):
        row: ImportRow = {}
        for index, key in enumerate(keys):
            if not key:
                continue
            value = record[index] if index < len(record) else None
            row.setdefault(key, _clean(value))
        if not _is_blank(row):
            rows.append(row)
            numbers.append(row_number)
    return ParsedRows(rows, numbers)


def parse_csv(file_content: str | bytes) -> ParsedRows:
    """Parse CSV content; the first record is the header row.

    Row numbers count CSV records, so a quoted multi-line cell is one row.
    """
    if isinstance(file_content, bytes):
        file_content = file_content.decode("utf-8-sig")  # Handle BOM

    reader = csv.reader(io.StringIO(file_content))
    try:
        headers = next(reader)
    except StopIteration:
        raise ValidationError("File is empty") from None
    return _rows_from_table(headers, list(reader))


def parse_excel(data: bytes) -> ParsedRows:
    """Parse the first worksheet of an XLSX workbook."""
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:  # openpyxl raises several unrelated types for bad files
        raise ValidationError(f"Could not read workbook: {exc}") from exc

    try:
        ws = wb.worksheets[0]
        records = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()

    if not records:
        raise ValidationError("File is empty")
    # iter_rows starts at row 1, so records[0] is worksheet row 1
    return _rows_from_table(records[0], records[1:])


def parse_file(filename: str, data: bytes) -> ParsedRows:
    """Dispatch on the file extension."""
    name = (filename or "").lower()
    if name.endswith(".csv"):
        rows = parse_csv(data)
    elif name.endswith((".xlsx", ".xlsm")):
        rows = parse_excel(data)
    else:
        raise ValidationError(
            f"Unsupported file type: {filename}. Supported: {', '.join(SUPPORTED_EXTENSIONS)}"
        )
    logger.info("Parsed %d data rows from %s", len(rows), filename)
    return rows
