"""File parsing and generation for CSV and XLSX product sheets."""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from bazaar.schemas.product_import import RawRow

from .constants import MAX_ROWS, REQUIRED_HEADERS

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t")


@dataclass
class SheetParseResult:
    """Rows and headers read from a data file, or the reason there are none."""

    rows: list[RawRow] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _decode(content: bytes) -> str:
    """Decode file bytes, UTF-8 (BOM tolerated) first, then Latin-1."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def detect_delimiter(text: str) -> str:
    """Pick the most frequent of comma, semicolon and tab in the header line."""
    first_line = text.replace("\r\n", "\n").replace("\r", "\n").split("\n", 1)[0]
    best, best_count = ",", 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = first_line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def _missing_headers(headers: Sequence[str]) -> list[str]:
    return [h for h in REQUIRED_HEADERS if h not in headers]


def _build_rows(
    headers: list[str],
    records: Iterable[Sequence[str]],
    max_rows: int,
) -> SheetParseResult:
    """Zip value sequences with headers, skipping all-blank rows."""
    missing = _missing_headers(headers)
    if missing:
        return SheetParseResult(
            headers=headers,
            errors=[f"Missing required headers: {', '.join(missing)}"],
        )

    rows: list[RawRow] = []
    for values in records:
        cleaned = [v.strip() for v in values]
        if not any(cleaned):
            continue
        if len(rows) >= max_rows:
            return SheetParseResult(
                headers=headers,
                errors=[f"File exceeds maximum of {max_rows} data rows"],
            )
        record = {
            header: cleaned[i] if i < len(cleaned) else ""
            for i, header in enumerate(headers)
            if header
        }
        rows.append(RawRow.from_record(record))

    return SheetParseResult(rows=rows, headers=headers)


def parse_csv(
    file_content: bytes,
    delimiter: str | None = None,
    max_rows: int = MAX_ROWS,
) -> SheetParseResult:
    """Parse CSV file content into typed rows.

    Handles quoted fields containing delimiters or newlines, doubled-quote
    escaping and mixed CRLF/LF/CR line endings.

    Args:
        file_content: Raw CSV file bytes.
        delimiter: Field delimiter. Detected from the header line when omitted.
        max_rows: Upper bound on data rows; exceeding it is an error.

    Returns:
        SheetParseResult. ``errors`` is non-empty and ``rows`` empty when the
        header row is missing or incomplete.
    """
    text = _decode(file_content)
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    if not text.strip():
        return SheetParseResult(errors=["CSV file is empty"])

    if delimiter is None:
        delimiter = detect_delimiter(text)

    reader: Iterator[list[str]] = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    try:
        header_values = next(reader)
        while not any(v.strip() for v in header_values):
            header_values = next(reader)
    except StopIteration:
        return SheetParseResult(errors=["No headers found in CSV"])
    except csv.Error as e:
        logger.warning("CSV header tokenizing failed: %s", e)
        return SheetParseResult(errors=[f"Invalid CSV: {e}"])

    headers = [h.strip().lower() for h in header_values]

    try:
        return _build_rows(headers, reader, max_rows)
    except csv.Error as e:
        logger.warning("CSV tokenizing failed: %s", e)
        return SheetParseResult(headers=headers, errors=[f"Invalid CSV: {e}"])


def _cell_to_str(value: Any) -> str:
    """Render a cell value as text; integral floats lose their trailing .0."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_xlsx(file_content: bytes, max_rows: int = MAX_ROWS) -> SheetParseResult:
    """Parse XLSX file content into typed rows (first sheet only).

    Uses openpyxl read_only mode and iterates rows lazily. Corrupt workbooks
    are reported in ``errors`` rather than raised.
    """
    try:
        wb = load_workbook(filename=io.BytesIO(file_content), read_only=True, data_only=True)
    except Exception as e:
        logger.warning("Could not open workbook: %s", e)
        return SheetParseResult(errors=[f"Invalid XLSX file: {e}"])

    try:
        if not wb.worksheets:
            return SheetParseResult(errors=["XLSX file has no worksheets"])
        ws = wb.worksheets[0]

        row_iter = ws.iter_rows(values_only=True)
        try:
            raw_headers = next(row_iter)
        except StopIteration:
            return SheetParseResult(errors=["XLSX file is empty"])

        headers = [_cell_to_str(h).lower() for h in raw_headers]
        while headers and not headers[-1]:
            headers.pop()
        if not headers:
            return SheetParseResult(errors=["No headers found in XLSX"])

        records = ([_cell_to_str(v) for v in row_values] for row_values in row_iter)
        return _build_rows(headers, records, max_rows)
    finally:
        wb.close()


def _row_value(row: Mapping[str, Any] | RawRow, header: str) -> Any:
    if isinstance(row, RawRow):
        return getattr(row, header, "")
    return row.get(header)


def _escape_csv_value(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    if any(c in text for c in (",", '"', "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def generate_csv(headers: Sequence[str], rows: Iterable[Mapping[str, Any] | RawRow]) -> str:
    """Render rows as CSV text, quoting values that contain separators or quotes.

    Lines are joined with LF; ``parse_csv`` reads the output back unchanged.
    """
    lines = [",".join(_escape_csv_value(h) for h in headers)]
    for row in rows:
        lines.append(",".join(_escape_csv_value(_row_value(row, h)) for h in headers))
    return "\n".join(lines)


def generate_xlsx(
    headers: Sequence[str],
    rows: Iterable[Mapping[str, Any] | RawRow],
    sheet_title: str = "Products",
) -> bytes:
    """Render rows as an XLSX workbook with a styled, frozen header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    header_alignment = Alignment(horizontal="center")

    for col_idx, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment

    for row_idx, row in enumerate(rows, 2):
        for col_idx, header in enumerate(headers, 1):
            value = _row_value(row, header)
            ws.cell(row=row_idx, column=col_idx, value="" if value is None else value)

    for col_idx, header in enumerate(headers, 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = max(len(header) + 2, 15)

    ws.freeze_panes = "A2"

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()
