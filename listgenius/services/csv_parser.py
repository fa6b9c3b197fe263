"""
CSV Parser Service
Turns an uploaded CSV into validated bulk-generation rows
"""
import csv
import io
import logging
import re
from typing import Dict, List, Optional, Tuple

from ..config import (
    ALLOWED_TONES,
    BOOLEAN_VALUES,
    COLUMN_ALIASES,
    CSV_BOM,
    DEFAULT_TONE,
    DEFAULT_WORD_COUNT,
    MAX_CSV_SIZE_BYTES,
    MAX_WORD_COUNT,
    MIN_WORD_COUNT,
    REQUIRED_COLUMNS,
    TRUE_VALUES,
)
from ..errors import CSVValidationError, MalformedCSV
from ..models import ColumnMapping, CSVRow, ParsedCSV, ValidationIssue
from ..utils.sanitizers import split_list_cell

logger = logging.getLogger(__name__)

_TONE_LOOKUP = {tone.lower(): tone for tone in ALLOWED_TONES}
WORD_COUNT_MESSAGE = f"Word count must be a number between {MIN_WORD_COUNT} and {MAX_WORD_COUNT}"


def validate_upload(filename: Optional[str], file_content: bytes) -> str:
    """
    Reject unusable uploads before any parsing work
    Args:
        filename: Client-supplied file name
        file_content: Raw upload bytes
    Returns:
        Decoded CSV text
    Raises:
        CSVValidationError: Wrong extension, too large, or empty
    """
    if not filename or not filename.lower().endswith(".csv"):
        raise CSVValidationError("File must be a CSV file")

    if len(file_content) > MAX_CSV_SIZE_BYTES:
        raise CSVValidationError("File size must be less than 5MB")

    text_content = decode_content(file_content)

    if not text_content.strip():
        raise CSVValidationError("CSV file is empty")

    return text_content


def decode_content(file_content: bytes) -> str:
    try:
        return file_content.decode("utf-8-sig")  # Handle BOM
    except UnicodeDecodeError:
        logger.warning("CSV is not valid UTF-8, falling back to latin-1")
        return file_content.decode("latin-1")


def read_table(text_content: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Read CSV text into headers and header-keyed records
    Shared by import parsing and export round-tripping so both fail the same way
    Args:
        text_content: CSV text, optionally BOM-prefixed
    Returns:
        (headers, records) with blank lines skipped and short rows padded
    Raises:
        MalformedCSV: Unbalanced quotes, missing header, or a row with extra fields
    """
    if text_content.startswith(CSV_BOM):
        text_content = text_content[len(CSV_BOM):]

    reader = csv.reader(io.StringIO(text_content, newline=""), strict=True)

    try:
        raw_rows = [row for row in reader if any(cell.strip() for cell in row)]
    except csv.Error as e:
        raise MalformedCSV(f"CSV parsing error: {e}")

    if not raw_rows:
        raise MalformedCSV("CSV parsing error: no header row found")

    headers = dedupe_headers([header.strip() for header in raw_rows[0]])
    width = len(headers)
    records = []

    for row_num, raw in enumerate(raw_rows[1:], start=1):
        if len(raw) > width:
            if any(cell.strip() for cell in raw[width:]):
                raise MalformedCSV(
                    f"CSV parsing error: row {row_num} has {len(raw)} fields, expected {width}",
                    {"row": row_num},
                )
            raw = raw[:width]

        padded = raw + [""] * (width - len(raw))
        records.append(dict(zip(headers, padded)))

    return headers, records


def dedupe_headers(headers: List[str]) -> List[str]:
    """Rename repeated headers to Name_1, Name_2 so no column is overwritten"""
    seen = set()
    result = []

    for header in headers:
        unique = header
        suffix = 0
        while unique in seen:
            suffix += 1
            unique = f"{header}_{suffix}"
        seen.add(unique)
        result.append(unique)

    return result


def normalize_header(header: str) -> str:
    """Lowercase and drop everything but letters and digits"""
    return re.sub(r"[^a-z0-9]", "", header.lower())


def detect_column_mapping(headers: List[str]) -> ColumnMapping:
    """
    Match headers to logical columns through the alias table
    Each header maps to at most one column; the first matching header wins
    """
    normalized = [(header, normalize_header(header)) for header in headers]
    used = set()
    mapping = {}

    for column, aliases in COLUMN_ALIASES.items():
        alias_keys = {normalize_header(alias) for alias in aliases}
        for header, key in normalized:
            if header in used or not key:
                continue
            if key in alias_keys:
                mapping[column] = header
                used.add(header)
                break

    return ColumnMapping(**mapping)


def validate_column_mapping(mapping: ColumnMapping) -> List[ValidationIssue]:
    errors = []

    for column in REQUIRED_COLUMNS:
        if not getattr(mapping, column):
            label = "Product name" if column == "productName" else "Keywords"
            errors.append(ValidationIssue(row=0, field=column, message=f"{label} column is required"))

    return errors


def parse(text_content: str) -> ParsedCSV:
    """
    Parse CSV text into rows, a column mapping and per-row validation errors
    Args:
        text_content: Decoded CSV text
    Returns:
        ParsedCSV; rows with any validation error are left out of readyRows
    Raises:
        MalformedCSV: If the CSV structure cannot be read
    """
    headers, records = read_table(text_content)
    logger.info(f"CSV Headers: {headers}")

    mapping = detect_column_mapping(headers)

    rows = []
    ready_rows = []
    validation_errors = []

    for row_num, record in enumerate(records, start=1):
        row, issues = parse_csv_row(record, mapping, row_num)
        rows.append(row)
        validation_errors.extend(issues)
        if not issues:
            ready_rows.append(row)

    logger.info(f"Parsed {len(rows)} rows from CSV ({len(ready_rows)} ready, {len(validation_errors)} issues)")

    return ParsedCSV(
        headers=headers,
        rows=rows,
        readyRows=ready_rows,
        columnMapping=mapping,
        validationErrors=validation_errors,
    )


def canonical_tone(tone: str) -> Optional[str]:
    """Allowed tone in its canonical spelling, or None"""
    return _TONE_LOOKUP.get((tone or "").strip().lower())


def validate_row_fields(row: CSVRow, row_num: int) -> List[ValidationIssue]:
    """
    Field rules shared by CSV parsing and rows submitted for processing
    Args:
        row: Parsed or client-supplied row
        row_num: Row number reported in the issues
    Returns:
        Validation issues; empty when the row is ready
    """
    issues = []

    if not row.productName or not row.productName.strip():
        issues.append(ValidationIssue(row=row_num, field="productName", message="Product name is required"))

    if not [k for k in row.keywords if k and k.strip()]:
        issues.append(ValidationIssue(row=row_num, field="keywords", message="Keywords are required"))

    if row.tone and canonical_tone(row.tone) is None:
        issues.append(ValidationIssue(
            row=row_num,
            field="tone",
            message=f"Invalid tone. Must be one of: {', '.join(ALLOWED_TONES)}",
        ))

    if not MIN_WORD_COUNT <= row.wordCount <= MAX_WORD_COUNT:
        issues.append(ValidationIssue(row=row_num, field="wordCount", message=WORD_COUNT_MESSAGE))

    return issues


def parse_csv_row(record: Dict[str, str], mapping: ColumnMapping, row_num: int) -> Tuple[CSVRow, List[ValidationIssue]]:
    """
    Parse and validate a single CSV record
    Args:
        record: Header-keyed CSV record
        mapping: Detected column mapping
        row_num: 1-based data row number
    Returns:
        (row, issues); the row is always returned so callers keep its position
    """
    issues = []

    raw_tone = extract_csv_field(record, mapping.tone)
    tone = (canonical_tone(raw_tone) or raw_tone) if raw_tone else DEFAULT_TONE

    word_count = DEFAULT_WORD_COUNT
    raw_word_count = extract_csv_field(record, mapping.wordCount)
    if raw_word_count:
        try:
            word_count = int(raw_word_count)
        except ValueError:
            issues.append(ValidationIssue(row=row_num, field="wordCount", message=WORD_COUNT_MESSAGE))

    pinterest_caption = parse_boolean_field(record, mapping.pinterestCaption, "pinterestCaption", row_num, issues)
    etsy_message = parse_boolean_field(record, mapping.etsyMessage, "etsyMessage", row_num, issues)

    row = CSVRow(
        productName=extract_csv_field(record, mapping.productName),
        niche=extract_csv_field(record, mapping.niche) or None,
        audience=extract_csv_field(record, mapping.audience) or None,
        keywords=split_list_cell(extract_csv_field(record, mapping.keywords)),
        tone=tone,
        wordCount=word_count,
        pinterestCaption=pinterest_caption,
        etsyMessage=etsy_message,
        rowNumber=row_num,
    )

    issues = validate_row_fields(row, row_num) + issues
    if any(issue.field == "wordCount" for issue in issues):
        row.wordCount = DEFAULT_WORD_COUNT

    return row, issues


def extract_csv_field(record: Dict[str, str], header: Optional[str]) -> str:
    if not header:
        return ""
    return (record.get(header) or "").strip()


def parse_boolean_field(record: Dict[str, str], header: Optional[str], field: str, row_num: int,
                        issues: List[ValidationIssue]) -> bool:
    value = extract_csv_field(record, header).lower()
    if not value:
        return False

    if value not in BOOLEAN_VALUES:
        issues.append(ValidationIssue(
            row=row_num,
            field=field,
            message=f"{field} must be true/false, 1/0, or yes/no",
        ))
        return False

    return value in TRUE_VALUES
