"""
CSV export with BOM and fixed columns
Saved generations out, and back in for re-import
"""
import csv
import io
import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from ..config import CSV_BOM, EXPORT_COLUMNS, LIST_SEPARATOR, TEMPLATE_COLUMNS
from ..errors import MalformedCSV
from ..models import CSVRow, GenerationRecord, RowError
from ..services.csv_parser import read_table

logger = logging.getLogger(__name__)

TEMPLATE_ROWS = [
    {
        "Product Name": "Boho Wall Art Print",
        "Niche": "Home Decor",
        "Target Audience": "Young professionals",
        "Keywords": "boho, wall art, printable",
        "Tone": "Creative",
        "Word Count": "300",
        "Pinterest Caption": "true",
        "Etsy Message": "false",
    },
    {
        "Product Name": "Minimalist Weekly Planner",
        "Niche": "Digital Planners",
        "Target Audience": "Busy parents",
        "Keywords": "planner, printable, minimalist",
        "Tone": "Minimalist",
        "Word Count": "250",
        "Pinterest Caption": "false",
        "Etsy Message": "true",
    },
]


def _frame_to_csv(rows: List[Dict[str, str]], columns: List[str]) -> str:
    # Values are pre-stringified so pandas never turns numbers into floats
    df = pd.DataFrame(rows, columns=columns, dtype=str)

    output = io.StringIO()
    output.write(CSV_BOM)
    df.to_csv(output, index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")

    return output.getvalue()


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def to_csv(records: List[GenerationRecord]) -> str:
    """
    Generate export CSV with BOM
    Args:
        records: Saved generations, already ordered
    Returns:
        CSV text; every field quoted, lists joined with ", "
    """
    rows = [
        {
            "ID": record.id,
            "Title": record.title,
            "Description": record.description,
            "Tags": LIST_SEPARATOR.join(record.tags),
            "Materials": LIST_SEPARATOR.join(record.materials),
            "Tone": _cell(record.tone),
            "Word Count": _cell(record.wordCount),
            "Bulk Import ID": _cell(record.bulkImportId),
            "Bulk Import Date": _cell(record.bulkImportDate),
            "Source": record.source,
            "Created At": record.createdAt,
        }
        for record in records
    ]

    logger.info(f"Generated export CSV with {len(rows)} rows")
    return _frame_to_csv(rows, EXPORT_COLUMNS)


def _optional(value: str) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def from_csv(text_content: str) -> List[GenerationRecord]:
    """
    Read an export CSV back into records
    Raises:
        MalformedCSV: If the structure is unreadable or export columns are missing
    """
    headers, records = read_table(text_content)

    missing = [column for column in EXPORT_COLUMNS if column not in headers]
    if missing:
        raise MalformedCSV(f"CSV parsing error: missing columns {', '.join(missing)}")

    result = []
    for row_num, record in enumerate(records, start=1):
        word_count = _optional(record["Word Count"])
        try:
            result.append(GenerationRecord(
                id=record["ID"],
                title=record["Title"],
                description=record["Description"],
                tags=_split_list(record["Tags"]),
                materials=_split_list(record["Materials"]),
                tone=_optional(record["Tone"]),
                wordCount=int(word_count) if word_count else None,
                bulkImportId=_optional(record["Bulk Import ID"]),
                bulkImportDate=_optional(record["Bulk Import Date"]),
                source=_optional(record["Source"]) or "manual",
                createdAt=record["Created At"],
            ))
        except ValueError as e:
            raise MalformedCSV(f"CSV parsing error: row {row_num} is invalid: {e}", {"row": row_num})

    return result


def template_csv() -> str:
    """Example import file with every supported column"""
    return _frame_to_csv(TEMPLATE_ROWS, TEMPLATE_COLUMNS)


def failed_rows_to_csv(errors: List[RowError]) -> str:
    """
    Failed rows in import format plus an Error column, ready to fix and re-upload
    Job-level errors without a row are skipped
    """
    rows = []
    for error in errors:
        row: Optional[CSVRow] = error.row
        if row is None:
            continue
        rows.append({
            "Product Name": row.productName,
            "Niche": _cell(row.niche),
            "Target Audience": _cell(row.audience),
            "Keywords": LIST_SEPARATOR.join(row.keywords),
            "Tone": _cell(row.tone),
            "Word Count": str(row.wordCount),
            "Pinterest Caption": "true" if row.pinterestCaption else "false",
            "Etsy Message": "true" if row.etsyMessage else "false",
            "Error": error.message,
        })

    return _frame_to_csv(rows, TEMPLATE_COLUMNS + ["Error"])
