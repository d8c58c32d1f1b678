"""
Writing extraction results back to the spreadsheet as a new row.
"""

import json
from typing import Any, List, Sequence

from transcript_processor.models import ExtractionResult
from transcript_processor.spreadsheet import TableStore
from transcript_processor.utils.logging import get_logger

logger = get_logger(__name__)


def cell_text(value: Any) -> str:
    """Render an extracted value as spreadsheet cell text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(cell_text(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def build_row(result: ExtractionResult, fields: Sequence[str]) -> List[str]:
    """Values for each field in schema order; missing fields become ""."""
    return [cell_text(result.get(name)) for name in fields]


def append_row(result: ExtractionResult, fields: Sequence[str], store: TableStore) -> List[str]:
    """
    Append one extraction result to the store and persist it.

    The header row is read again from the store so the row lines up with the
    sheet as it is now, even if it changed after `fields` was read.

    Args:
        result: Extracted field values
        fields: Field names the extraction was requested for
        store: Open table store

    Returns:
        The row that was written, in header order

    Raises:
        SpreadsheetError: If the store has no header row or cannot be saved
    """
    headers = store.read_headers()
    if list(fields) != headers:
        logger.warning(
            "Spreadsheet headers changed since extraction; aligning the row to the current headers",
            extra={"requested_fields": list(fields), "current_headers": headers},
        )

    row = build_row(result, headers)
    index = store.append_values(row)
    store.save()

    logger.info(f"Wrote row {index} to {store.path}")
    return row
