"""
Spreadsheet-backed table stores.

A table store is a spreadsheet treated as an append-only list of rows whose
first row holds the column headers. Excel workbooks go through openpyxl;
CSV files are appended to without rewriting the rows already in them.
"""

import csv
import io
import os
import shutil
import tempfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, List, Sequence, Tuple, Union

from openpyxl import load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException

from transcript_processor.utils.errors import SpreadsheetError, UnsupportedFormatError
from transcript_processor.utils.logging import get_logger

logger = get_logger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm")
CSV_SUFFIXES = (".csv",)

# (0-based column index, header text)
HeaderColumn = Tuple[int, str]


def _header_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _excel_text(value: str) -> str:
    """Drop control characters that worksheets cannot hold."""
    cleaned = ILLEGAL_CHARACTERS_RE.sub("", value)
    if cleaned != value:
        logger.debug(f"Removed {len(value) - len(cleaned)} control characters from a cell value")
    return cleaned


def _atomic_write(path: Path, write: Callable[[str], None]) -> None:
    """Write through a temp file in the same directory, then swap it in."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=path.suffix, dir=path.parent)
    os.close(fd)
    try:
        write(tmp_name)
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise


class TableStore(ABC):
    """
    Abstract row store over one spreadsheet file.

    Row 0 is the header row. Appends go after the last declared row and only
    become durable on save().
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    @abstractmethod
    def header_columns(self) -> List[HeaderColumn]:
        """
        Non-empty header cells, left to right.

        Raises:
            SpreadsheetError: If the store has no header row
        """
        pass

    def read_headers(self) -> List[str]:
        """The FieldSchema: header names in column order."""
        return [name for _, name in self.header_columns()]

    @property
    @abstractmethod
    def row_count(self) -> int:
        """Number of declared rows, header included."""
        pass

    @abstractmethod
    def read_rows(self) -> List[List[Any]]:
        """All declared rows as lists of cell values."""
        pass

    @abstractmethod
    def append_values(self, values: Sequence[str]) -> int:
        """
        Add one row aligned to the header columns.

        Args:
            values: One value per header, in header order

        Returns:
            0-based index of the new row
        """
        pass

    @abstractmethod
    def save(self) -> None:
        """Persist pending changes."""
        pass

    def _check_width(self, values: Sequence[str], columns: List[HeaderColumn]) -> None:
        if len(values) != len(columns):
            raise SpreadsheetError(
                self.path, f"row has {len(values)} values but the sheet has {len(columns)} headers"
            )


class ExcelTableStore(TableStore):
    """Table store over the first worksheet of an Excel workbook."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(path)
        try:
            self.workbook = load_workbook(self.path, keep_vba=self.path.suffix.lower() == ".xlsm")
        except FileNotFoundError as e:
            raise SpreadsheetError(self.path, "file not found") from e
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise SpreadsheetError(self.path, f"not a readable workbook ({e})") from e
        except OSError as e:
            raise SpreadsheetError(self.path, f"could not open workbook ({e})") from e

        self.sheet = self.workbook.worksheets[0]

    def header_columns(self) -> List[HeaderColumn]:
        ws = self.sheet
        header_cells = next(
            ws.iter_rows(
                min_row=ws.min_row,
                max_row=ws.min_row,
                min_col=ws.min_column,
                max_col=ws.max_column,
            ),
            (),
        )
        columns = [
            (cell.column - 1, _header_text(cell.value))
            for cell in header_cells
            if _header_text(cell.value)
        ]
        if not columns:
            raise SpreadsheetError(self.path, "missing header row")
        return columns

    @property
    def row_count(self) -> int:
        return self.sheet.max_row - self.sheet.min_row + 1

    def read_rows(self) -> List[List[Any]]:
        return [list(row) for row in self.sheet.iter_rows(values_only=True)]

    def append_values(self, values: Sequence[str]) -> int:
        columns = self.header_columns()
        self._check_width(values, columns)

        new_row = self.sheet.max_row + 1
        for (column, _), value in zip(columns, values):
            cell = self.sheet.cell(row=new_row, column=column + 1)
            cell.value = _excel_text(value)
            # Stored as text even when it looks like a formula or number
            cell.data_type = "s"

        logger.debug(f"Appended row {new_row} to sheet '{self.sheet.title}'")
        return self.row_count - 1

    def save(self) -> None:
        try:
            _atomic_write(self.path, self.workbook.save)
        except OSError as e:
            raise SpreadsheetError(self.path, f"could not write workbook ({e})") from e


class CsvTableStore(TableStore):
    """
    Table store over a CSV file.

    Existing bytes are never rewritten: new rows are appended after them with
    the file's own line terminator.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(path)
        try:
            self._content = self.path.read_bytes()
            text = self._content.decode("utf-8-sig")
        except FileNotFoundError as e:
            raise SpreadsheetError(self.path, "file not found") from e
        except UnicodeDecodeError as e:
            raise SpreadsheetError(self.path, f"not UTF-8 text ({e})") from e
        except OSError as e:
            raise SpreadsheetError(self.path, f"could not read file ({e})") from e

        try:
            self._rows: List[List[str]] = [row for row in csv.reader(io.StringIO(text, newline="")) if row]
        except csv.Error as e:
            raise SpreadsheetError(self.path, f"malformed CSV ({e})") from e

        self._lineterminator = "\r\n" if b"\r\n" in self._content else "\n"
        self._pending: List[List[str]] = []

    def header_columns(self) -> List[HeaderColumn]:
        if not self._rows:
            raise SpreadsheetError(self.path, "missing header row")
        columns = [
            (index, _header_text(value))
            for index, value in enumerate(self._rows[0])
            if _header_text(value)
        ]
        if not columns:
            raise SpreadsheetError(self.path, "missing header row")
        return columns

    @property
    def row_count(self) -> int:
        return len(self._rows) + len(self._pending)

    def read_rows(self) -> List[List[Any]]:
        return [list(row) for row in self._rows + self._pending]

    def append_values(self, values: Sequence[str]) -> int:
        columns = self.header_columns()
        self._check_width(values, columns)

        width = max(len(self._rows[0]), columns[-1][0] + 1)
        row = [""] * width
        for (column, _), value in zip(columns, values):
            row[column] = value

        self._pending.append(row)
        return self.row_count - 1

    def save(self) -> None:
        if not self._pending:
            return

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator=self._lineterminator)
        writer.writerows(self._pending)

        content = self._content
        if content and not content.endswith(b"\n"):
            content += self._lineterminator.encode("utf-8")
        content += buffer.getvalue().encode("utf-8")

        try:
            _atomic_write(self.path, lambda tmp: Path(tmp).write_bytes(content))
        except OSError as e:
            raise SpreadsheetError(self.path, f"could not write file ({e})") from e

        self._content = content
        self._rows.extend(self._pending)
        self._pending = []


def open_table_store(path: Union[str, Path]) -> TableStore:
    """
    Open the table store matching the file's type.

    Raises:
        UnsupportedFormatError: For file types other than Excel or CSV
        SpreadsheetError: If the file is missing or unreadable
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return ExcelTableStore(path)
    if suffix in CSV_SUFFIXES:
        return CsvTableStore(path)
    raise UnsupportedFormatError(path, list(EXCEL_SUFFIXES + CSV_SUFFIXES))
