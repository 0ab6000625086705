"""
File Parser

Converts an uploaded spreadsheet, CSV or JSON file into an ordered list
of flat row records. Columns are discovered from the file itself; no row
schema is declared up front.
"""

from pathlib import Path
from typing import Any, List, Optional, Union
import io
import json
import logging
import math

import numpy as np
import pandas as pd

from sheetlens.core.errors import ParseFailureError, UnsupportedFormatError
from sheetlens.core.records import RowRecord

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {"xlsx", "xls", "csv", "json"}

EXCEL_ENGINES = {
    "xlsx": "openpyxl",
    "xls": "xlrd",
}


def get_file_type(filename: str) -> str:
    """Detect file type from extension: 'excel', 'csv', 'json' or 'unknown'."""
    ext = get_extension(filename)
    if ext in EXCEL_ENGINES:
        return "excel"
    elif ext == "csv":
        return "csv"
    elif ext == "json":
        return "json"
    else:
        return "unknown"


def get_extension(filename: str) -> str:
    """Lower-case extension without the dot ('' when there is none)."""
    return Path(str(filename)).suffix.lower().lstrip(".")


def is_supported(filename: str) -> bool:
    return get_extension(filename) in SUPPORTED_EXTENSIONS


def _normalize_cell(value: Any) -> Any:
    """Convert pandas/numpy scalars to plain Python values; blanks become None."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value if value else None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


class FileParser:
    """
    Parses one file into row records.

    Dispatch is by extension (or an explicit format hint):
    - xlsx / xls: first worksheet only, first row is the header row
    - csv: header row as keys, malformed records skipped
    - json: an object or an array of flat objects
    """

    def __init__(self, content: bytes, filename: str, format_hint: Optional[str] = None):
        self.content = content
        self.filename = filename
        self.extension = (format_hint or get_extension(filename)).lower().lstrip(".")
        self.skipped_records = 0

    def parse(self) -> List[RowRecord]:
        """Parse the file and return its rows in source order."""
        if self.extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFormatError(
                f"Unsupported file format: .{self.extension}" if self.extension
                else f"Unsupported file format: {self.filename}"
            )

        try:
            if self.extension in EXCEL_ENGINES:
                rows = self._load_excel()
            elif self.extension == "csv":
                rows = self._load_csv()
            else:
                rows = self._load_json()
        except (UnsupportedFormatError, ParseFailureError):
            raise
        except Exception as e:
            raise ParseFailureError(f"Error processing file: {e}") from e

        logger.info(f"Parsed {self.filename}: {len(rows)} rows ({self.skipped_records} skipped)")
        return rows

    def _decode_text(self) -> str:
        """Decode text content as UTF-8 (BOM tolerated), falling back to latin-1."""
        try:
            return self.content.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.debug(f"{self.filename} is not UTF-8, retrying as latin-1")
            return self.content.decode("latin-1")

    def _load_csv(self) -> List[RowRecord]:
        """Load CSV content, skipping blank lines and malformed records."""
        text = self._decode_text()
        if not text.strip():
            return []

        def skip_bad_line(fields: List[str]) -> None:
            self.skipped_records += 1
            logger.warning(f"Skipping malformed CSV record in {self.filename}: {fields!r}")
            return None

        # Headerless read: the first record is checked against the header width too
        try:
            df = pd.read_csv(
                io.StringIO(text),
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                on_bad_lines=skip_bad_line,
                engine="python",
            )
        except pd.errors.EmptyDataError:
            return []

        return self._grid_to_rows(df)

    def _load_excel(self) -> List[RowRecord]:
        """Load the first worksheet; the first row holds the headers."""
        df = pd.read_excel(
            io.BytesIO(self.content),
            sheet_name=0,
            header=None,
            dtype=object,
            engine=EXCEL_ENGINES[self.extension],
        )
        return self._grid_to_rows(df)

    def _grid_to_rows(self, df: pd.DataFrame) -> List[RowRecord]:
        """Promote the first row to headers; blank header cells drop their column."""
        if df.empty:
            return []

        headers = []
        for position, value in enumerate(df.iloc[0].tolist()):
            name = _normalize_cell(value)
            if name is None:
                continue
            headers.append((position, str(name).strip()))

        rows = []
        for values in df.iloc[1:].itertuples(index=False, name=None):
            record = {header: _normalize_cell(values[position]) for position, header in headers}
            if all(value is None for value in record.values()):
                continue
            rows.append(record)
        return rows

    def _load_json(self) -> List[RowRecord]:
        """Load JSON; a single object becomes a one-row sequence."""
        try:
            data = json.loads(self._decode_text())
        except json.JSONDecodeError as e:
            raise ParseFailureError(f"Invalid JSON content: {e}") from e

        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise ParseFailureError("JSON content must be an object or an array of objects")

        rows = [item for item in data if isinstance(item, dict)]
        self.skipped_records = len(data) - len(rows)
        if self.skipped_records:
            logger.warning(f"Skipped {self.skipped_records} non-object JSON elements in {self.filename}")
        return rows


def parse_bytes(content: bytes, filename: str, format_hint: Optional[str] = None) -> List[RowRecord]:
    """Parse in-memory file content."""
    return FileParser(content, filename, format_hint).parse()


def parse_file(path: Union[str, Path], format_hint: Optional[str] = None) -> List[RowRecord]:
    """Parse a file on disk."""
    path = Path(path)
    ext = (format_hint or get_extension(path.name)).lower().lstrip(".")
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"Unsupported file format: .{ext}" if ext else
                                     f"Unsupported file format: {path.name}")
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ParseFailureError(f"Unable to read file {path.name}: {e}") from e
    return parse_bytes(content, path.name, format_hint)
