"""
Export Formatter

Serializes a stored analysis into a downloadable CSV, Excel or JSON file,
or an image (PNG, JPG, PDF) of its first chart. Exports never fail on an
empty analysis: an empty table yields a header-only file and a no-data
record yields a placeholder.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional
import io
import json
import logging

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
import pandas as pd

from sheetlens.config import ExportConfig
from sheetlens.core.builders import TABLE_COLUMNS
from sheetlens.core.charts import ChartRenderer, render_first_chart
from sheetlens.core.errors import ExportFormatError
from sheetlens.core.records import AnalysisRecord

logger = logging.getLogger(__name__)

MIMETYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "json": "application/json",
    "png": "image/png",
    "jpg": "image/jpeg",
    "pdf": "application/pdf",
}

NO_DATA_MESSAGE = "No data available"


@dataclass
class ExportedFile:
    """Bytes of an export plus its suggested download name."""
    content: bytes
    filename: str
    mimetype: str


def export_filename(record: AnalysisRecord, fmt: str, today: Optional[date] = None) -> str:
    """analysis-<type>-<YYYY-MM-DD>.<format>"""
    today = today or date.today()
    return f"analysis-{record.type.value}-{today.isoformat()}.{fmt}"


def _flatten(values: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested dicts into dotted keys; lists become JSON text."""
    flat = {}
    for key, value in values.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{name}."))
        elif isinstance(value, list):
            flat[name] = json.dumps(value)
        else:
            flat[name] = value
    return flat


class ExportFormatter:
    """Turns an AnalysisRecord into file bytes."""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def export(self, record: AnalysisRecord, fmt: str, today: Optional[date] = None) -> ExportedFile:
        fmt = (fmt or "").lower()
        if fmt not in MIMETYPES:
            raise ExportFormatError(
                f"Unsupported export format '{fmt}'. Use one of: {', '.join(MIMETYPES)}"
            )

        if fmt == "csv":
            content = self._export_csv(record)
        elif fmt == "xlsx":
            content = self._export_excel(record)
        elif fmt == "json":
            content = self._export_json(record)
        else:
            content = render_first_chart(record.data, ChartRenderer(self.config), fmt=fmt)

        logger.info(f"Exported analysis #{record.id} as {fmt} ({len(content)} bytes)")
        return ExportedFile(
            content=content,
            filename=export_filename(record, fmt, today),
            mimetype=MIMETYPES[fmt],
        )

    def _table_frame(self, record: AnalysisRecord) -> Optional[pd.DataFrame]:
        """Table rows as a frame; header = keys of the first row."""
        table = (record.data or {}).get("tableData")
        if table is None:
            return None
        if not table:
            return pd.DataFrame(columns=TABLE_COLUMNS.get(record.type, ["message"]))
        columns = list(table[0].keys())
        return pd.DataFrame([_flatten(row) for row in table], columns=columns)

    def _summary_rows(self, record: AnalysisRecord) -> Dict[str, Any]:
        summary = (record.data or {}).get("summary")
        if not summary:
            return {"message": NO_DATA_MESSAGE}
        return _flatten(summary)

    def _export_csv(self, record: AnalysisRecord) -> bytes:
        frame = self._table_frame(record)
        if frame is None:
            frame = pd.DataFrame([self._summary_rows(record)])
        return frame.to_csv(index=False).encode("utf-8")

    def _export_json(self, record: AnalysisRecord) -> bytes:
        return json.dumps(record.data, indent=2, ensure_ascii=False, default=str).encode("utf-8")

    def _export_excel(self, record: AnalysisRecord) -> bytes:
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"{record.type.value.title()} Analysis"

        # Styling
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="4F46E5", end_color="4F46E5", fill_type="solid")
        center_alignment = Alignment(horizontal="center", vertical="center")

        frame = self._table_frame(record)
        if frame is not None:
            headers: List[str] = [str(col) for col in frame.columns]
            rows = frame.itertuples(index=False, name=None)
        else:
            headers = ["Metric", "Value"]
            rows = list(self._summary_rows(record).items())

        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = center_alignment

        for row_idx, values in enumerate(rows, 2):
            for col_idx, value in enumerate(values, 1):
                ws.cell(row=row_idx, column=col_idx, value=value)

        # Auto-adjust column widths
        for column in ws.columns:
            max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
            ws.column_dimensions[get_column_letter(column[0].column)].width = min(max_length + 2, 50)

        output = io.BytesIO()
        wb.save(output)
        return output.getvalue()
