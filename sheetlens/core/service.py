"""
SheetLens - Analysis Service
Orchestration layer between requests and the analysis pipeline

This module provides:
- Request modes: fetch-only, generate, and generate-if-absent
- Ownership checks on source files
- Transparent reuse of stored analyses
- File info, custom charts, history and export
"""

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from sheetlens.config import SheetLensConfig, create_default_config
from sheetlens.core.aggregator import aggregate, columns_of
from sheetlens.core.builders import ViewBuilder, get_builder
from sheetlens.core.charts import IMAGE_FORMATS, ChartRenderer
from sheetlens.core.errors import (
    AnalysisNotFoundError,
    ExportFormatError,
    FileAccessDenied,
    FileMissingError,
    InvalidRequestError,
    StoreError,
)
from sheetlens.core.exporter import MIMETYPES, ExportedFile, ExportFormatter
from sheetlens.core.parser import parse_file
from sheetlens.core.records import (
    AnalysisRecord,
    AnalysisType,
    ChartDataset,
    ChartSeries,
    FileDescriptor,
    RowRecord,
    coerce_number,
)
from sheetlens.core.store import AnalysisStore, Database, FileRegistry, Page

logger = logging.getLogger(__name__)

CHART_TYPES = ("line", "bar", "pie", "scatter")


@dataclass
class AnalysisOutcome:
    """Result of an analyze request."""
    success: bool
    data: Optional[Dict[str, Any]]
    message: Optional[str] = None
    record: Optional[AnalysisRecord] = None
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {"success": self.success, "data": self.data}
        if self.message:
            result["message"] = self.message
        return result


def parse_analysis_type(value: Union[str, AnalysisType, None]) -> AnalysisType:
    """Validate an analysis type name."""
    if isinstance(value, AnalysisType):
        return value
    try:
        return AnalysisType((value or "").strip().lower())
    except ValueError:
        raise InvalidRequestError(
            f"Invalid analysis type '{value}'. Use one of: {', '.join(AnalysisType.values())}"
        ) from None


def build_analysis(
    rows: Sequence[RowRecord],
    analysis_type: AnalysisType,
    builder: Optional[ViewBuilder] = None,
) -> Optional[Dict[str, Any]]:
    """
    Run aggregation and the matching view builder.

    Returns:
        The payload, or None when the rows carry no usable numeric data
    """
    builder = builder or get_builder(analysis_type)
    stats = aggregate(rows)
    result = builder.build(rows, stats)
    if not result.has_data:
        logger.info(f"No usable data for {analysis_type.value} analysis ({stats.total_rows} rows)")
        return None
    return result.to_payload()


class AnalysisService:
    """
    Entry point for every analysis operation.

    Workflow for analyze():
    1. Resolve the file and check it belongs to the user
    2. Look up the latest stored analysis unless regenerating
    3. On a miss, parse, aggregate and build the view
    4. Persist the result (a no-data result is persisted too)
    """

    def __init__(
        self,
        config: Optional[SheetLensConfig] = None,
        database: Optional[Database] = None,
    ):
        self.config = config or create_default_config()
        self.db = database or Database(self.config.storage.database_url)
        self.store = AnalysisStore(self.db)
        self.files = FileRegistry(self.db, self.config.storage.upload_dir, analyses=self.store)
        self.exporter = ExportFormatter(self.config.export)

        logger.info(f"AnalysisService initialized with uploads at {self.config.storage.upload_dir}")

    # =========================================================================
    # File access
    # =========================================================================

    def resolve_file(self, user: str, file_id: str) -> FileDescriptor:
        """Descriptor of a file the user owns and that still exists on disk."""
        if not file_id:
            raise InvalidRequestError("File ID is required")

        descriptor = self.files.get_descriptor(file_id)
        if descriptor is None:
            raise FileMissingError("File not found")
        if descriptor.owner_email != user:
            raise FileAccessDenied("Not authorized to access this file")
        if not Path(descriptor.storage_path).exists():
            logger.warning(f"File {file_id} is registered but missing at {descriptor.storage_path}")
            raise FileMissingError("File not found on disk")
        return descriptor

    def load_rows(self, descriptor: FileDescriptor) -> List[RowRecord]:
        rows = parse_file(descriptor.storage_path)
        logger.info(f"Parsed {len(rows)} rows from {descriptor.original_name}")
        return rows

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze(
        self,
        user: str,
        file_id: str,
        analysis_type: Union[str, AnalysisType],
        fetch_only: bool = False,
        generate_new: bool = False,
    ) -> AnalysisOutcome:
        """
        Fetch or generate an analysis.

        Args:
            user: Requesting identity
            file_id: Source file id
            analysis_type: overview, sales or products
            fetch_only: Only return a stored analysis, never generate
            generate_new: Always regenerate and store a new record

        Returns:
            AnalysisOutcome. data is None for the "no data" outcome.
        """
        if fetch_only and generate_new:
            raise InvalidRequestError("fetchOnly and generateNew cannot both be set")
        analysis_type = parse_analysis_type(analysis_type)

        if fetch_only:
            # Fetch-only never reads the source file
            if not file_id:
                raise InvalidRequestError("File ID is required")
            record = self.store.find_latest(user, file_id, analysis_type)
            if record is None:
                return AnalysisOutcome(success=True, data=None, message="No analysis found")
            return AnalysisOutcome(success=True, data=record.data, record=record, cached=True)

        descriptor = self.resolve_file(user, file_id)

        if not generate_new:
            record = self.store.find_latest(user, file_id, analysis_type)
            if record is not None:
                logger.info(f"Reusing {analysis_type.value} analysis #{record.id} for {file_id}")
                return AnalysisOutcome(success=True, data=record.data, record=record, cached=True)

        rows = self.load_rows(descriptor)
        builder = get_builder(analysis_type, self.config.analysis)
        payload = build_analysis(rows, analysis_type, builder)
        message = None if payload is not None else "No data available for analysis"

        record = None
        try:
            record = self.store.save(user, file_id, analysis_type, payload, file_name=descriptor.original_name)
        except StoreError as e:
            logger.error(f"Failed to save {analysis_type.value} analysis for {file_id}: {e}")

        return AnalysisOutcome(success=True, data=payload, message=message, record=record)

    def describe_file(self, user: str, file_id: str) -> Dict[str, Any]:
        """Basic shape of a file; nothing is persisted."""
        descriptor = self.resolve_file(user, file_id)
        rows = self.load_rows(descriptor)
        stats = aggregate(rows)
        return {
            "fileName": descriptor.original_name,
            "totalRows": stats.total_rows,
            "totalColumns": len(columns_of(rows)),
            "numericColumns": list(stats.numeric_columns),
            "allColumns": columns_of(rows),
        }

    def custom_chart(
        self,
        user: str,
        file_id: str,
        chart_type: str,
        x_axis: str,
        y_axis: str,
        fmt: str = "png",
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Chart of one column against another, x labels in row order.

        The chart is also rendered; "image" holds the rendered file
        (png, jpg or pdf) and is not JSON-serializable.
        """
        chart_type = (chart_type or "").lower()
        if chart_type not in CHART_TYPES:
            raise InvalidRequestError(f"Invalid chart type. Use one of: {', '.join(CHART_TYPES)}")
        if not x_axis or not y_axis:
            raise InvalidRequestError("xAxis and yAxis are required")
        fmt = (fmt or "png").lower()
        if fmt not in IMAGE_FORMATS:
            raise ExportFormatError(f"Unsupported chart format '{fmt}'. Use one of: {', '.join(IMAGE_FORMATS)}")

        descriptor = self.resolve_file(user, file_id)
        rows = self.load_rows(descriptor)
        columns = columns_of(rows)
        for axis in (x_axis, y_axis):
            if axis not in columns:
                raise InvalidRequestError(f"Column '{axis}' not found in file")

        labels = ["" if row.get(x_axis) is None else str(row.get(x_axis)) for row in rows]
        values = [coerce_number(row.get(y_axis)) or 0.0 for row in rows]
        colors = ViewBuilder.COLORS
        background = [colors[i % len(colors)] for i in range(len(rows))] if chart_type == "pie" else colors[0]

        series = ChartSeries(
            labels=labels,
            datasets=[ChartDataset(
                label=y_axis,
                data=values,
                background_color=background,
                border_color=colors[0],
            )],
        ).to_dict()

        renderer = ChartRenderer(self.config.export)
        content = renderer.render(series, title=f"{y_axis} by {x_axis}", kind=chart_type, fmt=fmt)
        today = today or date.today()
        image = ExportedFile(
            content=content,
            filename=f"chart-{chart_type}-{today.isoformat()}.{fmt}",
            mimetype=MIMETYPES[fmt],
        )
        logger.info(f"Rendered {chart_type} chart of {y_axis} by {x_axis} for {file_id} ({len(content)} bytes)")
        return {"type": chart_type, "xAxis": x_axis, "yAxis": y_axis, "chartData": series, "image": image}

    # =========================================================================
    # History and export
    # =========================================================================

    def history(
        self,
        user: str,
        analysis_type: Union[str, AnalysisType, None] = None,
        file_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        if analysis_type:
            analysis_type = parse_analysis_type(analysis_type)
        return self.store.list_history(user, analysis_type or None, file_id, page, limit)

    def export(
        self,
        user: str,
        file_id: str,
        analysis_type: Union[str, AnalysisType],
        fmt: str,
        today: Optional[date] = None,
    ) -> ExportedFile:
        """Export the latest stored analysis of a file."""
        if not file_id:
            raise InvalidRequestError("File ID is required")
        analysis_type = parse_analysis_type(analysis_type)

        record = self.store.find_latest(user, file_id, analysis_type)
        if record is None:
            raise AnalysisNotFoundError("Analysis not found")
        return self.exporter.export(record, fmt, today)

    def close(self):
        self.db.close()
