"""
Data Model

Row records, analysis types, chart series and the persisted analysis
and file entities shared by every stage of the pipeline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
import math
import warnings

import numpy as np
import pandas as pd


# A parsed data row: column name -> scalar (str, number, datetime or None)
RowRecord = Dict[str, Any]


class AnalysisType(Enum):
    """Analysis views a file can be shaped into."""
    OVERVIEW = "overview"
    SALES = "sales"
    PRODUCTS = "products"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


# Candidate field names per metric, in lookup priority order
AMOUNT_FIELDS = ("amount", "price", "total")
DATE_FIELDS = ("date", "createdAt", "orderDate")
PRODUCT_FIELDS = ("product", "name")
PRICE_FIELDS = ("price",)
STATUS_FIELDS = ("status",)
CATEGORY_FIELDS = ("category",)
CUSTOMER_FIELDS = ("customer", "customerName")
QUANTITY_FIELDS = ("quantity", "qty")


# ============================================================================
# Scalar coercion
# ============================================================================

def coerce_number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None when it is not numeric."""
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_date(value: Any) -> Optional[datetime]:
    """Return value as a naive UTC datetime, or None when it is not a date."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        # Bare numbers are amounts or ids, not dates
        if not text or coerce_number(text) is not None:
            return None
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            try:
                stamp = pd.to_datetime(text, errors="coerce")
            except (ValueError, TypeError, OverflowError):
                return None
        if stamp is None or pd.isna(stamp):
            return None
        parsed = stamp.to_pydatetime()
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def first_value(row: RowRecord, fields: Sequence[str]) -> Any:
    """First non-blank value among fields, else None."""
    for name in fields:
        value = row.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def first_number(row: RowRecord, fields: Sequence[str]) -> Optional[float]:
    """First numeric value among fields, else None."""
    for name in fields:
        number = coerce_number(row.get(name))
        if number is not None:
            return number
    return None


def first_present_number(row: RowRecord, fields: Sequence[str]) -> Optional[float]:
    """Number in the first non-blank field; None if that value does not parse."""
    return coerce_number(first_value(row, fields))


def first_date(row: RowRecord, fields: Sequence[str]) -> Optional[datetime]:
    """First parseable date among fields, else None."""
    for name in fields:
        parsed = coerce_date(row.get(name))
        if parsed is not None:
            return parsed
    return None


def first_text(row: RowRecord, fields: Sequence[str], default: str) -> str:
    value = first_value(row, fields)
    if value is None:
        return default
    return str(value).strip()


# ============================================================================
# Chart value objects
# ============================================================================

@dataclass
class ChartDataset:
    """One numeric series aligned positionally to the chart labels."""
    label: str
    data: List[float]
    background_color: Any = None  # single colour or one per point
    border_color: Any = None
    border_width: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "data": list(self.data),
            "backgroundColor": self.background_color,
            "borderColor": self.border_color,
            "borderWidth": self.border_width,
        }


@dataclass
class ChartSeries:
    """Labelled buckets plus one or more aligned datasets."""
    labels: List[str]
    datasets: List[ChartDataset] = field(default_factory=list)

    def __post_init__(self):
        for dataset in self.datasets:
            if len(dataset.data) != len(self.labels):
                raise ValueError(
                    f"Dataset '{dataset.label}' has {len(dataset.data)} values "
                    f"for {len(self.labels)} labels"
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labels": list(self.labels),
            "datasets": [dataset.to_dict() for dataset in self.datasets],
        }


# ============================================================================
# Aggregate statistics
# ============================================================================

@dataclass
class ColumnStats:
    """Statistics over the valid numeric values of one column."""
    sum: float
    avg: float
    min: float
    max: float
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sum": self.sum,
            "avg": self.avg,
            "min": self.min,
            "max": self.max,
            "count": self.count,
        }


@dataclass
class AggregateStats:
    """Column-level numeric statistics over a row sequence."""
    total_rows: int = 0
    numeric_columns: List[str] = field(default_factory=list)
    stats: Dict[str, ColumnStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "numericColumns": list(self.numeric_columns),
            "stats": {name: col.to_dict() for name, col in self.stats.items()},
        }


# ============================================================================
# Persisted entities
# ============================================================================

@dataclass
class FileDescriptor:
    """A stored source file, as recorded at upload time."""
    id: str
    filename: str
    original_name: str
    size: int
    owner_email: str
    storage_path: str
    status: str = "completed"
    columns: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "originalName": self.original_name,
            "size": self.size,
            "userEmail": self.owner_email,
            "status": self.status,
            "columns": list(self.columns),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class AnalysisRecord:
    """One persisted analysis result. Never mutated after insert."""
    id: int
    owner_email: str
    file_id: str
    file_name: str
    type: AnalysisType
    has_data: bool
    data: Optional[Dict[str, Any]]
    created_at: datetime

    def to_dict(self, include_data: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "userEmail": self.owner_email,
            "fileId": self.file_id,
            "fileName": self.file_name,
            "type": self.type.value,
            "hasData": self.has_data,
            "createdAt": self.created_at.isoformat(),
        }
        if include_data:
            result["data"] = self.data
        return result
