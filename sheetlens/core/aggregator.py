"""
Aggregator

Computes column-level numeric statistics over parsed rows. Detection is
permissive: a column is numeric as soon as one row holds a parseable
number for it, and the non-numeric values in that column are ignored.
"""

from typing import List, Sequence
import logging

import pandas as pd

from sheetlens.core.records import AggregateStats, ColumnStats, RowRecord, coerce_number

logger = logging.getLogger(__name__)


def columns_of(rows: Sequence[RowRecord]) -> List[str]:
    """All column names across rows, in first-seen order."""
    seen = {}
    for row in rows:
        for name in row.keys():
            if name not in seen:
                seen[name] = True
    return list(seen)


def numeric_values(rows: Sequence[RowRecord], column: str) -> pd.Series:
    """The parseable numeric values of one column (invalid values dropped)."""
    values = pd.Series([coerce_number(row.get(column)) for row in rows], dtype="float64")
    return values.dropna()


def aggregate(rows: Sequence[RowRecord]) -> AggregateStats:
    """
    Compute sum/avg/min/max/count for every numeric column.

    Counts cover valid numeric values only, not the total row count.
    Columns without a single parseable value are left out entirely.
    """
    if not rows:
        return AggregateStats()

    numeric_columns = []
    stats = {}
    for column in columns_of(rows):
        values = numeric_values(rows, column)
        if values.empty:
            continue

        numeric_columns.append(column)
        stats[column] = ColumnStats(
            sum=float(values.sum()),
            avg=float(values.mean()),
            min=float(values.min()),
            max=float(values.max()),
            count=int(values.size),
        )

    logger.debug(f"Aggregated {len(rows)} rows: {len(numeric_columns)} numeric columns")
    return AggregateStats(
        total_rows=len(rows),
        numeric_columns=numeric_columns,
        stats=stats,
    )
