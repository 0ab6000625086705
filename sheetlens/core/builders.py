"""
SheetLens - View Builders

Shape parsed rows into chart-ready payloads for the three analysis views:

- overview: monthly and weekly sales over a trailing window
- sales: status tally, category totals, daily totals and recent sales
- products: top products by revenue with share of total

A missing numeric signal never raises. Series degrade to zeros or empty
buckets and the result carries has_data=False so callers can render a
"no data" state distinctly from a real zero.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
import logging

from sheetlens.config import AnalysisConfig
from sheetlens.core.aggregator import aggregate, columns_of
from sheetlens.core.records import (
    AMOUNT_FIELDS,
    CATEGORY_FIELDS,
    CUSTOMER_FIELDS,
    DATE_FIELDS,
    PRICE_FIELDS,
    PRODUCT_FIELDS,
    QUANTITY_FIELDS,
    STATUS_FIELDS,
    AggregateStats,
    AnalysisType,
    ChartDataset,
    ChartSeries,
    RowRecord,
    first_date,
    first_number,
    first_present_number,
    first_text,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)

SALES_STATUSES = ("Completed", "Pending", "Cancelled")

# Table columns per view, used when a table has no rows to take keys from
TABLE_COLUMNS = {
    AnalysisType.SALES: ["date", "product", "amount", "status", "customer"],
    AnalysisType.PRODUCTS: [
        "rank", "product", "sales", "quantity", "orders",
        "averagePrice", "averageOrderValue", "percentage",
    ],
}


def _money(value: float) -> float:
    return round(float(value), 2)


@dataclass
class BuildResult:
    """Chart, table and summary output of one view builder."""
    analysis_type: AnalysisType
    chart_data: Dict[str, ChartSeries]
    summary: Dict[str, Any]
    stats: AggregateStats
    has_data: bool
    table_data: Optional[List[Dict[str, Any]]] = None

    def to_payload(self) -> Dict[str, Any]:
        """JSON payload persisted as the analysis data."""
        payload = {
            "type": self.analysis_type.value,
            "chartData": {name: series.to_dict() for name, series in self.chart_data.items()},
            "summary": dict(self.summary),
            "stats": self.stats.to_dict(),
        }
        if self.table_data is not None:
            payload["tableData"] = [dict(row) for row in self.table_data]
        return payload


class ViewBuilder:
    """Base class for the analysis view builders."""

    analysis_type: AnalysisType = None

    # Color palette (consistent across charts)
    COLORS = [
        '#4F46E5',  # Indigo
        '#10B981',  # Emerald
        '#F59E0B',  # Amber
        '#EF4444',  # Red
        '#8B5CF6',  # Violet
        '#06B6D4',  # Cyan
        '#F97316',  # Orange
        '#EC4899',  # Pink
        '#84CC16',  # Lime
        '#6366F1',  # Indigo light
    ]

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    def build(
        self,
        rows: Sequence[RowRecord],
        stats: Optional[AggregateStats] = None,
        now: Optional[datetime] = None,
    ) -> BuildResult:
        """Build the view. Aggregates rows first when stats are not given."""
        if stats is None:
            stats = aggregate(rows)
        # Aware row dates are converted to naive UTC; "now" matches
        now = now or datetime.now(timezone.utc).replace(tzinfo=None)

        has_data = bool(rows) and bool(stats.numeric_columns)
        chart_data, table_data, summary = self._build(rows, now)

        summary.update({
            "totalRows": stats.total_rows,
            "totalColumns": len(columns_of(rows)),
            "numericColumns": len(stats.numeric_columns),
        })

        logger.debug(f"Built {self.analysis_type.value} view: has_data={has_data}")
        return BuildResult(
            analysis_type=self.analysis_type,
            chart_data=chart_data,
            summary=summary,
            stats=stats,
            has_data=has_data,
            table_data=table_data,
        )

    def _build(self, rows: Sequence[RowRecord], now: datetime):
        raise NotImplementedError

    def _palette(self, count: int) -> List[str]:
        return [self.COLORS[i % len(self.COLORS)] for i in range(count)]


class OverviewBuilder(ViewBuilder):
    """Monthly and weekly sales over a trailing window ending now."""

    analysis_type = AnalysisType.OVERVIEW

    def _month_keys(self, now: datetime) -> List[tuple]:
        keys = []
        for offset in range(self.config.window_months - 1, -1, -1):
            month_index = now.year * 12 + (now.month - 1) - offset
            keys.append((month_index // 12, month_index % 12 + 1))
        return keys

    def _build(self, rows, now):
        month_keys = self._month_keys(now)
        month_position = {key: i for i, key in enumerate(month_keys)}
        monthly = [0.0] * len(month_keys)

        week_count = self.config.weekly_buckets
        week_span = timedelta(days=7)
        weeks_start = now - week_span * week_count
        weekly = [0.0] * week_count

        total_sales = 0.0
        data_points = 0
        for row in rows:
            amount = first_present_number(row, AMOUNT_FIELDS) or 0.0
            total_sales += amount

            when = first_date(row, DATE_FIELDS)
            if when is None or when > now:
                continue

            position = month_position.get((when.year, when.month))
            if position is not None:
                monthly[position] += amount
                data_points += 1

            if when >= weeks_start:
                week = min(int((when - weeks_start) / week_span), week_count - 1)
                weekly[week] += amount

        month_labels = [datetime(year, month, 1).strftime("%b %Y") for year, month in month_keys]
        week_labels = [(weeks_start + week_span * i).strftime("%Y-%m-%d") for i in range(week_count)]

        chart_data = {
            "monthly": ChartSeries(
                labels=month_labels,
                datasets=[ChartDataset(
                    label="Monthly Sales",
                    data=[_money(v) for v in monthly],
                    background_color=self.COLORS[0],
                    border_color=self.COLORS[0],
                )],
            ),
            "weekly": ChartSeries(
                labels=week_labels,
                datasets=[ChartDataset(
                    label="Weekly Sales",
                    data=[_money(v) for v in weekly],
                    background_color=self.COLORS[1],
                    border_color=self.COLORS[1],
                )],
            ),
        }

        total_items = len(rows)
        summary = {
            "totalSales": _money(total_sales),
            "totalItems": total_items,
            "averageValue": _money(total_sales / total_items) if total_items else 0.0,
            "dataPoints": data_points,
        }
        return chart_data, None, summary


class SalesBuilder(ViewBuilder):
    """Sales grouped by status, category and date, plus the latest sales."""

    analysis_type = AnalysisType.SALES

    @staticmethod
    def _status_of(row: RowRecord) -> str:
        status = first_text(row, STATUS_FIELDS, "Completed")
        for known in SALES_STATUSES:
            if status.lower() == known.lower():
                return known
        return status

    def _build(self, rows, now):
        status_counts = {status: 0 for status in SALES_STATUSES}
        category_totals: Dict[str, float] = {}
        daily_totals: Dict[str, float] = {}
        dated_rows = []
        total_sales = 0.0

        for row in rows:
            amount = first_present_number(row, AMOUNT_FIELDS) or 0.0
            total_sales += amount

            status = self._status_of(row)
            status_counts[status] = status_counts.get(status, 0) + 1

            category = first_text(row, CATEGORY_FIELDS, "Uncategorized")
            category_totals[category] = category_totals.get(category, 0.0) + amount

            when = first_date(row, DATE_FIELDS)
            if when is not None:
                day = when.date().isoformat()
                daily_totals[day] = daily_totals.get(day, 0.0) + amount
            dated_rows.append((when, row, amount, status))

        days = sorted(daily_totals)
        chart_data = {
            "status": ChartSeries(
                labels=list(status_counts),
                datasets=[ChartDataset(
                    label="Orders by Status",
                    data=[float(count) for count in status_counts.values()],
                    background_color=self._palette(len(status_counts)),
                    border_color="#FFFFFF",
                )],
            ),
            "category": ChartSeries(
                labels=list(category_totals),
                datasets=[ChartDataset(
                    label="Sales by Category",
                    data=[_money(v) for v in category_totals.values()],
                    background_color=self.COLORS[0],
                    border_color=self.COLORS[0],
                )],
            ),
            "daily": ChartSeries(
                labels=days,
                datasets=[ChartDataset(
                    label="Daily Sales",
                    data=[_money(daily_totals[day]) for day in days],
                    background_color=self.COLORS[1],
                    border_color=self.COLORS[1],
                )],
            ),
        }

        recent = sorted(dated_rows, key=lambda item: item[0] or EPOCH, reverse=True)
        table_data = [
            {
                "date": when.date().isoformat() if when else "",
                "product": first_text(row, PRODUCT_FIELDS, "Unknown"),
                "amount": _money(amount),
                "status": status,
                "customer": first_text(row, CUSTOMER_FIELDS, "Unknown"),
            }
            for when, row, amount, status in recent[:self.config.recent_sales]
        ]

        total_orders = len(rows)
        summary = {
            "totalSales": _money(total_sales),
            "averageSale": _money(total_sales / total_orders) if total_orders else 0.0,
            "totalOrders": total_orders,
            "completedOrders": status_counts["Completed"],
            "pendingOrders": status_counts["Pending"],
            "cancelledOrders": status_counts["Cancelled"],
        }
        return chart_data, table_data, summary


@dataclass
class ProductTotals:
    """Running totals for one product."""
    name: str
    sales: float = 0.0
    quantity: float = 0.0
    orders: int = 0
    prices: List[float] = field(default_factory=list)

    @property
    def average_price(self) -> float:
        return sum(self.prices) / len(self.prices) if self.prices else 0.0

    @property
    def average_order_value(self) -> float:
        return self.sales / self.orders if self.orders else 0.0


class ProductsBuilder(ViewBuilder):
    """Top products by revenue, as a pie series and a ranked table."""

    analysis_type = AnalysisType.PRODUCTS

    @staticmethod
    def _group(rows: Sequence[RowRecord]) -> Dict[str, ProductTotals]:
        groups: Dict[str, ProductTotals] = {}
        for row in rows:
            name = first_text(row, PRODUCT_FIELDS, "Unknown")
            price = first_number(row, PRICE_FIELDS)
            quantity = first_number(row, QUANTITY_FIELDS)
            if quantity is None:
                quantity = 1.0

            totals = groups.setdefault(name, ProductTotals(name=name))
            totals.sales += (price or 0.0) * quantity
            totals.quantity += quantity
            totals.orders += 1
            if price is not None:
                totals.prices.append(price)
        return groups

    def _build(self, rows, now):
        groups = self._group(rows)
        grand_total = sum(totals.sales for totals in groups.values())

        # sorted() is stable, so ties keep first-seen order
        ranked = sorted(groups.values(), key=lambda totals: totals.sales, reverse=True)
        top = ranked[:self.config.top_products]

        table_data = []
        for rank, totals in enumerate(top, 1):
            share = totals.sales / grand_total * 100 if grand_total else 0.0
            table_data.append({
                "rank": rank,
                "product": totals.name,
                "sales": _money(totals.sales),
                "quantity": totals.quantity,
                "orders": totals.orders,
                "averagePrice": _money(totals.average_price),
                "averageOrderValue": _money(totals.average_order_value),
                "percentage": round(share, 2),
            })

        chart_data = {
            "products": ChartSeries(
                labels=[totals.name for totals in top],
                datasets=[ChartDataset(
                    label="Sales by Product",
                    data=[_money(totals.sales) for totals in top],
                    background_color=self._palette(len(top)),
                    border_color="#FFFFFF",
                )],
            ),
        }

        summary = {
            "totalProducts": len(groups),
            "totalSales": _money(grand_total),
            "totalQuantity": sum(totals.quantity for totals in groups.values()),
            "averageSale": _money(grand_total / len(rows)) if rows else 0.0,
            "topProduct": top[0].name if top else None,
        }
        return chart_data, table_data, summary


BUILDERS = {
    AnalysisType.OVERVIEW: OverviewBuilder,
    AnalysisType.SALES: SalesBuilder,
    AnalysisType.PRODUCTS: ProductsBuilder,
}


def get_builder(analysis_type: AnalysisType, config: Optional[AnalysisConfig] = None) -> ViewBuilder:
    """Builder instance for an analysis type."""
    return BUILDERS[analysis_type](config)
