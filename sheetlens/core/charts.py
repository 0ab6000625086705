"""
SheetLens - Chart Rendering Module
Renders chart payloads (labels + datasets) to PNG, JPG or PDF

Used by the image exports and custom charts.
"""

from typing import Any, Dict, List, Optional
import io
import logging

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt

from sheetlens.config import ExportConfig

logger = logging.getLogger(__name__)

# Default chart kind per named series in a view payload
CHART_KINDS = {
    'monthly': 'line',
    'weekly': 'bar',
    'status': 'bar',
    'category': 'bar',
    'daily': 'line',
    'products': 'pie',
}

# Output format -> matplotlib savefig format
IMAGE_FORMATS = {
    'png': 'png',
    'jpg': 'jpeg',
    'pdf': 'pdf',
}


class ChartRenderer:
    """
    Renders one chart series to image bytes.

    Supported kinds: bar, line, pie, scatter.
    """

    FALLBACK_COLOR = '#4F46E5'

    # Chart style settings
    STYLE = {
        'figure.facecolor': 'white',
        'axes.facecolor': 'white',
        'axes.edgecolor': '#E5E7EB',
        'axes.labelcolor': '#374151',
        'axes.titleweight': 'bold',
        'axes.titlesize': 14,
        'axes.labelsize': 12,
        'xtick.color': '#6B7280',
        'ytick.color': '#6B7280',
        'grid.color': '#F3F4F6',
        'grid.linestyle': '-',
        'grid.alpha': 0.8,
        'font.family': 'sans-serif',
    }

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def render(self, series: Dict[str, Any], title: str = '', kind: str = 'bar',
               fmt: str = 'png') -> bytes:
        """
        Render a chart series dict ({labels, datasets}) to an image.

        Args:
            series: Chart series in payload form
            title: Chart title
            kind: bar, line, pie or scatter
            fmt: png, jpg or pdf

        Returns:
            Image bytes in the requested format
        """
        if fmt not in IMAGE_FORMATS:
            raise ValueError(f"Unsupported image format: {fmt}")
        labels = [str(label) for label in (series or {}).get('labels', [])]
        datasets = (series or {}).get('datasets', [])

        with plt.rc_context(self.STYLE):
            fig, ax = plt.subplots(figsize=(self.config.chart_width, self.config.chart_height))

            if not labels or not datasets:
                self._draw_placeholder(ax)
            elif kind == 'pie':
                self._draw_pie(ax, labels, datasets[0])
            else:
                self._draw_series(ax, labels, datasets, kind)

            ax.set_title(title)
            plt.tight_layout()
            return self._save_image(fig, fmt)

    def render_placeholder(self, title: str = '', fmt: str = 'png') -> bytes:
        """Image used when an analysis has nothing to chart."""
        return self.render({}, title=title, fmt=fmt)

    def _draw_placeholder(self, ax):
        ax.text(0.5, 0.5, 'No data available', ha='center', va='center',
                fontsize=16, color='#6B7280', transform=ax.transAxes)
        ax.axis('off')

    def _draw_pie(self, ax, labels: List[str], dataset: Dict[str, Any]):
        values = [max(float(v or 0), 0.0) for v in dataset.get('data', [])]
        if not any(values):
            self._draw_placeholder(ax)
            return

        colors = dataset.get('backgroundColor')
        if not isinstance(colors, list):
            colors = None

        wedges, texts, autotexts = ax.pie(
            values,
            labels=labels,
            autopct='%1.1f%%',
            colors=colors,
            startangle=90,
        )
        for autotext in autotexts:
            autotext.set_fontsize(10)
            autotext.set_color('white')
            autotext.set_weight('bold')
        ax.axis('equal')

    def _draw_series(self, ax, labels: List[str], datasets: List[Dict[str, Any]], kind: str):
        positions = list(range(len(labels)))
        width = 0.8 / max(len(datasets), 1)

        for i, dataset in enumerate(datasets):
            values = [float(v or 0) for v in dataset.get('data', [])]
            color = dataset.get('borderColor') or dataset.get('backgroundColor')
            if isinstance(color, list):
                color = color[0] if color else None
            color = color or self.FALLBACK_COLOR
            label = dataset.get('label')

            if kind == 'line':
                ax.plot(positions, values, color=color, marker='o', linewidth=2, label=label)
            elif kind == 'scatter':
                ax.scatter(positions, values, color=color, label=label)
            else:
                bar_colors = dataset.get('backgroundColor')
                if not isinstance(bar_colors, list):
                    bar_colors = color
                offsets = [p + (i - (len(datasets) - 1) / 2) * width for p in positions]
                ax.bar(offsets, values, width=width, color=bar_colors, edgecolor='white', label=label)

        ax.set_xticks(positions)
        ax.set_xticklabels(labels, rotation=45 if len(labels) > 6 else 0, ha='right' if len(labels) > 6 else 'center')
        ax.grid(axis='y', alpha=0.3)
        ax.set_axisbelow(True)
        if len(datasets) > 1:
            ax.legend()

    def _save_image(self, fig, fmt: str) -> bytes:
        buf = io.BytesIO()
        fig.savefig(buf, format=IMAGE_FORMATS[fmt], dpi=self.config.chart_dpi, bbox_inches='tight', facecolor='white')
        plt.close(fig)
        buf.seek(0)
        return buf.read()


def render_first_chart(payload: Optional[Dict[str, Any]], renderer: Optional[ChartRenderer] = None,
                       fmt: str = 'png') -> bytes:
    """Render the first chart of an analysis payload, or a placeholder."""
    renderer = renderer or ChartRenderer()
    chart_data = (payload or {}).get('chartData') or {}
    if not chart_data:
        return renderer.render_placeholder('No data', fmt=fmt)

    name, series = next(iter(chart_data.items()))
    kind = CHART_KINDS.get(name, 'bar')
    title = name.replace('_', ' ').title()
    logger.debug(f"Rendering {kind} chart '{name}' as {fmt}")
    return renderer.render(series, title=title, kind=kind, fmt=fmt)
