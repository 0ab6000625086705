"""
SheetLens - Spreadsheet Analytics Service

Upload spreadsheet, CSV and JSON files and turn them into chart-ready
aggregate statistics for overview, sales and product analysis views.
"""

__version__ = "1.0.0"
__author__ = "SheetLens Team"

from sheetlens.config import SheetLensConfig
from sheetlens.core.records import AnalysisType

__all__ = ["SheetLensConfig", "AnalysisType", "__version__"]
