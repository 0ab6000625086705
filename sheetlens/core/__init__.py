"""Core pipeline modules for SheetLens."""

from sheetlens.core.parser import FileParser, parse_bytes, parse_file
from sheetlens.core.aggregator import aggregate
from sheetlens.core.builders import OverviewBuilder, SalesBuilder, ProductsBuilder, get_builder
from sheetlens.core.store import Database, AnalysisStore, FileRegistry
from sheetlens.core.exporter import ExportFormatter
from sheetlens.core.service import AnalysisService

__all__ = [
    "FileParser",
    "parse_bytes",
    "parse_file",
    "aggregate",
    "OverviewBuilder",
    "SalesBuilder",
    "ProductsBuilder",
    "get_builder",
    "Database",
    "AnalysisStore",
    "FileRegistry",
    "ExportFormatter",
    "AnalysisService",
]
