"""Shared test fixtures for SheetLens."""

import csv
import json
from datetime import datetime, timedelta

import openpyxl
import pytest

from sheetlens.config import create_default_config
from sheetlens.core.service import AnalysisService

USER = "alice@example.com"
OTHER_USER = "bob@example.com"


def _recent(days_ago):
    return (datetime.now() - timedelta(days=days_ago)).strftime("%Y-%m-%d")


SALES_ROWS = [
    {"date": _recent(2), "product": "Widget", "amount": "120.50", "status": "Completed",
     "category": "Hardware", "customer": "Acme", "price": "60.25", "quantity": "2"},
    {"date": _recent(10), "product": "Gadget", "amount": "80", "status": "pending",
     "category": "Hardware", "customer": "Globex", "price": "80", "quantity": "1"},
    {"date": _recent(40), "product": "Widget", "amount": "60.25", "status": "Cancelled",
     "category": "", "customer": "", "price": "60.25", "quantity": "1"},
    {"date": "not a date", "product": "Doohickey", "amount": "15", "status": "Completed",
     "category": "Misc", "customer": "Initech", "price": "5", "quantity": "3"},
]


@pytest.fixture
def sales_rows():
    """Parsed-style rows with string values, one undated."""
    return [dict(row) for row in SALES_ROWS]


@pytest.fixture
def config(tmp_path):
    """Config rooted in a temporary directory."""
    return create_default_config(data_dir=str(tmp_path / "data"))


@pytest.fixture
def service(config):
    """Analysis service over a temporary SQLite store."""
    svc = AnalysisService(config)
    yield svc
    svc.close()


@pytest.fixture
def csv_bytes():
    """Sales rows as CSV content."""
    lines = [",".join(SALES_ROWS[0].keys())]
    for row in SALES_ROWS:
        lines.append(",".join(row.values()))
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "sales.csv"
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(SALES_ROWS[0].keys()))
        writer.writeheader()
        writer.writerows(SALES_ROWS)
    return path


@pytest.fixture
def xlsx_file(tmp_path):
    path = tmp_path / "products.xlsx"
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["product", "price", "quantity", "date"])
    ws.append(["A", 10, 2, datetime(2024, 1, 15)])
    ws.append([None, None, None, None])
    ws.append(["B", 5, 1, datetime(2024, 1, 20)])
    wb.save(path)
    return path


@pytest.fixture
def json_file(tmp_path):
    path = tmp_path / "orders.json"
    path.write_text(json.dumps([
        {"product": "A", "price": 10, "quantity": 2},
        {"product": "B", "price": 5, "quantity": 1},
    ]), encoding="utf-8")
    return path


@pytest.fixture
def text_only_csv(tmp_path):
    """A file with rows but no numeric column."""
    path = tmp_path / "names.csv"
    path.write_text("name,city\nAda,London\nGrace,New York\n", encoding="utf-8")
    return path


@pytest.fixture
def registered_csv(service, csv_bytes):
    """Sales CSV registered to USER."""
    descriptor, _ = service.files.register(USER, "sales.csv", csv_bytes)
    return descriptor
