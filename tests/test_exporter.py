"""Tests for analysis exports."""

import io
import json
from datetime import date, datetime

import openpyxl
import pytest

from sheetlens.core.builders import ProductsBuilder, SalesBuilder
from sheetlens.core.errors import ExportFormatError
from sheetlens.core.exporter import ExportFormatter, export_filename
from sheetlens.core.records import AnalysisRecord, AnalysisType

TODAY = date(2024, 6, 15)


def make_record(analysis_type, data):
    return AnalysisRecord(
        id=1,
        owner_email="alice@example.com",
        file_id="f1",
        file_name="sales.csv",
        type=analysis_type,
        has_data=data is not None,
        data=data,
        created_at=datetime(2024, 6, 15, 9, 30),
    )


@pytest.fixture
def formatter():
    return ExportFormatter()


@pytest.fixture
def products_record():
    rows = [
        {"product": "A", "price": "10", "quantity": "2"},
        {"product": "B", "price": "5", "quantity": "1"},
    ]
    payload = ProductsBuilder().build(rows).to_payload()
    return make_record(AnalysisType.PRODUCTS, payload)


def test_filename_pattern(formatter, products_record):
    exported = formatter.export(products_record, "csv", today=TODAY)
    assert exported.filename == "analysis-products-2024-06-15.csv"
    assert exported.mimetype == "text/csv"
    assert export_filename(products_record, "json", TODAY) == "analysis-products-2024-06-15.json"


def test_csv_table_rows(formatter, products_record):
    text = formatter.export(products_record, "csv", today=TODAY).content.decode("utf-8")
    lines = text.strip().splitlines()
    assert lines[0] == "rank,product,sales,quantity,orders,averagePrice,averageOrderValue,percentage"
    assert lines[1].startswith("1,A,20.0")
    assert len(lines) == 3


def test_csv_empty_table_is_header_only(formatter):
    record = make_record(AnalysisType.SALES, {"type": "sales", "summary": {}, "tableData": []})
    text = formatter.export(record, "csv").content.decode("utf-8")
    assert text.strip().splitlines() == ["date,product,amount,status,customer"]


def test_csv_summary_when_no_table(formatter):
    record = make_record(AnalysisType.OVERVIEW, {"type": "overview", "summary": {"totalSales": 12.5, "totalItems": 2}})
    lines = formatter.export(record, "csv").content.decode("utf-8").strip().splitlines()
    assert lines == ["totalSales,totalItems", "12.5,2"]


def test_csv_no_data_placeholder(formatter):
    record = make_record(AnalysisType.OVERVIEW, None)
    lines = formatter.export(record, "csv").content.decode("utf-8").strip().splitlines()
    assert lines == ["message", "No data available"]


def test_json_round_trip(formatter, products_record):
    content = formatter.export(products_record, "json").content
    assert json.loads(content) == products_record.data


def test_json_no_data_is_null(formatter):
    content = formatter.export(make_record(AnalysisType.SALES, None), "json").content
    assert json.loads(content) is None


def test_xlsx_table(formatter, products_record):
    content = formatter.export(products_record, "xlsx").content
    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    assert ws.cell(row=1, column=2).value == "product"
    assert ws.cell(row=1, column=2).font.bold
    assert ws.cell(row=2, column=2).value == "A"
    assert ws.cell(row=3, column=3).value == 5.0


def test_xlsx_summary_dump(formatter, sales_rows):
    payload = SalesBuilder().build(sales_rows).to_payload()
    payload.pop("tableData")
    content = formatter.export(make_record(AnalysisType.SALES, payload), "xlsx").content
    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    assert [ws.cell(row=1, column=1).value, ws.cell(row=1, column=2).value] == ["Metric", "Value"]
    metrics = {ws.cell(row=r, column=1).value: ws.cell(row=r, column=2).value for r in range(2, ws.max_row + 1)}
    assert metrics["totalOrders"] == 4


def test_xlsx_no_data(formatter):
    content = formatter.export(make_record(AnalysisType.OVERVIEW, None), "xlsx").content
    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    assert ws.cell(row=2, column=2).value == "No data available"


def test_png_chart(formatter, products_record):
    exported = formatter.export(products_record, "png")
    assert exported.mimetype == "image/png"
    assert exported.content.startswith(b"\x89PNG")


def test_png_placeholder(formatter):
    exported = formatter.export(make_record(AnalysisType.SALES, None), "png")
    assert exported.content.startswith(b"\x89PNG")


@pytest.mark.parametrize("fmt,mimetype,signature", [
    ("jpg", "image/jpeg", b"\xff\xd8"),
    ("pdf", "application/pdf", b"%PDF"),
])
def test_jpg_and_pdf_chart(formatter, products_record, fmt, mimetype, signature):
    exported = formatter.export(products_record, fmt)
    assert exported.mimetype == mimetype
    assert exported.filename.endswith(f".{fmt}")
    assert exported.content.startswith(signature)


def test_pdf_placeholder(formatter):
    exported = formatter.export(make_record(AnalysisType.OVERVIEW, None), "pdf")
    assert exported.content.startswith(b"%PDF")


def test_format_is_case_insensitive(formatter, products_record):
    assert formatter.export(products_record, "JSON").filename.endswith(".json")


def test_unsupported_format(formatter, products_record):
    with pytest.raises(ExportFormatError) as exc:
        formatter.export(products_record, "docx")
    assert exc.value.status_code == 400
