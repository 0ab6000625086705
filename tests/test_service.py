"""Tests for the analysis service request modes."""

from datetime import date
from pathlib import Path

import pytest

from sheetlens.core.errors import (
    AnalysisNotFoundError,
    ExportFormatError,
    FileAccessDenied,
    FileMissingError,
    InvalidRequestError,
    StoreError,
)
from sheetlens.core.records import AnalysisType

ALICE = "alice@example.com"
BOB = "bob@example.com"


class TestAnalyze:
    def test_fetch_only_without_record(self, service, registered_csv):
        outcome = service.analyze(ALICE, registered_csv.id, "overview", fetch_only=True)
        assert outcome.success is True
        assert outcome.data is None
        assert outcome.to_dict()["data"] is None
        assert service.store.list_history(ALICE).total == 0

    def test_default_generates_then_reuses(self, service, registered_csv):
        first = service.analyze(ALICE, registered_csv.id, "sales")
        assert first.cached is False
        assert first.data["type"] == "sales"
        assert first.record.file_name == "sales.csv"

        second = service.analyze(ALICE, registered_csv.id, "sales")
        assert second.cached is True
        assert second.record.id == first.record.id
        assert service.store.list_history(ALICE).total == 1

    def test_fetch_only_returns_latest(self, service, registered_csv):
        generated = service.analyze(ALICE, registered_csv.id, "products")
        fetched = service.analyze(ALICE, registered_csv.id, "products", fetch_only=True)
        assert fetched.data == generated.data
        assert fetched.record.id == generated.record.id

    def test_generate_new_always_appends(self, service, registered_csv):
        first = service.analyze(ALICE, registered_csv.id, "overview", generate_new=True)
        second = service.analyze(ALICE, registered_csv.id, "overview", generate_new=True)
        assert second.record.id != first.record.id
        assert service.store.list_history(ALICE).total == 2

        latest = service.store.find_latest(ALICE, registered_csv.id, AnalysisType.OVERVIEW)
        assert latest.id == second.record.id

    def test_both_flags_rejected(self, service, registered_csv):
        with pytest.raises(InvalidRequestError):
            service.analyze(ALICE, registered_csv.id, "overview", fetch_only=True, generate_new=True)

    def test_invalid_type(self, service, registered_csv):
        with pytest.raises(InvalidRequestError):
            service.analyze(ALICE, registered_csv.id, "forecast")

    def test_type_is_case_insensitive(self, service, registered_csv):
        outcome = service.analyze(ALICE, registered_csv.id, "Sales")
        assert outcome.data["type"] == "sales"

    def test_no_data_is_persisted(self, service, text_only_csv):
        descriptor, _ = service.files.register(ALICE, "names.csv", text_only_csv.read_bytes())
        outcome = service.analyze(ALICE, descriptor.id, "overview")

        assert outcome.success is True
        assert outcome.data is None
        assert outcome.message
        assert outcome.record.has_data is False

        again = service.analyze(ALICE, descriptor.id, "overview", fetch_only=True)
        assert again.record.id == outcome.record.id
        assert again.data is None

    def test_empty_file_is_persisted_without_data(self, service):
        descriptor, _ = service.files.register(ALICE, "empty.csv", b"")
        outcome = service.analyze(ALICE, descriptor.id, "products")
        assert outcome.data is None
        assert outcome.record is not None
        assert outcome.record.data is None

    def test_save_failure_still_returns_payload(self, service, registered_csv, monkeypatch):
        def broken_save(*args, **kwargs):
            raise StoreError("disk full")

        monkeypatch.setattr(service.store, "save", broken_save)
        outcome = service.analyze(ALICE, registered_csv.id, "sales", generate_new=True)
        assert outcome.success is True
        assert outcome.data["summary"]["totalOrders"] == 4
        assert outcome.record is None


class TestFileAccess:
    def test_unknown_file(self, service):
        with pytest.raises(FileMissingError):
            service.analyze(ALICE, "nope", "overview")

    def test_foreign_file(self, service, registered_csv):
        with pytest.raises(FileAccessDenied):
            service.analyze(BOB, registered_csv.id, "overview")

    def test_foreign_fetch_only_sees_nothing(self, service, registered_csv):
        service.analyze(ALICE, registered_csv.id, "overview")
        outcome = service.analyze(BOB, registered_csv.id, "overview", fetch_only=True)
        assert outcome.data is None

    def test_file_gone_from_disk(self, service, registered_csv):
        Path(registered_csv.storage_path).unlink()
        with pytest.raises(FileMissingError):
            service.analyze(ALICE, registered_csv.id, "overview", generate_new=True)

    def test_missing_file_id(self, service):
        with pytest.raises(InvalidRequestError):
            service.analyze(ALICE, "", "overview")


class TestFileInfo:
    def test_describe_file(self, service, registered_csv):
        info = service.describe_file(ALICE, registered_csv.id)
        assert info["totalRows"] == 4
        assert info["totalColumns"] == 8
        assert info["numericColumns"] == ["amount", "price", "quantity"]
        assert info["allColumns"][0] == "date"
        assert service.store.list_history(ALICE).total == 0


class TestCustomChart:
    def test_chart_of_two_columns(self, service, registered_csv):
        chart = service.custom_chart(ALICE, registered_csv.id, "bar", "product", "amount")
        series = chart["chartData"]
        assert series["labels"] == ["Widget", "Gadget", "Widget", "Doohickey"]
        assert series["datasets"][0]["data"] == [120.5, 80.0, 60.25, 15.0]

    def test_non_numeric_y_becomes_zero(self, service, registered_csv):
        chart = service.custom_chart(ALICE, registered_csv.id, "line", "product", "status")
        assert chart["chartData"]["datasets"][0]["data"] == [0.0] * 4

    def test_pie_gets_one_colour_per_slice(self, service, registered_csv):
        chart = service.custom_chart(ALICE, registered_csv.id, "pie", "product", "amount")
        assert len(chart["chartData"]["datasets"][0]["backgroundColor"]) == 4

    def test_chart_is_rendered(self, service, registered_csv):
        chart = service.custom_chart(ALICE, registered_csv.id, "bar", "product", "amount", today=date(2024, 6, 15))
        assert chart["image"].content.startswith(b"\x89PNG")
        assert chart["image"].filename == "chart-bar-2024-06-15.png"
        assert service.store.list_history(ALICE).total == 0

    @pytest.mark.parametrize("fmt,signature", [("jpg", b"\xff\xd8"), ("PDF", b"%PDF")])
    def test_chart_image_formats(self, service, registered_csv, fmt, signature):
        chart = service.custom_chart(ALICE, registered_csv.id, "line", "product", "amount", fmt=fmt)
        assert chart["image"].content.startswith(signature)

    def test_unknown_chart_format(self, service, registered_csv):
        with pytest.raises(ExportFormatError):
            service.custom_chart(ALICE, registered_csv.id, "bar", "product", "amount", fmt="svg")

    @pytest.mark.parametrize("chart_type,x_axis,y_axis", [
        ("radar", "product", "amount"),
        ("bar", "product", "missing"),
        ("bar", None, "amount"),
    ])
    def test_invalid_requests(self, service, registered_csv, chart_type, x_axis, y_axis):
        with pytest.raises(InvalidRequestError):
            service.custom_chart(ALICE, registered_csv.id, chart_type, x_axis, y_axis)


class TestHistoryAndExport:
    def test_history_filters_by_type(self, service, registered_csv):
        service.analyze(ALICE, registered_csv.id, "overview")
        service.analyze(ALICE, registered_csv.id, "sales")
        page = service.history(ALICE, "sales")
        assert page.total == 1
        assert page.items[0]["type"] == "sales"
        assert service.history(ALICE).total == 2

    def test_export_latest(self, service, registered_csv):
        service.analyze(ALICE, registered_csv.id, "sales")
        exported = service.export(ALICE, registered_csv.id, "sales", "csv")
        assert exported.filename.startswith("analysis-sales-")
        assert exported.content.decode("utf-8").startswith("date,product,amount,status,customer")

    def test_export_without_analysis(self, service, registered_csv):
        with pytest.raises(AnalysisNotFoundError):
            service.export(ALICE, registered_csv.id, "sales", "csv")

    def test_export_is_owner_scoped(self, service, registered_csv):
        service.analyze(ALICE, registered_csv.id, "sales")
        with pytest.raises(AnalysisNotFoundError):
            service.export(BOB, registered_csv.id, "sales", "json")
