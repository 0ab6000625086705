"""Tests for column statistics."""

import pytest

from sheetlens.core.aggregator import aggregate, columns_of
from sheetlens.core.records import coerce_date, coerce_number


def test_invalid_values_excluded_but_rows_counted():
    rows = [
        {"amount": "100", "date": "2024-01-15"},
        {"amount": "bad", "date": "2024-01-20"},
    ]
    stats = aggregate(rows)

    assert stats.total_rows == 2
    assert stats.numeric_columns == ["amount"]
    assert stats.stats["amount"].to_dict() == {
        "sum": 100.0, "avg": 100.0, "min": 100.0, "max": 100.0, "count": 1,
    }


def test_numeric_columns_are_exactly_those_with_a_number():
    rows = [
        {"name": "a", "qty": "", "price": "1.5"},
        {"name": "b", "qty": "3", "price": "x", "extra": None},
    ]
    stats = aggregate(rows)
    assert stats.numeric_columns == ["qty", "price"]
    assert "name" not in stats.stats
    assert "extra" not in stats.stats
    assert stats.stats["qty"].count == 1


def test_mixed_native_and_text_numbers():
    stats = aggregate([{"v": 2}, {"v": "4"}, {"v": 6.0}])
    col = stats.stats["v"]
    assert col.sum == 12.0
    assert col.avg == 4.0
    assert (col.min, col.max, col.count) == (2.0, 6.0, 3)


def test_empty_rows():
    stats = aggregate([])
    assert stats.total_rows == 0
    assert stats.numeric_columns == []
    assert stats.to_dict() == {"totalRows": 0, "numericColumns": [], "stats": {}}


def test_columns_in_first_seen_order():
    assert columns_of([{"b": 1, "a": 2}, {"c": 3, "a": 4}]) == ["b", "a", "c"]


@pytest.mark.parametrize("value,expected", [
    ("12.5", 12.5),
    (" 7 ", 7.0),
    (3, 3.0),
    ("", None),
    ("abc", None),
    (None, None),
    (True, None),
    ("nan", None),
    ("inf", None),
])
def test_coerce_number(value, expected):
    assert coerce_number(value) == expected


def test_coerce_date():
    assert coerce_date("2024-01-15").day == 15
    assert coerce_date("not a date") is None
    assert coerce_date("20240115") is None
    assert coerce_date("2024-01-15T10:00:00+02:00").hour == 8
