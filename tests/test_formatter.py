import json

from fizzy.api.errors import ApiError, ValidationError
from fizzy.models.resources import Tag
from fizzy.output.formatter import (
    EMPTY_TABLE,
    format_error,
    format_json,
    format_output,
    format_record,
    format_table,
    format_value,
)


def test_format_json_dumps_models() -> None:
    rendered = format_json([Tag(id="t1", title="bug")])

    assert json.loads(rendered) == [{"id": "t1", "title": "bug", "created_at": None, "url": None}]
    assert rendered.startswith("[\n  {")


def test_format_value() -> None:
    assert format_value(None) == "-"
    assert format_value(True) == "yes"
    assert format_value(False) == "no"
    assert format_value(3) == "3"
    assert format_value(["a"]) == '["a"]'


def test_format_table_alignment_and_nested_columns() -> None:
    rows = [
        {"number": 1, "title": "Short", "board": {"name": "Roadmap"}},
        {"number": 12, "title": "A longer title", "board": None},
    ]

    table = format_table(rows, ["number", "title", "board.name"])

    assert table.splitlines() == [
        "NUMBER  TITLE           BOARD.NAME",
        "------  --------------  ----------",
        "1       Short           Roadmap",
        "12      A longer title  -",
    ]


def test_format_table_empty() -> None:
    assert format_table([]) == EMPTY_TABLE


def test_format_table_scalars() -> None:
    assert format_table([1, 2]).splitlines() == ["VALUE", "-----", "1", "2"]


def test_format_record() -> None:
    record = format_record({"id": "b1", "all_access": True, "creator": {"name": "Ada"}}, ["id", "all_access", "creator.name"])

    assert record.splitlines() == [
        "id            b1",
        "all_access    yes",
        "creator.name  Ada",
    ]


def test_format_output_dispatch() -> None:
    assert json.loads(format_output({"a": 1}, "json")) == {"a": 1}
    assert format_output([], "table") == EMPTY_TABLE
    assert format_output({"a": 1}, "table") == "a  1"
    assert format_output(None, "table") == ""


def test_format_error_includes_validation_details() -> None:
    error = ValidationError("Validation failed: invalid", validation_details={"name": ["can't be blank", "is too short"]})

    assert format_error(error).splitlines() == [
        "Error: Validation failed: invalid (status=422)",
        "  name: can't be blank, is too short",
    ]
    assert format_error(ApiError("Network error: refused")) == "Error: Network error: refused"
