from __future__ import annotations

import json
from typing import Any, Iterable, Literal, Mapping, Sequence

from pydantic import BaseModel

from fizzy.api.errors import ValidationError

OutputFormat = Literal["json", "table"]

EMPTY_TABLE = "No results."


def _plain(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_plain(item) for item in data]
    if isinstance(data, dict):
        return {key: _plain(value) for key, value in data.items()}
    return data


def format_json(data: Any) -> str:
    return json.dumps(_plain(data), indent=2, ensure_ascii=False, default=str)


def format_value(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _get(row: Any, column: str) -> Any:
    # Dotted columns reach into nested objects, e.g. "creator.name".
    value: Any = row
    for part in column.split("."):
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            return None
    return value


def format_table(rows: Iterable[Any], columns: Sequence[str] | None = None) -> str:
    """Render rows as a left-aligned plain-text table with a header rule."""
    plain_rows = [_plain(row) for row in rows]
    if not plain_rows:
        return EMPTY_TABLE

    if columns is None:
        first = plain_rows[0]
        columns = list(first) if isinstance(first, Mapping) else ["value"]

    if all(isinstance(row, Mapping) for row in plain_rows):
        cells = [[format_value(_get(row, column)) for column in columns] for row in plain_rows]
    else:
        cells = [[format_value(row)] for row in plain_rows]
        columns = ["value"]

    headers = [column.upper() for column in columns]
    widths = [max(len(headers[i]), *(len(row[i]) for row in cells)) for i in range(len(headers))]

    def line(values: Sequence[str]) -> str:
        return "  ".join(value.ljust(widths[i]) for i, value in enumerate(values)).rstrip()

    lines = [line(headers), line(["-" * width for width in widths])]
    lines.extend(line(row) for row in cells)
    return "\n".join(lines)


def format_record(record: Any, fields: Sequence[str] | None = None) -> str:
    data = _plain(record)
    if not isinstance(data, Mapping):
        return format_value(data)
    keys = list(fields) if fields is not None else list(data)
    if not keys:
        return EMPTY_TABLE
    width = max(len(key) for key in keys)
    return "\n".join(f"{key.ljust(width)}  {format_value(_get(data, key))}" for key in keys)


def format_output(data: Any, fmt: OutputFormat = "table", columns: Sequence[str] | None = None) -> str:
    if fmt == "json":
        return format_json(data)
    if isinstance(data, (list, tuple)):
        return format_table(data, columns)
    if data is None:
        return ""
    return format_record(data, columns)


def format_error(exc: BaseException) -> str:
    lines = [f"Error: {exc}"]
    if isinstance(exc, ValidationError) and exc.validation_details:
        for field_name, messages in exc.validation_details.items():
            if isinstance(messages, list):
                messages = ", ".join(str(message) for message in messages)
            lines.append(f"  {field_name}: {messages}")
    return "\n".join(lines)
