from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

DEFAULT_MIME_TYPE = "application/octet-stream"

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


@dataclass(frozen=True)
class Upload:
    """A multipart body ready for ``httpx``: file tuples plus form fields."""
    files: dict[str, tuple[str, bytes, str]]
    data: dict[str, str]


def guess_mime_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower().lstrip(".")
    return _MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def flatten_fields(fields: Mapping[str, Any] | None) -> dict[str, str]:
    """Flatten one level of nesting into Rails-style ``parent[child]`` keys."""
    flat: dict[str, str] = {}
    if not fields:
        return flat
    for key, value in fields.items():
        if isinstance(value, Mapping):
            for nested_key, nested_value in value.items():
                flat[f"{key}[{nested_key}]"] = _form_value(nested_value)
        else:
            flat[key] = _form_value(value)
    return flat


def build_upload(
    file_path: str | Path,
    field_name: str,
    additional_fields: Mapping[str, Any] | None = None,
) -> Upload:
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    content = path.read_bytes()
    return Upload(
        files={field_name: (path.name, content, guess_mime_type(path.name))},
        data=flatten_fields(additional_fields),
    )
