"""JSON rendering of rows and cells using orjson.

Row keys and cell values are raw bytes. They render as text when they are
valid UTF-8 and as base64 otherwise, so a rendered row is readable for the
common case of string-encoded data without losing binary values.
"""

import base64
from typing import Any, Iterable

import orjson
from pydantic import BaseModel

from colstore_connect.models.data import Row


def bytes_to_text(data: bytes) -> str:
    """Decode bytes as UTF-8, falling back to base64."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii")


def _default_handler(obj: Any) -> Any:
    """
    Custom default handler for types orjson doesn't handle natively.

    Raises:
        TypeError: If object cannot be serialized
    """
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes_to_text(bytes(obj))

    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)

    if isinstance(obj, BaseModel):
        return obj.model_dump()

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def row_to_json_safe(row: Row) -> dict[str, Any]:
    """
    Convert a row to a JSON-serializable dict.

    Args:
        row: Row returned by get or scan

    Returns:
        {"row_key": ..., "columns": {"family:qualifier": value}} with the
        latest value of each column
    """
    return {
        "row_key": bytes_to_text(row.row_key),
        "columns": {column: bytes_to_text(value) for column, value in row.to_dict().items()},
    }


def rows_to_json_safe(rows: Iterable[Row]) -> list[dict[str, Any]]:
    """Convert rows to JSON-serializable dicts."""
    return [row_to_json_safe(row) for row in rows]


def dumps(obj: Any) -> str:
    """
    Serialize object to JSON string using orjson.

    Rows are rendered with row_to_json_safe; other models are dumped field
    by field.

    Args:
        obj: Object to serialize

    Returns:
        JSON string
    """
    if isinstance(obj, Row):
        obj = row_to_json_safe(obj)
    elif isinstance(obj, list) and obj and all(isinstance(item, Row) for item in obj):
        obj = rows_to_json_safe(obj)
    return orjson.dumps(obj, default=_default_handler).decode("utf-8")
