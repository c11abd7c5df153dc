"""Utility helpers."""

from .serialization import bytes_to_text, dumps, row_to_json_safe, rows_to_json_safe

__all__ = ["bytes_to_text", "dumps", "row_to_json_safe", "rows_to_json_safe"]
