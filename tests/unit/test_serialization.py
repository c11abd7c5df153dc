"""Tests for orjson rendering of rows."""

import base64

import orjson

from colstore_connect.models import ColumnRef, Put, Row, StoreCapabilities
from colstore_connect.utils.serialization import (
    bytes_to_text,
    dumps,
    row_to_json_safe,
    rows_to_json_safe,
)


def make_row(key: bytes, values: dict) -> Row:
    put = Put.build(key, values)
    return Row(row_key=put.row_key, cells=put.cells)


class TestBytesToText:
    def test_utf8_is_decoded(self):
        assert bytes_to_text(b"Ann") == "Ann"

    def test_binary_falls_back_to_base64(self):
        data = b"\xff\xfe\x00"
        assert bytes_to_text(data) == base64.b64encode(data).decode("ascii")


class TestRowRendering:
    """Test row conversion patterns."""

    def test_row_to_json_safe(self):
        row = make_row(b"1", {"info:name": "Ann", "info:age": "20"})
        assert row_to_json_safe(row) == {
            "row_key": "1",
            "columns": {"info:name": "Ann", "info:age": "20"},
        }

    def test_binary_values_render_as_base64(self):
        row = make_row(b"1", {"info:score": -1})
        rendered = row_to_json_safe(row)
        assert base64.b64decode(rendered["columns"]["info:score"]) == b"\xff" * 8

    def test_rows_to_json_safe(self):
        rows = [make_row(b"1", {"info:name": "Ann"}), make_row(b"2", {"info:name": "Bob"})]
        assert [r["row_key"] for r in rows_to_json_safe(rows)] == ["1", "2"]


class TestDumps:
    def test_dumps_row(self):
        row = make_row(b"1", {"info:name": "Ann"})
        assert orjson.loads(dumps(row)) == {"row_key": "1", "columns": {"info:name": "Ann"}}

    def test_dumps_row_list(self):
        rows = [make_row(b"1", {"info:name": "Ann"})]
        assert orjson.loads(dumps(rows))[0]["columns"] == {"info:name": "Ann"}

    def test_dumps_models_and_bytes(self):
        payload = {
            "capabilities": StoreCapabilities(mob=True),
            "columns": {ColumnRef(family="info", qualifier="age")},
            "raw": b"\x00\xff",
        }
        result = orjson.loads(dumps(payload))
        assert result["capabilities"]["mob"] is True
        assert result["columns"] == [{"family": "info", "qualifier": "age"}]
        assert result["raw"] == base64.b64encode(b"\x00\xff").decode("ascii")
