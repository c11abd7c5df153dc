"""Unit Tests for pydantic models

Tests configuration, descriptors, rows and permissions without a store.
"""

import os

import pytest
from pydantic import ValidationError

from colstore_connect.exceptions import AlreadyExists, NotFound
from colstore_connect.models import (
    Action,
    ColumnFamilyDescriptor,
    ColumnRef,
    IndexSpecification,
    Put,
    RegionInfo,
    Row,
    ScanRequest,
    StoreCapabilities,
    StoreConfig,
    TableDescriptor,
    UserPermission,
    ValueType,
    parse_actions,
    to_bytes,
)
from colstore_connect.models.data import Cell

ENV_NAMES = (
    "COLSTORE_URL",
    "COLSTORE_OPERATION_TIMEOUT",
    "COLSTORE_SCAN_CACHING",
    "COLSTORE_POOL_SIZE",
    "COLSTORE_ECHO_SQL",
)


class TestStoreConfig:
    """Test store configuration parsing."""

    def test_memory_url(self):
        config = StoreConfig(url="memory://cluster1")
        assert config.backend == "memory"
        assert config.cluster_name == "cluster1"

    def test_default_memory_cluster(self):
        assert StoreConfig(url="memory://").cluster_name == "default"

    def test_sqlite_url(self):
        config = StoreConfig(url="sqlite:///data/store.db")
        assert config.backend == "sqlite"
        assert config.cluster_name == "data/store.db"
        assert StoreConfig(url="sqlite://").cluster_name == ":memory:"

    def test_defaults(self):
        config = StoreConfig(url="memory://")
        assert config.operation_timeout == 30
        assert config.scan_caching == 100
        assert config.echo_sql is False

    def test_unsupported_backend(self):
        with pytest.raises(ValidationError, match="Unsupported store backend"):
            StoreConfig(url="postgresql://localhost/db")

    def test_invalid_url(self):
        with pytest.raises(ValidationError):
            StoreConfig(url="not a url")

    def test_timeout_bounds(self):
        with pytest.raises(ValidationError):
            StoreConfig(url="memory://", operation_timeout=0)

    def test_from_env(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "COLSTORE_URL=memory://from_env\n"
            "COLSTORE_OPERATION_TIMEOUT=5\n"
            "COLSTORE_SCAN_CACHING=1000\n"
            "COLSTORE_ECHO_SQL=true\n"
        )
        for name in ENV_NAMES:
            monkeypatch.delenv(name, raising=False)

        try:
            config = StoreConfig.from_env(str(env_file))
        finally:
            # load_dotenv writes straight into os.environ
            for name in ENV_NAMES:
                os.environ.pop(name, None)

        assert config.cluster_name == "from_env"
        assert config.operation_timeout == 5
        assert config.scan_caching == 1000
        assert config.echo_sql is True

    def test_from_env_requires_url(self, monkeypatch, tmp_path):
        monkeypatch.delenv("COLSTORE_URL", raising=False)
        empty = tmp_path / "empty.env"
        empty.write_text("")
        with pytest.raises(ValueError, match="COLSTORE_URL"):
            StoreConfig.from_env(str(empty))


class TestCapabilities:
    def test_feature_lists(self):
        capabilities = StoreCapabilities(secondary_indexes=True, mob=True)
        assert capabilities.get_supported_features() == ["secondary_indexes", "mob"]
        assert "access_control" in capabilities.get_unsupported_features()


class TestToBytes:
    """Test conversion of values to cell bytes."""

    def test_str_is_utf8(self):
        assert to_bytes("Ann") == b"Ann"
        assert to_bytes("é") == b"\xc3\xa9"

    def test_int_is_big_endian_long(self):
        assert to_bytes(20) == b"\x00\x00\x00\x00\x00\x00\x00\x14"
        assert to_bytes(-1) == b"\xff" * 8

    def test_bytes_pass_through(self):
        assert to_bytes(b"\x00\x01") == b"\x00\x01"
        assert to_bytes(bytearray(b"ab")) == b"ab"

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            to_bytes(1.5)  # type: ignore[arg-type]


class TestTableDescriptor:
    """Test descriptor helpers."""

    def test_family_helpers(self):
        descriptor = TableDescriptor(name="users", families=[ColumnFamilyDescriptor(name="info")])
        assert descriptor.has_family("info")
        assert not descriptor.has_family("education")

        descriptor.add_family(ColumnFamilyDescriptor(name="education"))
        assert descriptor.family_names == ["info", "education"]

        with pytest.raises(AlreadyExists):
            descriptor.add_family(ColumnFamilyDescriptor(name="info"))

        removed = descriptor.remove_family("education")
        assert removed.name == "education"
        with pytest.raises(NotFound):
            descriptor.remove_family("education")
        with pytest.raises(NotFound):
            descriptor.modify_family(ColumnFamilyDescriptor(name="missing"))

    def test_duplicate_families_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            TableDescriptor(
                name="users",
                families=[ColumnFamilyDescriptor(name="info"), ColumnFamilyDescriptor(name="info")],
            )

    def test_names(self):
        assert TableDescriptor(name="ns:users").namespace == "ns"
        assert TableDescriptor(name="users").namespace == "default"
        with pytest.raises(ValidationError):
            TableDescriptor(name="bad name")
        with pytest.raises(ValidationError):
            ColumnFamilyDescriptor(name="a:b")

    def test_values(self):
        descriptor = TableDescriptor(name="users")
        descriptor.set_value("OWNER", "ops")
        assert descriptor.get_value("OWNER") == b"ops"
        descriptor.remove_value("OWNER")
        assert descriptor.get_value("OWNER") is None

    def test_json_round_trip_keeps_binary_values(self):
        descriptor = TableDescriptor(name="users")
        descriptor.set_value("RAW", b"\xff\x00")
        restored = TableDescriptor.model_validate_json(descriptor.model_dump_json())
        assert restored.get_value("RAW") == b"\xff\x00"


class TestRowsAndPuts:
    """Test row addressing and values."""

    def test_column_ref_parse(self):
        assert ColumnRef.parse("info:name") == ColumnRef(family="info", qualifier="name")
        assert ColumnRef.parse(("info", "age")) == ColumnRef(family="info", qualifier="age")
        assert str(ColumnRef.parse("info:")) == "info:"
        with pytest.raises(ValueError):
            ColumnRef.parse("info")

    def test_put_build(self):
        put = Put.build("row1", {"info:name": "Ann", ("info", "age"): "20"})
        assert put.row_key == b"row1"
        assert put.families == {"info"}
        assert {(c.qualifier, c.value) for c in put.cells} == {("name", b"Ann"), ("age", b"20")}

    def test_put_requires_row_key(self):
        with pytest.raises(ValidationError):
            Put.build("", {"info:name": "Ann"})

    def test_row_latest_value(self):
        row = Row(
            row_key=b"r",
            cells=[
                Cell(family="info", qualifier="age", value=b"20", timestamp=1),
                Cell(family="info", qualifier="age", value=b"21", timestamp=2),
            ],
        )
        assert row.value("info", "age") == b"21"
        assert row.value("info", "name") is None
        assert row.to_dict() == {"info:age": b"21"}
        assert row.columns() == [ColumnRef(family="info", qualifier="age")]

    def test_scan_request_columns_and_range(self):
        request = ScanRequest(columns=["info:name"], start_row=b"b", stop_row=b"d")
        assert request.columns == [ColumnRef(family="info", qualifier="name")]
        assert request.in_range(b"b")
        assert request.in_range(b"c")
        assert not request.in_range(b"d")
        assert not request.in_range(b"a")

    def test_region_contains(self):
        region = RegionInfo(table="t", region_name="r1", start_key=b"D", end_key=b"F")
        assert region.contains(b"D")
        assert region.contains(b"E")
        assert not region.contains(b"F")
        assert RegionInfo(table="t", region_name="r2", start_key=b"H").contains(b"Z")


class TestIndexSpecification:
    def test_requires_columns(self):
        with pytest.raises(ValidationError):
            IndexSpecification(name="idx")

    def test_add_index_column_returns_copy(self):
        spec = IndexSpecification(
            name="idx", columns=[{"family": "info", "qualifier": "age"}]
        )
        extended = spec.add_index_column("info", "name", ValueType.STRING)
        assert len(spec.columns) == 1
        assert len(extended.columns) == 2
        assert extended.families == {"info"}

    def test_duplicate_columns_rejected(self):
        with pytest.raises(ValidationError):
            IndexSpecification(
                name="idx",
                columns=[
                    {"family": "info", "qualifier": "age"},
                    {"family": "info", "qualifier": "age"},
                ],
            )


class TestPermissions:
    def test_parse_actions(self):
        assert parse_actions("wr") == [Action.READ, Action.WRITE]
        assert parse_actions([Action.ADMIN, "R"]) == [Action.READ, Action.ADMIN]
        with pytest.raises(ValueError):
            parse_actions("")
        with pytest.raises(ValueError):
            parse_actions("Q")

    def test_scope_and_code(self):
        table_wide = UserPermission(principal="bob", table="t", actions="RW")
        assert table_wide.scope == "table"
        assert table_wide.code == "RW"
        family = UserPermission(principal="bob", table="t", family="info", actions="R")
        assert family.scope == "family"
        qualifier = UserPermission(
            principal="bob", table="t", family="info", qualifier="age", actions="R"
        )
        assert qualifier.scope == "qualifier"
        assert not qualifier.same_scope(family)
