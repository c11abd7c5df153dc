"""Unit Tests for the error taxonomy and store_operation"""

import asyncio

import pytest

from colstore_connect.exceptions import (
    AlreadyExists,
    ColumnStoreError,
    IndexCreationIncomplete,
    IndexNotFound,
    NotFound,
    SchemaConflict,
    StoreConnectionError,
    StoreError,
    TableOfflineError,
    TableOnlineError,
    store_operation,
)


class TestHierarchy:
    """Test exception classes and their formatting."""

    def test_subclass_relationships(self):
        assert issubclass(AlreadyExists, SchemaConflict)
        assert issubclass(TableOnlineError, SchemaConflict)
        assert issubclass(TableOfflineError, StoreError)
        assert issubclass(IndexCreationIncomplete, StoreError)
        assert issubclass(IndexNotFound, NotFound)
        assert issubclass(StoreConnectionError, ConnectionError)
        for cls in (SchemaConflict, NotFound, StoreError, StoreConnectionError):
            assert issubclass(cls, ColumnStoreError)

    def test_str_includes_context_and_cause(self):
        error = StoreError(
            "put failed", RuntimeError("disk full"), operation="put", table="users"
        )
        text = str(error)
        assert "put failed" in text
        assert "operation=put" in text
        assert "table=users" in text
        assert "RuntimeError: disk full" in text

    def test_repr(self):
        error = NotFound("missing", table="users")
        assert repr(error).startswith("NotFound(message='missing'")

    def test_index_creation_incomplete_fields(self):
        error = IndexCreationIncomplete("partial", index_name="idx_age")
        assert error.index_name == "idx_age"
        assert error.registered is True


class TestStoreOperation:
    """Test context attachment and wrapping."""

    def test_typed_error_gains_context(self):
        with pytest.raises(NotFound) as exc_info:
            with store_operation("get", "users"):
                raise NotFound("no such table")

        assert exc_info.value.operation == "get"
        assert exc_info.value.table == "users"

    def test_existing_context_is_kept(self):
        with pytest.raises(NotFound) as exc_info:
            with store_operation("alter_table", "users"):
                raise NotFound("no family", operation="set_mob", table="other")

        assert exc_info.value.operation == "set_mob"
        assert exc_info.value.table == "other"

    def test_foreign_error_is_wrapped(self):
        with pytest.raises(StoreError) as exc_info:
            with store_operation("put", "users"):
                raise KeyError("boom")

        error = exc_info.value
        assert isinstance(error.original_error, KeyError)
        assert error.__cause__ is error.original_error
        assert error.operation == "put"

    def test_connection_error_is_wrapped(self):
        with pytest.raises(StoreConnectionError):
            with store_operation("scan", "users"):
                raise ConnectionResetError("reset")

    def test_timeout_becomes_store_error(self):
        with pytest.raises(StoreError, match="timed out"):
            with store_operation("scan", "users"):
                raise TimeoutError()

    def test_cancellation_is_not_wrapped(self):
        with pytest.raises(asyncio.CancelledError):
            with store_operation("scan", "users"):
                raise asyncio.CancelledError()
