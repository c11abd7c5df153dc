"""Module Tests for IndexManager

Validates:
- Two-phase index creation and verification
- Partial failure reporting
- Drop semantics
"""

import pytest

from colstore_connect.client import ColumnStoreClient
from colstore_connect.exceptions import (
    AlreadyExists,
    IndexCreationIncomplete,
    IndexNotFound,
    NotFound,
    StoreError,
)
from colstore_connect.models import IndexColumn, IndexSpecification, TableState, ValueType
from colstore_connect.models.index import INDEX_COL_DESC_KEY, index_metadata_key
from colstore_connect.models.schema import ColumnFamilyDescriptor


@pytest.fixture
def age_index() -> IndexSpecification:
    return IndexSpecification(
        name="idx_age",
        columns=[IndexColumn(family="info", qualifier="age", value_type=ValueType.STRING)],
    )


class TestCreateIndex:
    """Test index creation."""

    async def test_create_records_metadata(
        self, client: ColumnStoreClient, users_table, age_index
    ):
        await client.indexes.create_index(users_table, age_index)

        assert await client.indexes.index_exists(users_table, "idx_age")
        assert [spec.name for spec in await client.indexes.list_indexes(users_table)] == [
            "idx_age"
        ]
        descriptor = await client.schema.describe_table(users_table)
        family = ColumnFamilyDescriptor.model_validate_json(
            descriptor.get_value(INDEX_COL_DESC_KEY)
        )
        assert family.name == "d"
        assert descriptor.get_value(index_metadata_key("idx_age")) is not None
        assert await client.schema.table_state(users_table) is TableState.ONLINE

    async def test_duplicate_index(self, client: ColumnStoreClient, users_table, age_index):
        await client.indexes.create_index(users_table, age_index)
        with pytest.raises(AlreadyExists):
            await client.indexes.create_index(users_table, age_index)

    async def test_missing_table(self, client: ColumnStoreClient, age_index):
        with pytest.raises(NotFound):
            await client.indexes.create_index("missing", age_index)

    async def test_missing_family(self, client: ColumnStoreClient, users_table):
        spec = IndexSpecification(
            name="idx_school", columns=[IndexColumn(family="education", qualifier="school")]
        )
        with pytest.raises(NotFound):
            await client.indexes.create_index(users_table, spec)
        assert not await client.indexes.index_exists(users_table, "idx_school")

    async def test_metadata_failure_is_reported_as_partial(
        self, client: ColumnStoreClient, users_table, age_index, monkeypatch
    ):
        async def failing_alter(table, mutate):
            raise StoreError("modify rejected", operation="alter_table", table=table)

        monkeypatch.setattr(client.indexes.schema, "alter_table", failing_alter)

        with pytest.raises(IndexCreationIncomplete) as exc_info:
            await client.indexes.create_index(users_table, age_index)

        error = exc_info.value
        assert error.registered is True
        assert error.index_name == "idx_age"
        assert isinstance(error.original_error, StoreError)

        monkeypatch.undo()
        registered = await client.indexes.list_indexes(users_table)
        assert [spec.name for spec in registered] == ["idx_age"]
        assert not await client.indexes.index_exists(users_table, "idx_age")


class TestDropIndex:
    async def test_drop(self, client: ColumnStoreClient, users_table, age_index):
        await client.indexes.create_index(users_table, age_index)
        assert await client.indexes.drop_index(users_table, "idx_age") is True
        assert not await client.indexes.index_exists(users_table, "idx_age")

    async def test_drop_missing_index(self, client: ColumnStoreClient, users_table):
        assert await client.indexes.drop_index(users_table, "never_created") is False

    async def test_drop_table_drops_indexes(
        self, client: ColumnStoreClient, users_table, users_descriptor, age_index
    ):
        await client.indexes.create_index(users_table, age_index)
        await client.schema.drop_table(users_table)
        await client.schema.create_table(users_descriptor)
        assert await client.indexes.list_indexes(users_table) == []

    async def test_drop_on_missing_table(self, client: ColumnStoreClient):
        with pytest.raises(NotFound) as exc_info:
            await client.indexes.drop_index("no_such_table", "idx_age")
        assert not isinstance(exc_info.value, IndexNotFound)
        assert exc_info.value.operation == "drop_index"

    async def test_drop_clears_only_its_own_metadata(
        self, client: ColumnStoreClient, users_table, age_index
    ):
        name_index = IndexSpecification(
            name="idx_name", columns=[IndexColumn(family="info", qualifier="name")]
        )
        await client.indexes.create_index(users_table, age_index)
        await client.indexes.create_index(users_table, name_index)

        await client.indexes.drop_index(users_table, "idx_age")
        descriptor = await client.schema.describe_table(users_table)
        assert descriptor.get_value(index_metadata_key("idx_age")) is None
        assert descriptor.get_value(INDEX_COL_DESC_KEY) is not None
        assert await client.indexes.index_exists(users_table, "idx_name")

        await client.indexes.drop_index(users_table, "idx_name")
        descriptor = await client.schema.describe_table(users_table)
        assert descriptor.get_value(INDEX_COL_DESC_KEY) is None


class TestIndexVerification:
    """index_exists reflects each index separately."""

    async def test_partial_index_not_masked_by_complete_one(
        self, client: ColumnStoreClient, users_table, age_index, monkeypatch
    ):
        await client.indexes.create_index(users_table, age_index)

        async def failing_alter(table, mutate):
            raise StoreError("modify rejected", operation="alter_table", table=table)

        monkeypatch.setattr(client.indexes.schema, "alter_table", failing_alter)
        name_index = IndexSpecification(
            name="idx_name", columns=[IndexColumn(family="info", qualifier="name")]
        )
        with pytest.raises(IndexCreationIncomplete):
            await client.indexes.create_index(users_table, name_index)
        monkeypatch.undo()

        assert await client.indexes.index_exists(users_table, "idx_age")
        assert not await client.indexes.index_exists(users_table, "idx_name")

    async def test_recreated_index_needs_its_own_metadata(
        self, client: ColumnStoreClient, users_table, age_index, monkeypatch
    ):
        await client.indexes.create_index(users_table, age_index)
        await client.indexes.drop_index(users_table, "idx_age")

        async def failing_alter(table, mutate):
            raise StoreError("modify rejected", operation="alter_table", table=table)

        monkeypatch.setattr(client.indexes.schema, "alter_table", failing_alter)
        with pytest.raises(IndexCreationIncomplete):
            await client.indexes.create_index(users_table, age_index)
        monkeypatch.undo()

        assert not await client.indexes.index_exists(users_table, "idx_age")
