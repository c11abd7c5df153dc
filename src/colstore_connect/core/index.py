"""Secondary index management.

Creating an index is a two-phase operation: the index is registered with the
store's index coordinator, then the index column descriptor is recorded in
the table metadata through a disable, modify, enable cycle. The second phase
can fail after the first has succeeded, and that partial state is reported
as IndexCreationIncomplete rather than hidden.

The shared INDEX_COL_DESC value holds the index column descriptor. Each
fully created index also gets its own INDEX_COL_DESC:<name> entry, which is
what index_exists checks.
"""

import logging

from colstore_connect.core.connection import StoreConnection
from colstore_connect.core.schema import SchemaAdministrator
from colstore_connect.exceptions import (
    ColumnStoreError,
    IndexCreationIncomplete,
    IndexNotFound,
    StoreError,
    store_operation,
)
from colstore_connect.models.index import (
    DEFAULT_INDEX_COL_DESC,
    INDEX_COL_DESC_KEY,
    IndexSpecification,
    index_metadata_key,
)
from colstore_connect.models.schema import ColumnFamilyDescriptor, TableDescriptor

logger = logging.getLogger(__name__)


def index_column_descriptor() -> bytes:
    """Serialized descriptor of the family holding index data."""
    return ColumnFamilyDescriptor(name=DEFAULT_INDEX_COL_DESC).model_dump_json().encode("utf-8")


class IndexManager:
    """Create, drop and verify secondary indexes."""

    def __init__(self, connection: StoreConnection, schema: SchemaAdministrator):
        """
        Initialize index manager.

        Args:
            connection: Store connection
            schema: Administrator used to record index metadata
        """
        self.connection = connection
        self.schema = schema

    def _require_support(self, operation: str, table: str) -> None:
        if not self.connection.capabilities.secondary_indexes:
            raise StoreError(
                f"{self.connection.config.backend} store does not support secondary indexes",
                operation=operation,
                table=table,
            )

    async def create_index(self, table: str, spec: IndexSpecification) -> None:
        """
        Register an index and record it in the table metadata.

        Args:
            table: Table name
            spec: Index specification

        Raises:
            AlreadyExists: If an index with the same name is registered
            NotFound: If the table or an indexed family does not exist
            IndexCreationIncomplete: If registration succeeded but the
                metadata update failed
        """
        self._require_support("create_index", table)
        logger.debug("Creating index %s on %s", spec.name, table)

        with store_operation("create_index", table):
            async with self.connection.index_admin() as index_admin:
                await index_admin.add_index(table, spec)
        logger.debug("Registered index %s on %s", spec.name, table)

        def record(descriptor: TableDescriptor) -> None:
            column_descriptor = index_column_descriptor()
            descriptor.set_value(INDEX_COL_DESC_KEY, column_descriptor)
            descriptor.set_value(index_metadata_key(spec.name), column_descriptor)

        try:
            await self.schema.alter_table(table, record)
        except ColumnStoreError as e:
            logger.error(
                "Index %s is registered on %s but its metadata was not recorded",
                spec.name,
                table,
            )
            raise IndexCreationIncomplete(
                f"Index {spec.name} registered but table metadata update failed",
                index_name=spec.name,
                registered=True,
                original_error=e,
                operation="create_index",
                table=table,
            ) from e

        logger.info(
            "Created index %s on %s (%s)",
            spec.name,
            table,
            ", ".join(f"{c.family}:{c.qualifier}" for c in spec.columns),
        )

    async def drop_index(self, table: str, index_name: str) -> bool:
        """
        Deregister an index and clear its table metadata.

        Dropping an index that is not registered succeeds and leaves the
        table metadata untouched.

        Returns:
            True if an index was dropped, False if none was registered

        Raises:
            NotFound: If the table does not exist
        """
        self._require_support("drop_index", table)
        logger.debug("Dropping index %s on %s", index_name, table)

        with store_operation("drop_index", table):
            async with self.connection.index_admin() as index_admin:
                try:
                    await index_admin.drop_index(table, index_name)
                except IndexNotFound:
                    logger.info("Index %s on %s does not exist", index_name, table)
                    return False
                remaining = await index_admin.list_indexes(table)

        stale = [index_metadata_key(index_name)]
        if not remaining:
            stale.append(INDEX_COL_DESC_KEY)

        def forget(descriptor: TableDescriptor) -> None:
            for key in stale:
                descriptor.remove_value(key)

        descriptor = await self.schema.describe_table(table)
        if any(descriptor.get_value(key) is not None for key in stale):
            await self.schema.alter_table(table, forget)

        logger.info("Dropped index %s on %s", index_name, table)
        return True

    async def list_indexes(self, table: str) -> list[IndexSpecification]:
        """
        List indexes registered on a table.

        Raises:
            NotFound: If the table does not exist
        """
        self._require_support("list_indexes", table)
        with store_operation("list_indexes", table):
            async with self.connection.index_admin() as index_admin:
                return await index_admin.list_indexes(table)

    async def index_exists(self, table: str, index_name: str) -> bool:
        """
        Check that an index is registered and recorded in the table metadata.

        Returns:
            True only when both phases of create_index are in place
        """
        indexes = await self.list_indexes(table)
        if not any(spec.name == index_name for spec in indexes):
            return False
        descriptor = await self.schema.describe_table(table)
        return descriptor.get_value(index_metadata_key(index_name)) is not None
