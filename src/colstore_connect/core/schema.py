"""Table lifecycle and schema administration.

A schema change on the store is a three-step protocol: the table is taken
offline, the new descriptor is submitted, and the table is brought back
online. SchemaAdministrator runs that sequence for every modification and
never skips the disable step, even when the change turns out to be a no-op.
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional, Sequence, Union

from colstore_connect.core.connection import StoreConnection
from colstore_connect.exceptions import AlreadyExists, TableOnlineError, store_operation
from colstore_connect.models.data import BytesLike, to_bytes
from colstore_connect.models.schema import (
    ColumnFamilyDescriptor,
    RegionInfo,
    TableDescriptor,
    TableState,
)

if TYPE_CHECKING:
    from colstore_connect.adapters.base import AdminHandle

logger = logging.getLogger(__name__)

# A mutation edits the descriptor in place or returns a replacement
DescriptorMutation = Callable[[TableDescriptor], Optional[TableDescriptor]]


class OfflineSession:
    """
    Permission to submit schema changes for a table that is currently offline.

    Sessions are only handed out by SchemaAdministrator after a successful
    disable, and they stop accepting changes once the table is re-enabled.
    """

    def __init__(self, admin: "AdminHandle", table: str):
        self._admin = admin
        self.table = table
        self._active = True

    @property
    def active(self) -> bool:
        """Whether the table is still offline under this session."""
        return self._active

    async def modify(self, descriptor: TableDescriptor) -> None:
        """
        Submit a new descriptor for the table.

        Raises:
            TableOnlineError: If the session has ended
        """
        if not self._active:
            raise TableOnlineError(
                f"Offline session for {self.table} has ended", table=self.table
            )
        await self._admin.modify_table(self.table, descriptor)

    def end(self) -> None:
        self._active = False


class SchemaAdministrator:
    """Create, alter and drop tables through short-lived admin handles."""

    def __init__(self, connection: StoreConnection):
        """
        Initialize schema administrator.

        Args:
            connection: Store connection
        """
        self.connection = connection

    async def create_table(
        self,
        descriptor: TableDescriptor,
        split_keys: Optional[Sequence[BytesLike]] = None,
    ) -> None:
        """
        Create a table.

        Args:
            descriptor: Table schema
            split_keys: Row keys at which to pre-split the table into regions

        Raises:
            AlreadyExists: If the table is already present
        """
        keys = [to_bytes(key) for key in split_keys or []]
        logger.debug("Creating table %s with %d split keys", descriptor.name, len(keys))

        with store_operation("create_table", descriptor.name):
            async with self.connection.admin() as admin:
                if await admin.table_exists(descriptor.name):
                    raise AlreadyExists(f"Table {descriptor.name} already exists")
                await admin.create_table(descriptor, keys or None)

        logger.info(
            "Created table %s (families: %s)",
            descriptor.name,
            ", ".join(descriptor.family_names) or "none",
        )

    @asynccontextmanager
    async def offline(self, name: str) -> AsyncIterator[OfflineSession]:
        """
        Take a table offline for the duration of the block.

        The table is re-enabled only when the block completes normally. If
        the block raises, the table stays offline and the error propagates;
        call enable_table() to bring it back.

        Example:
            async with schema.offline("t1") as session:
                await session.modify(descriptor)
        """
        async with self.connection.admin() as admin:
            await admin.disable_table(name)
            logger.debug("Table %s is offline", name)
            session = OfflineSession(admin, name)
            try:
                yield session
            finally:
                session.end()
            await admin.enable_table(name)
            logger.debug("Table %s is online", name)

    async def alter_table(self, name: str, mutate: DescriptorMutation) -> TableDescriptor:
        """
        Apply a change to a table's schema.

        Fetches the current descriptor, applies ``mutate`` locally and then
        runs disable, modify, enable. A failing ``mutate`` leaves the table
        untouched; a failing modify leaves it offline.

        Args:
            name: Table name
            mutate: Edits the descriptor in place or returns a new one

        Returns:
            The descriptor that was submitted

        Raises:
            NotFound: If the table does not exist
            StoreError: If the store rejects the change
        """
        logger.debug("Altering table %s", name)

        with store_operation("alter_table", name):
            async with self.connection.admin() as admin:
                descriptor = await admin.get_table_descriptor(name)
            replacement = mutate(descriptor)
            if isinstance(replacement, TableDescriptor):
                descriptor = replacement

            async with self.offline(name) as session:
                await session.modify(descriptor)

        logger.info("Altered table %s", name)
        return descriptor

    async def add_column_family(self, table: str, family: ColumnFamilyDescriptor) -> bool:
        """
        Add a column family unless the table already has one with that name.

        Returns:
            True if the family was added, False if it already existed
        """
        descriptor = await self.describe_table(table)
        if descriptor.has_family(family.name):
            logger.info("Table %s already has column family %s", table, family.name)
            return False

        await self.alter_table(table, lambda d: d.add_family(family))
        return True

    async def modify_column_family(self, table: str, family: ColumnFamilyDescriptor) -> None:
        """
        Replace the settings of an existing column family.

        Raises:
            NotFound: If the table or family does not exist
        """
        await self.alter_table(table, lambda d: d.modify_family(family))

    async def delete_column_family(self, table: str, family: str) -> None:
        """
        Remove a column family and its data.

        Raises:
            NotFound: If the table or family does not exist
        """
        await self.alter_table(table, lambda d: d.remove_family(family))

    async def set_table_value(self, table: str, key: str, value: Union[bytes, str]) -> None:
        """Set a schema-level metadata value on a table."""
        await self.alter_table(table, lambda d: d.set_value(key, value))

    async def drop_table(self, name: str) -> bool:
        """
        Drop a table if it exists.

        Returns:
            True if a table was dropped, False if there was nothing to drop
        """
        logger.debug("Dropping table %s", name)

        with store_operation("drop_table", name):
            async with self.connection.admin() as admin:
                if not await admin.table_exists(name):
                    logger.info("Table %s does not exist, nothing to drop", name)
                    return False
                await admin.disable_table(name)
                await admin.delete_table(name)

        logger.info("Dropped table %s", name)
        return True

    async def table_exists(self, name: str) -> bool:
        """Check whether a table exists."""
        with store_operation("table_exists", name):
            async with self.connection.admin() as admin:
                return await admin.table_exists(name)

    async def table_state(self, name: str) -> TableState:
        """Current lifecycle state of a table."""
        with store_operation("table_state", name):
            async with self.connection.admin() as admin:
                if not await admin.table_exists(name):
                    return TableState.ABSENT
                if await admin.is_table_enabled(name):
                    return TableState.ONLINE
                return TableState.OFFLINE

    async def describe_table(self, name: str) -> TableDescriptor:
        """
        Fetch a snapshot of a table's schema.

        Raises:
            NotFound: If the table does not exist
        """
        with store_operation("describe_table", name):
            async with self.connection.admin() as admin:
                return await admin.get_table_descriptor(name)

    async def list_tables(self) -> list[str]:
        """List table names in sorted order."""
        with store_operation("list_tables"):
            async with self.connection.admin() as admin:
                return await admin.list_tables()

    async def enable_table(self, name: str) -> None:
        """Bring a table online. Enabling an online table is a no-op."""
        with store_operation("enable_table", name):
            async with self.connection.admin() as admin:
                await admin.enable_table(name)
        logger.info("Enabled table %s", name)

    async def disable_table(self, name: str) -> None:
        """Take a table offline. Disabling an offline table is a no-op."""
        with store_operation("disable_table", name):
            async with self.connection.admin() as admin:
                await admin.disable_table(name)
        logger.info("Disabled table %s", name)

    async def list_regions(self, name: str) -> list[RegionInfo]:
        """List a table's regions ordered by start key."""
        with store_operation("list_regions", name):
            async with self.connection.admin() as admin:
                return await admin.list_regions(name)

    async def split_table(self, name: str, split_keys: Sequence[BytesLike]) -> list[RegionInfo]:
        """
        Split every region of a table at the given keys that fall inside it.

        Args:
            name: Table name
            split_keys: Row keys to split at

        Returns:
            Regions of the table after the split

        Raises:
            NotFound: If the table does not exist
            ValueError: If no split key is given
        """
        keys = sorted({to_bytes(key) for key in split_keys})
        if not keys or not all(keys):
            raise ValueError("split_table needs at least one non-empty split key")

        logger.debug("Splitting table %s at %d keys", name, len(keys))

        with store_operation("split_table", name):
            async with self.connection.admin() as admin:
                for region in await admin.list_regions(name):
                    inside = [
                        key
                        for key in keys
                        if key != region.start_key and region.contains(key)
                    ]
                    if inside:
                        await admin.split_region(region.region_name, inside)
                regions = await admin.list_regions(name)

        logger.info("Split table %s into %d regions", name, len(regions))
        return regions

    async def flush_table(self, name: str) -> None:
        """Persist a table's in-memory writes."""
        with store_operation("flush_table", name):
            async with self.connection.admin() as admin:
                await admin.flush(name)
        logger.info("Flushed table %s", name)
