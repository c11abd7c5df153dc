"""Row reads, writes, deletes and scans."""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping, Optional, Sequence

from colstore_connect.core.connection import StoreConnection
from colstore_connect.core.mob import StorageClass
from colstore_connect.core.scope import ResourceScope
from colstore_connect.exceptions import store_operation
from colstore_connect.models.data import BytesLike, ColumnLike, ColumnRef, Put, Row, to_bytes
from colstore_connect.models.scan import ScanRequest
from colstore_connect.utils.serialization import bytes_to_text

if TYPE_CHECKING:
    from colstore_connect.adapters.base import ScannerHandle

logger = logging.getLogger(__name__)


class ScanCursor:
    """
    Forward-only async iterator over the rows of one scan.

    Rows arrive in ascending row-key order, a page at a time. The cursor
    cannot be restarted; open a new scan to read again.
    """

    def __init__(self, scanner: "ScannerHandle", table: str):
        self._scanner = scanner
        self.table = table
        self.rows_read = 0

    async def next(self) -> Optional[Row]:
        """Return the next row, or None at the end of the scan."""
        with store_operation("scan", self.table):
            row = await self._scanner.next()
        if row is not None:
            self.rows_read += 1
        return row

    def __aiter__(self) -> "ScanCursor":
        return self

    async def __anext__(self) -> Row:
        row = await self.next()
        if row is None:
            raise StopAsyncIteration
        return row


class DataAccessor:
    """Put, get, delete and scan rows through short-lived table handles."""

    def __init__(self, connection: StoreConnection):
        """
        Initialize data accessor.

        Args:
            connection: Store connection
        """
        self.connection = connection

    async def put(self, table: str, row_key: BytesLike, values: Mapping[Any, BytesLike]) -> None:
        """
        Write one row atomically.

        Args:
            table: Table name
            row_key: Row key
            values: Mapping of 'family:qualifier' (or ColumnRef) to value;
                str is UTF-8 encoded, int becomes an 8-byte long

        Raises:
            NotFound: If the table or a written family does not exist
            TableOfflineError: If the table is disabled
        """
        await self.put_many(table, [Put.build(row_key, values)])

    async def put_many(self, table: str, puts: Sequence[Put]) -> None:
        """
        Write several rows. Each row is atomic, the batch as a whole is not.

        Raises:
            NotFound: If the table or a written family does not exist
            TableOfflineError: If the table is disabled
        """
        if not puts:
            return
        logger.debug("Writing %d rows to %s", len(puts), table)

        with store_operation("put", table):
            async with self.connection.table(table) as handle:
                await handle.put(puts)

        logger.info("Wrote %d rows to %s", len(puts), table)

    async def get(
        self,
        table: str,
        row_key: BytesLike,
        columns: Optional[Sequence[ColumnLike]] = None,
    ) -> Row:
        """
        Read one row.

        Args:
            table: Table name
            row_key: Row key
            columns: Columns to return (None returns every column)

        Returns:
            The row; empty when it does not exist
        """
        key = to_bytes(row_key)
        refs = [ColumnRef.parse(column) for column in columns] if columns else None

        with store_operation("get", table):
            async with self.connection.table(table) as handle:
                row = await handle.get(key, refs)

        if row is None:
            logger.debug("Row %s not found in %s", bytes_to_text(key), table)
            return Row(row_key=key)
        return row

    async def delete(self, table: str, row_key: BytesLike) -> None:
        """Delete every cell of a row. Deleting a missing row succeeds."""
        key = to_bytes(row_key)

        with store_operation("delete", table):
            async with self.connection.table(table) as handle:
                await handle.delete(key)

        logger.info("Deleted row %s from %s", bytes_to_text(key), table)

    @asynccontextmanager
    async def scan(
        self, table: str, request: Optional[ScanRequest] = None
    ) -> AsyncIterator[ScanCursor]:
        """
        Open a scan over a table.

        The table handle and the scanner are released when the block exits,
        even if the cursor was only partly consumed.

        Example:
            async with accessor.scan("t1", ScanRequest(filter=f)) as rows:
                async for row in rows:
                    print(row.to_dict())

        Args:
            table: Table name
            request: Columns, filter, row range and paging (None scans everything)

        Yields:
            Cursor over matching rows
        """
        request = request or ScanRequest()
        caching = request.caching or self.connection.config.scan_caching
        logger.debug("Opening scan on %s (caching=%d)", table, caching)

        async with AsyncExitStack() as stack:
            with store_operation("scan", table):
                handle = await stack.enter_async_context(self.connection.table(table))
                scanner = await stack.enter_async_context(
                    ResourceScope(
                        lambda: handle.get_scanner(request, caching), "scanner", table
                    )
                )
            cursor = ScanCursor(scanner, table)
            yield cursor
            logger.debug("Closed scan on %s after %d rows", table, cursor.rows_read)

    async def scan_all(self, table: str, request: Optional[ScanRequest] = None) -> list[Row]:
        """Run a scan to completion and collect its rows."""
        async with self.scan(table, request) as cursor:
            return [row async for row in cursor]

    async def storage_classes(self, table: str, row_key: BytesLike) -> dict[str, StorageClass]:
        """
        Report where each column of a row is physically stored.

        Returns:
            Mapping of 'family:qualifier' to the storage class of its newest version
        """
        key = to_bytes(row_key)
        with store_operation("storage_classes", table):
            async with self.connection.table(table) as handle:
                return await handle.storage_classes(key)
