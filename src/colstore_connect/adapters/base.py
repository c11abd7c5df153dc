"""Base adapter and handle classes for store-specific implementations."""

from abc import ABC, abstractmethod
from collections import deque
from typing import Optional, Sequence

from colstore_connect.core.mob import StorageClass
from colstore_connect.exceptions import StoreError
from colstore_connect.models.access import UserPermission
from colstore_connect.models.capabilities import StoreCapabilities
from colstore_connect.models.config import StoreConfig
from colstore_connect.models.data import ColumnRef, Put, Row
from colstore_connect.models.index import IndexSpecification
from colstore_connect.models.scan import ScanRequest
from colstore_connect.models.schema import RegionInfo, TableDescriptor


class StoreHandle(ABC):
    """A short-lived handle that holds store-side resources until closed."""

    kind = "handle"

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the handle has been closed."""
        return self._closed

    async def close(self) -> None:
        """Release store-side resources. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        await self._release()

    async def _release(self) -> None:
        """Adapter-specific cleanup."""

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError(f"{self.kind} handle is closed")


class AdminHandle(StoreHandle):
    """Administrative protocol: table lifecycle and schema."""

    kind = "admin"

    @abstractmethod
    async def table_exists(self, name: str) -> bool:
        """Check whether a table exists."""
        ...

    @abstractmethod
    async def create_table(
        self, descriptor: TableDescriptor, split_keys: Optional[Sequence[bytes]] = None
    ) -> None:
        """
        Create a table, optionally pre-split at the given row keys.

        Raises:
            AlreadyExists: If the table is already present
        """
        ...

    @abstractmethod
    async def disable_table(self, name: str) -> None:
        """Take a table offline. Disabling an offline table is a no-op."""
        ...

    @abstractmethod
    async def enable_table(self, name: str) -> None:
        """Bring a table online. Enabling an online table is a no-op."""
        ...

    @abstractmethod
    async def is_table_enabled(self, name: str) -> bool:
        """
        Check whether a table is online.

        Raises:
            NotFound: If the table does not exist
        """
        ...

    @abstractmethod
    async def modify_table(self, name: str, descriptor: TableDescriptor) -> None:
        """
        Replace a table's schema.

        Raises:
            TableOnlineError: If the table is enabled
            NotFound: If the table does not exist
        """
        ...

    @abstractmethod
    async def delete_table(self, name: str) -> None:
        """
        Delete a table and its data.

        Raises:
            TableOnlineError: If the table is enabled
            NotFound: If the table does not exist
        """
        ...

    @abstractmethod
    async def get_table_descriptor(self, name: str) -> TableDescriptor:
        """
        Fetch a copy of a table's schema.

        Raises:
            NotFound: If the table does not exist
        """
        ...

    @abstractmethod
    async def list_tables(self) -> list[str]:
        """List table names in sorted order."""
        ...

    @abstractmethod
    async def list_regions(self, name: str) -> list[RegionInfo]:
        """List a table's regions ordered by start key."""
        ...

    @abstractmethod
    async def split_region(self, region_name: str, split_keys: Sequence[bytes]) -> None:
        """Split one region at every given key that falls strictly inside it."""
        ...

    @abstractmethod
    async def flush(self, name: str) -> None:
        """Persist a table's in-memory writes."""
        ...


class IndexAdminHandle(StoreHandle):
    """Index coordinator protocol."""

    kind = "index_admin"

    @abstractmethod
    async def add_index(self, table: str, spec: IndexSpecification) -> None:
        """
        Register a secondary index.

        Raises:
            AlreadyExists: If an index with the same name is registered
            NotFound: If the table or an indexed family does not exist
        """
        ...

    @abstractmethod
    async def drop_index(self, table: str, index_name: str) -> None:
        """
        Deregister a secondary index.

        Raises:
            NotFound: If the table does not exist
            IndexNotFound: If the index is not registered on the table
        """
        ...

    @abstractmethod
    async def list_indexes(self, table: str) -> list[IndexSpecification]:
        """List registered indexes of a table."""
        ...


class ScannerHandle(StoreHandle):
    """
    Forward-only cursor over rows in key order.

    Rows are fetched from the store ``caching`` at a time. Once exhausted
    the scanner keeps returning None; it cannot be restarted.
    """

    kind = "scanner"

    def __init__(self, request: ScanRequest, caching: int):
        super().__init__()
        self.request = request
        self.caching = caching
        self._buffer: deque[Row] = deque()
        self._exhausted = False
        self._returned = 0

    @abstractmethod
    async def _fetch(self, max_rows: int) -> list[Row]:
        """
        Fetch up to ``max_rows`` further matching rows.

        Returning fewer rows than requested marks the scan as exhausted.
        """
        ...

    async def next(self) -> Optional[Row]:
        """Return the next row, or None at the end of the scan."""
        self._ensure_open()

        limit = self.request.limit
        if limit is not None and self._returned >= limit:
            return None

        if not self._buffer and not self._exhausted:
            rows = await self._fetch(self.caching)
            if len(rows) < self.caching:
                self._exhausted = True
            self._buffer.extend(rows)

        if not self._buffer:
            return None

        self._returned += 1
        return self._buffer.popleft()

    def __aiter__(self) -> "ScannerHandle":
        return self

    async def __anext__(self) -> Row:
        row = await self.next()
        if row is None:
            raise StopAsyncIteration
        return row


class TableHandle(StoreHandle):
    """Data protocol bound to one table."""

    kind = "table"

    def __init__(self, name: str):
        super().__init__()
        self.name = name

    @abstractmethod
    async def put(self, puts: Sequence[Put]) -> None:
        """
        Write puts; each put is atomic for its row, the batch is not.

        Raises:
            NotFound: If the table or a written family does not exist
        """
        ...

    @abstractmethod
    async def get(
        self, row_key: bytes, columns: Optional[Sequence[ColumnRef]] = None
    ) -> Optional[Row]:
        """Read a row, restricted to ``columns`` when given. None if absent."""
        ...

    @abstractmethod
    async def delete(self, row_key: bytes) -> None:
        """Delete every cell of a row. Missing rows are a no-op."""
        ...

    @abstractmethod
    async def get_scanner(self, request: ScanRequest, caching: int) -> ScannerHandle:
        """Open a scanner; the caller owns it and must close it."""
        ...

    @abstractmethod
    async def storage_classes(self, row_key: bytes) -> dict[str, StorageClass]:
        """Storage class of the newest version of each column, keyed "family:qualifier"."""
        ...


class AccessControlHandle(StoreHandle):
    """Access-control protocol."""

    kind = "access_control"

    @abstractmethod
    async def grant(self, permission: UserPermission) -> None:
        """Add actions to a principal at the permission's scope."""
        ...

    @abstractmethod
    async def revoke(self, permission: UserPermission) -> None:
        """Remove actions from a principal at the permission's scope."""
        ...

    @abstractmethod
    async def get_user_permissions(self, table: str) -> list[UserPermission]:
        """List permissions granted on a table."""
        ...


class BaseAdapter(ABC):
    """Base adapter defining the store-specific interface."""

    def __init__(self, config: StoreConfig):
        """
        Initialize adapter.

        Args:
            config: Store configuration
        """
        self.config = config

    @property
    @abstractmethod
    def capabilities(self) -> StoreCapabilities:
        """Get capabilities for this store type."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether connect() has run and close() has not."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the long-lived connection.

        Raises:
            StoreConnectionError: If the store is unreachable
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Closing twice is a no-op."""
        ...

    @abstractmethod
    async def open_admin(self) -> AdminHandle:
        """Open an administrative handle."""
        ...

    @abstractmethod
    async def open_index_admin(self) -> IndexAdminHandle:
        """Open an index coordinator handle."""
        ...

    @abstractmethod
    async def open_table(self, name: str) -> TableHandle:
        """Open a data handle bound to a table."""
        ...

    @abstractmethod
    async def open_access_control(self) -> AccessControlHandle:
        """Open an access-control handle."""
        ...
