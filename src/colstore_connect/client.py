"""Client facade wiring one connection to every component."""

import logging
from typing import Optional, Union

from colstore_connect.adapters.base import BaseAdapter
from colstore_connect.core import (
    AccessControl,
    DataAccessor,
    IndexManager,
    LargeObjectPolicy,
    SchemaAdministrator,
    StoreConnection,
)
from colstore_connect.models.capabilities import StoreCapabilities
from colstore_connect.models.config import StoreConfig

logger = logging.getLogger(__name__)


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure root logging for scripts using the client.

    The library itself only emits records; applications that already
    configure logging should not call this.
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class ColumnStoreClient:
    """
    Entry point bundling a store connection with its components.

    Example:
        async with ColumnStoreClient("memory://demo") as client:
            await client.schema.create_table(descriptor)
            await client.data.put("t1", "row1", {"info:name": "Ann"})
    """

    def __init__(
        self,
        config: Union[StoreConfig, str],
        adapter: Optional[BaseAdapter] = None,
    ):
        """
        Initialize client.

        Args:
            config: Store configuration or store URL
            adapter: Adapter to use instead of the one the URL selects
        """
        if isinstance(config, str):
            config = StoreConfig(url=config)
        self.config = config
        self.connection = StoreConnection(config, adapter)
        self.schema = SchemaAdministrator(self.connection)
        self.indexes = IndexManager(self.connection, self.schema)
        self.data = DataAccessor(self.connection)
        self.mob = LargeObjectPolicy(self.schema)
        self.acl = AccessControl(self.connection)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ColumnStoreClient":
        """Build a client from COLSTORE_* environment variables."""
        return cls(StoreConfig.from_env(env_file))

    @property
    def capabilities(self) -> StoreCapabilities:
        """Optional features supported by the store."""
        return self.connection.capabilities

    async def connect(self) -> None:
        """Open the store connection."""
        await self.connection.initialize()

    async def close(self) -> None:
        """Close the store connection."""
        await self.connection.dispose()

    async def __aenter__(self) -> "ColumnStoreClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
