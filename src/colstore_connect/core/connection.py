"""Long-lived store connection handing out short-lived handles."""

import logging
from typing import TYPE_CHECKING, Optional

from colstore_connect.core.scope import ResourceScope
from colstore_connect.exceptions import StoreConnectionError
from colstore_connect.models.capabilities import StoreCapabilities
from colstore_connect.models.config import StoreConfig

if TYPE_CHECKING:
    from colstore_connect.adapters.base import (
        AccessControlHandle,
        AdminHandle,
        BaseAdapter,
        IndexAdminHandle,
        TableHandle,
    )

logger = logging.getLogger(__name__)


class StoreConnection:
    """
    Manages the adapter connection shared by every component.

    The connection is safe to share across tasks. It never pools handles:
    each call to admin(), table() and friends returns a fresh ResourceScope
    that opens its own handle on entry and closes it on exit.
    """

    def __init__(self, config: StoreConfig, adapter: Optional["BaseAdapter"] = None):
        """
        Initialize store connection.

        Args:
            config: Store configuration with URL and tuning settings
            adapter: Adapter to use instead of the one the URL selects
        """
        self.config = config
        self._adapter = adapter

    @property
    def adapter(self) -> "BaseAdapter":
        """Adapter behind this connection, created on first use."""
        if self._adapter is None:
            from colstore_connect.adapters import create_adapter

            self._adapter = create_adapter(self.config)
        return self._adapter

    async def initialize(self) -> None:
        """
        Open the underlying connection.

        Raises:
            StoreConnectionError: If the store is unreachable
        """
        if self.is_initialized:
            return

        try:
            await self.adapter.connect()
        except StoreConnectionError:
            raise
        except Exception as e:
            raise StoreConnectionError(
                f"Failed to connect to {self.config.backend} store", e, operation="connect"
            ) from e
        logger.info(
            "Connected to %s store %s", self.config.backend, self.config.cluster_name
        )

    async def dispose(self) -> None:
        """Close the underlying connection. Disposing twice is a no-op."""
        if self._adapter is not None and self._adapter.is_connected:
            await self._adapter.close()
            logger.info("Disconnected from %s store", self.config.backend)

    @property
    def is_initialized(self) -> bool:
        """Check if the connection is open."""
        return self._adapter is not None and self._adapter.is_connected

    @property
    def capabilities(self) -> StoreCapabilities:
        """Optional features supported by the store."""
        return self.adapter.capabilities

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise StoreConnectionError(
                "StoreConnection not initialized. Call initialize() first."
            )

    def admin(self) -> ResourceScope["AdminHandle"]:
        """Scope owning a fresh administrative handle."""
        self._require_initialized()
        return ResourceScope(self.adapter.open_admin, "admin")

    def index_admin(self) -> ResourceScope["IndexAdminHandle"]:
        """Scope owning a fresh index coordinator handle."""
        self._require_initialized()
        return ResourceScope(self.adapter.open_index_admin, "index_admin")

    def table(self, name: str) -> ResourceScope["TableHandle"]:
        """Scope owning a fresh data handle bound to ``name``."""
        self._require_initialized()
        return ResourceScope(lambda: self.adapter.open_table(name), "table", name)

    def access_control(self) -> ResourceScope["AccessControlHandle"]:
        """Scope owning a fresh access-control handle."""
        self._require_initialized()
        return ResourceScope(self.adapter.open_access_control, "access_control")

    async def __aenter__(self) -> "StoreConnection":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()
