"""Store adapters for specific store implementations."""

from .base import (
    AccessControlHandle,
    AdminHandle,
    BaseAdapter,
    IndexAdminHandle,
    ScannerHandle,
    StoreHandle,
    TableHandle,
)
from .memory import MemoryAdapter
from .sqlite import SqliteAdapter
from ..models.config import StoreConfig

__all__ = [
    "AccessControlHandle",
    "AdminHandle",
    "BaseAdapter",
    "IndexAdminHandle",
    "MemoryAdapter",
    "ScannerHandle",
    "SqliteAdapter",
    "StoreHandle",
    "TableHandle",
    "create_adapter",
]


def create_adapter(config: StoreConfig) -> BaseAdapter:
    """
    Factory function to create the appropriate store adapter.

    Args:
        config: Store configuration

    Returns:
        Store adapter instance

    Raises:
        ValueError: If the store backend is not supported
    """
    backend = config.backend

    adapters = {
        "memory": MemoryAdapter,
        "sqlite": SqliteAdapter,
    }

    adapter_class = adapters.get(backend)

    if adapter_class is None:
        raise ValueError(
            f"Unsupported store backend: {backend}. "
            f"Supported backends: {', '.join(adapters.keys())}"
        )

    return adapter_class(config)
