"""Async administrative and data client for wide-column stores."""

from colstore_connect.client import ColumnStoreClient, configure_logging
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
)
from colstore_connect.models import (
    ColumnFamilyDescriptor,
    ScanRequest,
    StoreConfig,
    TableDescriptor,
)

__version__ = "0.1.0"

__all__ = [
    "AlreadyExists",
    "ColumnFamilyDescriptor",
    "ColumnStoreClient",
    "ColumnStoreError",
    "IndexCreationIncomplete",
    "IndexNotFound",
    "NotFound",
    "ScanRequest",
    "SchemaConflict",
    "StoreConfig",
    "StoreConnectionError",
    "StoreError",
    "TableDescriptor",
    "TableOfflineError",
    "TableOnlineError",
    "configure_logging",
]
