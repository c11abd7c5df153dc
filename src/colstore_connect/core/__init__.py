"""Core components of the column store client."""

from .access import AccessControl
from .accessor import DataAccessor, ScanCursor
from .connection import StoreConnection
from .index import IndexManager
from .mob import LargeObjectPolicy, StorageClass
from .schema import OfflineSession, SchemaAdministrator
from .scope import ResourceScope, with_handle

__all__ = [
    "AccessControl",
    "DataAccessor",
    "IndexManager",
    "LargeObjectPolicy",
    "OfflineSession",
    "ResourceScope",
    "ScanCursor",
    "SchemaAdministrator",
    "StorageClass",
    "StoreConnection",
    "with_handle",
]
