"""Pydantic models for store configuration, schemas and data."""

from .access import Action, UserPermission, parse_actions
from .capabilities import StoreCapabilities
from .config import StoreConfig
from .data import Cell, ColumnRef, Put, Row, to_bytes
from .filters import (
    ColumnValueFilter,
    CompareOp,
    FilterExpression,
    FilterList,
    FilterOperator,
    all_of,
    any_of,
    column_filter,
    filter_from_dict,
)
from .index import IndexColumn, IndexSpecification, ValueType
from .scan import ScanRequest
from .schema import (
    ColumnFamilyDescriptor,
    Compression,
    DataBlockEncoding,
    RegionInfo,
    TableDescriptor,
    TableState,
)

__all__ = [
    "Action",
    "UserPermission",
    "parse_actions",
    "StoreCapabilities",
    "StoreConfig",
    "Cell",
    "ColumnRef",
    "Put",
    "Row",
    "to_bytes",
    "ColumnValueFilter",
    "CompareOp",
    "FilterExpression",
    "FilterList",
    "FilterOperator",
    "all_of",
    "any_of",
    "column_filter",
    "filter_from_dict",
    "IndexColumn",
    "IndexSpecification",
    "ValueType",
    "ScanRequest",
    "ColumnFamilyDescriptor",
    "Compression",
    "DataBlockEncoding",
    "RegionInfo",
    "TableDescriptor",
    "TableState",
]
