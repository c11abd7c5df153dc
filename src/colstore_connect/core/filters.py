"""Filter expression builders.

The models live in colstore_connect.models.filters so that scan requests can
carry them; this module is the component-level entry point.
"""

from colstore_connect.models.filters import (
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

__all__ = [
    "ColumnValueFilter",
    "CompareOp",
    "FilterExpression",
    "FilterList",
    "FilterOperator",
    "all_of",
    "any_of",
    "column_filter",
    "filter_from_dict",
]
