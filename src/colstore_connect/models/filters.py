"""Server-side scan filter expressions.

A filter is a tree: leaves compare one column's latest value against a
literal, internal nodes combine children with ALL (conjunction) or ANY
(disjunction). Comparison is lexicographic over unsigned bytes, never
numeric: b"9" sorts after b"20", and b"205" sorts between b"20" and b"29".
Callers storing numbers as text must pad them to a fixed width.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from colstore_connect.models.data import BytesLike, ColumnLike, ColumnRef, Row, to_bytes


class CompareOp(str, Enum):
    """Comparator applied between a cell value and a filter literal."""

    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    GREATER = "GREATER"
    GREATER_OR_EQUAL = "GREATER_OR_EQUAL"
    LESS = "LESS"
    LESS_OR_EQUAL = "LESS_OR_EQUAL"

    @classmethod
    def from_symbol(cls, symbol: str) -> "CompareOp":
        """Resolve '=', '!=', '>', '>=', '<', '<=' or a member name."""
        symbols = {
            "=": cls.EQUAL,
            "==": cls.EQUAL,
            "!=": cls.NOT_EQUAL,
            ">": cls.GREATER,
            ">=": cls.GREATER_OR_EQUAL,
            "<": cls.LESS,
            "<=": cls.LESS_OR_EQUAL,
        }
        if symbol in symbols:
            return symbols[symbol]
        return cls(symbol.upper())

    def compare(self, cell_value: bytes, literal: bytes) -> bool:
        """Apply the comparator in byte order."""
        if self is CompareOp.EQUAL:
            return cell_value == literal
        if self is CompareOp.NOT_EQUAL:
            return cell_value != literal
        if self is CompareOp.GREATER:
            return cell_value > literal
        if self is CompareOp.GREATER_OR_EQUAL:
            return cell_value >= literal
        if self is CompareOp.LESS:
            return cell_value < literal
        return cell_value <= literal


class FilterOperator(str, Enum):
    """Combinator of a filter list."""

    ALL = "ALL"
    ANY = "ANY"


class _FilterBase(BaseModel):
    """Boolean composition shared by every filter node."""

    def matches(self, row: Row) -> bool:
        raise NotImplementedError

    def __and__(self, other: "FilterExpression") -> "FilterList":
        return all_of(self, other)  # type: ignore[arg-type]

    def __or__(self, other: "FilterExpression") -> "FilterList":
        return any_of(self, other)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, Any]:
        """Transport form of the expression."""
        return self.model_dump()


class ColumnValueFilter(_FilterBase):
    """Leaf predicate on a single column value."""

    kind: Literal["column"] = "column"
    family: str = Field(..., min_length=1, description="Column family name")
    qualifier: str = Field(..., description="Column qualifier")
    op: CompareOp = Field(..., description="Comparator")
    value: bytes = Field(..., description="Literal compared against the cell value")

    def matches(self, row: Row) -> bool:
        """A row matches iff it carries the column and its latest value compares true."""
        cell_value = row.value(self.family, self.qualifier)
        if cell_value is None:
            return False
        return self.op.compare(cell_value, self.value)

    @property
    def columns(self) -> set[ColumnRef]:
        """Columns referenced by this predicate."""
        return {ColumnRef(family=self.family, qualifier=self.qualifier)}


class FilterList(_FilterBase):
    """ALL or ANY combination of child filters."""

    kind: Literal["list"] = "list"
    operator: FilterOperator = Field(..., description="Combinator")
    filters: list[
        Annotated[Union[ColumnValueFilter, "FilterList"], Field(discriminator="kind")]
    ] = Field(default_factory=list, description="Child expressions")

    def matches(self, row: Row) -> bool:
        """ALL() matches every row, ANY() matches none."""
        if self.operator is FilterOperator.ALL:
            return all(child.matches(row) for child in self.filters)
        return any(child.matches(row) for child in self.filters)

    @property
    def columns(self) -> set[ColumnRef]:
        """Columns referenced anywhere below this node."""
        refs: set[ColumnRef] = set()
        for child in self.filters:
            refs |= child.columns
        return refs


FilterList.model_rebuild()

FilterExpression = Annotated[
    Union[ColumnValueFilter, FilterList], Field(discriminator="kind")
]

_filter_adapter: TypeAdapter = TypeAdapter(FilterExpression)


def column_filter(
    column: ColumnLike, op: Union[CompareOp, str], value: BytesLike
) -> ColumnValueFilter:
    """
    Build a single-column predicate.

    Args:
        column: 'family:qualifier', (family, qualifier) or ColumnRef
        op: CompareOp or a symbol such as '>='
        value: Literal; str is UTF-8 encoded, int is an 8-byte long

    Returns:
        Leaf filter
    """
    ref = ColumnRef.parse(column)
    if not isinstance(op, CompareOp):
        op = CompareOp.from_symbol(op)
    return ColumnValueFilter(
        family=ref.family, qualifier=ref.qualifier, op=op, value=to_bytes(value)
    )


def all_of(*filters: Union[ColumnValueFilter, FilterList]) -> FilterList:
    """Conjunction of the given filters."""
    return FilterList(operator=FilterOperator.ALL, filters=list(filters))


def any_of(*filters: Union[ColumnValueFilter, FilterList]) -> FilterList:
    """Disjunction of the given filters."""
    return FilterList(operator=FilterOperator.ANY, filters=list(filters))


def filter_from_dict(data: dict[str, Any]) -> Union[ColumnValueFilter, FilterList]:
    """Rebuild an expression from its transport form."""
    return _filter_adapter.validate_python(data)
