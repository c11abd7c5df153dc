"""Row, cell and column addressing models."""

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

BytesLike = Union[bytes, bytearray, memoryview, str, int]
ColumnLike = Union["ColumnRef", str, tuple[str, str]]


def to_bytes(value: BytesLike) -> bytes:
    """
    Convert a value to the byte form stored in cells.

    Strings are UTF-8 encoded. Integers become 8-byte big-endian signed
    longs, the store's own long encoding, so b"20" and to_bytes(20) are
    different literals and compare differently.

    Args:
        value: Value to convert

    Returns:
        Byte representation

    Raises:
        TypeError: If the value type has no byte representation
    """
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, bool):
        return b"\xff" if value else b"\x00"
    if isinstance(value, int):
        return value.to_bytes(8, "big", signed=True)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


class ColumnRef(BaseModel):
    """Address of a column: family plus qualifier."""

    model_config = ConfigDict(frozen=True)

    family: str = Field(..., min_length=1, description="Column family name")
    qualifier: str = Field(default="", description="Column qualifier")

    @classmethod
    def parse(cls, column: ColumnLike) -> "ColumnRef":
        """
        Build a column reference from 'family:qualifier', a tuple or a ref.

        Raises:
            ValueError: If a string has no family part
        """
        if isinstance(column, ColumnRef):
            return column
        if isinstance(column, tuple):
            family, qualifier = column
            return cls(family=family, qualifier=qualifier)
        family, sep, qualifier = column.partition(":")
        if not family or not sep:
            raise ValueError(f"Column must be 'family:qualifier', got {column!r}")
        return cls(family=family, qualifier=qualifier)

    def __str__(self) -> str:
        return f"{self.family}:{self.qualifier}"


class Cell(BaseModel):
    """A single versioned value."""

    family: str = Field(..., description="Column family name")
    qualifier: str = Field(..., description="Column qualifier")
    value: bytes = Field(..., description="Cell value")
    timestamp: Optional[int] = Field(
        None, description="Logical write timestamp (assigned by the store when None)"
    )

    @property
    def column(self) -> ColumnRef:
        """Column address of this cell."""
        return ColumnRef(family=self.family, qualifier=self.qualifier)


class Put(BaseModel):
    """Cells to write atomically to one row."""

    row_key: bytes = Field(..., min_length=1, description="Target row key")
    cells: list[Cell] = Field(default_factory=list, description="Cells to write")

    @classmethod
    def build(cls, row_key: BytesLike, values: Mapping[Any, BytesLike]) -> "Put":
        """
        Build a put from a mapping of columns to values.

        Args:
            row_key: Row key
            values: Mapping of 'family:qualifier', (family, qualifier) or
                ColumnRef to value

        Returns:
            Put request
        """
        cells = []
        for column, value in values.items():
            ref = ColumnRef.parse(column)
            cells.append(
                Cell(family=ref.family, qualifier=ref.qualifier, value=to_bytes(value))
            )
        return cls(row_key=to_bytes(row_key), cells=cells)

    @property
    def families(self) -> set[str]:
        """Column families written by this put."""
        return {cell.family for cell in self.cells}


class Row(BaseModel):
    """A row as returned by get or scan."""

    row_key: bytes = Field(..., description="Row key")
    cells: list[Cell] = Field(default_factory=list, description="Cells of the row")

    @property
    def is_empty(self) -> bool:
        """Check if the row has no cells."""
        return not self.cells

    def latest(self, family: str, qualifier: str) -> Optional[Cell]:
        """Get the newest cell for a column."""
        newest: Optional[Cell] = None
        for cell in self.cells:
            if cell.family != family or cell.qualifier != qualifier:
                continue
            if newest is None or (cell.timestamp or 0) > (newest.timestamp or 0):
                newest = cell
        return newest

    def value(self, family: str, qualifier: str) -> Optional[bytes]:
        """Get the latest value of a column, or None if absent."""
        cell = self.latest(family, qualifier)
        return cell.value if cell is not None else None

    def columns(self) -> list[ColumnRef]:
        """Distinct columns present in the row, in cell order."""
        seen: list[ColumnRef] = []
        for cell in self.cells:
            ref = cell.column
            if ref not in seen:
                seen.append(ref)
        return seen

    def to_dict(self) -> dict[str, bytes]:
        """Map 'family:qualifier' to the latest value of each column."""
        result: dict[str, bytes] = {}
        for ref in self.columns():
            value = self.value(ref.family, ref.qualifier)
            if value is not None:
                result[str(ref)] = value
        return result
