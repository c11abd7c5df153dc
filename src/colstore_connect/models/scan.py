"""Scan request model."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from colstore_connect.models.data import ColumnLike, ColumnRef, Row
from colstore_connect.models.filters import FilterExpression


class ScanRequest(BaseModel):
    """What a scanner returns and how it pages."""

    columns: list[ColumnRef] = Field(
        default_factory=list, description="Columns to return (empty = all)"
    )
    families: list[str] = Field(
        default_factory=list, description="Whole families to return (empty = all)"
    )
    filter: Optional[FilterExpression] = Field(
        None, description="Predicate evaluated by the store per row"
    )
    start_row: bytes = Field(default=b"", description="Inclusive start row key")
    stop_row: bytes = Field(default=b"", description="Exclusive stop row key (empty = end)")
    caching: Optional[int] = Field(
        None,
        ge=1,
        description="Rows fetched per round trip (None uses the configured default)",
    )
    limit: Optional[int] = Field(None, ge=1, description="Maximum rows returned")

    @field_validator("columns", mode="before")
    @classmethod
    def parse_columns(cls, v: list[ColumnLike]) -> list[ColumnRef]:
        """Accept 'family:qualifier' strings and tuples as columns."""
        return [ColumnRef.parse(column) for column in v]

    def in_range(self, row_key: bytes) -> bool:
        """Check the row key against start_row and stop_row."""
        if row_key < self.start_row:
            return False
        return not self.stop_row or row_key < self.stop_row

    def project(self, row: Row) -> Row:
        """
        Restrict a row to the requested columns and families.

        The filter has already been evaluated on the full row, so a filter may
        reference columns that are not returned.
        """
        if not self.columns and not self.families:
            return row

        wanted_families = set(self.families)
        wanted_columns = set(self.columns)
        cells = [
            cell
            for cell in row.cells
            if cell.family in wanted_families or cell.column in wanted_columns
        ]
        return Row(row_key=row.row_key, cells=cells)
