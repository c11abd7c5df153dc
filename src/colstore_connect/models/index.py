"""Secondary index specification models."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

# Table metadata key recording the index column descriptor
INDEX_COL_DESC_KEY = "INDEX_COL_DESC"

# Column family the index coordinator uses for index data
DEFAULT_INDEX_COL_DESC = "d"


def index_metadata_key(index_name: str) -> str:
    """Table metadata key marking one index as fully recorded."""
    return f"{INDEX_COL_DESC_KEY}:{index_name}"


class ValueType(str, Enum):
    """How the index coordinator interprets an indexed value."""

    STRING = "STRING"
    INT = "INT"
    LONG = "LONG"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    SHORT = "SHORT"
    BYTE = "BYTE"
    CHAR = "CHAR"


class IndexColumn(BaseModel):
    """One indexed column."""

    family: str = Field(..., min_length=1, description="Column family name")
    qualifier: str = Field(..., min_length=1, description="Column qualifier")
    value_type: ValueType = Field(
        default=ValueType.STRING, description="Value interpretation"
    )


class IndexSpecification(BaseModel):
    """A named secondary index over one or more columns."""

    name: str = Field(..., min_length=1, description="Index name, unique within a table")
    columns: list[IndexColumn] = Field(
        default_factory=list,
        validate_default=True,
        description="Indexed columns in key order",
    )

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: list[IndexColumn]) -> list[IndexColumn]:
        """Require at least one column and no duplicates."""
        if not v:
            raise ValueError("An index needs at least one column")
        seen = set()
        for column in v:
            key = (column.family, column.qualifier)
            if key in seen:
                raise ValueError(
                    f"Column {column.family}:{column.qualifier} indexed twice"
                )
            seen.add(key)
        return v

    def add_index_column(
        self, family: str, qualifier: str, value_type: ValueType = ValueType.STRING
    ) -> "IndexSpecification":
        """Return a copy with one more indexed column."""
        column = IndexColumn(family=family, qualifier=qualifier, value_type=value_type)
        return IndexSpecification(name=self.name, columns=[*self.columns, column])

    @property
    def families(self) -> set[str]:
        """Column families referenced by the index."""
        return {column.family for column in self.columns}
