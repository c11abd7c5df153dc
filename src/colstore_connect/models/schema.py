"""Table, column family and region descriptor models."""

import re
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from colstore_connect.exceptions import AlreadyExists, NotFound

TABLE_NAME_PATTERN = re.compile(r"^(?:[A-Za-z0-9_]+:)?[A-Za-z0-9_][A-Za-z0-9_.-]*$")

# Default MOB threshold of the store (100 KB)
DEFAULT_MOB_THRESHOLD = 102400


class TableState(str, Enum):
    """Client-observed table lifecycle state."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    ABSENT = "ABSENT"


class DataBlockEncoding(str, Enum):
    """Block encoding applied to a column family's store files."""

    NONE = "NONE"
    PREFIX = "PREFIX"
    DIFF = "DIFF"
    FAST_DIFF = "FAST_DIFF"
    ROW_INDEX_V1 = "ROW_INDEX_V1"


class Compression(str, Enum):
    """Compression algorithm for a column family.

    GZ compresses better but is slow, suited to cold data. SNAPPY is fast
    with a lower ratio, suited to hot data.
    """

    NONE = "NONE"
    GZ = "GZ"
    SNAPPY = "SNAPPY"
    LZ4 = "LZ4"
    LZO = "LZO"
    ZSTD = "ZSTD"


class ColumnFamilyDescriptor(BaseModel):
    """Storage settings of one column family."""

    name: str = Field(..., description="Column family name, unique within a table")
    data_block_encoding: DataBlockEncoding = Field(
        default=DataBlockEncoding.NONE, description="Block encoding mode"
    )
    compression: Compression = Field(
        default=Compression.NONE, description="Compression algorithm"
    )
    max_versions: int = Field(
        default=1, ge=1, description="Number of cell versions retained"
    )
    mob_enabled: bool = Field(
        default=False, description="Route large values to the MOB storage class"
    )
    mob_threshold: int = Field(
        default=DEFAULT_MOB_THRESHOLD,
        ge=0,
        description="Values larger than this many bytes are stored as MOB "
        "(only meaningful when mob_enabled is set)",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate column family name."""
        if not v or ":" in v or not v.isprintable():
            raise ValueError(
                f"Invalid column family name {v!r}: must be non-empty, "
                "printable and must not contain ':'"
            )
        return v


class TableDescriptor(BaseModel):
    """Snapshot of a table's schema.

    Fetched from the store before a modification, changed locally and then
    submitted as a whole. The client never keeps it between calls.
    """

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    name: str = Field(..., description="Table name, optionally 'namespace:table'")
    families: list[ColumnFamilyDescriptor] = Field(
        default_factory=list, description="Column families in declaration order"
    )
    values: dict[str, bytes] = Field(
        default_factory=dict, description="Schema-level metadata values"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate table name."""
        if not TABLE_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid table name {v!r}: allowed characters are "
                "[A-Za-z0-9_.-] with an optional 'namespace:' prefix"
            )
        return v

    @model_validator(mode="after")
    def check_unique_families(self) -> "TableDescriptor":
        """Reject duplicate column family names."""
        seen: set[str] = set()
        for family in self.families:
            if family.name in seen:
                raise ValueError(f"Duplicate column family: {family.name}")
            seen.add(family.name)
        return self

    @property
    def namespace(self) -> str:
        """Namespace part of the table name."""
        if ":" in self.name:
            return self.name.split(":", 1)[0]
        return "default"

    @property
    def family_names(self) -> list[str]:
        """Column family names in declaration order."""
        return [family.name for family in self.families]

    def has_family(self, name: str) -> bool:
        """Check whether a column family is declared."""
        return self.get_family(name) is not None

    def get_family(self, name: str) -> Optional[ColumnFamilyDescriptor]:
        """Get column family descriptor by name."""
        for family in self.families:
            if family.name == name:
                return family
        return None

    def add_family(self, family: ColumnFamilyDescriptor) -> None:
        """
        Append a column family.

        Raises:
            AlreadyExists: If a family with the same name is declared
        """
        if self.has_family(family.name):
            raise AlreadyExists(
                f"Column family {family.name} already exists", table=self.name
            )
        self.families.append(family)

    def modify_family(self, family: ColumnFamilyDescriptor) -> None:
        """
        Replace the settings of an existing column family.

        Raises:
            NotFound: If the family is not declared
        """
        for i, existing in enumerate(self.families):
            if existing.name == family.name:
                self.families[i] = family
                return
        raise NotFound(f"Column family {family.name} does not exist", table=self.name)

    def remove_family(self, name: str) -> ColumnFamilyDescriptor:
        """
        Remove a column family.

        Returns:
            The removed descriptor

        Raises:
            NotFound: If the family is not declared
        """
        family = self.get_family(name)
        if family is None:
            raise NotFound(f"Column family {name} does not exist", table=self.name)
        self.families.remove(family)
        return family

    def set_value(self, key: str, value: Union[bytes, str]) -> None:
        """Set a schema-level metadata value."""
        self.values[key] = value.encode("utf-8") if isinstance(value, str) else value

    def get_value(self, key: str) -> Optional[bytes]:
        """Get a schema-level metadata value."""
        return self.values.get(key)

    def remove_value(self, key: str) -> None:
        """Remove a schema-level metadata value if present."""
        self.values.pop(key, None)


class RegionInfo(BaseModel):
    """Key range served by one region of a table."""

    table: str = Field(..., description="Owning table name")
    region_name: str = Field(..., description="Store-assigned region name")
    start_key: bytes = Field(default=b"", description="Inclusive start key (empty = unbounded)")
    end_key: bytes = Field(default=b"", description="Exclusive end key (empty = unbounded)")

    def contains(self, row_key: bytes) -> bool:
        """Check whether a row key falls inside this region."""
        if row_key < self.start_key:
            return False
        return not self.end_key or row_key < self.end_key
