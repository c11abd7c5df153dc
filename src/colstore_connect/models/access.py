"""Access-control permission models."""

from enum import Enum
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field, field_validator


class Action(str, Enum):
    """Permission actions, identified by their one-letter codes."""

    READ = "R"
    WRITE = "W"
    EXEC = "X"
    CREATE = "C"
    ADMIN = "A"


def parse_actions(permissions: Union[str, Iterable[Union[Action, str]]]) -> list[Action]:
    """
    Parse a permission code string ("RW") or an iterable of actions.

    Returns:
        Distinct actions in canonical order

    Raises:
        ValueError: If a code is unknown or nothing is granted
    """
    if isinstance(permissions, str):
        codes: Iterable[Union[Action, str]] = list(permissions.upper())
    else:
        codes = permissions

    parsed = set()
    for code in codes:
        parsed.add(code if isinstance(code, Action) else Action(code))
    if not parsed:
        raise ValueError("At least one action is required")
    return [action for action in Action if action in parsed]


class UserPermission(BaseModel):
    """Actions granted to a principal at table, family or qualifier scope."""

    principal: str = Field(..., min_length=1, description="User or @group name")
    table: str = Field(..., description="Table name")
    family: Optional[str] = Field(None, description="Column family (None = whole table)")
    qualifier: Optional[str] = Field(
        None, description="Column qualifier (None = whole family)"
    )
    actions: list[Action] = Field(..., description="Granted actions")

    @field_validator("actions", mode="before")
    @classmethod
    def normalize_actions(cls, v):
        """Accept code strings such as 'RW'."""
        return parse_actions(v)

    @property
    def scope(self) -> str:
        """Scope level: table, family or qualifier."""
        if self.family is None:
            return "table"
        if self.qualifier is None:
            return "family"
        return "qualifier"

    @property
    def code(self) -> str:
        """Action codes as a string (e.g. 'RW')."""
        return "".join(action.value for action in self.actions)

    def same_scope(self, other: "UserPermission") -> bool:
        """Check whether two permissions address the same principal and scope."""
        return (
            self.principal == other.principal
            and self.table == other.table
            and self.family == other.family
            and self.qualifier == other.qualifier
        )
