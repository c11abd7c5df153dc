"""Large-object (MOB) storage routing.

A MOB-enabled column family sends values larger than its threshold to a
separate storage class built for big, rarely compacted objects. Readers
never see the difference: put, get and scan behave identically for both
classes. The threshold belongs to the family, never to a single value.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from colstore_connect.exceptions import NotFound, store_operation
from colstore_connect.models.schema import (
    DEFAULT_MOB_THRESHOLD,
    ColumnFamilyDescriptor,
    TableDescriptor,
)

if TYPE_CHECKING:
    from colstore_connect.core.schema import SchemaAdministrator

logger = logging.getLogger(__name__)


class StorageClass(str, Enum):
    """Where a cell value is physically kept."""

    NORMAL = "NORMAL"
    MOB = "MOB"


class LargeObjectPolicy:
    """Per-family threshold routing of oversized values."""

    def __init__(self, schema: Optional["SchemaAdministrator"] = None):
        """
        Initialize policy.

        Args:
            schema: Administrator used to change MOB settings of existing
                tables (routing decisions alone do not need it)
        """
        self.schema = schema

    @staticmethod
    def storage_class(family: Optional[ColumnFamilyDescriptor], value: bytes) -> StorageClass:
        """
        Decide the storage class of one value.

        Args:
            family: Descriptor of the family the value is written to
            value: Cell value

        Returns:
            MOB when the family is MOB-enabled and the value exceeds its
            threshold, NORMAL otherwise
        """
        if family is None or not family.mob_enabled:
            return StorageClass.NORMAL
        if len(value) > family.mob_threshold:
            return StorageClass.MOB
        return StorageClass.NORMAL

    @staticmethod
    def mob_family(
        name: str, threshold: int = DEFAULT_MOB_THRESHOLD, **settings
    ) -> ColumnFamilyDescriptor:
        """
        Build a MOB-enabled column family descriptor.

        Args:
            name: Column family name
            threshold: Values larger than this many bytes go to MOB storage
            **settings: Other ColumnFamilyDescriptor fields

        Returns:
            Column family descriptor
        """
        return ColumnFamilyDescriptor(
            name=name, mob_enabled=True, mob_threshold=threshold, **settings
        )

    async def enable_mob(
        self, table: str, family: str, threshold: int = DEFAULT_MOB_THRESHOLD
    ) -> None:
        """
        Turn on MOB storage for an existing family.

        Existing values keep their storage class; the threshold applies to
        later writes.

        Raises:
            NotFound: If the table or family does not exist
            ValueError: If the threshold is negative
        """
        if threshold < 0:
            raise ValueError(f"MOB threshold must be >= 0, got {threshold}")
        await self._set_mob(table, family, True, threshold)

    async def disable_mob(self, table: str, family: str) -> None:
        """
        Turn off MOB storage for an existing family.

        Raises:
            NotFound: If the table or family does not exist
        """
        await self._set_mob(table, family, False, None)

    async def _set_mob(
        self, table: str, family: str, enabled: bool, threshold: Optional[int]
    ) -> None:
        if self.schema is None:
            raise RuntimeError("LargeObjectPolicy needs a SchemaAdministrator to alter tables")

        def mutate(descriptor: TableDescriptor) -> None:
            current = descriptor.get_family(family)
            if current is None:
                raise NotFound(f"Column family {family} does not exist", table=table)
            update = {"mob_enabled": enabled}
            if threshold is not None:
                update["mob_threshold"] = threshold
            descriptor.modify_family(current.model_copy(update=update))

        with store_operation("set_mob", table):
            await self.schema.alter_table(table, mutate)
        logger.info(
            "MOB %s for %s:%s (threshold=%s)",
            "enabled" if enabled else "disabled",
            table,
            family,
            threshold,
        )
