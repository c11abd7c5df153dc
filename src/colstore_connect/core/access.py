"""Access-control grants and revocations."""

import logging
from typing import Iterable, Optional, Union

from colstore_connect.core.connection import StoreConnection
from colstore_connect.exceptions import NotFound, StoreError, store_operation
from colstore_connect.models.access import Action, UserPermission, parse_actions

logger = logging.getLogger(__name__)

Permissions = Union[str, Iterable[Union[Action, str]]]


class AccessControl:
    """
    Grant and revoke permissions at table, family or qualifier scope.

    The scope follows from the arguments: no family means the whole table,
    a family alone means that family, and family plus qualifier narrows it
    to one column.
    """

    def __init__(self, connection: StoreConnection):
        """
        Initialize access control.

        Args:
            connection: Store connection
        """
        self.connection = connection

    @staticmethod
    def build_permission(
        principal: str,
        permissions: Permissions,
        table: str,
        family: Optional[str] = None,
        qualifier: Optional[str] = None,
    ) -> UserPermission:
        """
        Build a permission record for the requested scope.

        Raises:
            ValueError: If qualifier is given without family, or no action is named
        """
        if qualifier is not None and family is None:
            raise ValueError("A qualifier-scoped permission needs a column family")
        return UserPermission(
            principal=principal,
            table=table,
            family=family,
            qualifier=qualifier,
            actions=parse_actions(permissions),
        )

    async def grant(
        self,
        principal: str,
        permissions: Permissions,
        table: str,
        family: Optional[str] = None,
        qualifier: Optional[str] = None,
    ) -> UserPermission:
        """
        Grant actions to a principal.

        Args:
            principal: User or @group name
            permissions: Action codes such as "RW", or Action members
            table: Table name
            family: Column family (None grants on the whole table)
            qualifier: Column qualifier (requires family)

        Returns:
            The permission that was granted

        Raises:
            NotFound: If the table or the named family does not exist
            StoreError: If the store has no access control
            ValueError: If qualifier is given without family
        """
        permission = self.build_permission(principal, permissions, table, family, qualifier)
        await self._apply("grant", permission)
        logger.info(
            "Granted %s to %s on %s (%s scope)",
            permission.code,
            principal,
            table,
            permission.scope,
        )
        return permission

    async def revoke(
        self,
        principal: str,
        permissions: Permissions,
        table: str,
        family: Optional[str] = None,
        qualifier: Optional[str] = None,
    ) -> UserPermission:
        """
        Revoke actions from a principal. Revoking what was never granted succeeds.

        Raises:
            NotFound: If the table or the named family does not exist
            StoreError: If the store has no access control
            ValueError: If qualifier is given without family
        """
        permission = self.build_permission(principal, permissions, table, family, qualifier)
        await self._apply("revoke", permission)
        logger.info(
            "Revoked %s from %s on %s (%s scope)",
            permission.code,
            principal,
            table,
            permission.scope,
        )
        return permission

    async def list_permissions(self, table: str) -> list[UserPermission]:
        """
        List permissions granted on a table.

        Raises:
            NotFound: If the table does not exist
            StoreError: If the store has no access control
        """
        self._require_support("list_permissions", table)
        with store_operation("list_permissions", table):
            async with self.connection.access_control() as acl:
                return await acl.get_user_permissions(table)

    def _require_support(self, operation: str, table: str) -> None:
        if not self.connection.capabilities.access_control:
            raise StoreError(
                f"{self.connection.config.backend} store does not support access control",
                operation=operation,
                table=table,
            )

    async def _apply(self, operation: str, permission: UserPermission) -> None:
        self._require_support(operation, permission.table)
        logger.debug(
            "%s %s for %s on %s",
            operation,
            permission.code,
            permission.principal,
            permission.table,
        )

        with store_operation(operation, permission.table):
            async with self.connection.admin() as admin:
                descriptor = await admin.get_table_descriptor(permission.table)
            if permission.family is not None and not descriptor.has_family(permission.family):
                raise NotFound(f"Column family {permission.family} does not exist")

            async with self.connection.access_control() as acl:
                if operation == "grant":
                    await acl.grant(permission)
                else:
                    await acl.revoke(permission)
