"""Module Tests for AccessControl

Validates grant / revoke at table, family and qualifier scope.
"""

import pytest

from colstore_connect.client import ColumnStoreClient
from colstore_connect.core import AccessControl
from colstore_connect.exceptions import NotFound
from colstore_connect.models import Action


def by_scope(permissions):
    return {(p.principal, p.family, p.qualifier): p.code for p in permissions}


class TestBuildPermission:
    def test_scopes(self):
        assert AccessControl.build_permission("bob", "R", "users").scope == "table"
        assert AccessControl.build_permission("bob", "R", "users", "info").scope == "family"
        assert (
            AccessControl.build_permission("bob", "R", "users", "info", "age").scope
            == "qualifier"
        )

    def test_qualifier_needs_family(self):
        with pytest.raises(ValueError):
            AccessControl.build_permission("bob", "R", "users", qualifier="age")

    def test_actions_are_normalized(self):
        permission = AccessControl.build_permission("bob", "wr", "users")
        assert permission.actions == [Action.READ, Action.WRITE]
        assert permission.code == "RW"

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            AccessControl.build_permission("bob", "RZ", "users")


class TestGrantRevoke:
    """Test grants and revocations against a live store."""

    async def test_grant_each_scope(self, client: ColumnStoreClient, users_table):
        await client.acl.grant("bob", "R", users_table)
        await client.acl.grant("carol", "RW", users_table, family="info")
        granted = await client.acl.grant("@ops", [Action.READ], users_table, "info", "age")

        assert granted.scope == "qualifier"
        assert by_scope(await client.acl.list_permissions(users_table)) == {
            ("bob", None, None): "R",
            ("carol", "info", None): "RW",
            ("@ops", "info", "age"): "R",
        }

    async def test_grants_merge_within_scope(self, client: ColumnStoreClient, users_table):
        await client.acl.grant("bob", "R", users_table, family="info")
        await client.acl.grant("bob", "W", users_table, family="info")

        permissions = await client.acl.list_permissions(users_table)
        assert by_scope(permissions) == {("bob", "info", None): "RW"}

    async def test_revoke(self, client: ColumnStoreClient, users_table):
        await client.acl.grant("bob", "RWA", users_table)
        await client.acl.revoke("bob", "A", users_table)
        assert by_scope(await client.acl.list_permissions(users_table)) == {
            ("bob", None, None): "RW"
        }

        await client.acl.revoke("bob", "RW", users_table)
        assert await client.acl.list_permissions(users_table) == []

    async def test_revoke_never_granted(self, client: ColumnStoreClient, users_table):
        await client.acl.revoke("nobody", "R", users_table, family="info")
        assert await client.acl.list_permissions(users_table) == []

    async def test_missing_table(self, client: ColumnStoreClient):
        with pytest.raises(NotFound):
            await client.acl.grant("bob", "R", "missing")

    async def test_missing_family(self, client: ColumnStoreClient, users_table):
        with pytest.raises(NotFound) as exc_info:
            await client.acl.grant("bob", "R", users_table, family="nope")
        assert exc_info.value.operation == "grant"
        assert await client.acl.list_permissions(users_table) == []

    async def test_drop_table_clears_permissions(
        self, client: ColumnStoreClient, users_table, users_descriptor
    ):
        await client.acl.grant("bob", "R", users_table)
        await client.schema.drop_table(users_table)
        await client.schema.create_table(users_descriptor)
        assert await client.acl.list_permissions(users_table) == []
