"""Integration tests for role membership, role permissions and access checks."""

from sqlalchemy import Delete, func, select

from authkernel.errors import (
    AuthBadRequestErrorCode,
    AuthResourceNotFoundErrorCode,
    AuthSystemErrorCode,
    AuthValidatorErrorCode,
)
from authkernel.facade import AuthorizationFacade
from authkernel.kernel.models.principal import principal_roles
from authkernel.kernel.models.role import PermissionLevel, RolePermission
from authkernel.kernel.permissions.permission_service import PermissionEngine


async def count_memberships(facade: AuthorizationFacade, principal_id: int, role_id: int) -> int:
    async with facade.store.session() as session:
        query = select(func.count()).select_from(principal_roles).where(
            principal_roles.c.principal_id == principal_id,
            principal_roles.c.role_id == role_id,
        )
        return (await session.execute(query)).scalar_one()


class TestAggregation:
    """Effective permissions merge levels across roles with MAX."""

    async def test_max_level_per_access_type(self, facade, test_principal, reader_role, editor_role):
        response = await facade.grant_roles(test_principal.id, [reader_role.id, editor_role.id])
        assert response.status, response.errors

        held = (await facade.get_principal_permissions(test_principal.id)).data

        assert len(held) == 1
        assert held[0].permission_id == 1
        assert held[0].read == PermissionLevel.ALL
        assert held[0].write == PermissionLevel.NONE
        assert held[0].execute == PermissionLevel.OWN

    async def test_can_access_scenario(self, facade, test_principal, reader_role, editor_role):
        await facade.grant_roles(test_principal.id, [reader_role.id, editor_role.id])

        granted = await facade.can_access(test_principal.id, [
            {"permission": 1, "type": "read", "level": PermissionLevel.ALL},
        ])
        denied = await facade.can_access(test_principal.id, [
            {"permission": 1, "type": "write"},
        ])

        assert granted.status is True and granted.data is True
        assert denied.status is True and denied.data is False

    async def test_every_pass_must_hold(self, facade, test_principal, editor_role):
        await facade.grant_roles(test_principal.id, [editor_role.id])

        response = await facade.can_access(test_principal.id, [
            {"permission": 1, "type": "read"},
            {"permission": 1, "type": "execute", "level": PermissionLevel.ALL},
        ])

        assert response.data is False

    async def test_passes_satisfied_by_different_roles(self, facade, test_principal, reader_role):
        other = (await facade.create_role("operator")).data
        await facade.add_permissions_to_role(other.id, [
            {"permission_id": 2, "name": "jobs", "read": 0, "write": 0, "execute": 2},
        ])
        await facade.grant_roles(test_principal.id, [reader_role.id, other.id])

        response = await facade.can_access(test_principal.id, [
            {"permission": 1, "type": "read"},
            {"permission": 2, "type": "execute", "level": PermissionLevel.ALL},
        ])

        assert response.data is True

    async def test_no_roles_no_access(self, facade, test_principal):
        response = await facade.can_access(test_principal.id, [{"permission": 1, "type": "read"}])

        assert response.status is True
        assert response.data is False

    async def test_empty_passes_allowed(self, facade, test_principal):
        assert (await facade.can_access(test_principal.id, [])).data is True

    async def test_unknown_principal(self, facade):
        response = await facade.can_access(404, [{"permission": 1, "type": "read"}])

        assert response.errors == [AuthResourceNotFoundErrorCode.AUTH_USER_DOES_NOT_EXISTS]

    async def test_malformed_pass(self, facade, test_principal):
        response = await facade.can_access(test_principal.id, [{"permission": 1, "type": "delete"}])

        assert response.status is False
        assert response.errors == [AuthValidatorErrorCode.DEFAULT_VALIDATION_ERROR]


class TestRoleMembership:
    """Tests for grant_roles and revoke_roles."""

    async def test_grant_returns_roles_with_permissions(self, facade, test_principal, reader_role):
        response = await facade.grant_roles(test_principal.id, [reader_role.id])

        assert response.status is True
        assert [role.name for role in response.data] == ["reader"]
        assert response.data[0].permissions[0].read == PermissionLevel.OWN

    async def test_grant_twice_fails_and_keeps_one_row(self, facade, test_principal, reader_role):
        await facade.grant_roles(test_principal.id, [reader_role.id])
        response = await facade.grant_roles(test_principal.id, [reader_role.id])

        assert response.status is False
        assert response.errors == [AuthBadRequestErrorCode.AUTH_USER_ROLE_ALREADY_EXISTS]
        assert await count_memberships(facade, test_principal.id, reader_role.id) == 1

    async def test_grant_is_all_or_nothing(self, facade, test_principal, reader_role):
        response = await facade.grant_roles(test_principal.id, [reader_role.id, 999])

        assert response.errors == [AuthResourceNotFoundErrorCode.ROLE_DOES_NOT_EXISTS]
        assert await count_memberships(facade, test_principal.id, reader_role.id) == 0

    async def test_grant_to_unknown_principal(self, facade, reader_role):
        response = await facade.grant_roles(404, [reader_role.id])

        assert response.errors == [AuthResourceNotFoundErrorCode.AUTH_USER_DOES_NOT_EXISTS]

    async def test_grant_without_roles(self, facade, test_principal):
        response = await facade.grant_roles(test_principal.id, [])

        assert response.errors == [AuthBadRequestErrorCode.MISSING_DATA_ERROR]

    async def test_revoke(self, facade, test_principal, reader_role, editor_role):
        await facade.grant_roles(test_principal.id, [reader_role.id, editor_role.id])
        response = await facade.revoke_roles(test_principal.id, [editor_role.id])

        assert [role.name for role in response.data] == ["reader"]
        held = (await facade.get_principal_permissions(test_principal.id)).data
        assert held[0].read == PermissionLevel.OWN
        assert held[0].execute == PermissionLevel.NONE

    async def test_revoke_not_held_is_all_or_nothing(self, facade, test_principal, reader_role, editor_role):
        await facade.grant_roles(test_principal.id, [reader_role.id])
        response = await facade.revoke_roles(test_principal.id, [reader_role.id, editor_role.id])

        assert response.errors == [AuthBadRequestErrorCode.AUTH_USER_ROLE_DOES_NOT_EXISTS]
        assert await count_memberships(facade, test_principal.id, reader_role.id) == 1

    async def test_get_principal_roles(self, facade, test_principal, reader_role, editor_role):
        await facade.grant_roles(test_principal.id, [editor_role.id, reader_role.id])

        roles = (await facade.get_principal_roles(test_principal.id)).data

        assert {role.name for role in roles} == {"reader", "editor"}


class TestRoles:
    """Tests for creating and deleting roles."""

    async def test_create_role(self, facade):
        response = await facade.create_role("auditor")

        assert response.status is True
        assert response.data.name == "auditor"
        assert response.data.permissions == []

    async def test_role_name_required(self, facade):
        response = await facade.create_role("  ")

        assert response.errors == [AuthValidatorErrorCode.ROLE_NAME_NOT_PRESENT]

    async def test_role_name_unique(self, facade, reader_role):
        response = await facade.create_role("reader")

        assert response.errors == [AuthValidatorErrorCode.ROLE_NAME_ALREADY_TAKEN]

    async def test_delete_role_cascades(self, facade, test_principal, reader_role, editor_role):
        await facade.grant_roles(test_principal.id, [reader_role.id, editor_role.id])

        response = await facade.delete_role(editor_role.id)

        assert response.status is True and response.data is True
        assert await count_memberships(facade, test_principal.id, editor_role.id) == 0
        held = (await facade.get_principal_permissions(test_principal.id)).data
        assert held[0].read == PermissionLevel.OWN
        missing = await facade.get_role_permissions(editor_role.id)
        assert missing.errors == [AuthResourceNotFoundErrorCode.ROLE_DOES_NOT_EXISTS]

        async with facade.store.session() as session:
            orphans = await session.execute(
                select(func.count()).select_from(RolePermission).where(
                    RolePermission.role_id == editor_role.id
                )
            )
            assert orphans.scalar_one() == 0

    async def test_delete_role_failure_rolls_back(
        self, facade, test_principal, editor_role, fail_statement, monkeypatch,
    ):
        """A failing grant delete leaves memberships, grants and the role in place."""
        await facade.grant_roles(test_principal.id, [editor_role.id])
        fail_statement(Delete, RolePermission.__tablename__)

        response = await facade.delete_role(editor_role.id)
        monkeypatch.undo()

        assert response.errors == [AuthSystemErrorCode.SQL_SYSTEM_ERROR]
        assert await count_memberships(facade, test_principal.id, editor_role.id) == 1
        grants = await facade.get_role_permissions(editor_role.id)
        assert [grant.permission_id for grant in grants.data] == [1]
        held = (await facade.get_principal_permissions(test_principal.id)).data
        assert held[0].read == PermissionLevel.ALL

    async def test_delete_unknown_role(self, facade):
        response = await facade.delete_role(999)

        assert response.errors == [AuthResourceNotFoundErrorCode.ROLE_DOES_NOT_EXISTS]


class TestRolePermissions:
    """Tests for batch edits of a role's grants."""

    async def test_add_batch(self, facade):
        role = (await facade.create_role("ops")).data
        response = await facade.add_permissions_to_role(role.id, [
            {"permission_id": 2, "name": "jobs", "read": 1, "write": 1, "execute": 2},
            {"permission_id": 1, "name": "documents", "read": 2, "write": 0, "execute": 0},
        ])

        assert response.status is True
        assert [grant.permission_id for grant in response.data] == [1, 2]

    async def test_add_with_existing_entry_persists_nothing(self, facade, reader_role):
        response = await facade.add_permissions_to_role(reader_role.id, [
            {"permission_id": 5, "name": "reports", "read": 1, "write": 0, "execute": 0},
            {"permission_id": 1, "name": "documents", "read": 2, "write": 2, "execute": 2},
        ])

        assert response.errors == [AuthBadRequestErrorCode.ROLE_PERMISSION_ALREADY_EXISTS]
        grants = (await facade.get_role_permissions(reader_role.id)).data
        assert [(g.permission_id, g.read) for g in grants] == [(1, PermissionLevel.OWN)]

    async def test_add_reports_union_of_validation_codes(self, facade, reader_role):
        response = await facade.add_permissions_to_role(reader_role.id, [
            {"permission_id": 6, "read": 1, "write": 0, "execute": 0},
            {"permission_id": 7, "name": "audit", "read": 9, "write": 0},
            {"permission_id": 8, "read": 1, "write": 0, "execute": 0},
        ])

        assert response.errors == [
            AuthValidatorErrorCode.ROLE_PERMISSION_NAME_NOT_PRESENT,
            AuthValidatorErrorCode.ROLE_PERMISSION_READ_LEVEL_NOT_VALID,
            AuthValidatorErrorCode.ROLE_PERMISSION_EXECUTE_LEVEL_NOT_SET,
        ]
        assert len((await facade.get_role_permissions(reader_role.id)).data) == 1

    async def test_add_to_unknown_role(self, facade):
        response = await facade.add_permissions_to_role(999, [
            {"permission_id": 1, "name": "documents", "read": 1, "write": 0, "execute": 0},
        ])

        assert response.errors == [AuthResourceNotFoundErrorCode.ROLE_DOES_NOT_EXISTS]

    async def test_update_merges_onto_stored_grant(self, facade, reader_role):
        response = await facade.update_role_permissions(reader_role.id, [
            {"permission_id": 1, "write": 2},
        ])

        assert response.status is True
        grant = response.data[0]
        assert grant.name == "documents"
        assert grant.read == PermissionLevel.OWN
        assert grant.write == PermissionLevel.ALL

    async def test_update_missing_grant_changes_nothing(self, facade, reader_role):
        response = await facade.update_role_permissions(reader_role.id, [
            {"permission_id": 1, "read": 2},
            {"permission_id": 42, "read": 2},
        ])

        assert response.errors == [AuthResourceNotFoundErrorCode.ROLE_PERMISSION_DOES_NOT_EXISTS]
        grants = (await facade.get_role_permissions(reader_role.id)).data
        assert grants[0].read == PermissionLevel.OWN

    async def test_update_validates_merged_values(self, facade, reader_role):
        response = await facade.update_role_permissions(reader_role.id, [
            {"permission_id": 1, "execute": 7},
        ])

        assert response.errors == [AuthValidatorErrorCode.ROLE_PERMISSION_EXECUTE_LEVEL_NOT_VALID]

    async def test_update_takes_effect_on_access(self, facade, test_principal, reader_role):
        await facade.grant_roles(test_principal.id, [reader_role.id])
        write_pass = [{"permission": 1, "type": "write"}]
        assert (await facade.can_access(test_principal.id, write_pass)).data is False

        await facade.update_role_permissions(reader_role.id, [{"permission_id": 1, "write": 1}])

        assert (await facade.can_access(test_principal.id, write_pass)).data is True

    async def test_remove(self, facade, reader_role):
        await facade.add_permissions_to_role(reader_role.id, [
            {"permission_id": 2, "name": "jobs", "read": 1, "write": 0, "execute": 0},
        ])

        response = await facade.remove_permissions_from_role(reader_role.id, [1])

        assert [grant.permission_id for grant in response.data] == [2]

    async def test_remove_missing_is_all_or_nothing(self, facade, reader_role):
        response = await facade.remove_permissions_from_role(reader_role.id, [1, 3])

        assert response.errors == [AuthResourceNotFoundErrorCode.ROLE_PERMISSION_DOES_NOT_EXISTS]
        assert len((await facade.get_role_permissions(reader_role.id)).data) == 1

    async def test_removed_grant_can_be_added_again(self, facade, reader_role):
        await facade.remove_permissions_from_role(reader_role.id, [1])

        response = await facade.add_permissions_to_role(reader_role.id, [
            {"permission_id": 1, "name": "documents", "read": 2, "write": 0, "execute": 0},
        ])

        assert response.data[0].read == PermissionLevel.ALL


class TestPermissionEngine:
    """Engine calls on a raw session."""

    async def test_effective_permissions_ignore_deleted_grants(self, db_session, facade, test_principal, reader_role):
        await facade.grant_roles(test_principal.id, [reader_role.id])
        engine = PermissionEngine(db_session)

        grant = (await engine.get_role_permissions(reader_role.id))[0]
        grant.status = 9
        await db_session.flush()

        assert await engine.get_effective_permissions(test_principal.id) == []
        assert await engine.get_role_permissions(reader_role.id) == []

    async def test_principal_has_role(self, db_session, facade, test_principal, reader_role):
        await facade.grant_roles(test_principal.id, [reader_role.id])
        engine = PermissionEngine(db_session)

        assert await engine.principal_has_role(test_principal.id, reader_role.id) is True
        assert await engine.principal_has_role(test_principal.id, reader_role.id + 1) is False
