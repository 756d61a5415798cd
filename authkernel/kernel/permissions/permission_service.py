"""
Permission engine for RBAC access control.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, exists, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from authkernel.errors import (
    AuthBadRequestErrorCode,
    AuthResourceNotFoundErrorCode,
    BadRequestError,
    FieldValidationError,
    ResourceNotFoundError,
    merge_codes,
)
from authkernel.kernel.models.base import ModelStatus
from authkernel.kernel.models.principal import principal_roles
from authkernel.kernel.models.role import PermissionLevel, Role, RolePermission, level_for
from authkernel.kernel.paging import fetch_page
from authkernel.kernel.validators import validate_role_name, validate_role_permission
from authkernel.logging_config import get_logger
from authkernel.schemas.auth import NewPermission, PermissionPass, RoleFilter, UpdatePermission

logger = get_logger(__name__)

_ORDERABLE_ROLES = {
    "id": Role.id,
    "name": Role.name,
    "created_at": Role.created_at,
}


@dataclass(frozen=True)
class EffectivePermission:
    """Levels a principal holds on one permission, merged across roles."""

    permission_id: int
    read: PermissionLevel
    write: PermissionLevel
    execute: PermissionLevel


def has_permission(held, pass_: PermissionPass) -> bool:
    """
    Check whether one held grant satisfies one pass.

    Without a required level any level above NONE suffices.
    """
    if held.permission_id != pass_.permission:
        return False
    level = level_for(held, pass_.type)
    if not level:
        return False
    return pass_.level is None or pass_.level <= level


class PermissionEngine:
    """
    Service for evaluating and managing role permissions.

    Holds no state between calls; every check reloads from the session.
    Mutations raise AuthError subclasses so the surrounding transaction
    rolls back as a whole.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Evaluation

    async def get_effective_permissions(self, principal_id: int) -> List[EffectivePermission]:
        """
        Aggregate a principal's grants across all of its roles.

        Each access type takes the highest level any role grants for the
        permission.
        """
        query = (
            select(
                RolePermission.permission_id,
                func.max(RolePermission.read),
                func.max(RolePermission.write),
                func.max(RolePermission.execute),
            )
            .join(principal_roles, principal_roles.c.role_id == RolePermission.role_id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(
                principal_roles.c.principal_id == principal_id,
                Role.status != ModelStatus.DELETED,
                RolePermission.status != ModelStatus.DELETED,
            )
            .group_by(RolePermission.permission_id)
            .order_by(RolePermission.permission_id)
        )
        result = await self.session.execute(query)
        return [
            EffectivePermission(
                permission_id=permission_id,
                read=PermissionLevel(read),
                write=PermissionLevel(write),
                execute=PermissionLevel(execute),
            )
            for permission_id, read, write, execute in result.all()
        ]

    async def can_access(self, principal_id: int, passes: Sequence[PermissionPass]) -> bool:
        """
        Check that a principal satisfies every pass.

        An empty list of passes is trivially satisfied.
        """
        held = await self.get_effective_permissions(principal_id)
        return all(
            any(has_permission(grant, pass_) for grant in held)
            for pass_ in passes
        )

    # Lookups

    async def get_role(self, role_id: Optional[int]) -> Optional[Role]:
        """Get a non-deleted role with its active grants loaded."""
        if role_id is None:
            return None
        query = (
            select(Role)
            .where(Role.id == role_id, Role.status != ModelStatus.DELETED)
            .options(selectinload(Role.permissions))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_roles(self, listing: RoleFilter) -> Tuple[List[Role], int]:
        """One page of non-deleted roles with their active grants, and the total count."""
        query = select(Role).where(Role.status != ModelStatus.DELETED)
        if listing.id is not None:
            query = query.where(Role.id == listing.id)
        if listing.search:
            query = query.where(Role.name.icontains(listing.search, autoescape=True))
        return await fetch_page(
            self.session, query, listing, _ORDERABLE_ROLES, Role.id.asc(),
            selectinload(Role.permissions),
        )

    async def _require_role(self, role_id: Optional[int]) -> Role:
        role = await self.get_role(role_id)
        if role is None:
            raise ResourceNotFoundError(
                AuthResourceNotFoundErrorCode.ROLE_DOES_NOT_EXISTS,
                details={"role_id": role_id},
            )
        return role

    async def get_role_permissions(self, role_id: int) -> List[RolePermission]:
        role = await self._require_role(role_id)
        return list(role.permissions)

    async def get_principal_roles(self, principal_id: int) -> List[Role]:
        """Get a principal's roles, each with its active grants."""
        query = (
            select(Role)
            .join(principal_roles, principal_roles.c.role_id == Role.id)
            .where(
                principal_roles.c.principal_id == principal_id,
                Role.status != ModelStatus.DELETED,
            )
            .options(selectinload(Role.permissions))
            .order_by(Role.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def principal_has_role(self, principal_id: int, role_id: int) -> bool:
        query = select(
            exists().where(
                principal_roles.c.principal_id == principal_id,
                principal_roles.c.role_id == role_id,
            )
        )
        return bool((await self.session.execute(query)).scalar())

    async def _grants_of(self, role_id: int, permission_ids: Iterable[int]) -> Dict[int, RolePermission]:
        """Stored grants of a role keyed by permission id, deleted ones included."""
        ids = list(permission_ids)
        if not ids:
            return {}
        query = select(RolePermission).where(
            RolePermission.role_id == role_id,
            RolePermission.permission_id.in_(ids),
        )
        result = await self.session.execute(query)
        return {grant.permission_id: grant for grant in result.scalars().all()}

    # Role membership

    async def grant_roles(self, principal_id: int, role_ids: Sequence[int]) -> List[Role]:
        """
        Grant roles to a principal.

        Every role must exist and must not be held yet; the first violation
        aborts the whole batch.

        Returns:
            The principal's roles, reloaded after the change
        """
        seen = set()
        for role_id in role_ids:
            await self._require_role(role_id)
            if role_id in seen or await self.principal_has_role(principal_id, role_id):
                raise BadRequestError(
                    AuthBadRequestErrorCode.AUTH_USER_ROLE_ALREADY_EXISTS,
                    details={"role_id": role_id},
                )
            seen.add(role_id)
            await self.session.execute(
                insert(principal_roles).values(principal_id=principal_id, role_id=role_id)
            )

        logger.info(
            "Granted roles",
            extra={"principal_id": principal_id, "role_ids": list(role_ids)},
        )
        return await self.get_principal_roles(principal_id)

    async def revoke_roles(self, principal_id: int, role_ids: Sequence[int]) -> List[Role]:
        """
        Revoke roles from a principal.

        Every role must exist and be held; the first violation aborts the
        whole batch.
        """
        for role_id in role_ids:
            await self._require_role(role_id)
            if not await self.principal_has_role(principal_id, role_id):
                raise BadRequestError(
                    AuthBadRequestErrorCode.AUTH_USER_ROLE_DOES_NOT_EXISTS,
                    details={"role_id": role_id},
                )
            await self.session.execute(
                delete(principal_roles).where(
                    principal_roles.c.principal_id == principal_id,
                    principal_roles.c.role_id == role_id,
                )
            )

        logger.info(
            "Revoked roles",
            extra={"principal_id": principal_id, "role_ids": list(role_ids)},
        )
        return await self.get_principal_roles(principal_id)

    # Role graph

    async def create_role(self, name: Optional[str], actor_id: Optional[int] = None) -> Role:
        name = name.strip() if name else name
        errors = await validate_role_name(self.session, name)
        if errors:
            raise FieldValidationError(*errors)

        role = Role(name=name, status=ModelStatus.ACTIVE, created_by=actor_id)
        self.session.add(role)
        await self.session.flush()
        logger.info("Created role", extra={"role_id": role.id, "role_name": role.name})
        return await self.get_role(role.id)

    async def add_permissions_to_role(
        self,
        role_id: int,
        permissions: Sequence[NewPermission],
        actor_id: Optional[int] = None,
    ) -> List[RolePermission]:
        """
        Add new grants to a role.

        All candidates are validated before anything is written; the
        failure carries the merged codes of every invalid candidate. A
        candidate whose grant already exists fails the whole batch.

        Returns:
            The role's active grants after the change
        """
        role = await self._require_role(role_id)

        errors = merge_codes(*(
            validate_role_permission(
                role.id, candidate.permission_id, candidate.name,
                candidate.read, candidate.write, candidate.execute,
            )
            for candidate in permissions
        ))
        if errors:
            raise FieldValidationError(*errors)

        stored = await self._grants_of(role.id, (c.permission_id for c in permissions))
        seen = set()
        for candidate in permissions:
            existing = stored.get(candidate.permission_id)
            if candidate.permission_id in seen or (existing is not None and existing.exists()):
                raise BadRequestError(
                    AuthBadRequestErrorCode.ROLE_PERMISSION_ALREADY_EXISTS,
                    details={"role_id": role.id, "permission_id": candidate.permission_id},
                )
            seen.add(candidate.permission_id)

        for candidate in permissions:
            values = {
                "name": candidate.name,
                "read": candidate.read,
                "write": candidate.write,
                "execute": candidate.execute,
            }
            existing = stored.get(candidate.permission_id)
            if existing is not None:
                # Soft-deleted row occupies the key; bring it back
                for field, value in values.items():
                    setattr(existing, field, value)
                existing.status = ModelStatus.ACTIVE
                existing.updated_by = actor_id
            else:
                self.session.add(RolePermission(
                    role_id=role.id,
                    permission_id=candidate.permission_id,
                    status=ModelStatus.ACTIVE,
                    created_by=actor_id,
                    **values,
                ))
        await self.session.flush()

        logger.info(
            "Added role permissions",
            extra={"role_id": role.id, "permission_ids": sorted(seen)},
        )
        return await self.get_role_permissions(role.id)

    async def update_role_permissions(
        self,
        role_id: int,
        updates: Sequence[UpdatePermission],
        actor_id: Optional[int] = None,
    ) -> List[RolePermission]:
        """
        Change existing grants of a role.

        Supplied fields are merged onto the stored grant and the result is
        validated. Every referenced grant must exist.
        """
        role = await self._require_role(role_id)
        stored = await self._grants_of(role.id, (u.permission_id for u in updates))

        merged = []
        for update in updates:
            grant = stored.get(update.permission_id)
            if grant is None or not grant.exists():
                raise ResourceNotFoundError(
                    AuthResourceNotFoundErrorCode.ROLE_PERMISSION_DOES_NOT_EXISTS,
                    details={"role_id": role.id, "permission_id": update.permission_id},
                )
            changes = update.model_dump(exclude={"permission_id"}, exclude_none=True)
            merged.append((grant, {
                field: changes.get(field, getattr(grant, field))
                for field in ("name", "read", "write", "execute")
            }))

        errors = merge_codes(*(
            validate_role_permission(
                grant.role_id, grant.permission_id, values["name"],
                values["read"], values["write"], values["execute"],
            )
            for grant, values in merged
        ))
        if errors:
            raise FieldValidationError(*errors)

        for grant, values in merged:
            for field, value in values.items():
                setattr(grant, field, value)
            grant.updated_by = actor_id
        await self.session.flush()

        logger.info(
            "Updated role permissions",
            extra={"role_id": role.id, "permission_ids": [u.permission_id for u in updates]},
        )
        return await self.get_role_permissions(role.id)

    async def remove_permissions_from_role(
        self,
        role_id: int,
        permission_ids: Sequence[int],
    ) -> List[RolePermission]:
        """Hard-delete grants from a role. Every id must be an active grant."""
        role = await self._require_role(role_id)
        stored = await self._grants_of(role.id, permission_ids)

        for permission_id in permission_ids:
            grant = stored.get(permission_id)
            if grant is None or not grant.exists():
                raise ResourceNotFoundError(
                    AuthResourceNotFoundErrorCode.ROLE_PERMISSION_DOES_NOT_EXISTS,
                    details={"role_id": role.id, "permission_id": permission_id},
                )

        for grant in stored.values():
            await self.session.delete(grant)
        await self.session.flush()

        logger.info(
            "Removed role permissions",
            extra={"role_id": role.id, "permission_ids": list(permission_ids)},
        )
        return await self.get_role_permissions(role.id)

    async def delete_role(self, role_id: int) -> bool:
        """
        Hard-delete a role.

        Memberships go first, then grants, then the role itself.
        """
        role = await self._require_role(role_id)

        await self.session.execute(
            delete(principal_roles).where(principal_roles.c.role_id == role.id)
        )
        await self.session.execute(
            delete(RolePermission)
            .where(RolePermission.role_id == role.id)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(role)
        await self.session.flush()

        logger.info("Deleted role", extra={"role_id": role_id})
        return True
