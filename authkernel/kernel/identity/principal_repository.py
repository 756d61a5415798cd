"""
Principal lookups and mutations.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import String, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from authkernel.errors import AuthValidatorErrorCode, FieldValidationError
from authkernel.kernel.identity.password import PasswordHasher
from authkernel.kernel.models.base import ModelStatus, SerializeFor
from authkernel.kernel.models.principal import Principal, principal_roles
from authkernel.kernel.models.role import Role
from authkernel.kernel.paging import fetch_page
from authkernel.kernel.validators import normalize_email, validate_principal
from authkernel.logging_config import get_logger
from authkernel.schemas.auth import PrincipalFilter

logger = get_logger(__name__)

_ORDERABLE = {
    "id": Principal.id,
    "username": Principal.username,
    "email": Principal.email,
    "status": Principal.status,
    "created_at": Principal.created_at,
    "updated_at": Principal.updated_at,
}


class PrincipalRepository:
    """
    Store access for principals.

    Lookups ignore soft-deleted principals unless asked otherwise.
    Mutations validate first and raise FieldValidationError with every
    violated rule.
    """

    def __init__(self, session: AsyncSession, hasher: Optional[PasswordHasher] = None):
        self.session = session
        self.hasher = hasher or PasswordHasher()

    async def _first(self, *criteria) -> Optional[Principal]:
        query = select(Principal).where(
            *criteria,
            Principal.status != ModelStatus.DELETED,
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_by_id(self, principal_id: Optional[int]) -> Optional[Principal]:
        if principal_id is None:
            return None
        principal = await self.session.get(Principal, principal_id)
        if principal is None or principal.is_deleted:
            return None
        return principal

    async def get_by_email(self, email: Optional[str]) -> Optional[Principal]:
        email = normalize_email(email)
        if not email:
            return None
        return await self._first(Principal.email == email)

    async def get_by_username(self, username: Optional[str]) -> Optional[Principal]:
        if not username:
            return None
        return await self._first(Principal.username == username)

    async def get_by_pin(self, pin: Optional[str]) -> Optional[Principal]:
        if not pin:
            return None
        return await self._first(Principal.pin == pin)

    async def list_principals(self, listing: PrincipalFilter) -> Tuple[List[Principal], int]:
        """One page of principals matching the filter, and the total count."""
        query = select(Principal)
        if listing.id is not None:
            query = query.where(Principal.id == listing.id)
        if listing.statuses:
            query = query.where(Principal.status.in_(listing.statuses))
        else:
            query = query.where(Principal.status != ModelStatus.DELETED)
        if listing.role_ids:
            holders = select(principal_roles.c.principal_id).where(
                principal_roles.c.role_id.in_(listing.role_ids)
            )
            query = query.where(Principal.id.in_(holders))
        if listing.search:
            query = query.where(or_(
                Principal.username.icontains(listing.search, autoescape=True),
                Principal.email.icontains(listing.search, autoescape=True),
                cast(Principal.id, String).contains(listing.search, autoescape=True),
            ))
        return await fetch_page(self.session, query, listing, _ORDERABLE, Principal.id.asc())

    async def role_names(self, principal_ids: Sequence[int]) -> Dict[int, List[str]]:
        """Names of the non-deleted roles each principal holds, sorted."""
        names: Dict[int, List[str]] = {principal_id: [] for principal_id in principal_ids}
        if not principal_ids:
            return names
        query = (
            select(principal_roles.c.principal_id, Role.name)
            .select_from(principal_roles)
            .join(Role, Role.id == principal_roles.c.role_id)
            .where(
                principal_roles.c.principal_id.in_(principal_ids),
                Role.status != ModelStatus.DELETED,
            )
            .order_by(Role.name)
        )
        for principal_id, name in (await self.session.execute(query)).all():
            names[principal_id].append(name)
        return names

    async def create(
        self,
        principal_id: Optional[int],
        username: Optional[str],
        email: Optional[str] = None,
        password: Optional[str] = None,
        pin: Optional[str] = None,
        status: Optional[int] = None,
        actor_id: Optional[int] = None,
    ) -> Principal:
        """Validate and insert a new principal. The raw password is never stored."""
        principal = Principal(
            id=principal_id,
            username=username,
            email=normalize_email(email),
            password_hash=self.hasher.hash(password) if password else None,
            pin=pin or None,
            status=status if status is not None else ModelStatus.ACTIVE,
            created_by=actor_id,
        )
        errors = await validate_principal(self.session, principal, is_new=True)
        if errors:
            raise FieldValidationError(*errors)

        self.session.add(principal)
        await self.session.flush()
        logger.info("Created principal", extra={"principal_id": principal.id})
        return principal

    async def update_fields(
        self,
        principal: Principal,
        actor_id: Optional[int] = None,
        **fields,
    ) -> Principal:
        """
        Set the given fields, re-validate, then persist.

        Only fields serializable for updates are accepted.
        """
        allowed = set(Principal.SERIALIZABLE[SerializeFor.UPDATE_DB])
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        for field, value in fields.items():
            setattr(principal, field, value)
        principal.updated_by = actor_id

        errors = await validate_principal(self.session, principal)
        if errors:
            raise FieldValidationError(*errors)
        await self.session.flush()
        await self.session.refresh(principal)
        return principal

    async def set_password(self, principal: Principal, password: Optional[str]) -> Principal:
        if not password:
            raise FieldValidationError(AuthValidatorErrorCode.USER_PASSWORD_NOT_VALID)
        principal.password_hash = self.hasher.hash(password)
        await self.session.flush()
        await self.session.refresh(principal)
        return principal

    def verify_password(self, principal: Principal, password: Optional[str]) -> bool:
        return self.hasher.verify(password, principal.password_hash)

    async def rehash_if_needed(self, principal: Principal, password: str) -> bool:
        """
        Re-hash a just-verified password when the configured cost changed.

        Returns True when a new hash was stored.
        """
        if not principal.password_hash or not self.hasher.needs_rehash(principal.password_hash):
            return False
        await self.set_password(principal, password)
        logger.info("Re-hashed password", extra={"principal_id": principal.id, "rounds": self.hasher.rounds})
        return True

    async def soft_delete(self, principal: Principal, actor_id: Optional[int] = None) -> Principal:
        """Mark as DELETED. Roles and tokens are left untouched."""
        principal.status = ModelStatus.DELETED
        principal.updated_by = actor_id
        await self.session.flush()
        await self.session.refresh(principal)
        logger.info("Deleted principal", extra={"principal_id": principal.id})
        return principal
