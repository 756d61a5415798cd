"""
Authorization facade: the operations callers invoke.

Each operation runs as one unit of work against the store and returns an
AuthResponse envelope. No exception crosses this boundary.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authkernel.config import Settings, get_settings
from authkernel.database import Store
from authkernel.errors import (
    AuthAuthenticationErrorCode,
    AuthBadRequestErrorCode,
    AuthError,
    AuthenticationError,
    AuthResourceNotFoundErrorCode,
    AuthSystemErrorCode,
    AuthValidatorErrorCode,
    BadRequestError,
    ResourceNotFoundError,
)
from authkernel.kernel.clock import Clock, SystemClock
from authkernel.kernel.identity.credential_service import CredentialService
from authkernel.kernel.identity.jwt import TTL, JWTSigner
from authkernel.kernel.identity.password import PasswordHasher
from authkernel.kernel.identity.principal_repository import PrincipalRepository
from authkernel.kernel.models.base import ModelStatus
from authkernel.kernel.models.principal import Principal
from authkernel.kernel.models.token import TokenSubject
from authkernel.kernel.permissions.permission_service import PermissionEngine
from authkernel.logging_config import get_logger, operation_scope
from authkernel.schemas.auth import (
    EffectivePermissionResponse,
    LoginResponse,
    NewPermission,
    PermissionPass,
    PrincipalCreate,
    PrincipalFilter,
    PrincipalListItem,
    PrincipalResponse,
    PrincipalUpdate,
    RoleFilter,
    RolePermissionResponse,
    RoleResponse,
    UpdatePermission,
)
from authkernel.schemas.common import AuthResponse, Page

logger = get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

Work = Callable[[AsyncSession], Awaitable[T]]


def _missing_data() -> BadRequestError:
    return BadRequestError(AuthBadRequestErrorCode.MISSING_DATA_ERROR)


def _coerce(model: Type[M], value: Union[M, Dict[str, Any]]) -> M:
    return value if isinstance(value, model) else model.model_validate(value)


class AuthorizationFacade:
    """
    Entry point of the authorization engine.

    Stateless: services are built per unit of work on the session of that
    unit, so one instance can serve concurrent callers.

    Usage:
        facade = AuthorizationFacade.from_settings()
        response = await facade.login_email("ada@example.com", "secret")
        if response.status:
            token = response.data.token
    """

    def __init__(
        self,
        store: Store,
        signer: JWTSigner,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.store = store
        self.signer = signer
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.hasher = hasher or PasswordHasher(rounds=self.settings.bcrypt_rounds)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AuthorizationFacade":
        settings = settings or get_settings()
        return cls(
            store=Store.from_settings(settings),
            signer=JWTSigner.from_settings(settings),
            settings=settings,
        )

    # Unit of work

    def _principals(self, session: AsyncSession) -> PrincipalRepository:
        return PrincipalRepository(session, self.hasher)

    def _credentials(self, session: AsyncSession) -> CredentialService:
        return CredentialService(
            session, self.signer, self.clock, self.settings.default_token_ttl,
        )

    @staticmethod
    def _permissions(session: AsyncSession) -> PermissionEngine:
        return PermissionEngine(session)

    async def _run(self, operation: str, work: Work, read_only: bool = False) -> AuthResponse:
        """
        Run work in one transaction and wrap the outcome.

        AuthError becomes its own codes; store and unexpected failures become
        system codes with the failure text in details. The transaction is
        rolled back before any failure is returned. Everything logged while
        the work runs carries the operation name and correlation ID.
        """
        with operation_scope(operation):
            try:
                if read_only:
                    async with self.store.session() as session:
                        data = await work(session)
                else:
                    async with self.store.transaction() as session:
                        data = await work(session)
                return AuthResponse.ok(data)
            except AuthError as e:
                logger.info("%s rejected: %s", operation, e, extra={"error_details": e.details})
                return AuthResponse.fail(*e.codes)
            except ValidationError:
                logger.info("%s rejected malformed input", operation)
                return AuthResponse.fail(AuthValidatorErrorCode.DEFAULT_VALIDATION_ERROR)
            except SQLAlchemyError as e:
                logger.exception("%s failed in store: %s", operation, e)
                return AuthResponse.fail(AuthSystemErrorCode.SQL_SYSTEM_ERROR, details=str(e))
            except Exception as e:
                logger.exception("%s failed: %s", operation, e)
                return AuthResponse.fail(AuthSystemErrorCode.UNHANDLED_SYSTEM_ERROR, details=str(e))

    async def _require_principal(self, session: AsyncSession, principal_id: Optional[int]) -> Principal:
        if principal_id is None:
            raise _missing_data()
        principal = await self._principals(session).get_by_id(principal_id)
        if principal is None:
            raise ResourceNotFoundError(
                AuthResourceNotFoundErrorCode.AUTH_USER_DOES_NOT_EXISTS,
                details={"principal_id": principal_id},
            )
        return principal

    # Principals

    async def get_principal_by_id(self, principal_id: int) -> AuthResponse[PrincipalResponse]:
        async def work(session):
            principal = await self._require_principal(session, principal_id)
            return PrincipalResponse.model_validate(principal)

        return await self._run("get_principal_by_id", work, read_only=True)

    async def get_principal_by_email(self, email: str) -> AuthResponse[PrincipalResponse]:
        async def work(session):
            if not email:
                raise _missing_data()
            principal = await self._principals(session).get_by_email(email)
            if principal is None:
                raise ResourceNotFoundError(AuthResourceNotFoundErrorCode.AUTH_USER_DOES_NOT_EXISTS)
            return PrincipalResponse.model_validate(principal)

        return await self._run("get_principal_by_email", work, read_only=True)

    async def get_principal_by_username(self, username: str) -> AuthResponse[PrincipalResponse]:
        async def work(session):
            if not username:
                raise _missing_data()
            principal = await self._principals(session).get_by_username(username)
            if principal is None:
                raise ResourceNotFoundError(AuthResourceNotFoundErrorCode.AUTH_USER_DOES_NOT_EXISTS)
            return PrincipalResponse.model_validate(principal)

        return await self._run("get_principal_by_username", work, read_only=True)

    async def list_principals(
        self,
        listing: Union[PrincipalFilter, Dict[str, Any], None] = None,
    ) -> AuthResponse[Page[PrincipalListItem]]:
        """
        Page through principals.

        Each item carries the names of the principal's roles and whether a
        password is set; hashes and PINs are never returned.
        """
        async def work(session):
            query = _coerce(PrincipalFilter, listing or {})
            principals = self._principals(session)
            rows, total = await principals.list_principals(query)
            names = await principals.role_names([row.id for row in rows])
            items = [
                PrincipalListItem(
                    **PrincipalResponse.model_validate(row).model_dump(),
                    roles=names[row.id],
                    has_password=row.password_hash is not None,
                )
                for row in rows
            ]
            return Page.create(items, total, query.limit, query.offset)

        return await self._run("list_principals", work, read_only=True)

    async def create_principal(
        self,
        data: Union[PrincipalCreate, Dict[str, Any]],
        actor_id: Optional[int] = None,
    ) -> AuthResponse[PrincipalResponse]:
        """
        Create a principal.

        Every violated field rule is reported; nothing is written unless
        all of them hold.
        """
        async def work(session):
            request = _coerce(PrincipalCreate, data)
            principal = await self._principals(session).create(
                principal_id=request.id,
                username=request.username,
                email=request.email,
                password=request.password,
                pin=request.pin,
                status=request.status,
                actor_id=actor_id,
            )
            return PrincipalResponse.model_validate(principal)

        return await self._run("create_principal", work)

    async def delete_principal(self, principal_id: int, actor_id: Optional[int] = None) -> AuthResponse[bool]:
        """Soft-delete a principal. Role memberships and tokens are kept."""
        async def work(session):
            principal = await self._require_principal(session, principal_id)
            await self._principals(session).soft_delete(principal, actor_id)
            return True

        return await self._run("delete_principal", work)

    async def update_principal(
        self,
        principal_id: int,
        data: Union[PrincipalUpdate, Dict[str, Any]],
        actor_id: Optional[int] = None,
    ) -> AuthResponse[PrincipalResponse]:
        """Change the supplied fields only, after validating the result."""
        async def work(session):
            fields = _coerce(PrincipalUpdate, data).model_dump(exclude_unset=True)
            if not fields:
                raise _missing_data()
            principal = await self._require_principal(session, principal_id)
            principal = await self._principals(session).update_fields(principal, actor_id, **fields)
            return PrincipalResponse.model_validate(principal)

        return await self._run("update_principal", work)

    async def change_email(
        self,
        principal_id: int,
        email: Optional[str],
        actor_id: Optional[int] = None,
    ) -> AuthResponse[PrincipalResponse]:
        if not email:
            return AuthResponse.fail(AuthBadRequestErrorCode.MISSING_DATA_ERROR)
        return await self.update_principal(principal_id, PrincipalUpdate(email=email), actor_id)

    async def change_username(
        self,
        principal_id: int,
        username: Optional[str],
        actor_id: Optional[int] = None,
    ) -> AuthResponse[PrincipalResponse]:
        if not username:
            return AuthResponse.fail(AuthBadRequestErrorCode.MISSING_DATA_ERROR)
        return await self.update_principal(principal_id, PrincipalUpdate(username=username), actor_id)

    async def change_password(
        self,
        principal_id: int,
        password: Optional[str],
        new_password: Optional[str],
        force: bool = False,
    ) -> AuthResponse[PrincipalResponse]:
        """
        Replace a principal's password.

        The old password must match unless force is set. All authentication
        tokens of the principal are revoked in the same transaction.
        """
        async def work(session):
            if principal_id is None or not new_password or (not force and not password):
                raise _missing_data()
            principal = await self._require_principal(session, principal_id)
            principals = self._principals(session)

            if not force and not principals.verify_password(principal, password):
                logger.warning("Password change with wrong password", extra={"principal_id": principal_id})
                raise AuthenticationError(AuthAuthenticationErrorCode.USER_NOT_AUTHENTICATED)

            await principals.set_password(principal, new_password)
            await self._credentials(session).invalidate_principal_tokens(
                principal.id, TokenSubject.USER_AUTHENTICATION,
            )
            logger.info("Changed password", extra={"principal_id": principal_id, "forced": force})
            return PrincipalResponse.model_validate(principal)

        return await self._run("change_password", work)

    # Login

    async def _issue_login(self, session: AsyncSession, principal: Principal) -> LoginResponse:
        if principal.status != ModelStatus.ACTIVE:
            logger.warning("Login of inactive principal", extra={"principal_id": principal.id})
            raise AuthenticationError(AuthAuthenticationErrorCode.USER_NOT_AUTHENTICATED)

        token = await self._credentials(session).generate(
            {"principal_id": principal.id},
            TokenSubject.USER_AUTHENTICATION,
            principal_id=principal.id,
            ttl=self.settings.auth_token_ttl,
        )
        logger.info("Principal logged in", extra={"principal_id": principal.id})
        return LoginResponse(token=token, principal=PrincipalResponse.model_validate(principal))

    async def _login_with_password(
        self,
        session: AsyncSession,
        principal: Optional[Principal],
        password: str,
    ) -> LoginResponse:
        if principal is None:
            raise ResourceNotFoundError(AuthResourceNotFoundErrorCode.AUTH_USER_DOES_NOT_EXISTS)
        principals = self._principals(session)
        if not principals.verify_password(principal, password):
            logger.warning("Login with wrong password", extra={"principal_id": principal.id})
            raise AuthenticationError(AuthAuthenticationErrorCode.USER_NOT_AUTHENTICATED)
        login = await self._issue_login(session, principal)
        await principals.rehash_if_needed(principal, password)
        return login

    async def login_email(self, email: str, password: str) -> AuthResponse[LoginResponse]:
        async def work(session):
            if not email or not password:
                raise _missing_data()
            principal = await self._principals(session).get_by_email(email)
            return await self._login_with_password(session, principal, password)

        return await self._run("login_email", work)

    async def login_username(self, username: str, password: str) -> AuthResponse[LoginResponse]:
        async def work(session):
            if not username or not password:
                raise _missing_data()
            principal = await self._principals(session).get_by_username(username)
            return await self._login_with_password(session, principal, password)

        return await self._run("login_username", work)

    async def login_pin(self, pin: str) -> AuthResponse[LoginResponse]:
        """
        Log in with a PIN alone.

        The PIN space is small; callers must throttle attempts.
        """
        async def work(session):
            if not pin:
                raise _missing_data()
            principal = await self._principals(session).get_by_pin(pin)
            if principal is None:
                logger.warning("Login with unknown PIN")
                raise AuthenticationError(AuthAuthenticationErrorCode.USER_NOT_AUTHENTICATED)
            return await self._issue_login(session, principal)

        return await self._run("login_pin", work)

    # Credentials

    async def generate_token(
        self,
        payload: Optional[Dict[str, Any]],
        subject: Union[TokenSubject, str],
        principal_id: Optional[int] = None,
        ttl: Optional[TTL] = None,
    ) -> AuthResponse[str]:
        async def work(session):
            if not subject:
                raise _missing_data()
            return await self._credentials(session).generate(payload, subject, principal_id, ttl)

        return await self._run("generate_token", work)

    async def validate_token(
        self,
        token: Optional[str],
        subject: Union[TokenSubject, str],
        principal_id: Optional[int] = None,
    ) -> AuthResponse[Dict[str, Any]]:
        """Return the token's claims if it verifies and is still active."""
        async def work(session):
            if not token:
                raise AuthenticationError(AuthAuthenticationErrorCode.MISSING_AUTHENTICATION_TOKEN)
            claims = await self._credentials(session).validate(token, subject, principal_id)
            if claims is None:
                raise AuthenticationError(AuthAuthenticationErrorCode.INVALID_TOKEN)
            return claims

        return await self._run("validate_token", work, read_only=True)

    async def invalidate_token(self, token: Optional[str]) -> AuthResponse[bool]:
        """
        Revoke one token.

        data is False when there was nothing active to revoke.
        """
        async def work(session):
            if not token:
                raise _missing_data()
            return await self._credentials(session).invalidate(token)

        return await self._run("invalidate_token", work)

    async def invalidate_principal_tokens(
        self,
        principal_id: int,
        subject: Union[TokenSubject, str] = TokenSubject.USER_AUTHENTICATION,
    ) -> AuthResponse[bool]:
        async def work(session):
            principal = await self._require_principal(session, principal_id)
            return await self._credentials(session).invalidate_principal_tokens(principal.id, subject)

        return await self._run("invalidate_principal_tokens", work)

    async def refresh_token(self, token: Optional[str]) -> AuthResponse[str]:
        """
        Issue a fresh token from an active one.

        The source token stays valid.
        """
        async def work(session):
            if not token:
                raise AuthenticationError(AuthAuthenticationErrorCode.MISSING_AUTHENTICATION_TOKEN)
            refreshed = await self._credentials(session).refresh(token)
            if refreshed is None:
                raise AuthenticationError(AuthAuthenticationErrorCode.INVALID_TOKEN)
            return refreshed

        return await self._run("refresh_token", work)

    # Role membership and access

    async def grant_roles(self, principal_id: int, role_ids: Sequence[int]) -> AuthResponse[List[RoleResponse]]:
        """Grant all roles or none."""
        async def work(session):
            if not role_ids:
                raise _missing_data()
            principal = await self._require_principal(session, principal_id)
            roles = await self._permissions(session).grant_roles(principal.id, role_ids)
            return [RoleResponse.model_validate(role) for role in roles]

        return await self._run("grant_roles", work)

    async def revoke_roles(self, principal_id: int, role_ids: Sequence[int]) -> AuthResponse[List[RoleResponse]]:
        """Revoke all roles or none."""
        async def work(session):
            if not role_ids:
                raise _missing_data()
            principal = await self._require_principal(session, principal_id)
            roles = await self._permissions(session).revoke_roles(principal.id, role_ids)
            return [RoleResponse.model_validate(role) for role in roles]

        return await self._run("revoke_roles", work)

    async def get_principal_roles(self, principal_id: int) -> AuthResponse[List[RoleResponse]]:
        async def work(session):
            principal = await self._require_principal(session, principal_id)
            roles = await self._permissions(session).get_principal_roles(principal.id)
            return [RoleResponse.model_validate(role) for role in roles]

        return await self._run("get_principal_roles", work, read_only=True)

    async def get_principal_permissions(
        self,
        principal_id: int,
    ) -> AuthResponse[List[EffectivePermissionResponse]]:
        """Effective permissions, the highest level per access type across roles."""
        async def work(session):
            principal = await self._require_principal(session, principal_id)
            held = await self._permissions(session).get_effective_permissions(principal.id)
            return [EffectivePermissionResponse.model_validate(grant) for grant in held]

        return await self._run("get_principal_permissions", work, read_only=True)

    async def can_access(
        self,
        principal_id: int,
        passes: Sequence[Union[PermissionPass, Dict[str, Any]]],
    ) -> AuthResponse[bool]:
        """data is True only if every pass is satisfied."""
        async def work(session):
            required = [_coerce(PermissionPass, pass_) for pass_ in passes]
            principal = await self._require_principal(session, principal_id)
            return await self._permissions(session).can_access(principal.id, required)

        return await self._run("can_access", work, read_only=True)

    # Roles

    async def list_roles(
        self,
        listing: Union[RoleFilter, Dict[str, Any], None] = None,
    ) -> AuthResponse[Page[RoleResponse]]:
        """Page through roles with their active grants."""
        async def work(session):
            query = _coerce(RoleFilter, listing or {})
            roles, total = await self._permissions(session).list_roles(query)
            items = [RoleResponse.model_validate(role) for role in roles]
            return Page.create(items, total, query.limit, query.offset)

        return await self._run("list_roles", work, read_only=True)

    async def create_role(self, name: Optional[str], actor_id: Optional[int] = None) -> AuthResponse[RoleResponse]:
        async def work(session):
            role = await self._permissions(session).create_role(name, actor_id)
            return RoleResponse.model_validate(role)

        return await self._run("create_role", work)

    async def delete_role(self, role_id: int) -> AuthResponse[bool]:
        """Hard-delete a role together with its memberships and grants."""
        async def work(session):
            if role_id is None:
                raise _missing_data()
            return await self._permissions(session).delete_role(role_id)

        return await self._run("delete_role", work)

    async def get_role_permissions(self, role_id: int) -> AuthResponse[List[RolePermissionResponse]]:
        async def work(session):
            grants = await self._permissions(session).get_role_permissions(role_id)
            return [RolePermissionResponse.model_validate(grant) for grant in grants]

        return await self._run("get_role_permissions", work, read_only=True)

    async def add_permissions_to_role(
        self,
        role_id: int,
        permissions: Sequence[Union[NewPermission, Dict[str, Any]]],
        actor_id: Optional[int] = None,
    ) -> AuthResponse[List[RolePermissionResponse]]:
        async def work(session):
            if role_id is None or not permissions:
                raise _missing_data()
            candidates = [_coerce(NewPermission, p) for p in permissions]
            grants = await self._permissions(session).add_permissions_to_role(
                role_id, candidates, actor_id,
            )
            return [RolePermissionResponse.model_validate(grant) for grant in grants]

        return await self._run("add_permissions_to_role", work)

    async def update_role_permissions(
        self,
        role_id: int,
        permissions: Sequence[Union[UpdatePermission, Dict[str, Any]]],
        actor_id: Optional[int] = None,
    ) -> AuthResponse[List[RolePermissionResponse]]:
        async def work(session):
            if role_id is None or not permissions:
                raise _missing_data()
            updates = [_coerce(UpdatePermission, p) for p in permissions]
            grants = await self._permissions(session).update_role_permissions(
                role_id, updates, actor_id,
            )
            return [RolePermissionResponse.model_validate(grant) for grant in grants]

        return await self._run("update_role_permissions", work)

    async def remove_permissions_from_role(
        self,
        role_id: int,
        permission_ids: Sequence[int],
    ) -> AuthResponse[List[RolePermissionResponse]]:
        async def work(session):
            if role_id is None or not permission_ids:
                raise _missing_data()
            grants = await self._permissions(session).remove_permissions_from_role(
                role_id, permission_ids,
            )
            return [RolePermissionResponse.model_validate(grant) for grant in grants]

        return await self._run("remove_permissions_from_role", work)
