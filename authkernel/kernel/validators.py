"""
Field rules for principals, roles and role permissions.

Each validator returns the ordered list of violated rule codes; an empty
list means the entity is valid. Rules that need the store take a session.
"""

import re
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from authkernel.errors import AuthValidatorErrorCode as Code
from authkernel.kernel.models.base import ModelStatus
from authkernel.kernel.models.principal import Principal
from authkernel.kernel.models.role import PermissionLevel, Role

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PIN_PATTERN = re.compile(r"^\d{4}$")

_LEVEL_RULES = (
    ("read", Code.ROLE_PERMISSION_READ_LEVEL_NOT_SET, Code.ROLE_PERMISSION_READ_LEVEL_NOT_VALID),
    ("write", Code.ROLE_PERMISSION_WRITE_LEVEL_NOT_SET, Code.ROLE_PERMISSION_WRITE_LEVEL_NOT_VALID),
    ("execute", Code.ROLE_PERMISSION_EXECUTE_LEVEL_NOT_SET, Code.ROLE_PERMISSION_EXECUTE_LEVEL_NOT_VALID),
)

_VALID_LEVELS = frozenset(level.value for level in PermissionLevel)


def is_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value) is not None


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and strip all whitespace; empty becomes None."""
    if not email:
        return None
    return re.sub(r"\s", "", email).lower() or None


def validate_role_permission(
    role_id: Optional[int],
    permission_id: Optional[int],
    name: Optional[str],
    read: Optional[int],
    write: Optional[int],
    execute: Optional[int],
) -> List[Code]:
    """Rules for a single role permission grant."""
    errors: List[Code] = []
    if role_id is None:
        errors.append(Code.ROLE_PERMISSION_ROLE_ID_NOT_PRESENT)
    if permission_id is None:
        errors.append(Code.ROLE_PERMISSION_PERMISSION_ID_NOT_PRESENT)
    if not name:
        errors.append(Code.ROLE_PERMISSION_NAME_NOT_PRESENT)

    levels = {"read": read, "write": write, "execute": execute}
    for field, not_set, not_valid in _LEVEL_RULES:
        value = levels[field]
        if value is None:
            errors.append(not_set)
        elif value not in _VALID_LEVELS:
            errors.append(not_valid)
    return errors


async def validate_role_name(
    session: AsyncSession,
    name: Optional[str],
    role_id: Optional[int] = None,
) -> List[Code]:
    """Role name must be present and not used by another role."""
    if not name or not name.strip():
        return [Code.ROLE_NAME_NOT_PRESENT]

    query = select(func.count()).select_from(Role).where(Role.name == name)
    if role_id is not None:
        query = query.where(Role.id != role_id)
    taken = (await session.execute(query)).scalar_one()
    return [Code.ROLE_NAME_ALREADY_TAKEN] if taken else []


async def _taken_by_other(
    session: AsyncSession,
    column,
    value: str,
    principal_id: Optional[int],
) -> bool:
    query = select(func.count()).select_from(Principal).where(
        column == value,
        Principal.status != ModelStatus.DELETED,
    )
    if principal_id is not None:
        query = query.where(Principal.id != principal_id)
    return bool((await session.execute(query)).scalar_one())


async def validate_principal(
    session: AsyncSession,
    principal: Principal,
    is_new: bool = False,
) -> List[Code]:
    """
    Rules for a principal record.

    Uniqueness of username, email and PIN is checked among non-deleted
    principals other than this one. The id must be free across all rows,
    deleted ones included, when the principal is new.
    """
    errors: List[Code] = []
    # A new principal has no row of its own to exclude
    own_id = None if is_new else principal.id

    if principal.id is None:
        errors.append(Code.USER_ID_NOT_PRESENT)
    elif is_new and await session.get(Principal, principal.id) is not None:
        errors.append(Code.USER_ID_ALREADY_TAKEN)

    if not principal.username:
        errors.append(Code.USER_USERNAME_NOT_PRESENT)
    else:
        if is_email(principal.username):
            errors.append(Code.USER_USERNAME_NOT_VALID)
        if await _taken_by_other(session, Principal.username, principal.username, own_id):
            errors.append(Code.USER_USERNAME_ALREADY_TAKEN)

    if principal.email is not None:
        if not is_email(principal.email):
            errors.append(Code.USER_EMAIL_NOT_VALID)
        elif await _taken_by_other(session, Principal.email, principal.email, own_id):
            errors.append(Code.USER_EMAIL_ALREADY_TAKEN)

    if not principal.password_hash and not principal.pin:
        errors.append(Code.USER_PASSWORD_OR_PIN_NOT_PRESENT)

    if principal.pin is not None:
        if not PIN_PATTERN.match(principal.pin):
            errors.append(Code.USER_PIN_NOT_CORRECT_LENGTH)
        elif await _taken_by_other(session, Principal.pin, principal.pin, own_id):
            errors.append(Code.USER_PIN_ALREADY_TAKEN)

    return errors
