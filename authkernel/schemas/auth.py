"""
Request and response shapes for principals, roles and permissions.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from authkernel.kernel.models.role import PermissionLevel, PermissionType
from authkernel.schemas.common import ListQuery


class PermissionPass(BaseModel):
    """A caller's statement of the permission it needs to proceed."""

    permission: int
    type: PermissionType
    level: Optional[PermissionLevel] = None


class NewPermission(BaseModel):
    """
    Candidate grant for a role.

    Fields are optional so that missing values surface as validation codes
    rather than parse errors.
    """

    permission_id: Optional[int] = None
    name: Optional[str] = None
    read: Optional[int] = None
    write: Optional[int] = None
    execute: Optional[int] = None


class UpdatePermission(BaseModel):
    """Partial update of an existing grant; unset fields keep stored values."""

    permission_id: int
    name: Optional[str] = None
    read: Optional[int] = None
    write: Optional[int] = None
    execute: Optional[int] = None


class PrincipalCreate(BaseModel):
    """Principal signup data."""

    id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    pin: Optional[str] = None
    status: Optional[int] = None


class PrincipalUpdate(BaseModel):
    """Principal fields that may be changed after creation."""

    username: Optional[str] = None
    email: Optional[str] = None


class PrincipalResponse(BaseModel):
    """Public view of a principal. Never carries credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: int
    username: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RolePermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role_id: int
    permission_id: int
    name: str
    read: PermissionLevel
    write: PermissionLevel
    execute: PermissionLevel


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    status: int
    permissions: List[RolePermissionResponse] = []


class EffectivePermissionResponse(BaseModel):
    """Permission levels aggregated across all of a principal's roles."""

    model_config = ConfigDict(from_attributes=True)

    permission_id: int
    read: PermissionLevel
    write: PermissionLevel
    execute: PermissionLevel


class LoginResponse(BaseModel):
    """Authentication credential issued on a successful login."""

    token: str
    principal: PrincipalResponse


class PrincipalFilter(ListQuery):
    """
    Principal listing filter.

    search matches username, email or id as a substring. Without statuses,
    deleted principals are left out.
    """

    id: Optional[int] = None
    search: Optional[str] = None
    statuses: Optional[List[int]] = None
    role_ids: Optional[List[int]] = None


class PrincipalListItem(PrincipalResponse):
    """Principal row of a listing, with its role names."""

    roles: List[str] = []
    has_password: bool = False


class RoleFilter(ListQuery):
    """Role listing filter; search matches the role name as a substring."""

    id: Optional[int] = None
    search: Optional[str] = None
