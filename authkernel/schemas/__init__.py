"""
Pydantic schemas for engine requests, read models and the response envelope.
"""

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
from authkernel.schemas.common import AuthResponse, ListQuery, Page

__all__ = [
    # Requests
    "PermissionPass",
    "NewPermission",
    "UpdatePermission",
    "PrincipalCreate",
    "PrincipalUpdate",
    "ListQuery",
    "PrincipalFilter",
    "RoleFilter",
    # Read models
    "PrincipalResponse",
    "RoleResponse",
    "RolePermissionResponse",
    "EffectivePermissionResponse",
    "PrincipalListItem",
    "Page",
    "LoginResponse",
    # Envelope
    "AuthResponse",
]
