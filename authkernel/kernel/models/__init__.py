"""
Kernel Data Models

SQLAlchemy models for principals, roles, role permissions and issued tokens.
"""

from authkernel.kernel.models.base import (
    AuditMixin,
    Base,
    ModelStatus,
    SerializableMixin,
    SerializeFor,
    StatusMixin,
)
from authkernel.kernel.models.principal import Principal, principal_roles
from authkernel.kernel.models.role import (
    PermissionLevel,
    PermissionType,
    Role,
    RolePermission,
    level_for,
)
from authkernel.kernel.models.token import Token, TokenSubject

__all__ = [
    # Base
    "Base",
    "AuditMixin",
    "StatusMixin",
    "SerializableMixin",
    "ModelStatus",
    "SerializeFor",
    # Principal
    "Principal",
    "principal_roles",
    # Roles
    "Role",
    "RolePermission",
    "PermissionLevel",
    "PermissionType",
    "level_for",
    # Tokens
    "Token",
    "TokenSubject",
]
