"""
Stable Kernel Layer

Foundational components of the authorization engine:
- Data models (principals, roles, role permissions, issued tokens)
- Identity Core (principal directory, passwords, signed credentials)
- Permission Core (MAX-aggregated role permissions, role graph mutations)

Invariants:
- Credentials are stored only as hashes
- Principals are never hard-deleted
- Every multi-step mutation runs in one store transaction
"""

from authkernel.kernel.models import (
    ModelStatus,
    PermissionLevel,
    PermissionType,
    Principal,
    Role,
    RolePermission,
    Token,
    TokenSubject,
)

__all__ = [
    "ModelStatus",
    # Identity
    "Principal",
    "Token",
    "TokenSubject",
    # Permissions
    "Role",
    "RolePermission",
    "PermissionLevel",
    "PermissionType",
]
