"""
Permission Core - RBAC evaluation and role management.
"""

from authkernel.kernel.permissions.permission_service import (
    EffectivePermission,
    PermissionEngine,
    has_permission,
)

__all__ = [
    "EffectivePermission",
    "PermissionEngine",
    "has_permission",
]
