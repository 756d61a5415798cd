"""
authkernel - role-based authorization and revocable signed credentials.
"""

from authkernel.config import Settings, get_settings
from authkernel.database import Store
from authkernel.errors import AuthError
from authkernel.facade import AuthorizationFacade
from authkernel.schemas.common import AuthResponse

__version__ = "1.0.0"

__all__ = [
    "AuthorizationFacade",
    "AuthResponse",
    "AuthError",
    "Settings",
    "Store",
    "get_settings",
]
