"""
Identity Core - principals, passwords and issued credentials.
"""

from authkernel.kernel.identity.password import PasswordHasher
from authkernel.kernel.identity.jwt import (
    JWTSigner,
    SigningMode,
    hash_token,
    parse_ttl,
)
from authkernel.kernel.identity.principal_repository import PrincipalRepository
from authkernel.kernel.identity.credential_service import CredentialService

__all__ = [
    "PasswordHasher",
    "JWTSigner",
    "SigningMode",
    "hash_token",
    "parse_ttl",
    "PrincipalRepository",
    "CredentialService",
]
