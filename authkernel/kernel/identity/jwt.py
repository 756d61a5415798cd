"""
Signed credential creation and verification.
"""

import hashlib
import re
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from cryptography.hazmat.primitives import serialization
from jose import JWTError, jwt

from authkernel.config import Settings, get_settings

TTL = Union[int, float, str, timedelta]

# Claims the signer stamps on top of the caller's payload
RESERVED_CLAIMS = ("sub", "exp", "iat", "jti")

_TTL_PATTERN = re.compile(
    r"^\s*(?P<value>-?\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h|d|w|y)?\s*$",
    re.IGNORECASE,
)
_TTL_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "y": timedelta(days=365.25),
}


def parse_ttl(ttl: Optional[TTL], default: TTL = "1d") -> timedelta:
    """
    Turn a token lifetime into a timedelta.

    Numbers are seconds; strings are a number followed by a unit
    (ms, s, m, h, d, w, y). A string without a unit is milliseconds.
    Signed claims hold whole seconds, so sub-second parts are dropped
    from the signed expiry and from any lifetime read back from it.
    """
    if ttl is None or ttl == "":
        ttl = default
    if isinstance(ttl, timedelta):
        return ttl
    if isinstance(ttl, (int, float)):
        return timedelta(seconds=ttl)

    match = _TTL_PATTERN.match(ttl)
    if not match:
        raise ValueError(f"Invalid token lifetime: {ttl!r}")
    unit = (match.group("unit") or "ms").lower()
    return float(match.group("value")) * _TTL_UNITS[unit]


def hash_token(token: str) -> str:
    """
    SHA-256 hash of a credential.

    This is the only form in which credentials are stored.
    """
    return hashlib.sha256(token.encode()).hexdigest()


class SigningMode(str, Enum):
    SYMMETRIC = "symmetric"
    ASYMMETRIC = "asymmetric"


class JWTSigner:
    """
    Signs and verifies credentials.

    The signing mode is fixed at construction: a configured private key
    selects RS256, otherwise the shared secret is used with HS256.
    """

    ALGORITHMS = {
        SigningMode.SYMMETRIC: "HS256",
        SigningMode.ASYMMETRIC: "RS256",
    }

    def __init__(
        self,
        secret: Optional[str] = None,
        private_key: Optional[str] = None,
        public_key: Optional[str] = None,
    ):
        if private_key:
            self.mode = SigningMode.ASYMMETRIC
            self._signing_key = private_key
            self._verifying_key = public_key or self._derive_public_key(private_key)
        else:
            if not secret:
                raise ValueError("A shared secret or a private key is required")
            self.mode = SigningMode.SYMMETRIC
            self._signing_key = secret
            self._verifying_key = secret
        self.algorithm = self.ALGORITHMS[self.mode]

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "JWTSigner":
        settings = settings or get_settings()
        return cls(
            secret=settings.app_secret,
            private_key=settings.jwt_private_key,
            public_key=settings.jwt_public_key,
        )

    @staticmethod
    def _derive_public_key(private_key: str) -> str:
        key = serialization.load_pem_private_key(private_key.encode(), password=None)
        return key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    def sign(
        self,
        payload: Optional[Dict[str, Any]],
        subject: str,
        ttl: timedelta,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Sign a payload.

        A random jti is added so two credentials with the same payload and
        subject never share a hash.
        """
        now = now or datetime.now(timezone.utc)
        claims = {
            **(payload or {}),
            "jti": str(uuid.uuid4()),
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        return jwt.encode(claims, self._signing_key, algorithm=self.algorithm)

    def verify(self, token: str, subject: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Verify signature, expiry and (when given) subject.

        Audience and issuer are caller payload here, not checked.
        Returns the claims, or None on any verification error.
        """
        try:
            return jwt.decode(
                token,
                self._verifying_key,
                algorithms=[self.algorithm],
                subject=subject,
                options={"verify_aud": False, "verify_iss": False},
            )
        except JWTError:
            return None

    @staticmethod
    def unverified_claims(token: str) -> Dict[str, Any]:
        """Claims of a token this signer just produced; no checks are made."""
        return jwt.get_unverified_claims(token)

    @staticmethod
    def expires_at(claims: Dict[str, Any]) -> datetime:
        return datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
