"""
Credential lifecycle: issue, validate, refresh and revoke signed tokens.
"""

import random
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authkernel.kernel.clock import Clock, SystemClock
from authkernel.kernel.identity.jwt import (
    RESERVED_CLAIMS,
    TTL,
    JWTSigner,
    hash_token,
    parse_ttl,
)
from authkernel.kernel.models.base import ModelStatus
from authkernel.kernel.models.token import Token
from authkernel.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TTL = "1d"


def _subject_value(subject) -> str:
    return subject.value if isinstance(subject, Enum) else subject


class CredentialService:
    """
    Service for issued credentials.

    A credential is valid only if its signature verifies AND its stored row
    is ACTIVE and unexpired, so a token can be revoked server-side even
    though it is self-validating.

    Token lifecycle: issued -> expired (not swept) | revoked (terminal).
    """

    def __init__(
        self,
        session: AsyncSession,
        signer: JWTSigner,
        clock: Optional[Clock] = None,
        default_ttl: TTL = DEFAULT_TTL,
    ):
        self.session = session
        self.signer = signer
        self.clock = clock or SystemClock()
        self.default_ttl = default_ttl

    async def _active_row(self, token: str) -> Optional[Token]:
        query = select(Token).where(
            Token.token_hash == hash_token(token),
            Token.status != ModelStatus.DELETED,
            Token.expires_at > self.clock.now(),
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def generate(
        self,
        payload: Optional[Dict[str, Any]],
        subject: str,
        principal_id: Optional[int] = None,
        ttl: Optional[TTL] = None,
    ) -> str:
        """
        Sign a new credential and persist its hash.

        Args:
            payload: Caller claims embedded in the credential
            subject: Purpose tag, stored and checked on validation
            principal_id: Owner, if the credential belongs to a principal
            ttl: Lifetime (seconds, timedelta or "1d"-style string)

        Returns:
            The signed credential. Store errors propagate; the caller must
            not hand out a credential whose row was not committed.
        """
        subject = _subject_value(subject)
        lifetime = parse_ttl(ttl, default=self.default_ttl)
        token = self.signer.sign(payload, subject, lifetime, now=self.clock.now())

        # Expiry is read back from the signed claims; the jitter only keeps
        # rapidly issued rows from sharing a timestamp.
        claims = JWTSigner.unverified_claims(token)
        expires_at = JWTSigner.expires_at(claims) + timedelta(
            milliseconds=random.randint(10, 499)
        )

        row = Token(
            token_hash=hash_token(token),
            principal_id=principal_id,
            subject=subject,
            expires_at=expires_at,
            status=ModelStatus.ACTIVE,
            created_by=principal_id,
        )
        self.session.add(row)
        await self.session.flush()
        return token

    async def validate(
        self,
        token: Optional[str],
        subject: str,
        principal_id: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Return the decoded claims of a valid credential, None otherwise.

        When principal_id is given the credential must also be owned by it.
        """
        if not token:
            return None

        subject = _subject_value(subject)
        # Stateless check first: signature, algorithm, expiry and subject
        claims = self.signer.verify(token, subject)
        if claims is None:
            return None

        row = await self._active_row(token)
        if row is None or row.subject != subject:
            return None
        if principal_id is not None and row.principal_id != principal_id:
            return None
        return claims

    async def invalidate(self, token: Optional[str]) -> bool:
        """
        Revoke a credential.

        Returns False (no-op) for unknown or already revoked credentials.
        """
        if not token:
            return False
        result = await self.session.execute(
            update(Token)
            .where(
                Token.token_hash == hash_token(token),
                Token.status != ModelStatus.DELETED,
            )
            .values(status=ModelStatus.DELETED)
        )
        revoked = result.rowcount > 0
        if revoked:
            logger.info("Revoked credential")
        return revoked

    async def invalidate_principal_tokens(self, principal_id: int, subject: str) -> bool:
        """Revoke every active credential of a principal with the given subject."""
        result = await self.session.execute(
            update(Token)
            .where(
                Token.principal_id == principal_id,
                Token.subject == _subject_value(subject),
                Token.status != ModelStatus.DELETED,
            )
            .values(status=ModelStatus.DELETED)
        )
        logger.info(
            "Revoked principal credentials",
            extra={"principal_id": principal_id, "subject": subject, "count": result.rowcount},
        )
        return True

    async def refresh(self, token: Optional[str]) -> Optional[str]:
        """
        Issue a new credential with the same payload, subject and lifetime.

        The source credential must still be active and unexpired. It is NOT
        revoked: both stay valid until each expires or is invalidated. The
        lifetime is read from the signed claims in whole seconds, so a
        sub-second ttl given at issuance is not carried over.
        """
        if not token:
            return None
        claims = self.signer.verify(token)
        if claims is None:
            return None

        row = await self._active_row(token)
        if row is None:
            return None

        lifetime = timedelta(seconds=claims["exp"] - claims["iat"])
        payload = {k: v for k, v in claims.items() if k not in RESERVED_CLAIMS}
        return await self.generate(payload, claims["sub"], row.principal_id, lifetime)
