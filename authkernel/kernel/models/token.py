"""
Issued credential model.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authkernel.kernel.models.base import AuditMixin, Base, StatusMixin


class TokenSubject(str, Enum):
    """Purpose tags carried in the subject claim."""
    USER_AUTHENTICATION = "USER_AUTHENTICATION"
    USER_SIGN_UP = "USER_SIGN_UP"
    USER_RESET_EMAIL = "USER_RESET_EMAIL"
    USER_RESET_USERNAME = "USER_RESET_USERNAME"
    USER_RESET_PASSWORD = "USER_RESET_PASSWORD"
    USER_LOGIN_MAGIC = "USER_LOGIN_MAGIC"


class Token(Base, StatusMixin, AuditMixin):
    """
    Server-side state of a signed credential.

    Only the SHA-256 hash of the credential is stored.
    """

    __tablename__ = "auth_tokens"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    token_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    # Un-owned tokens (e.g. sign-up) have no principal
    principal_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("auth_principals.id"),
        nullable=True,
        index=True,
    )
    subject: Mapped[str] = mapped_column(
        String(45),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Token {self.id} {self.subject} principal={self.principal_id}>"
