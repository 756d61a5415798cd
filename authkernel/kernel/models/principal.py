"""
Principal model for identity management.
"""

from typing import Optional

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Table, text
from sqlalchemy.orm import Mapped, mapped_column

from authkernel.kernel.models.base import (
    AuditMixin,
    Base,
    ModelStatus,
    SerializableMixin,
    SerializeFor,
    StatusMixin,
)

_NOT_DELETED = text(f"status <> {int(ModelStatus.DELETED)}")


# Join between principals and roles; existence of a row is the only state.
principal_roles = Table(
    "auth_principal_roles",
    Base.metadata,
    Column(
        "principal_id",
        Integer,
        ForeignKey("auth_principals.id"),
        primary_key=True,
    ),
    Column(
        "role_id",
        Integer,
        ForeignKey("auth_roles.id"),
        primary_key=True,
    ),
)


class Principal(Base, StatusMixin, AuditMixin, SerializableMixin):
    """Authenticatable identity. Never hard-deleted."""

    __tablename__ = "auth_principals"

    # Caller-assigned, not generated
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
    )
    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    pin: Mapped[Optional[str]] = mapped_column(
        String(4),
        nullable=True,
    )

    __table_args__ = (
        # Uniqueness holds among non-deleted principals only
        Index(
            "uq_auth_principals_username_active", "username",
            unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED,
        ),
        Index(
            "uq_auth_principals_email_active", "email",
            unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED,
        ),
        Index(
            "uq_auth_principals_pin_active", "pin",
            unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED,
        ),
    )

    SERIALIZABLE = {
        SerializeFor.INSERT_DB: (
            "id", "status", "username", "email", "password_hash", "pin", "created_by",
        ),
        SerializeFor.UPDATE_DB: ("status", "username", "email", "updated_by"),
        SerializeFor.PROFILE: ("id", "status", "username", "email"),
    }

    def exists(self) -> bool:
        return self.id is not None and not self.is_deleted

    def __repr__(self) -> str:
        return f"<Principal {self.id} {self.username}>"
