"""
Role and role permission models for RBAC.
"""

from enum import Enum, IntEnum
from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, String, and_
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authkernel.kernel.models.base import (
    AuditMixin,
    Base,
    ModelStatus,
    SerializableMixin,
    SerializeFor,
    StatusMixin,
)


class PermissionLevel(IntEnum):
    """Grant strength for one access type. Totally ordered."""
    NONE = 0
    OWN = 1
    ALL = 2


class PermissionType(str, Enum):
    """Independently leveled access types."""
    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"


class Role(Base, StatusMixin, AuditMixin, SerializableMixin):
    """Named bundle of permission grants. Deletion is a hard delete."""

    __tablename__ = "auth_roles"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )

    # Active grants only; rows are written through RolePermission directly
    permissions: Mapped[List["RolePermission"]] = relationship(
        primaryjoin=lambda: and_(
            RolePermission.role_id == Role.id,
            RolePermission.status != ModelStatus.DELETED,
        ),
        order_by=lambda: RolePermission.permission_id,
        viewonly=True,
    )

    SERIALIZABLE = {
        SerializeFor.INSERT_DB: ("name", "status", "created_by"),
        SerializeFor.UPDATE_DB: ("name", "status", "updated_by"),
        SerializeFor.PROFILE: ("id", "name", "status"),
    }

    def exists(self) -> bool:
        return self.id is not None and not self.is_deleted

    def __repr__(self) -> str:
        return f"<Role {self.id} {self.name}>"


class RolePermission(Base, StatusMixin, AuditMixin, SerializableMixin):
    """
    Grant of one permission to one role.

    Carries an independent level per access type (read, write, execute).
    """

    __tablename__ = "auth_role_permissions"

    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("auth_roles.id"),
        primary_key=True,
    )
    permission_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    read: Mapped[int] = mapped_column(
        Integer,
        default=PermissionLevel.NONE,
        nullable=False,
    )
    write: Mapped[int] = mapped_column(
        Integer,
        default=PermissionLevel.NONE,
        nullable=False,
    )
    execute: Mapped[int] = mapped_column(
        Integer,
        default=PermissionLevel.NONE,
        nullable=False,
    )

    SERIALIZABLE = {
        SerializeFor.INSERT_DB: (
            "role_id", "permission_id", "name", "status", "read", "write", "execute",
        ),
        SerializeFor.UPDATE_DB: ("name", "read", "write", "execute", "updated_by"),
        SerializeFor.PROFILE: (
            "role_id", "permission_id", "name", "read", "write", "execute",
        ),
    }

    def exists(self) -> bool:
        """Only an active grant with both ids set counts."""
        return (
            self.role_id is not None
            and self.permission_id is not None
            and self.status != ModelStatus.DELETED
        )

    def __repr__(self) -> str:
        return (
            f"<RolePermission role={self.role_id} permission={self.permission_id} "
            f"r={self.read} w={self.write} x={self.execute}>"
        )


def level_for(grant, access_type: PermissionType) -> Optional[int]:
    """Level a grant holds for one access type."""
    if access_type == PermissionType.READ:
        return grant.read
    elif access_type == PermissionType.WRITE:
        return grant.write
    elif access_type == PermissionType.EXECUTE:
        return grant.execute
    raise ValueError(f"Unknown access type: {access_type!r}")
