"""
Base model with common fields and utilities.
"""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, Optional, Tuple

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class ModelStatus(IntEnum):
    """Lifecycle status shared by every stored entity."""
    INACTIVE = 3
    ACTIVE = 5
    DELETED = 9


class SerializeFor(str, Enum):
    """Contexts an entity can be serialized for."""
    INSERT_DB = "insert_db"
    UPDATE_DB = "update_db"
    PROFILE = "profile"


class AuditMixin:
    """Mixin for audit timestamps and acting user."""

    # Fetch server-generated timestamps on flush; async sessions cannot lazy-load
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class StatusMixin:
    """Mixin for the soft-delete aware status column."""

    status: Mapped[int] = mapped_column(
        Integer,
        default=ModelStatus.ACTIVE,
        nullable=False,
    )

    @property
    def is_deleted(self) -> bool:
        return self.status == ModelStatus.DELETED


class SerializableMixin:
    """
    Explicit per-context column lists.

    Subclasses declare SERIALIZABLE = {SerializeFor.X: ("col", ...)}.
    """

    SERIALIZABLE: ClassVar[Dict[SerializeFor, Tuple[str, ...]]] = {}

    def serialize(self, context: SerializeFor) -> Dict[str, Any]:
        return {field: getattr(self, field) for field in self.SERIALIZABLE.get(context, ())}
