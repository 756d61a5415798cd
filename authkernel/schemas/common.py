"""
Response envelope and paging shapes shared by facade operations.
"""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from authkernel.errors import ErrorCode

T = TypeVar("T")


class AuthResponse(BaseModel, Generic[T]):
    """
    Uniform result of an engine operation.

    status=False always comes with at least one error code; details carries
    diagnostic context for system errors only and is not meant to be parsed.
    """

    status: bool
    data: Optional[T] = None
    errors: Optional[List[int]] = None
    details: Optional[Any] = None

    @model_validator(mode="after")
    def check_errors_on_failure(self) -> "AuthResponse[T]":
        if not self.status and not self.errors:
            raise ValueError("A failed response must carry at least one error code")
        return self

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "AuthResponse[T]":
        return cls(status=True, data=data)

    @classmethod
    def fail(cls, *codes: ErrorCode, details: Optional[Any] = None) -> "AuthResponse[T]":
        return cls(status=False, errors=[int(code) for code in codes], details=details)


# limit=-1 asks for the largest page
MAX_PAGE_SIZE = 500
DEFAULT_PAGE_SIZE = 10


class ListQuery(BaseModel):
    """
    Paging and ordering of a list operation.

    order_by names sortable fields; a leading "-" sorts descending.
    """

    limit: int = DEFAULT_PAGE_SIZE
    offset: int = Field(default=0, ge=0)
    order_by: List[str] = []

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, value: int) -> int:
        if value == -1 or value > MAX_PAGE_SIZE:
            return MAX_PAGE_SIZE
        if value < 1:
            raise ValueError("limit must be positive, or -1 for the largest page")
        return value


class Page(BaseModel, Generic[T]):
    """One page of a list operation."""

    items: List[T]
    total: int
    limit: int
    offset: int = 0
    has_more: bool = False

    @classmethod
    def create(cls, items: List[T], total: int, limit: int, offset: int = 0) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(items) < total,
        )
