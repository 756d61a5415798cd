"""
Ordering and paging of list queries.
"""

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from authkernel.errors import AuthBadRequestErrorCode, BadRequestError
from authkernel.schemas.common import ListQuery


def order_clauses(columns: Mapping[str, Any], order_by: Sequence[str], tiebreak: Any) -> List[Any]:
    """
    Turn field names into ORDER BY clauses.

    The tiebreak column always comes last so pages do not overlap.
    """
    clauses = []
    for field in order_by:
        name = field.lstrip("-")
        column = columns.get(name)
        if column is None:
            raise BadRequestError(
                AuthBadRequestErrorCode.DEFAULT_BAD_REQUEST_ERROR,
                details={"order_by": field, "allowed": sorted(columns)},
            )
        clauses.append(column.desc() if field.startswith("-") else column.asc())
    clauses.append(tiebreak)
    return clauses


async def fetch_page(
    session: AsyncSession,
    query: Select,
    listing: ListQuery,
    columns: Dict[str, Any],
    tiebreak: Any,
    *options: Any,
) -> Tuple[List[Any], int]:
    """Run a filtered query as (one page of entities, total matches)."""
    ordering = order_clauses(columns, listing.order_by, tiebreak)

    count = select(func.count()).select_from(query.subquery())
    total = (await session.execute(count)).scalar_one()

    page = query.options(*options).order_by(*ordering).limit(listing.limit).offset(listing.offset)
    result = await session.execute(page)
    return list(result.scalars().all()), total
