"""
Pagination query handling.

List endpoints accept ``page``, ``limit``, ``sortBy`` and ``order`` query
parameters. Values are normalized here so repositories receive a safe
skip/limit pair and a whitelisted sort column.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Query

from api.src.config import get_settings
from api.src.models.common import Pagination

# API sort keys mapped to column names
DEFAULT_SORT_COLUMNS: Dict[str, str] = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


@dataclass(frozen=True)
class PaginationParams:
    """Normalized pagination parameters."""

    page: int
    limit: int
    sort_by: str = "created_at"
    order: str = "desc"

    @property
    def skip(self) -> int:
        """Number of rows to skip."""
        return (self.page - 1) * self.limit

    def build(self, total_items: int) -> Pagination:
        """Pagination block for a result set of ``total_items`` rows."""
        return Pagination.build(total_items, self.page, self.limit)


def normalize_pagination(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    sort_columns: Optional[Dict[str, str]] = None,
) -> PaginationParams:
    """
    Normalize raw pagination values.

    Args:
        page: Requested page; values below 1 become 1
        limit: Page size; defaults to the configured items per page and is
            clamped to [1, pagination_max_limit]
        sort_by: API sort key; unknown keys fall back to createdAt
        order: asc or desc; anything else becomes desc
        sort_columns: Allowed API sort keys mapped to columns

    Returns:
        PaginationParams: Normalized parameters
    """
    settings = get_settings()
    columns = sort_columns or DEFAULT_SORT_COLUMNS

    page = page if page and page >= 1 else 1

    if limit is None:
        limit = settings.items_per_page
    elif limit < 1:
        limit = 1
    elif limit > settings.pagination_max_limit:
        limit = settings.pagination_max_limit

    column = columns.get(sort_by or "createdAt", columns.get("createdAt", "created_at"))
    direction = order.lower() if order and order.lower() in ("asc", "desc") else "desc"

    return PaginationParams(page=page, limit=limit, sort_by=column, order=direction)


def pagination_dependency(
    sort_columns: Optional[Dict[str, str]] = None,
) -> Callable[..., PaginationParams]:
    """
    Build a FastAPI dependency that reads pagination query parameters.

    Args:
        sort_columns: Allowed API sort keys mapped to columns

    Returns:
        Dependency callable returning PaginationParams

    Example:
        @router.get("/notes")
        async def list_notes(
            pagination: PaginationParams = Depends(pagination_dependency())
        ):
            ...
    """

    def get_pagination_params(
        page: int = Query(1, description="Page number (1-based)"),
        limit: Optional[int] = Query(None, description="Items per page"),
        sort_by: Optional[str] = Query(None, alias="sortBy", description="Sort key"),
        order: Optional[str] = Query(None, description="Sort order: asc|desc"),
    ) -> PaginationParams:
        return normalize_pagination(page, limit, sort_by, order, sort_columns)

    return get_pagination_params
