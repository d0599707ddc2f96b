"""
Response envelope and shared schema helpers.

Every successful response is wrapped as
``{"success": true, "status"?, "message"?, "data"?, "pagination"?}``
and serialized with camelCase keys.
"""

import math
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema exposing camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    """Pagination block returned with list endpoints."""

    total_pages: int = Field(..., ge=0, description="Number of pages")
    total_items: int = Field(..., ge=0, description="Number of items across all pages")
    current_page: int = Field(..., ge=1, description="Current page (1-based)")
    has_next_page: bool = Field(..., description="Whether a next page exists")
    has_prev_page: bool = Field(..., description="Whether a previous page exists")

    model_config = {
        "json_schema_extra": {
            "example": {
                "totalPages": 3,
                "totalItems": 20,
                "currentPage": 1,
                "hasNextPage": True,
                "hasPrevPage": False
            }
        }
    }

    @classmethod
    def build(cls, total_items: int, page: int, limit: int) -> "Pagination":
        """
        Compute the pagination block for a page of results.

        Args:
            total_items: Total number of matching items
            page: Requested page (1-based)
            limit: Page size

        Returns:
            Pagination: Computed pagination metadata
        """
        total_pages = math.ceil(total_items / limit) if limit > 0 else 0
        return cls(
            total_pages=total_pages,
            total_items=total_items,
            current_page=page,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class SuccessResponse(CamelModel, Generic[T]):
    """Success envelope. Empty members are omitted from the JSON body."""

    success: bool = True
    status: Optional[int] = None
    message: Optional[str] = None
    data: Optional[T] = None
    pagination: Optional[Pagination] = None

    @model_serializer(mode="wrap")
    def _drop_empty_members(self, handler):
        return {key: value for key, value in handler(self).items() if value is not None}


class ErrorResponse(CamelModel):
    """Error response schema."""

    success: bool = False
    message: str = Field(..., min_length=1, description="Error message")
    status_code: int = Field(..., description="HTTP status code")
    name: str = Field(..., description="Error class name")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "message": "The email or password you entered is incorrect. Please try again.",
                "statusCode": 403,
                "name": "ForbiddenError"
            }
        }
    }


def format_success(
    data: Optional[T] = None,
    message: Optional[str] = None,
    pagination: Optional[Pagination] = None,
    status: Optional[int] = None,
) -> SuccessResponse[T]:
    """
    Build a success envelope.

    Args:
        data: Response payload
        message: Optional human readable message
        pagination: Optional pagination block
        status: Optional HTTP status echoed in the body

    Returns:
        SuccessResponse: Envelope to return from a route
    """
    return SuccessResponse(
        data=data,
        message=message,
        pagination=pagination,
        status=status,
    )


class PaginatedItems(BaseModel, Generic[T]):
    """Items of one page together with the total count."""

    items: List[T]
    total: int
