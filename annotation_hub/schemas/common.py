"""
Response envelope shared by every endpoint.
"""
from typing import Any

from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Success envelope: ``{success: true, message, data}``."""
    success: bool = True
    message: str
    data: Any = None


def ok(message: str, data: Any = None) -> dict:
    return SuccessResponse(message=message, data=data).model_dump()


def pagination_info(page: int, limit: int, total: int) -> dict:
    return {
        "currentPage": page,
        "totalPages": (total + limit - 1) // limit if limit else 0,
        "totalItems": total,
        "limit": limit,
    }
