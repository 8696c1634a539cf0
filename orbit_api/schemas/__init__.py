# orbit_api/schemas/__init__.py
"""
Pydantic models shared across routes.
"""

from orbit_api.schemas.common import (
    ErrorResponse,
    MessageResponse,
    PaginatedResponse,
    PaginationParams,
)

__all__ = [
    "ErrorResponse",
    "MessageResponse",
    "PaginatedResponse",
    "PaginationParams",
]
