"""Pydantic schemas for API requests and responses."""

from .requests import CreateRecapRequest
from .responses import CreateRecapResponse, ErrorResponse, HealthResponse

__all__ = [
    # Requests
    "CreateRecapRequest",
    # Responses
    "CreateRecapResponse",
    "ErrorResponse",
    "HealthResponse",
]
