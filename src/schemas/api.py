"""API response schemas.

This module defines the common API response formats used across the application.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel


# Type variable for generic response types
T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response wrapper.

    This class provides a standardized format for all API responses,
    with consistent fields for success status, data payload, and error messages.

    Attributes:
        success: Whether the request was successful.
        data: The actual response data (when success is True).
        message: A human-readable message about the response.
        error: Error details (when success is False).
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Error API response.

    A specialized API response for error conditions with a predefined
    success value of False.

    Attributes:
        success: Always False for error responses.
        message: A human-readable error message.
        error: Additional error details.
    """

    success: bool = False
    message: str = "An error occurred"
    error: dict[str, Any] | None = None
