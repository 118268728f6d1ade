"""
Exception hierarchy for socketapi.

Each error class fixes its own ``code`` and ``category``, so callers can
branch on the class or log the code without parsing messages.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    CONFIG = "config"
    FATAL = "fatal"


class SocketAPIError(Exception):
    """Base exception for all socketapi errors."""

    code = "SOCKETAPI_ERROR"
    category = ErrorCategory.FATAL

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    def log_fields(self) -> dict[str, Any]:
        """Flat fields for ``logger.bind``: code, category and details."""
        return {"code": self.code, "category": self.category.value, **self.details}


class RequestValidationError(SocketAPIError):
    """The outbound request cannot be sent (not an object, or no id)."""

    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, field=field)


class RequestTimeoutError(SocketAPIError):
    """No response with a matching id arrived before the request timer fired."""

    code = "TIMEOUT"
    category = ErrorCategory.TIMEOUT

    def __init__(self, request_id: Any, timeout_ms: int):
        super().__init__(
            f"The request with id = {request_id} timed out after {timeout_ms}ms.",
            request_id=request_id,
            timeout_ms=timeout_ms,
        )
        self.request_id = request_id
        self.timeout_ms = timeout_ms


class ConfigError(SocketAPIError):
    """Settings file could not be read or validated."""

    code = "CONFIG_ERROR"
    category = ErrorCategory.CONFIG

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, path=path)


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory]:
    """
    Classify an exception raised while connecting or writing.

    Returns:
        Tuple of (error_code, category)
    """
    if isinstance(exc, SocketAPIError):
        return exc.code, exc.category

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "TIMEOUT", ErrorCategory.TIMEOUT

    if isinstance(exc, ConnectionRefusedError):
        return "CONNECTION_REFUSED", ErrorCategory.CONNECTION

    if isinstance(exc, OSError):
        return "CONNECTION_ERROR", ErrorCategory.CONNECTION

    if isinstance(exc, (ValueError, TypeError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION

    return "INTERNAL_ERROR", ErrorCategory.FATAL
