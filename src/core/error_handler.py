"""Error responses and structured logging for the DeckStream API.

Every error leaves the API in the ``ErrorResponse`` envelope with the request's
correlation id. Production responses carry only the error type; development
adds details, validation errors and tracebacks.
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import (
    DomainError,
    PersistenceError,
    PresentationNotFoundError,
    PresentationNotReadyError,
)
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse


_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)

# error type, status code, client message
DOMAIN_ERRORS: dict[type[DomainError], tuple[str, int, str]] = {
    PresentationNotFoundError: (
        "not_found",
        404,
        "The requested presentation was not found",
    ),
    PresentationNotReadyError: (
        "domain_error",
        409,
        "The presentation is not ready for generation",
    ),
    PersistenceError: ("domain_error", 500, "Generated slides could not be saved"),
}


def get_correlation_id() -> str:
    """Get or create a correlation ID for request tracing."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Logger that attaches the correlation id and redacts sensitive keys."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _log_with_context(
        self,
        level: int,
        message: str,
        extra_data: dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        correlation_id = get_correlation_id()
        log_data = {
            "correlation_id": correlation_id,
            "message": message,
            **self._sanitize_data(extra_data or {}),
        }
        # The JSON formatter renders `structured_data`; plain text only sees the prefix
        if get_settings().ENVIRONMENT != "production":
            message = f"[{correlation_id}] {message}"
        self.logger.log(
            level, message, extra={"structured_data": log_data}, exc_info=exc_info
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        return {
            key: "[REDACTED]" if is_sensitive_key(key) else self._sanitize_value(value)
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list):
            return [self._sanitize_value(item) for item in value]
        return value

    def info(self, message: str, **kwargs: Any) -> None:
        self._log_with_context(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log_with_context(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log_with_context(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        self._log_with_context(logging.ERROR, message, kwargs, exc_info=True)


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Route exceptions that escape every handler through ``global_exception_handler``."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    details: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Build the error envelope, keeping only the fields allowed in ``environment``."""
    allowed_fields = get_allowed_error_fields(environment)
    optional: dict[str, Any] = {
        "details": details or None,
        "traceback": traceback_str or None,
        "exception_type": exception_type or None,
        "validation_errors": validation_errors,
    }
    error_body: dict[str, Any] = {"correlation_id": correlation_id, "type": error_type}
    error_body.update(
        {
            field: value
            for field, value in optional.items()
            if field in allowed_fields and value is not None
        }
    )
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error_body, success=False).model_dump(),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate any exception into the error envelope."""
    environment = get_settings().ENVIRONMENT
    correlation_id = get_correlation_id()
    development = environment != "production"

    if isinstance(exc, StarletteHTTPException):
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="http_error",
            message="An HTTP error occurred",
            environment=environment,
            details={"detail": exc.detail},
            exception_type=exc.__class__.__name__,
            status_code=exc.status_code,
        )

    if isinstance(exc, ValidationError | RequestValidationError):
        errors = exc.errors()
        structured_logger.warning("Validation error", validation_errors=errors)
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="validation_error",
            message="Invalid request data provided",
            environment=environment,
            validation_errors=errors,
            status_code=422,
        )

    if isinstance(exc, DomainError):
        error_type, status_code, message = DOMAIN_ERRORS.get(
            type(exc), ("domain_error", 500, "Domain error")
        )
        structured_logger.warning(
            "Domain error", error_type=exc.__class__.__name__, domain_message=str(exc)
        )
        return _build_error_response(
            correlation_id=correlation_id,
            error_type=error_type,
            message=message,
            environment=environment,
            status_code=status_code,
        )

    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    return _build_error_response(
        correlation_id=correlation_id,
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback_str="".join(traceback.format_exception(exc)).strip()
        if development
        else None,
        exception_type=exc.__class__.__name__,
    )


def setup_logging() -> None:
    """Install a single stdout handler; JSON lines in production, text elsewhere."""
    settings = get_settings()
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    log_level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO
    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        # python-json-logger merges the `structured_data` extra into each record
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    if settings.ENVIRONMENT == "production":
        for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
