"""
Error handling for the scheduler service.

Defines the base exception every service error derives from, the severity
and category used to log it, and the FastAPI exception handlers that turn
errors into the ``{"errors": [{"status", "detail"}]}`` response envelope.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorSeverity(str, Enum):
    """Error severity levels for categorization and alerting"""

    LOW = "low"  # Caller mistakes, logging only
    MEDIUM = "medium"  # Recoverable failures
    HIGH = "high"  # Storage/infrastructure failures
    CRITICAL = "critical"  # Broken invariants


class ErrorCategory(str, Enum):
    """Error categories for systematic handling"""

    VALIDATION = "validation"  # Bad trigger type / expression / request field
    NOT_FOUND = "not_found"  # Unknown job or handle
    DATABASE = "database"  # Durable storage errors
    SCHEDULER = "scheduler"  # Live scheduler state errors
    NETWORK = "network"  # Outbound dispatch errors
    SYSTEM = "system"  # Anything else


class SchedulerServiceError(Exception):
    """Base exception for scheduler service errors"""

    status_code: int = 500
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(
        self,
        message: str,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.technical_details = technical_details or {}


class ErrorContext:
    """Container for error context information"""

    def __init__(
        self,
        error: Exception,
        status_code: int,
        severity: ErrorSeverity,
        category: ErrorCategory,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        self.error = error
        self.status_code = status_code
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.error_id = f"err_{uuid.uuid4().hex[:12]}"

    @property
    def detail(self) -> str:
        if self.status_code >= 500 and not isinstance(
            self.error, SchedulerServiceError
        ):
            return "Internal Server Error"
        return str(self.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "error_type": type(self.error).__name__,
            "error_message": str(self.error),
            "status_code": self.status_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "technical_details": self.technical_details,
        }


class ErrorHandler:
    """Categorizes, logs and reports errors raised while serving requests"""

    def handle_error(
        self, error: Exception, context: Optional[Dict[str, Any]] = None
    ) -> ErrorContext:
        context = context or {}
        error_context = self._categorize_error(error, context)
        self._log_error(error_context)
        self._report_error(error_context)
        return error_context

    def _categorize_error(
        self, error: Exception, context: Dict[str, Any]
    ) -> ErrorContext:
        if isinstance(error, SchedulerServiceError):
            return ErrorContext(
                error=error,
                status_code=error.status_code,
                severity=error.severity,
                category=error.category,
                technical_details={**context, **error.technical_details},
            )

        if isinstance(error, RequestValidationError):
            return ErrorContext(
                error, 400, ErrorSeverity.LOW, ErrorCategory.VALIDATION, context
            )

        if isinstance(error, StarletteHTTPException):
            severity = (
                ErrorSeverity.HIGH if error.status_code >= 500 else ErrorSeverity.LOW
            )
            return ErrorContext(
                error, error.status_code, severity, ErrorCategory.SYSTEM, context
            )

        return ErrorContext(error, 500, ErrorSeverity.HIGH, ErrorCategory.SYSTEM, context)

    def _log_error(self, error_context: ErrorContext) -> None:
        log_data = error_context.to_dict()
        message = "Request failed"

        if error_context.severity == ErrorSeverity.CRITICAL:
            logger.critical(message, **log_data, exc_info=error_context.error)
        elif error_context.severity == ErrorSeverity.HIGH:
            logger.error(message, **log_data, exc_info=error_context.error)
        elif error_context.severity == ErrorSeverity.MEDIUM:
            logger.warning(message, **log_data)
        else:  # LOW
            logger.info(message, **log_data)

    def _report_error(self, error_context: ErrorContext) -> None:
        if not settings.SENTRY_DSN:
            return
        if error_context.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            sentry_sdk.capture_exception(error_context.error)


error_handler = ErrorHandler()


def error_envelope(status_code: int, details: List[str]) -> Dict[str, Any]:
    """Build the response body shared by every failing endpoint."""
    return {"errors": [{"status": status_code, "detail": d} for d in details]}


def create_error_response(
    error: Exception, context: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """Create standardized error response for APIs"""
    error_context = error_handler.handle_error(error, context)
    return JSONResponse(
        status_code=error_context.status_code,
        content=error_envelope(error_context.status_code, [error_context.detail]),
        headers={"X-Error-ID": error_context.error_id},
    )


def _request_context(request: Request) -> Dict[str, Any]:
    return {
        "request_method": request.method,
        "request_path": request.url.path,
        "request_id": getattr(request.state, "request_id", None),
    }


async def _service_error_handler(
    request: Request, exc: SchedulerServiceError
) -> JSONResponse:
    return create_error_response(exc, _request_context(request))


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))

    error_handler.handle_error(exc, _request_context(request))
    return JSONResponse(status_code=400, content=error_envelope(400, details))


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    error_handler.handle_error(exc, _request_context(request))
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.status_code, [str(exc.detail)]),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return create_error_response(exc, _request_context(request))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error envelope handlers on the application."""
    app.add_exception_handler(SchedulerServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
