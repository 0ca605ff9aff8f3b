"""
Error taxonomy, exception classification and global exception handlers.
"""
from enum import Enum
from datetime import datetime, timezone
from typing import Any, Optional, Dict
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, DisconnectionError

from .core.results import ErrorInfo, DatabaseResult

# Set up logging
logger = logging.getLogger(__name__)

class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""
    INIT_FAILED = "INIT_FAILED"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    QUERY_FAILED = "QUERY_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    PLATFORM_NOT_SUPPORTED = "PLATFORM_NOT_SUPPORTED"


# Failures that may succeed when the same call is repeated
TRANSIENT_CODES = frozenset({
    ErrorCode.QUERY_FAILED,
    ErrorCode.CONNECTION_FAILED,
    ErrorCode.TRANSACTION_FAILED,
})

_KNOWN_CODES = {code.value for code in ErrorCode}


class DatabaseError(Exception):
    """
    Base exception for storage failures.

    Adapters raise it; the store wrapper converts it into an error envelope.
    """
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        operation: str = "unknown",
        details: Optional[Any] = None
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.operation = operation
        self.details = details
        self.timestamp = datetime.now(timezone.utc)

    @property
    def is_transient(self) -> bool:
        """Whether a retry could succeed."""
        return self.code in TRANSIENT_CODES

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(code=self.code.value, message=self.message, details=self.details)

    @classmethod
    def from_info(cls, info: Optional[ErrorInfo], operation: str = "unknown") -> "DatabaseError":
        if info is None:
            return cls(ErrorCode.QUERY_FAILED, "Unknown database error", operation)
        return cls(ErrorCode(info.code), info.message, operation, info.details)

    def __repr__(self):
        return f"<DatabaseError(code={self.code.value}, operation='{self.operation}', message='{self.message}')>"


class NotFoundError(DatabaseError):
    """Exception raised when a record does not exist."""
    def __init__(self, resource: str, identifier: Any, operation: str = "unknown"):
        super().__init__(
            ErrorCode.NOT_FOUND,
            f"{resource} with id {identifier} not found",
            operation,
            {"resourceType": resource, "identifier": identifier}
        )


class InvalidInputError(DatabaseError):
    """Exception raised when caller input fails validation."""
    def __init__(self, field: str, value: Any, operation: str = "unknown", reason: Optional[str] = None):
        message = f"Invalid {field}: {reason}" if reason else f"Invalid {field} provided"
        super().__init__(
            ErrorCode.INVALID_INPUT,
            message,
            operation,
            {"fieldName": field, "value": _safe_value(value)}
        )


def _safe_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


def classify_exception(exc: BaseException, operation: str) -> DatabaseError:
    """
    Normalize any exception into a DatabaseError.

    Args:
        exc: The caught exception
        operation: Name of the operation that failed

    Returns:
        DatabaseError: The exception itself when it already is one, otherwise a
        new error classified into the taxonomy (QUERY_FAILED by default)
    """
    if isinstance(exc, DatabaseError):
        return exc

    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in _KNOWN_CODES:
        message = getattr(exc, "message", None) or str(exc)
        return DatabaseError(ErrorCode(code), message, operation, getattr(exc, "details", None))

    details = {"name": type(exc).__name__, "operation": operation}
    if isinstance(exc, IntegrityError):
        return DatabaseError(
            ErrorCode.CONSTRAINT_VIOLATION,
            f"Database constraint violation: {exc.orig}",
            operation,
            details
        )
    if isinstance(exc, (ConnectionError, DisconnectionError)):
        return DatabaseError(ErrorCode.CONNECTION_FAILED, f"{operation}: {exc}", operation, details)

    return DatabaseError(ErrorCode.QUERY_FAILED, f"{operation}: {exc}", operation, details)


# User-facing messages per error code
USER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.CONNECTION_FAILED: "Unable to reach your medication data. Please check your connection and try again.",
    ErrorCode.INIT_FAILED: "Failed to initialize the database. Please restart the app.",
    ErrorCode.NOT_FOUND: "The requested medication was not found.",
    ErrorCode.CONSTRAINT_VIOLATION: "Invalid medication data. Please check your input.",
    ErrorCode.QUERY_FAILED: "Failed to save your changes. Please try again.",
    ErrorCode.TRANSACTION_FAILED: "Failed to save your changes. Please try again.",
    ErrorCode.INVALID_INPUT: "Please check your input and try again.",
    ErrorCode.PLATFORM_NOT_SUPPORTED: "This storage option is not supported on this device.",
}


def user_message(error: Optional[ErrorInfo], default: str = "An unexpected error occurred. Please try again.") -> str:
    """
    Map an error to a message suitable for display.

    Args:
        error: Error payload from a failed envelope
        default: Message used when the code is unknown

    Returns:
        str: User-facing message
    """
    if error is None:
        return default
    try:
        return USER_MESSAGES[ErrorCode(error.code)]
    except ValueError:
        return default


# HTTP status used when an envelope error is rendered by the API
HTTP_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 422,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONSTRAINT_VIOLATION: status.HTTP_409_CONFLICT,
    ErrorCode.CONNECTION_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INIT_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.PLATFORM_NOT_SUPPORTED: status.HTTP_501_NOT_IMPLEMENTED,
}


def envelope_response(result: DatabaseResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """
    Render an envelope as a JSON response.

    Args:
        result: Envelope returned by the store or the status engine
        success_status: Status code used when the envelope is a success

    Returns:
        JSONResponse: `success_status` on success, otherwise a status derived from the error code
    """
    status_code = success_status
    if not result.success and result.error is not None:
        try:
            status_code = HTTP_STATUS.get(ErrorCode(result.error.code), status.HTTP_500_INTERNAL_SERVER_ERROR)
        except ValueError:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", by_alias=True)
    )


async def database_exception_handler(request: Request, exc: DatabaseError):
    """
    Handler for storage exceptions that escaped an envelope.

    Args:
        request: The request that caused the exception
        exc: The exception instance

    Returns:
        JSONResponse: Error envelope
    """
    logger.error(f"Database error on {request.url.path}: {exc.code.value} - {exc.message}")
    return envelope_response(DatabaseResult.fail(exc.to_info()))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handler for request validation exceptions.

    Args:
        request: The request that caused the exception
        exc: The validation exception instance

    Returns:
        JSONResponse: INVALID_INPUT envelope with validation details
    """
    logger.error(f"Validation error: {exc.errors()}")
    error = ErrorInfo(
        code=ErrorCode.INVALID_INPUT.value,
        message="Validation error",
        details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    )
    return envelope_response(DatabaseResult.fail(error))


# Register exception handlers with FastAPI app
def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(DatabaseError, database_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
