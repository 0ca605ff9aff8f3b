"""
Result envelopes returned across the store boundary.

Every fallible store or status operation hands back a DatabaseResult instead of
raising, so UI callers only ever inspect `success`, `data` and `error`.
"""
from typing import TypeVar, Generic, Optional, Any
from pydantic import BaseModel

T = TypeVar("T")

class ErrorInfo(BaseModel):
    """
    Serializable error payload.

    Attributes:
        code: Stable error code from the taxonomy (e.g. NOT_FOUND)
        message: Human-readable message
        details: Optional diagnostic details
    """
    code: str
    message: str
    details: Optional[Any] = None


class DatabaseResult(BaseModel, Generic[T]):
    """
    Envelope for the outcome of a store operation.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success (may be None for commands)
        error: Error information on failure
    """
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> "DatabaseResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ErrorInfo) -> "DatabaseResult":
        return cls(success=False, error=error)

    def unwrap(self) -> T:
        """
        Return the payload or raise the carried error.

        Raises:
            DatabaseError: If the result is a failure
        """
        if self.success:
            return self.data
        from ..exceptions import DatabaseError
        raise DatabaseError.from_info(self.error)
