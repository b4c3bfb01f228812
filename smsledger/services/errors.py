"""
SMS Ledger Error Handling

Specific error types with user-friendly messages and debugging context.
"""
from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""
    # Input errors (400s)
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_EXPRESSION = "INVALID_EXPRESSION"
    MATCHER_TIMEOUT = "MATCHER_TIMEOUT"

    # Auth errors (403/429)
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"

    # State errors
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"


STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.INVALID_EXPRESSION: 400,
    ErrorCode.MATCHER_TIMEOUT: 422,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INVALID_TRANSITION: 409,
}


class SmsLedgerError(Exception):
    """Base exception with structured error info."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        result = {
            "error": self.code.value,
            "message": self.message
        }
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class ValidationError(SmsLedgerError):
    """Missing required field or malformed input. Never retried automatically."""

    def __init__(self, message: str, field: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_FAILED,
            message=message,
            detail=detail,
            context={"field": field} if field else None
        )
        self.field = field


class InvalidExpressionError(ValidationError):
    """Regex expression failed to compile or lacks named groups."""

    def __init__(self, expression: str, detail: str):
        super().__init__(
            message="Invalid regex pattern",
            field="expression",
            detail=detail,
        )
        self.code = ErrorCode.INVALID_EXPRESSION
        self.expression = expression


class MatcherTimeoutError(SmsLedgerError):
    """Matcher exceeded its per-match time budget (pathological expression)."""

    def __init__(self, timeout_seconds: float, detail: Optional[str] = None):
        super().__init__(
            code=ErrorCode.MATCHER_TIMEOUT,
            message=f"Pattern evaluation exceeded {timeout_seconds:g}s",
            detail=detail or "The expression is too expensive for this input; simplify nested quantifiers",
            context={"timeout_seconds": timeout_seconds}
        )
        self.timeout_seconds = timeout_seconds


class NotFoundError(SmsLedgerError):
    """Requested resource does not exist."""

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{resource} not found with id: {resource_id}",
            context={"resource": resource, "id": resource_id}
        )


class AuthorizationError(SmsLedgerError):
    """Role or ownership mismatch. Raised before any state mutation."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.FORBIDDEN,
            message=message,
            context=context
        )


class ConflictError(SmsLedgerError):
    """A concurrent status transition won the race. Safe to retry after re-reading."""

    def __init__(self, pattern_id: int, detail: Optional[str] = None):
        super().__init__(
            code=ErrorCode.CONFLICT,
            message=f"Pattern {pattern_id} was modified concurrently",
            detail=detail or "Reload the pattern and retry the action",
            context={"pattern_id": pattern_id, "retryable": True}
        )


class InvalidTransitionError(SmsLedgerError):
    """Action is not allowed from the pattern's current status."""

    def __init__(self, from_status: str, action: str):
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot {action} a pattern in status {from_status}",
            context={"from_status": from_status, "action": action, "retryable": False}
        )
        self.from_status = from_status
        self.action = action
