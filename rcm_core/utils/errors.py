"""
Custom Exceptions
Tagged error taxonomy surfaced verbatim to callers of the core operations.
"""

from typing import Any, Optional


class RCMError(Exception):
    """Base exception for revenue cycle core errors."""

    code: str = "RCM_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render as a tagged error payload."""
        return {"code": self.code, "message": self.message, "details": self.details}


class UnauthenticatedError(RCMError):
    """Raised when no tenant could be resolved for the call"""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Tenant context is required"):
        super().__init__(message)


class NotFoundError(RCMError):
    """Raised when a resource is missing or belongs to another tenant"""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str = "Resource"):
        # Same message for missing and cross-tenant lookups
        super().__init__(f"{resource_type} not found", {"resource_type": resource_type})
        self.resource_type = resource_type


class InvalidStateError(RCMError):
    """Raised when an operation is not allowed in the entity's current state"""

    code = "INVALID_STATE"


class ConcurrencyConflictError(RCMError):
    """Raised when a document changed between read and write"""

    code = "CONFLICT"

    def __init__(self, table: str, doc_id: str, expected: int, actual: int):
        super().__init__(
            f"{table} {doc_id} was modified concurrently",
            {"expected_version": expected, "actual_version": actual},
        )


class ValidationFailedError(RCMError):
    """Raised when operation input is malformed"""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str = "Validation error", errors: Optional[list[Any]] = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []
