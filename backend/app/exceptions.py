"""
BuildOps - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the services and the API.

Usage:
    from app.exceptions import NotFoundError, IllegalTransitionError

    # In a service
    raise NotFoundError("BuildOrder", build_order_id)

    # With custom message
    raise ValidationError("Quantity must be greater than zero", field="quantity")
"""
from typing import Any, Dict, List, Optional


class BuildOpsException(Exception):
    """
    Base exception for all BuildOps errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "INSUFFICIENT_STOCK")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "BUILDOPS_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(BuildOpsException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class InvalidStateError(BuildOpsException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 400

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states is not None:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


class IllegalTransitionError(InvalidStateError):
    """
    Raised when a build order lifecycle transition is not permitted.

    ``allowed_states`` lists the statuses the order may move to next;
    ``accepted_from`` lists the statuses the attempted operation accepts.
    """

    error_code = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        *,
        operation: str,
        build_number: str,
        current_state: str,
        requested_state: str,
        allowed_states: List[str],
        accepted_from: List[str],
    ):
        self.operation = operation
        self.current_state = current_state
        self.requested_state = requested_state
        self.allowed_states = allowed_states
        self.accepted_from = accepted_from
        accepted = ", ".join(f"'{s}'" for s in accepted_from) or "none"
        allowed = ", ".join(f"'{s}'" for s in allowed_states) or "none (terminal state)"
        message = (
            f"Cannot {operation} build order {build_number}: current status is "
            f"'{current_state}'. {operation} is accepted from {accepted}; "
            f"allowed next statuses: {allowed}"
        )
        super().__init__(
            message,
            current_state=current_state,
            allowed_states=allowed_states,
            details={
                "operation": operation,
                "build_number": build_number,
                "requested_state": requested_state,
                "accepted_from": accepted_from,
            },
        )


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(BuildOpsException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class ConflictError(BuildOpsException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class ConcurrencyError(ConflictError):
    """Raised when concurrent modification outlasts the transition retry budget."""

    error_code = "CONCURRENCY_ERROR"
    retryable = True

    def __init__(
        self,
        message: str = "Inventory was modified by a concurrent transition",
        *,
        attempts: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class BusinessRuleError(BuildOpsException):
    """Raised when a business rule is violated."""

    error_code = "BUSINESS_RULE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Business rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class InsufficientStockError(BusinessRuleError):
    """
    Raised when a reservation feasibility check finds shortages.

    Carries every short component so the caller can decide whether to
    force a partial reservation or wait for stock.
    """

    error_code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        build_number: str,
        shortages: List[Dict[str, Any]],
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.build_number = build_number
        self.shortages = shortages
        details = details or {}
        details["build_number"] = build_number
        details["shortages"] = shortages
        names = ", ".join(
            f"{s.get('part_number') or s['component_id']} (short {s['shortfall']})"
            for s in shortages
        )
        message = f"Insufficient stock to reserve materials for {build_number}: {names}"
        super().__init__(message, rule="materials_available", details=details)


# ===================
# 500 Internal Server Errors
# ===================


class InvariantViolationError(BuildOpsException):
    """
    Raised when a ledger mutation would leave quantity, reserved or
    available stock negative. Indicates a defect, not an operational condition.
    """

    error_code = "INVARIANT_VIOLATION"
    status_code = 500

    def __init__(
        self,
        message: str = "Inventory invariant violated",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class DatabaseError(BuildOpsException):
    """Raised when a database operation fails."""

    error_code = "DATABASE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "Database operation failed",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
