"""
Common API Response Schemas

Standardized error responses shared by every endpoint.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response for all API errors.

    Error Codes:
        - VALIDATION_ERROR: Request validation failed (400)
        - INVALID_STATE: Operation not allowed in the current state (400)
        - ILLEGAL_TRANSITION: Build order cannot make the requested move (400)
        - NOT_FOUND: Resource not found (404)
        - CONFLICT: Resource conflict (409)
        - CONCURRENCY_ERROR: Retries exhausted on a concurrent modification (409)
        - INSUFFICIENT_STOCK: Not enough available stock to reserve (422)
        - BUSINESS_RULE_ERROR: Business rule violation (422)
        - INVARIANT_VIOLATION: Ledger invariant would be broken (500)
        - DATABASE_ERROR: Database operation failed (500)
        - INTERNAL_ERROR: Unexpected internal error (500)

    ``retryable`` tells clients whether re-sending the same request may succeed.
    """
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error context for debugging"
    )
    retryable: bool = Field(False, description="Whether the request may succeed if retried")
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred (UTC)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "ILLEGAL_TRANSITION",
                "message": "Cannot start_build BUILD-WI-2026-001: status is planned",
                "details": {
                    "current_state": "planned",
                    "accepted_from": ["materials_reserved"],
                    "allowed_transitions": ["materials_reserved", "cancelled"],
                },
                "retryable": False,
                "timestamp": "2026-01-15T10:30:00Z"
            }
        }
    }
