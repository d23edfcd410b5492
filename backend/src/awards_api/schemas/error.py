"""Structured error response schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure.

    This provides consistent error responses across the API with:
    - Machine-readable error codes
    - Human-readable messages
    - Remediation hints
    - Request tracing information
    """

    error: str = Field(..., description="Error type (e.g., 'InvalidKey', 'QuotaExceeded')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "error": "DomainNotAuthorized",
                "message": "API key not authorized for film domain",
                "details": [
                    {
                        "code": "domain_not_authorized",
                        "message": "API key not authorized for film domain",
                    }
                ],
                "remediation": "Upgrade to a plan that includes the requested dataset domain",
                "request_id": "req_1234567890",
                "timestamp": "2024-01-15T10:30:00Z",
                "allowed_domains": ["games"],
            }
        },
    )


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400, 422)
    INVALID_EMAIL = "invalid_email"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    INVALID_PLAN = "invalid_plan"

    # API key errors (401, 403, 429)
    MISSING_API_KEY = "missing_api_key"
    INVALID_API_KEY = "invalid_api_key"
    API_KEY_SUSPENDED = "api_key_suspended"
    DOMAIN_NOT_AUTHORIZED = "domain_not_authorized"
    QUOTA_EXCEEDED = "quota_exceeded"

    # Not found errors (404)
    NOT_FOUND = "not_found"

    # Webhook errors (400)
    SIGNATURE_VERIFICATION_FAILED = "signature_verification_failed"

    # External service errors (502, 503)
    BILLING_PROVIDER_ERROR = "billing_provider_error"
    STRIPE_API_ERROR = "stripe_api_error"
    DATABASE_ERROR = "database_error"
    PERSISTENCE_ERROR = "persistence_error"

    # Internal errors (500)
    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVALID_EMAIL: "Provide a valid email address in the format: user@example.com",
    ErrorCode.INVALID_PLAN: "Choose one of the plan keys listed in available_plans",
    ErrorCode.MISSING_API_KEY: "Send your key in the X-API-Key header or the apikey query parameter",
    ErrorCode.INVALID_API_KEY: "Check the API key for typos or subscribe to obtain a new one",
    ErrorCode.API_KEY_SUSPENDED: "Access is suspended after a failed payment. Update your payment method.",
    ErrorCode.DOMAIN_NOT_AUTHORIZED: "Upgrade to a plan that includes the requested dataset domain",
    ErrorCode.QUOTA_EXCEEDED: "Request quota exhausted for the current billing period. Upgrade or wait for renewal.",
    ErrorCode.SIGNATURE_VERIFICATION_FAILED: "Verify the webhook signing secret configured for this endpoint",
    ErrorCode.BILLING_PROVIDER_ERROR: "Payment provider is temporarily unavailable. Please try again later.",
    ErrorCode.STRIPE_API_ERROR: "Stripe payment processing is temporarily unavailable. Please try again later.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
    ErrorCode.PERSISTENCE_ERROR: "Contact support with the request ID; the subscription needs manual reconciliation.",
}
