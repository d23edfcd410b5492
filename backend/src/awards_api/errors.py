"""Exception taxonomy for entitlement, provisioning and webhook failures.

Every error carries a machine-readable code and the HTTP status it maps to,
so callers (and the exception handler in ``main``) can branch on the kind.
"""
from typing import Any

from fastapi import status

from awards_api.schemas.error import ErrorCode


class AwardsAPIError(Exception):
    """Base class for all expected, structured failures."""

    error = "AwardsAPIError"
    code = ErrorCode.INTERNAL_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra


class MissingKey(AwardsAPIError):
    error = "MissingKey"
    code = ErrorCode.MISSING_API_KEY
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidKey(AwardsAPIError):
    error = "InvalidKey"
    code = ErrorCode.INVALID_API_KEY
    status_code = status.HTTP_401_UNAUTHORIZED


class Suspended(AwardsAPIError):
    """Billing problem, distinct from running out of quota."""

    error = "Suspended"
    code = ErrorCode.API_KEY_SUSPENDED
    status_code = status.HTTP_403_FORBIDDEN


class DomainNotAuthorized(AwardsAPIError):
    error = "DomainNotAuthorized"
    code = ErrorCode.DOMAIN_NOT_AUTHORIZED
    status_code = status.HTTP_403_FORBIDDEN


class QuotaExceeded(AwardsAPIError):
    error = "QuotaExceeded"
    code = ErrorCode.QUOTA_EXCEEDED
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class InvalidPlan(AwardsAPIError):
    error = "InvalidPlan"
    code = ErrorCode.INVALID_PLAN
    status_code = status.HTTP_400_BAD_REQUEST


class BillingProviderError(AwardsAPIError):
    error = "BillingProviderError"
    code = ErrorCode.BILLING_PROVIDER_ERROR
    status_code = status.HTTP_502_BAD_GATEWAY


class SignatureVerificationFailed(AwardsAPIError):
    error = "SignatureVerificationFailed"
    code = ErrorCode.SIGNATURE_VERIFICATION_FAILED
    status_code = status.HTTP_400_BAD_REQUEST


class PersistenceError(AwardsAPIError):
    error = "PersistenceError"
    code = ErrorCode.PERSISTENCE_ERROR
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ConfigurationError(AwardsAPIError):
    """Raised at startup; never returned to API callers."""

    error = "ConfigurationError"
    code = ErrorCode.CONFIGURATION_ERROR


# Rejection reasons produced by the validator, keyed by error code
REJECTIONS: dict[str, type[AwardsAPIError]] = {
    cls.code: cls for cls in (MissingKey, InvalidKey, Suspended, DomainNotAuthorized, QuotaExceeded)
}
