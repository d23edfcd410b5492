"""Pydantic schemas for API request/response validation."""

from awards_api.schemas.api_key import (
    ApiKeyInfo,
    ApiKeyLimitsUpdate,
    ApiKeyValidation,
    AuthorizationResult,
    QuotaCounters,
)
from awards_api.schemas.awards import (
    FilmAwards,
    NominationFilters,
    NominationPage,
    NominationResult,
    OscarStatsQuery,
)
from awards_api.schemas.error import ErrorCode, ErrorDetail, ErrorResponse
from awards_api.schemas.subscription import (
    PlanInfo,
    PlanList,
    SubscriptionCreate,
    SubscriptionProvisioned,
)

__all__ = [
    "ApiKeyInfo",
    "ApiKeyLimitsUpdate",
    "ApiKeyValidation",
    "AuthorizationResult",
    "QuotaCounters",
    "FilmAwards",
    "NominationFilters",
    "NominationPage",
    "NominationResult",
    "OscarStatsQuery",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "PlanInfo",
    "PlanList",
    "SubscriptionCreate",
    "SubscriptionProvisioned",
]
