"""API key introspection."""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.api.deps import get_db, get_presented_key, get_usage_service
from awards_api.errors import InvalidKey, MissingKey
from awards_api.schemas.api_key import ApiKeyInfo
from awards_api.services.api_key_service import ApiKeyService
from awards_api.services.usage_service import UsageService

router = APIRouter(prefix="/keys", tags=["Keys"])


@router.get("/me")
async def get_current_key(
    presented_key: Optional[str] = Depends(get_presented_key),
    db: AsyncSession = Depends(get_db),
    usage: UsageService = Depends(get_usage_service),
) -> dict[str, Any]:
    """
    Describe the calling key: tier, domains, limits and usage by endpoint.

    Does not consume quota. Suspended keys can still inspect themselves.
    """
    if not presented_key:
        raise MissingKey("API key required")

    api_key = await ApiKeyService(db).get_by_key(presented_key)
    if api_key is None:
        raise InvalidKey("Invalid API key")

    validation = ApiKeyService.describe(api_key)

    return {
        "valid": validation.valid,
        "error": validation.error,
        "key": ApiKeyInfo.model_validate(api_key).model_dump(mode="json"),
        "usage": await usage.usage_summary(api_key.id),
    }
