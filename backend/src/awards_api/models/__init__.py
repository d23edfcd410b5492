"""SQLAlchemy ORM models for the awards API."""
# Import all models here to ensure they are registered with Alembic

from awards_api.models.base import Base
from awards_api.models.api_key import ApiKey, Domain, Tier
from awards_api.models.usage_log import ApiUsageLog
from awards_api.models.billing_event import BillingEvent
from awards_api.models.awards import AwardCategory, Ceremony, Nomination, NominationPerson, Person

__all__ = [
    "Base",
    "ApiKey",
    "Domain",
    "Tier",
    "ApiUsageLog",
    "BillingEvent",
    "AwardCategory",
    "Ceremony",
    "Nomination",
    "NominationPerson",
    "Person",
]
