"""API key model holding per-key entitlements and usage counters."""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from awards_api.models.base import Base, JSONType


class Tier(enum.Enum):
    """Entitlement tier of an API key."""

    FREE = "free"
    GAMES_STARTER = "games_starter"
    GAMES_PRO = "games_pro"
    FILM_STARTER = "film_starter"
    FILM_PRO = "film_pro"
    BUNDLE_STARTER = "bundle_starter"
    BUNDLE_PRO = "bundle_pro"
    PROFESSIONAL = "professional"  # Legacy
    ENTERPRISE = "enterprise"  # Legacy
    SUSPENDED = "suspended"


class Domain(str, enum.Enum):
    """Dataset partitions a key can be authorized against."""

    GAMES = "games"
    FILM = "film"


class ApiKey(Base):
    """
    Issued API key.

    Only the HMAC digest of the secret is stored; the raw key is handed out
    once at mint time. Rows are never deleted, only suspended or downgraded.
    """

    __tablename__ = "api_keys"

    key_hash = Column(String(64), nullable=False, unique=True, index=True)
    key_prefix = Column(String(16), nullable=False)  # Display only
    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    tier = Column(
        SQLEnum(Tier, name="apikeytier", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Tier.FREE,
    )
    allowed_domains = Column(JSONType, nullable=False, default=list)
    daily_limit = Column(Integer, nullable=False, default=1000)
    monthly_limit = Column(Integer, nullable=False, default=1000)
    daily_used = Column(Integer, nullable=False, default=0)
    monthly_used = Column(Integer, nullable=False, default=0)
    suspended = Column(Boolean, nullable=False, default=False)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True)
    source = Column(String, nullable=True)  # Provenance, e.g. "Stripe subscription"
    notes = Column(String, nullable=True)
    last_used_at = Column(DateTime, nullable=True)

    # Relationships
    usage_logs = relationship("ApiUsageLog", back_populates="api_key")

    @property
    def is_suspended(self) -> bool:
        """Suspension by flag or by a tier left over from older suspension handling."""
        return bool(self.suspended) or self.tier == Tier.SUSPENDED

    def __repr__(self) -> str:
        """String representation."""
        return f"<ApiKey(id={self.id}, prefix={self.key_prefix}, tier={self.tier.value}, suspended={self.suspended})>"
