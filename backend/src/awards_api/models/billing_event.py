"""Ledger of processed Stripe billing events."""
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String

from awards_api.models.base import Base


class BillingEvent(Base):
    """
    Stripe event received by the webhook.

    Redelivered event ids are acknowledged without being applied again.
    """

    __tablename__ = "billing_events"

    stripe_event_id = Column(String, nullable=False, unique=True, index=True)
    event_type = Column(String, nullable=False, index=True)  # customer.subscription.deleted, ...
    kind = Column(String, nullable=True)  # subscription.cancelled, payment.failed, ...
    stripe_customer_id = Column(String, nullable=True, index=True)
    keys_affected = Column(Integer, nullable=False, default=0)
    processed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        """String representation."""
        return f"<BillingEvent(stripe_event_id={self.stripe_event_id}, event_type={self.event_type})>"
