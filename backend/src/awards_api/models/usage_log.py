"""Append-only API usage log for metering and analytics."""
from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from awards_api.models.base import Base, JSONType


class ApiUsageLog(Base):
    """
    One record per metered API request.

    References the key by row id; the raw key is never written here.
    """

    __tablename__ = "api_usage_logs"

    api_key_id = Column(Uuid(as_uuid=True), ForeignKey("api_keys.id"), nullable=True, index=True)
    key_prefix = Column(String(16), nullable=True)
    path = Column(String, nullable=False, index=True)
    params = Column(JSONType, nullable=False, default=dict)
    latency_ms = Column(Integer, nullable=True)  # NULL when the handler failed before timing
    status_code = Column(Integer, nullable=False)
    client_ip = Column(String(45), nullable=True)
    client_class = Column(String, nullable=True)  # User agent / caller type
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    api_key = relationship("ApiKey", back_populates="usage_logs")

    def __repr__(self) -> str:
        """String representation."""
        return f"<ApiUsageLog(id={self.id}, path={self.path}, status_code={self.status_code})>"
