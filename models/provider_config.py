from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from core.clock import utcnow
from models.base import Base, JSONType, ProviderStatus


class ProviderConfig(Base):
    """
    Persisted configuration and schedule state for one provider.

    Purpose:
    - Enable/disable providers without a deploy
    - Hold the fetch interval used for staleness decisions
    - Track when the provider was last fetched successfully

    Design:
    - One row per provider, keyed by provider_id
    - next_fetch_at is always last_fetch_at + fetch_interval_minutes
    - Rows are created by seed/admin actions and never deleted
    """
    __tablename__ = "providers_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)

    is_enabled = Column(Boolean, nullable=False, default=True)
    status = Column(Enum(ProviderStatus), nullable=False, default=ProviderStatus.INACTIVE)
    fetch_interval_minutes = Column(Integer, nullable=False, default=60)

    # Schedule state (advanced only on successful fetches)
    last_fetch_at = Column(DateTime, nullable=True)
    next_fetch_at = Column(DateTime, nullable=True)

    api_credentials = Column(JSONType, nullable=True)  # Not read by the fetch core
    config = Column(JSONType, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
