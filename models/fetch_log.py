from sqlalchemy import Column, BigInteger, Integer, String, Enum, DateTime, Text, Index
from core.clock import utcnow
from models.base import Base, FetchStatus


class FetchLog(Base):
    """
    Audit record for one fetch attempt.

    Purpose:
    - Audit trail of every provider fetch
    - Duration and volume monitoring
    - Error tracking

    Lifecycle:
    - Created when the attempt starts with a provisional SUCCESS status
    - Updated exactly once on completion (SUCCESS) or failure (FAILURE)
    """
    __tablename__ = "fetch_logs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    provider_id = Column(String(100), nullable=False, index=True)

    status = Column(Enum(FetchStatus), nullable=False, default=FetchStatus.SUCCESS)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Outcome
    records_fetched = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_fetch_log_provider_started", "provider_id", "started_at"),
    )
