from sqlalchemy import Column, BigInteger, Integer, String, Date, DateTime, Index, UniqueConstraint
from core.clock import utcnow
from models.base import Base, JSONType


class MetricsSnapshot(Base):
    """
    One normalized, timestamped set of metric values for a provider.

    Purpose:
    - Time-series history for dashboards and trend comparison
    - Last-known-good data when a later fetch fails

    Design Decisions:
    - (provider_id, snapshot_time) is unique: saving the same snapshot twice
      updates the row in place
    - metrics holds {key: MetricValue} as JSON
    - raw_data holds the provider's pass-through metadata
    """
    __tablename__ = "metrics_snapshots"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    provider_id = Column(String(100), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False, index=True)  # Calendar day of snapshot_time
    snapshot_time = Column(DateTime, nullable=False)

    metrics = Column(JSONType, nullable=False)
    raw_data = Column(JSONType, nullable=True)
    records_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        UniqueConstraint("provider_id", "snapshot_time", name="unique_snapshot"),
        Index("idx_snapshot_provider_time", "provider_id", "snapshot_time"),
        Index("idx_snapshot_provider_date", "provider_id", "snapshot_date"),
    )
