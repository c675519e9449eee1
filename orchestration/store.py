"""
Persistence boundary for provider configs, metric snapshots and fetch logs.

Every operation opens its own session from the injected session factory,
so concurrent fetches never share a session or a transaction.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import utcnow
from core.exceptions import ConfigNotFoundError, PersistenceError
from models import FetchLog, FetchStatus, MetricsSnapshot, ProviderConfig, ProviderStatus
from schemas.metrics import ProviderConfigInput, ProviderMetrics

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(session: AsyncSession, table):
    """INSERT construct supporting ON CONFLICT for the session's dialect"""
    dialect = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect](table)
    except KeyError as e:
        raise PersistenceError(
            f"Upserts are not supported on dialect '{dialect}'",
            context={"dialect": dialect},
            original_exception=e
        ) from e


class MetricsStore:
    """
    Async repository over the metrics tables.

    Args:
        session_factory: async_sessionmaker bound to the target database
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Provider configs
    # ------------------------------------------------------------------

    async def get_provider_config(self, provider_id: str) -> Optional[ProviderConfig]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderConfig).where(ProviderConfig.provider_id == provider_id)
            )
            return result.scalar_one_or_none()

    async def list_provider_configs(self, enabled_only: bool = False) -> List[ProviderConfig]:
        """All provider configs ordered by name"""
        async with self._session_factory() as session:
            query = select(ProviderConfig).order_by(ProviderConfig.name)
            if enabled_only:
                query = query.where(ProviderConfig.is_enabled.is_(True))
            result = await session.execute(query)
            return list(result.scalars().all())

    async def upsert_provider_config(self, data: ProviderConfigInput) -> ProviderConfig:
        """Create a provider config, or update the existing one in place"""
        values = data.model_dump()
        values["status"] = ProviderStatus(values["status"])
        now = utcnow()

        async with self._session_factory() as session:
            try:
                stmt = _insert_for(session, ProviderConfig).values(
                    **values, created_at=now, updated_at=now
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["provider_id"],
                    set_={
                        "name": stmt.excluded.name,
                        "is_enabled": stmt.excluded.is_enabled,
                        "status": stmt.excluded.status,
                        "fetch_interval_minutes": stmt.excluded.fetch_interval_minutes,
                        "api_credentials": stmt.excluded.api_credentials,
                        "config": stmt.excluded.config,
                        "updated_at": now,
                    }
                )
                await session.execute(stmt)
                await session.commit()

                result = await session.execute(
                    select(ProviderConfig).where(ProviderConfig.provider_id == data.provider_id)
                )
                config = result.scalar_one()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    "Failed to upsert provider config",
                    context={
                        "provider_id": data.provider_id,
                        "operation": "UPSERT",
                        "table_name": "providers_config"
                    },
                    original_exception=e
                ) from e

        logger.info(f"Upserted provider config: {data.provider_id}")
        return config

    async def mark_provider_fetched(self, provider_id: str, fetched_at: datetime) -> ProviderConfig:
        """
        Record a successful fetch: last_fetch_at, next_fetch_at and ACTIVE status.

        Raises:
            ConfigNotFoundError: No config row exists for the provider
        """
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    select(ProviderConfig).where(ProviderConfig.provider_id == provider_id)
                )
                config = result.scalar_one_or_none()
                if config is None:
                    raise ConfigNotFoundError(
                        f"Provider config not found: {provider_id}",
                        context={"provider_id": provider_id}
                    )

                config.last_fetch_at = fetched_at
                config.next_fetch_at = fetched_at + timedelta(minutes=config.fetch_interval_minutes)
                config.status = ProviderStatus.ACTIVE
                await session.commit()
                return config
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    "Failed to update provider fetch time",
                    context={"provider_id": provider_id, "operation": "UPDATE", "table_name": "providers_config"},
                    original_exception=e
                ) from e

    async def count_enabled_providers(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(ProviderConfig).where(ProviderConfig.is_enabled.is_(True))
            )
            return result.scalar_one()

    # ------------------------------------------------------------------
    # Fetch logs
    # ------------------------------------------------------------------

    async def start_fetch_log(self, provider_id: str, started_at: datetime) -> int:
        """Open a fetch log with a provisional SUCCESS status; returns its id"""
        async with self._session_factory() as session:
            try:
                log = FetchLog(provider_id=provider_id, started_at=started_at, status=FetchStatus.SUCCESS)
                session.add(log)
                await session.commit()
                return log.id
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    "Failed to create fetch log",
                    context={"provider_id": provider_id, "operation": "INSERT", "table_name": "fetch_logs"},
                    original_exception=e
                ) from e

    async def complete_fetch_log(
        self,
        log_id: int,
        completed_at: datetime,
        duration_ms: int,
        records_fetched: int,
    ) -> None:
        await self._close_fetch_log(log_id, {
            "status": FetchStatus.SUCCESS,
            "completed_at": completed_at,
            "duration_ms": duration_ms,
            "records_fetched": records_fetched,
        })

    async def fail_fetch_log(
        self,
        log_id: int,
        completed_at: datetime,
        duration_ms: int,
        error_message: str,
    ) -> None:
        await self._close_fetch_log(log_id, {
            "status": FetchStatus.FAILURE,
            "completed_at": completed_at,
            "duration_ms": duration_ms,
            "error_message": error_message,
        })

    async def _close_fetch_log(self, log_id: int, values: Dict[str, Any]) -> None:
        async with self._session_factory() as session:
            try:
                await session.execute(update(FetchLog).where(FetchLog.id == log_id).values(**values))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    "Failed to update fetch log",
                    context={"log_id": log_id, "operation": "UPDATE", "table_name": "fetch_logs"},
                    original_exception=e
                ) from e

    async def get_fetch_logs(self, provider_id: str, limit: int = 10) -> List[FetchLog]:
        """Most recent fetch logs for a provider, newest first"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(FetchLog)
                .where(FetchLog.provider_id == provider_id)
                .order_by(FetchLog.started_at.desc(), FetchLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_fetch_logs(self, provider_id: Optional[str] = None) -> int:
        async with self._session_factory() as session:
            query = select(func.count()).select_from(FetchLog)
            if provider_id is not None:
                query = query.where(FetchLog.provider_id == provider_id)
            result = await session.execute(query)
            return result.scalar_one()

    async def get_last_fetch_started_at(self) -> Optional[datetime]:
        async with self._session_factory() as session:
            result = await session.execute(select(func.max(FetchLog.started_at)))
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def upsert_snapshot(self, data: ProviderMetrics) -> int:
        """
        Save a snapshot, updating in place when (provider_id, snapshot_time) exists.

        Returns:
            Number of metrics saved
        """
        now = utcnow()
        metrics = data.metrics_as_json()
        values = {
            "provider_id": data.provider_id,
            "snapshot_date": data.timestamp.date(),
            "snapshot_time": data.timestamp,
            "metrics": metrics,
            "raw_data": to_jsonable_python(data.metadata),
            "records_count": len(metrics),
            "created_at": now,
            "updated_at": now,
        }

        async with self._session_factory() as session:
            try:
                # INSERT ... ON CONFLICT keeps concurrent saves of one snapshot atomic
                stmt = _insert_for(session, MetricsSnapshot).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["provider_id", "snapshot_time"],
                    set_={
                        "metrics": stmt.excluded.metrics,
                        "raw_data": stmt.excluded.raw_data,
                        "records_count": stmt.excluded.records_count,
                        "updated_at": now,
                    }
                )
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    "Failed to save metrics snapshot",
                    context={
                        "provider_id": data.provider_id,
                        "snapshot_time": data.timestamp.isoformat(),
                        "operation": "UPSERT",
                        "table_name": "metrics_snapshots"
                    },
                    original_exception=e
                ) from e

        return len(metrics)

    async def get_latest_snapshot(self, provider_id: str) -> Optional[MetricsSnapshot]:
        snapshots = await self.get_recent_snapshots(provider_id, limit=1)
        return snapshots[0] if snapshots else None

    async def get_recent_snapshots(self, provider_id: str, limit: int = 2) -> List[MetricsSnapshot]:
        """Newest snapshots for a provider, newest first"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(MetricsSnapshot)
                .where(MetricsSnapshot.provider_id == provider_id)
                .order_by(MetricsSnapshot.snapshot_time.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_snapshots_since(self, provider_id: str, since: datetime) -> List[MetricsSnapshot]:
        """Snapshots on or after the calendar day of ``since``, oldest first"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(MetricsSnapshot)
                .where(
                    MetricsSnapshot.provider_id == provider_id,
                    MetricsSnapshot.snapshot_date >= since.date()
                )
                .order_by(MetricsSnapshot.snapshot_date.asc(), MetricsSnapshot.snapshot_time.asc())
            )
            return list(result.scalars().all())

    async def count_snapshots(self, provider_id: Optional[str] = None) -> int:
        async with self._session_factory() as session:
            query = select(func.count()).select_from(MetricsSnapshot)
            if provider_id is not None:
                query = query.where(MetricsSnapshot.provider_id == provider_id)
            result = await session.execute(query)
            return result.scalar_one()
