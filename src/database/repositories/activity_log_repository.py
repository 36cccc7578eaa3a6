"""Async Activity Log Repository Implementation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IActivityLogRepository
from domain.aggregates import ActivityLogEntry
from database.models import ActivityLogRecord


class ActivityLogRepository(IActivityLogRepository):
    """Async implementation of IActivityLogRepository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(
        self,
        client_id: Optional[UUID],
        action: str,
        entity_type: str,
        entity_id: str,
        actor: Optional[str],
        details: Dict[str, Any],
        at: datetime,
    ) -> ActivityLogEntry:
        record = ActivityLogRecord(
            id=uuid4(),
            client_id=client_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            details=details,
            created_at=at,
        )
        self._session.add(record)
        # hash_value is filled by the before_insert listener
        await self._session.flush()
        return ActivityLogEntry.model_validate(record)

    async def list_for_client(self, client_id: UUID, limit: int = 100) -> List[ActivityLogEntry]:
        query = (
            select(ActivityLogRecord)
            .where(ActivityLogRecord.client_id == client_id)
            .order_by(ActivityLogRecord.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(query)
        return [ActivityLogEntry.model_validate(r) for r in result.scalars().all()]

    async def iter_for_client(self, client_id: UUID, batch_size: int = 500) -> AsyncIterator[ActivityLogEntry]:
        """Every entry for the client, oldest first, without loading the whole trail."""
        query = (
            select(ActivityLogRecord)
            .where(ActivityLogRecord.client_id == client_id)
            .order_by(ActivityLogRecord.created_at)
            .execution_options(yield_per=batch_size)
        )
        records = await self._session.stream_scalars(query)
        async for record in records:
            yield ActivityLogEntry.model_validate(record)
