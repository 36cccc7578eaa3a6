"""Async Status Log Repository Implementation.

Append-only: this repository exposes no update or delete, and the ORM
listeners in ``database.models`` reject any flush that tries either.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IStatusLogRepository
from domain.aggregates import StatusLogEntry
from database.models import StatusLogRecord


class StatusLogRepository(IStatusLogRepository):
    """Async implementation of IStatusLogRepository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: StatusLogEntry) -> StatusLogEntry:
        record = StatusLogRecord(
            id=entry.id,
            client_id=entry.client_id,
            previous_status=entry.previous_status.value,
            new_status=entry.new_status.value,
            reason=entry.reason,
            changed_by=entry.changed_by,
            changed_by_name=entry.changed_by_name,
            created_at=entry.created_at,
            sequence=entry.sequence,
        )
        self._session.add(record)
        await self._session.flush()
        return StatusLogEntry.model_validate(record)

    def _newest_first(self, client_id: UUID):
        return (
            select(StatusLogRecord)
            .where(StatusLogRecord.client_id == client_id)
            .order_by(StatusLogRecord.created_at.desc(), StatusLogRecord.sequence.desc())
        )

    async def latest(self, client_id: UUID) -> Optional[StatusLogEntry]:
        result = await self._session.execute(self._newest_first(client_id).limit(1))
        record = result.scalar_one_or_none()
        return StatusLogEntry.model_validate(record) if record is not None else None

    async def list_for_client(self, client_id: UUID) -> List[StatusLogEntry]:
        result = await self._session.execute(self._newest_first(client_id))
        return [StatusLogEntry.model_validate(r) for r in result.scalars().all()]
