"""Async Assignment Repository Implementation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IAssignmentRepository
from domain.aggregates import Assignment
from database.models import AssignmentRecord

logger = logging.getLogger(__name__)


class AssignmentRepository(IAssignmentRepository):
    """Async implementation of IAssignmentRepository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, assignment: Assignment) -> Assignment:
        record = AssignmentRecord(
            id=assignment.id,
            client_id=assignment.client_id,
            staff_id=assignment.staff_id,
            assignment_type=assignment.assignment_type.value,
            start_date=assignment.start_date,
            end_date=assignment.end_date,
            created_by=assignment.created_by,
            created_at=assignment.created_at,
        )
        self._session.add(record)
        await self._session.flush()
        return Assignment.model_validate(record)

    async def get(self, id: UUID) -> Optional[Assignment]:
        result = await self._session.execute(
            select(AssignmentRecord).where(AssignmentRecord.id == id)
        )
        record = result.scalar_one_or_none()
        return Assignment.model_validate(record) if record is not None else None

    async def list_active_for_client(self, client_id: UUID, now: datetime) -> List[Assignment]:
        return await self._list_active(AssignmentRecord.client_id == client_id, now)

    async def list_active_for_staff(self, staff_id: UUID, now: datetime) -> List[Assignment]:
        return await self._list_active(AssignmentRecord.staff_id == staff_id, now)

    async def _list_active(self, criterion, now: datetime) -> List[Assignment]:
        query = (
            select(AssignmentRecord)
            .where(
                criterion,
                or_(AssignmentRecord.end_date.is_(None), AssignmentRecord.end_date > now),
            )
            .order_by(AssignmentRecord.start_date.asc(), AssignmentRecord.created_at.asc())
        )
        result = await self._session.execute(query)
        return [Assignment.model_validate(r) for r in result.scalars().all()]

    async def set_end_date(self, id: UUID, end_date: datetime) -> None:
        await self._session.execute(
            update(AssignmentRecord)
            .where(AssignmentRecord.id == id)
            .values(end_date=end_date)
            .execution_options(synchronize_session="fetch")
        )

    async def delete(self, id: UUID) -> bool:
        result = await self._session.execute(
            delete(AssignmentRecord).where(AssignmentRecord.id == id)
        )
        return result.rowcount > 0
