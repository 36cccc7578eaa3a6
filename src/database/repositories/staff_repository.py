"""Async Staff Repository Implementation."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IStaffRepository
from domain.aggregates import StaffMember
from database.models import StaffRecord


class StaffRepository(IStaffRepository):
    """Async implementation of IStaffRepository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, id: UUID) -> Optional[StaffMember]:
        result = await self._session.execute(
            select(StaffRecord).where(StaffRecord.id == id)
        )
        record = result.scalar_one_or_none()
        return StaffMember.model_validate(record) if record is not None else None

    async def add(self, name: str, created_at: datetime) -> StaffMember:
        record = StaffRecord(id=uuid4(), name=name, is_active=True, created_at=created_at)
        self._session.add(record)
        await self._session.flush()
        return StaffMember.model_validate(record)

    async def set_active(self, id: UUID, is_active: bool) -> None:
        await self._session.execute(
            update(StaffRecord)
            .where(StaffRecord.id == id)
            .values(is_active=is_active)
            .execution_options(synchronize_session="fetch")
        )
