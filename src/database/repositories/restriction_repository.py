"""Async Restriction Repository Implementation."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IRestrictionRepository
from domain.aggregates import Restriction
from database.models import RestrictionRecord


class RestrictionRepository(IRestrictionRepository):
    """
    Async implementation of IRestrictionRepository.

    "Current" means active and not yet expired; restrictions scheduled to
    start later are included. Listings are newest first.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, restriction: Restriction) -> Restriction:
        record = RestrictionRecord(
            id=restriction.id,
            client_id=restriction.client_id,
            staff_id=restriction.staff_id,
            reason=restriction.reason,
            severity=restriction.severity.value,
            is_active=restriction.is_active,
            effective_from=restriction.effective_from,
            effective_to=restriction.effective_to,
            created_by=restriction.created_by,
            created_at=restriction.created_at,
            updated_at=restriction.updated_at,
        )
        self._session.add(record)
        await self._session.flush()
        return Restriction.model_validate(record)

    async def get(self, id: UUID) -> Optional[Restriction]:
        result = await self._session.execute(
            select(RestrictionRecord).where(RestrictionRecord.id == id)
        )
        record = result.scalar_one_or_none()
        return Restriction.model_validate(record) if record is not None else None

    async def list_current_for_client(self, client_id: UUID, now: datetime) -> List[Restriction]:
        return await self._list_current(now, RestrictionRecord.client_id == client_id)

    async def list_current_for_staff(self, staff_id: UUID, now: datetime) -> List[Restriction]:
        return await self._list_current(now, RestrictionRecord.staff_id == staff_id)

    async def list_current_for_pair(
        self, client_id: UUID, staff_id: UUID, now: datetime
    ) -> List[Restriction]:
        return await self._list_current(
            now,
            RestrictionRecord.client_id == client_id,
            RestrictionRecord.staff_id == staff_id,
        )

    async def _list_current(self, now: datetime, *criteria) -> List[Restriction]:
        query = (
            select(RestrictionRecord)
            .where(
                RestrictionRecord.is_active.is_(True),
                or_(RestrictionRecord.effective_to.is_(None), RestrictionRecord.effective_to >= now),
                *criteria,
            )
            .order_by(RestrictionRecord.created_at.desc())
        )
        result = await self._session.execute(query)
        return [Restriction.model_validate(r) for r in result.scalars().all()]

    async def deactivate(self, id: UUID, at: datetime) -> None:
        await self._session.execute(
            update(RestrictionRecord)
            .where(RestrictionRecord.id == id)
            .values(is_active=False, updated_at=at)
            .execution_options(synchronize_session="fetch")
        )

    async def delete(self, id: UUID) -> bool:
        result = await self._session.execute(
            delete(RestrictionRecord).where(RestrictionRecord.id == id)
        )
        return result.rowcount > 0
