"""Async Preference Repository Implementation."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, case
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IPreferenceRepository
from domain.aggregates import Preference
from domain.value_objects import PreferenceLevel
from database.models import PreferenceRecord


# primary, secondary, backup
_LEVEL_ORDER = case(
    {level.value: level.rank for level in PreferenceLevel},
    value=PreferenceRecord.level,
    else_=len(PreferenceLevel),
)


class PreferenceRepository(IPreferenceRepository):
    """
    Async implementation of IPreferenceRepository.

    Active listings are ordered by level rank, then creation time.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, preference: Preference) -> Preference:
        record = PreferenceRecord(
            id=preference.id,
            client_id=preference.client_id,
            staff_id=preference.staff_id,
            level=preference.level.value,
            notes=preference.notes,
            is_active=preference.is_active,
            created_by=preference.created_by,
            created_at=preference.created_at,
            updated_at=preference.updated_at,
        )
        self._session.add(record)
        await self._session.flush()
        return Preference.model_validate(record)

    async def get(self, id: UUID) -> Optional[Preference]:
        result = await self._session.execute(
            select(PreferenceRecord).where(PreferenceRecord.id == id)
        )
        record = result.scalar_one_or_none()
        return Preference.model_validate(record) if record is not None else None

    async def list_active_for_client(self, client_id: UUID) -> List[Preference]:
        return await self._list_active(PreferenceRecord.client_id == client_id)

    async def list_active_for_staff(self, staff_id: UUID) -> List[Preference]:
        return await self._list_active(PreferenceRecord.staff_id == staff_id)

    async def list_active_for_pair(self, client_id: UUID, staff_id: UUID) -> List[Preference]:
        return await self._list_active(
            PreferenceRecord.client_id == client_id,
            PreferenceRecord.staff_id == staff_id,
        )

    async def _list_active(self, *criteria) -> List[Preference]:
        query = (
            select(PreferenceRecord)
            .where(PreferenceRecord.is_active.is_(True), *criteria)
            .order_by(_LEVEL_ORDER, PreferenceRecord.created_at.asc())
        )
        result = await self._session.execute(query)
        return [Preference.model_validate(r) for r in result.scalars().all()]

    async def deactivate(self, id: UUID, at: datetime) -> None:
        await self._session.execute(
            update(PreferenceRecord)
            .where(PreferenceRecord.id == id)
            .values(is_active=False, updated_at=at)
            .execution_options(synchronize_session="fetch")
        )

    async def delete(self, id: UUID) -> bool:
        result = await self._session.execute(
            delete(PreferenceRecord).where(PreferenceRecord.id == id)
        )
        return result.rowcount > 0
