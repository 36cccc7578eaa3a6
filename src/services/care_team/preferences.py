"""
Preference Registry - ranked recommendations to roster a staff member.

Several active preferences may exist for one client, including several at
the ``primary`` level. Mutual exclusion with restrictions is enforced by
the orchestrator, not here.
"""

from typing import List, Optional
from uuid import UUID, uuid4

from domain.aggregates import Preference
from domain.clock import Clock, utcnow
from domain.exceptions import NotFoundError
from domain.repositories import IUnitOfWork
from domain.value_objects import PreferenceLevel, parse_enum


class PreferenceRegistry:
    """Preference operations bound to one unit of work."""

    def __init__(self, uow: IUnitOfWork, clock: Clock = utcnow):
        self._uow = uow
        self._clock = clock

    async def add(
        self,
        client_id: UUID,
        staff_id: UUID,
        level,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Preference:
        """
        Record a preference.

        Raises:
            ValidationError: if ``level`` is not primary, secondary or backup
        """
        level = parse_enum(PreferenceLevel, level, "preferenceLevel")
        now = self._clock()
        preference = Preference(
            id=uuid4(),
            client_id=client_id,
            staff_id=staff_id,
            level=level,
            notes=notes,
            is_active=True,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        return await self._uow.preferences.add(preference)

    async def get(self, preference_id: UUID) -> Preference:
        preference = await self._uow.preferences.get(preference_id)
        if preference is None:
            raise NotFoundError("Preference", preference_id)
        return preference

    async def deactivate(self, preference_id: UUID) -> Preference:
        """Soft removal; the row is kept with ``is_active=False``."""
        preference = await self.get(preference_id)
        now = self._clock()
        await self._uow.preferences.deactivate(preference_id, now)
        return preference.model_copy(update={"is_active": False, "updated_at": now})

    async def remove(self, preference_id: UUID) -> Preference:
        """Hard delete. Returns the removed preference."""
        preference = await self.get(preference_id)
        await self._uow.preferences.delete(preference_id)
        return preference

    async def list_active(self, client_id: UUID) -> List[Preference]:
        """Active preferences ordered primary, secondary, backup, then oldest first."""
        return await self._uow.preferences.list_active_for_client(client_id)

    async def list_active_for_staff(self, staff_id: UUID) -> List[Preference]:
        return await self._uow.preferences.list_active_for_staff(staff_id)

    async def list_active_for_pair(self, client_id: UUID, staff_id: UUID) -> List[Preference]:
        return await self._uow.preferences.list_active_for_pair(client_id, staff_id)
