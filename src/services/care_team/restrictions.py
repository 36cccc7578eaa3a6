"""
Restriction Registry - graded constraints against rostering a staff member.

A restriction needs a non-blank reason and a severity. Its effective
window starts at ``effective_from`` (default now) and, when
``effective_to`` is given, ends there (inclusive).

Two views are exposed:
    current   - active and not expired; counts toward mutual exclusion
    in effect - current and already started; feeds eligibility
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from domain.aggregates import Restriction
from domain.clock import Clock, to_naive_utc, utcnow
from domain.exceptions import NotFoundError, ValidationError
from domain.repositories import IUnitOfWork
from domain.value_objects import RestrictionSeverity, parse_enum


class RestrictionRegistry:
    """Restriction operations bound to one unit of work."""

    def __init__(self, uow: IUnitOfWork, clock: Clock = utcnow):
        self._uow = uow
        self._clock = clock

    async def add(
        self,
        client_id: UUID,
        staff_id: UUID,
        reason: Optional[str],
        severity,
        effective_from: Optional[datetime] = None,
        effective_to: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> Restriction:
        """
        Record a restriction.

        Raises:
            ValidationError: blank reason, unknown severity, or a window
                whose end is not after its start
        """
        reason = validate_reason(reason)
        severity = parse_enum(RestrictionSeverity, severity, "severity")

        now = self._clock()
        start = to_naive_utc(effective_from) if effective_from else now
        end = to_naive_utc(effective_to) if effective_to else None
        if end is not None and end <= start:
            raise ValidationError("effectiveTo must be after effectiveFrom", field="effectiveTo")

        restriction = Restriction(
            id=uuid4(),
            client_id=client_id,
            staff_id=staff_id,
            reason=reason,
            severity=severity,
            is_active=True,
            effective_from=start,
            effective_to=end,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        return await self._uow.restrictions.add(restriction)

    async def get(self, restriction_id: UUID) -> Restriction:
        restriction = await self._uow.restrictions.get(restriction_id)
        if restriction is None:
            raise NotFoundError("Restriction", restriction_id)
        return restriction

    async def deactivate(self, restriction_id: UUID) -> Restriction:
        """Soft removal; the row is kept with ``is_active=False``."""
        restriction = await self.get(restriction_id)
        now = self._clock()
        await self._uow.restrictions.deactivate(restriction_id, now)
        return restriction.model_copy(update={"is_active": False, "updated_at": now})

    async def remove(self, restriction_id: UUID) -> Restriction:
        """Hard delete. Returns the removed restriction."""
        restriction = await self.get(restriction_id)
        await self._uow.restrictions.delete(restriction_id)
        return restriction

    async def list_active(self, client_id: UUID) -> List[Restriction]:
        """Current restrictions for a client, newest first."""
        return await self._uow.restrictions.list_current_for_client(client_id, self._clock())

    async def list_active_for_staff(self, staff_id: UUID) -> List[Restriction]:
        return await self._uow.restrictions.list_current_for_staff(staff_id, self._clock())

    async def list_current_for_pair(self, client_id: UUID, staff_id: UUID) -> List[Restriction]:
        return await self._uow.restrictions.list_current_for_pair(client_id, staff_id, self._clock())

    async def list_in_effect(
        self, client_id: UUID, staff_id: UUID, now: Optional[datetime] = None
    ) -> List[Restriction]:
        """Restrictions whose effective window contains ``now`` (default the clock), newest first."""
        now = now or self._clock()
        current = await self._uow.restrictions.list_current_for_pair(client_id, staff_id, now)
        return [r for r in current if r.is_in_effect(now)]


def validate_reason(reason: Optional[str]) -> str:
    """Restrictions must explain themselves."""
    if reason is None or not str(reason).strip():
        raise ValidationError("Restriction reason is required", field="reason")
    return str(reason).strip()
