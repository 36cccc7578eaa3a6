"""
Assignment Registry - staff rostered against clients.

Assignments are inserted unconditionally: several assignments of the same
type for one client are allowed. An assignment is active while its end
date is absent or in the future.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from domain.aggregates import Assignment, AssignmentRoster
from domain.clock import Clock, to_naive_utc, utcnow
from domain.exceptions import NotFoundError, ValidationError
from domain.repositories import IUnitOfWork
from domain.value_objects import AssignmentType, parse_enum


class AssignmentRegistry:
    """Assignment operations bound to one unit of work."""

    def __init__(self, uow: IUnitOfWork, clock: Clock = utcnow):
        self._uow = uow
        self._clock = clock

    async def add(
        self,
        client_id: UUID,
        staff_id: UUID,
        assignment_type,
        start_date: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> Assignment:
        """
        Roster a staff member on a client.

        Args:
            client_id: Client identifier
            staff_id: Staff identifier
            assignment_type: One of the AssignmentType values
            start_date: Defaults to now
            created_by: Acting user

        Returns:
            The stored assignment

        Raises:
            ValidationError: if ``assignment_type`` is not recognised
        """
        kind = parse_enum(AssignmentType, assignment_type, "assignmentType")
        now = self._clock()
        assignment = Assignment(
            id=uuid4(),
            client_id=client_id,
            staff_id=staff_id,
            assignment_type=kind,
            start_date=to_naive_utc(start_date) if start_date else now,
            created_by=created_by,
            created_at=now,
        )
        return await self._uow.assignments.add(assignment)

    async def get(self, assignment_id: UUID) -> Assignment:
        assignment = await self._uow.assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    async def end(self, assignment_id: UUID, end_date: datetime) -> Assignment:
        """
        Set the end date of an assignment.

        Raises:
            NotFoundError: unknown assignment
            ValidationError: ``end_date`` before the start date
        """
        assignment = await self.get(assignment_id)
        end_date = to_naive_utc(end_date)
        if end_date < assignment.start_date:
            raise ValidationError(
                "endDate cannot be before startDate",
                field="endDate",
                details={"start_date": assignment.start_date.isoformat()},
            )
        await self._uow.assignments.set_end_date(assignment_id, end_date)
        return assignment.model_copy(update={"end_date": end_date})

    async def remove(self, assignment_id: UUID) -> Assignment:
        """Hard delete. Returns the removed assignment."""
        assignment = await self.get(assignment_id)
        await self._uow.assignments.delete(assignment_id)
        return assignment

    async def list_active(self, client_id: UUID) -> AssignmentRoster:
        assignments = await self._uow.assignments.list_active_for_client(client_id, self._clock())
        return AssignmentRoster(
            client_id=client_id,
            active_assignment_count=len(assignments),
            assignments=assignments,
        )

    async def list_active_for_staff(self, staff_id: UUID) -> List[Assignment]:
        return await self._uow.assignments.list_active_for_staff(staff_id, self._clock())
