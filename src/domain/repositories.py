"""
Repository Interfaces for the care-team engine.

Repository interfaces define the contract for data access, following the
Repository pattern from Domain-Driven Design. Implementations are provided
in the infrastructure layer (``database/repositories``).

This abstraction allows:
1. Swapping storage backends (SQLite -> PostgreSQL)
2. Testing registries and the audit log against test doubles
3. Clear separation between domain rules and SQL
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import UUID

from .aggregates import (
    ActivityLogEntry,
    Assignment,
    ClientSummary,
    Preference,
    Restriction,
    StaffMember,
    StatusLogEntry,
)
from .events import DomainEvent
from .value_objects import ClientStatus


class IClientRepository(ABC):
    """Client identity plus the status and archive fields the core owns."""

    @abstractmethod
    async def get(self, id: UUID) -> Optional[ClientSummary]:
        """
        Retrieve a client by ID.

        Returns:
            The client if found, None otherwise
        """
        pass

    @abstractmethod
    async def add(self, name: str, created_at: datetime) -> ClientSummary:
        pass

    @abstractmethod
    async def compare_and_set_status(
        self,
        id: UUID,
        expected_version: int,
        new_status: ClientStatus,
        changed_at: datetime,
        changed_by: str,
    ) -> bool:
        """
        Write a new status only if ``status_version`` still equals
        ``expected_version``; the version is incremented on success.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        pass

    @abstractmethod
    async def set_archived(
        self,
        id: UUID,
        archived: bool,
        actor: str,
        reason: Optional[str],
        at: datetime,
    ) -> None:
        pass


class IStaffRepository(ABC):
    """Staff identity."""

    @abstractmethod
    async def get(self, id: UUID) -> Optional[StaffMember]:
        pass

    @abstractmethod
    async def add(self, name: str, created_at: datetime) -> StaffMember:
        pass

    @abstractmethod
    async def set_active(self, id: UUID, is_active: bool) -> None:
        pass


class IAssignmentRepository(ABC):
    """Assignments of staff to clients."""

    @abstractmethod
    async def add(self, assignment: Assignment) -> Assignment:
        pass

    @abstractmethod
    async def get(self, id: UUID) -> Optional[Assignment]:
        pass

    @abstractmethod
    async def list_active_for_client(self, client_id: UUID, now: datetime) -> List[Assignment]:
        """
        Assignments with no end date or an end date after ``now``.

        Returns:
            Assignments ordered by start date ascending
        """
        pass

    @abstractmethod
    async def list_active_for_staff(self, staff_id: UUID, now: datetime) -> List[Assignment]:
        pass

    @abstractmethod
    async def set_end_date(self, id: UUID, end_date: datetime) -> None:
        pass

    @abstractmethod
    async def delete(self, id: UUID) -> bool:
        """
        Hard delete an assignment.

        Returns:
            True if deleted, False if not found
        """
        pass


class IPreferenceRepository(ABC):
    """Client-staff preferences."""

    @abstractmethod
    async def add(self, preference: Preference) -> Preference:
        pass

    @abstractmethod
    async def get(self, id: UUID) -> Optional[Preference]:
        pass

    @abstractmethod
    async def list_active_for_client(self, client_id: UUID) -> List[Preference]:
        pass

    @abstractmethod
    async def list_active_for_staff(self, staff_id: UUID) -> List[Preference]:
        pass

    @abstractmethod
    async def list_active_for_pair(self, client_id: UUID, staff_id: UUID) -> List[Preference]:
        pass

    @abstractmethod
    async def deactivate(self, id: UUID, at: datetime) -> None:
        pass

    @abstractmethod
    async def delete(self, id: UUID) -> bool:
        pass


class IRestrictionRepository(ABC):
    """Client-staff restrictions."""

    @abstractmethod
    async def add(self, restriction: Restriction) -> Restriction:
        pass

    @abstractmethod
    async def get(self, id: UUID) -> Optional[Restriction]:
        pass

    @abstractmethod
    async def list_current_for_client(self, client_id: UUID, now: datetime) -> List[Restriction]:
        """
        Active, unexpired restrictions for a client.

        Returns:
            Restrictions ordered newest first
        """
        pass

    @abstractmethod
    async def list_current_for_staff(self, staff_id: UUID, now: datetime) -> List[Restriction]:
        pass

    @abstractmethod
    async def list_current_for_pair(
        self, client_id: UUID, staff_id: UUID, now: datetime
    ) -> List[Restriction]:
        pass

    @abstractmethod
    async def deactivate(self, id: UUID, at: datetime) -> None:
        pass

    @abstractmethod
    async def delete(self, id: UUID) -> bool:
        pass


class IPairGuardRepository(ABC):
    """
    Optimistic lock rows for the (client, staff) scope.

    A writer reads the guard version before checking mutual exclusion and
    advances it before commit. Two writers on the same pair cannot both
    advance from the same version.
    """

    @abstractmethod
    async def read_version(self, client_id: UUID, staff_id: UUID) -> Optional[int]:
        """
        Returns:
            Current version, or None if the pair has never been written
        """
        pass

    @abstractmethod
    async def advance(
        self,
        client_id: UUID,
        staff_id: UUID,
        expected_version: Optional[int],
        at: datetime,
    ) -> bool:
        """
        Move the guard from ``expected_version`` to the next version.

        Returns:
            True on success, False if a concurrent writer advanced it first
        """
        pass


class IStatusLogRepository(ABC):
    """Append-only status history."""

    @abstractmethod
    async def append(self, entry: StatusLogEntry) -> StatusLogEntry:
        pass

    @abstractmethod
    async def latest(self, client_id: UUID) -> Optional[StatusLogEntry]:
        pass

    @abstractmethod
    async def list_for_client(self, client_id: UUID) -> List[StatusLogEntry]:
        """
        Returns:
            Entries newest first (created_at desc, then sequence desc)
        """
        pass


class IActivityLogRepository(ABC):
    """Append-only activity trail."""

    @abstractmethod
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
        pass

    @abstractmethod
    async def list_for_client(self, client_id: UUID, limit: int = 100) -> List[ActivityLogEntry]:
        pass

    @abstractmethod
    def iter_for_client(self, client_id: UUID) -> AsyncIterator[ActivityLogEntry]:
        """Every entry for the client, oldest first, read in batches."""
        pass


class IUnitOfWork(ABC):
    """
    Unit of Work interface.

    Coordinates the repositories within one transaction. Domain events
    collected during the unit are published only after a successful commit.
    """

    clients: IClientRepository
    staff: IStaffRepository
    assignments: IAssignmentRepository
    preferences: IPreferenceRepository
    restrictions: IRestrictionRepository
    pair_guards: IPairGuardRepository
    status_log: IStatusLogRepository
    activity: IActivityLogRepository

    @abstractmethod
    def collect_event(self, event: DomainEvent) -> None:
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Commit all changes and publish collected events."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all changes and collected events."""
        pass

    @abstractmethod
    async def __aenter__(self) -> "IUnitOfWork":
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        pass
