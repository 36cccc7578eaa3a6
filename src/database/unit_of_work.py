"""Transaction boundary for care-team writes.

Coordinates the care-team repositories as a single transaction. A status
change and its log entry, or a preference and its activity row, either all
commit or all roll back.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.repositories import IUnitOfWork
from domain.events import DomainEvent
from domain.event_bus import EventBus, get_event_bus
from database.async_engine import get_async_session_factory
from database.repositories import (
    ActivityLogRepository,
    AssignmentRepository,
    ClientRepository,
    PairGuardRepository,
    PreferenceRepository,
    RestrictionRepository,
    StaffRepository,
    StatusLogRepository,
)

logger = logging.getLogger(__name__)


class CareTeamUnitOfWork(IUnitOfWork):
    """
    One database transaction with every care-team repository bound to it.

    Usage:
        async with CareTeamUnitOfWork(session_factory) as uow:
            client = await uow.clients.get(client_id)
            await uow.preferences.add(preference)
            uow.collect_event(PreferenceSet(...))
            # Auto-commits on clean exit, then publishes events

    A clean exit commits (read-only units roll back instead), an exception
    rolls back, and the session is closed either way.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        event_bus: Optional[EventBus] = None,
        read_only: bool = False,
    ):
        """
        Initialize the unit of work.

        Args:
            session_factory: Factory for sessions. Defaults to the global one.
            event_bus: Bus that receives events after commit.
            read_only: If True, never commit; the transaction is always rolled back.
        """
        self._session_factory = session_factory
        self._event_bus = event_bus
        self._read_only = read_only
        self._session: Optional[AsyncSession] = None
        self._committed: bool = False

        # Collected domain events
        self._pending_events: List[DomainEvent] = []

    def _bind_repositories(self, session: AsyncSession) -> None:
        self.clients = ClientRepository(session)
        self.staff = StaffRepository(session)
        self.assignments = AssignmentRepository(session)
        self.preferences = PreferenceRepository(session)
        self.restrictions = RestrictionRepository(session)
        self.pair_guards = PairGuardRepository(session)
        self.status_log = StatusLogRepository(session)
        self.activity = ActivityLogRepository(session)

    @property
    def session(self) -> AsyncSession:
        """Session of the open transaction."""
        if self._session is None:
            raise RuntimeError("Unit of work is not open; use it with async with")
        return self._session

    def collect_event(self, event: DomainEvent) -> None:
        """Queue ``event``; it is published only if this unit commits."""
        self._pending_events.append(event)

    async def commit(self) -> None:
        """
        Commit all changes.

        After a successful commit, publishes collected domain events.
        """
        if self._read_only:
            raise RuntimeError("Read-only unit of work cannot commit")

        if self._committed:
            return

        await self.session.commit()
        self._committed = True
        logger.debug("Unit of work committed")

        await self._publish_events()

    async def rollback(self) -> None:
        """Discard the transaction and any queued events."""
        if self._session is None:
            return

        await self._session.rollback()
        self._pending_events.clear()
        logger.debug("Unit of work rolled back")

    async def _publish_events(self) -> None:
        """Publish collected domain events. Handler failures never undo the commit."""
        if not self._pending_events:
            return

        bus = self._event_bus or get_event_bus()
        events, self._pending_events = self._pending_events, []

        for event in events:
            await bus.publish_async(event)

    async def __aenter__(self) -> "CareTeamUnitOfWork":
        """Enter the async context."""
        session_factory = self._session_factory or get_async_session_factory()
        self._session = session_factory()
        self._bind_repositories(self._session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug("Unit of work aborted by %s", exc_type.__name__)
            elif self._read_only:
                await self.rollback()
            elif not self._committed:
                await self.commit()
        finally:
            if self._session is not None:
                await self._session.close()
                self._session = None


class UnitOfWorkFactory:
    """Hands the service a fresh unit of work per attempt, all sharing one
    session factory and event bus."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self._session_factory = session_factory
        self._event_bus = event_bus

    def __call__(self, read_only: bool = False) -> CareTeamUnitOfWork:
        return CareTeamUnitOfWork(
            self._session_factory,
            event_bus=self._event_bus,
            read_only=read_only,
        )
