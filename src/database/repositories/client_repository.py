"""Async Client Repository Implementation.

Implements IClientRepository using SQLAlchemy async sessions. The core only
reads client identity; it owns the status and archive columns.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IClientRepository
from domain.aggregates import ClientSummary
from domain.value_objects import ClientStatus
from database.models import ClientRecord

logger = logging.getLogger(__name__)


class ClientRepository(IClientRepository):
    """Async implementation of IClientRepository."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with a session.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    async def get(self, id: UUID) -> Optional[ClientSummary]:
        result = await self._session.execute(
            select(ClientRecord)
            .where(ClientRecord.id == id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return ClientSummary.model_validate(record)

    async def add(self, name: str, created_at: datetime) -> ClientSummary:
        record = ClientRecord(
            id=uuid4(),
            name=name,
            status=ClientStatus.default().value,
            status_version=0,
            is_archived=False,
            created_at=created_at,
        )
        self._session.add(record)
        await self._session.flush()
        return ClientSummary.model_validate(record)

    async def compare_and_set_status(
        self,
        id: UUID,
        expected_version: int,
        new_status: ClientStatus,
        changed_at: datetime,
        changed_by: str,
    ) -> bool:
        """
        Conditional UPDATE on ``status_version``.

        Returns:
            True if exactly one row was updated.
        """
        result = await self._session.execute(
            update(ClientRecord)
            .where(
                ClientRecord.id == id,
                ClientRecord.status_version == expected_version,
            )
            .values(
                status=new_status.value,
                status_version=expected_version + 1,
                status_changed_at=changed_at,
                status_changed_by=changed_by,
                updated_at=changed_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def set_archived(
        self,
        id: UUID,
        archived: bool,
        actor: str,
        reason: Optional[str],
        at: datetime,
    ) -> None:
        values = {"is_archived": archived, "updated_at": at}
        if archived:
            values.update(archived_at=at, archived_by=actor, archive_reason=reason)
        else:
            values.update(archived_at=None, archived_by=None, archive_reason=None)

        await self._session.execute(
            update(ClientRecord)
            .where(ClientRecord.id == id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
