"""Async Pair Guard Repository Implementation.

Guard rows serialize preference/restriction writers on the same
(client, staff) pair without holding application-level locks.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IPairGuardRepository
from database.models import PairGuardRecord

logger = logging.getLogger(__name__)


class PairGuardRepository(IPairGuardRepository):
    """Async implementation of IPairGuardRepository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def read_version(self, client_id: UUID, staff_id: UUID) -> Optional[int]:
        result = await self._session.execute(
            select(PairGuardRecord.version).where(
                PairGuardRecord.client_id == client_id,
                PairGuardRecord.staff_id == staff_id,
            )
        )
        return result.scalar_one_or_none()

    async def advance(
        self,
        client_id: UUID,
        staff_id: UUID,
        expected_version: Optional[int],
        at: datetime,
    ) -> bool:
        """
        Compare-and-set the guard version.

        The first writer on a pair inserts version 1; a concurrent first
        writer hits the primary key. Later writers update only when the
        version they read is still current.

        Returns:
            False if a concurrent writer won. The session must then be
            rolled back.
        """
        if expected_version is None:
            self._session.add(
                PairGuardRecord(client_id=client_id, staff_id=staff_id, version=1, updated_at=at)
            )
            try:
                await self._session.flush()
            except IntegrityError:
                logger.info(
                    "Pair guard insert lost a race",
                    extra={"extra_data": {"client_id": str(client_id), "staff_id": str(staff_id)}},
                )
                return False
            return True

        result = await self._session.execute(
            update(PairGuardRecord)
            .where(
                PairGuardRecord.client_id == client_id,
                PairGuardRecord.staff_id == staff_id,
                PairGuardRecord.version == expected_version,
            )
            .values(version=expected_version + 1, updated_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
