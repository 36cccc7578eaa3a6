"""Care-team activity trail.

One immutable, hashed row per accepted mutation, written in the same unit
of work as the mutation itself.
"""

from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from domain.aggregates import ActivityLogEntry
from domain.clock import Clock, utcnow
from domain.repositories import IUnitOfWork
from database.models import activity_hash


class ActivityTrail:
    """Activity log access bound to one unit of work."""

    def __init__(self, uow: IUnitOfWork, clock: Clock = utcnow):
        self._uow = uow
        self._clock = clock

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Any,
        actor: Optional[str],
        client_id: Optional[UUID] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLogEntry:
        return await self._uow.activity.append(
            client_id=client_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor=actor,
            details=details or {},
            at=self._clock(),
        )

    async def for_client(self, client_id: UUID, limit: int = 100) -> List[ActivityLogEntry]:
        """Newest first."""
        return await self._uow.activity.list_for_client(client_id, limit)

    async def verify_trail_integrity(self, client_id: UUID) -> Tuple[bool, List[str]]:
        """
        Recompute every entry's hash.

        Returns:
            (all_valid, ids of entries whose stored hash does not match)
        """
        tampered = [
            str(entry.id)
            async for entry in self._uow.activity.iter_for_client(client_id)
            if not verify_entry(entry)
        ]
        return not tampered, tampered


def verify_entry(entry: ActivityLogEntry) -> bool:
    return entry.hash_value == activity_hash(entry)
