"""Client Status Audit Log.

Owns the client status state machine and its append-only history. Every
accepted transition writes the client's new status and appends exactly one
log entry inside the caller's unit of work, so both commit together or
neither does.

States: Active (also what an unset status reads as), Hospital, Paused,
Discharged. Any state may move to any other.
"""

from typing import List, Optional
from uuid import UUID, uuid4

from domain.aggregates import ClientSummary, StatusLogEntry, StatusTransition
from domain.clock import Clock, utcnow
from domain.exceptions import NotFoundError, StaleWriteError
from domain.repositories import IUnitOfWork
from domain.value_objects import ClientStatus, parse_enum
from services.logging_config import get_logger

logger = get_logger(__name__)


class StatusAuditLog:
    """Status transitions and history for clients, bound to one unit of work."""

    def __init__(self, uow: IUnitOfWork, clock: Clock = utcnow):
        self._uow = uow
        self._clock = clock

    async def transition(
        self,
        client: ClientSummary,
        new_status,
        changed_by: str,
        reason: Optional[str] = None,
        changed_by_name: Optional[str] = None,
    ) -> StatusTransition:
        """
        Move a client to ``new_status`` and log it.

        The status write is a compare-and-set on the client's status
        version as read into ``client``. The entry's timestamp never goes
        backwards relative to the previous entry for the same client.

        Args:
            client: Client as read in this unit of work
            new_status: Target status
            changed_by: Acting user id
            reason: Optional free text
            changed_by_name: Optional display name of the actor

        Returns:
            StatusTransition with previous and new status

        Raises:
            ValidationError: unknown status
            StaleWriteError: another transition committed since ``client`` was read
        """
        new_status = parse_enum(ClientStatus, new_status, "status")
        previous_status = client.status

        now = self._clock()
        last = await self._uow.status_log.latest(client.id)
        created_at = max(now, last.created_at) if last is not None else now

        written = await self._uow.clients.compare_and_set_status(
            client.id,
            expected_version=client.status_version,
            new_status=new_status,
            changed_at=created_at,
            changed_by=changed_by,
        )
        if not written:
            raise StaleWriteError(f"Status of client {client.id} changed concurrently")

        entry = await self._uow.status_log.append(StatusLogEntry(
            id=uuid4(),
            client_id=client.id,
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
            changed_by=changed_by,
            changed_by_name=changed_by_name,
            created_at=created_at,
            sequence=client.status_version + 1,
        ))

        return StatusTransition(
            client_id=client.id,
            previous_status=previous_status,
            new_status=new_status,
            changed_at=created_at,
            log_entry_id=entry.id,
        )

    async def history(self, client_id: UUID) -> List[StatusLogEntry]:
        """All entries for a client, newest first."""
        return await self._uow.status_log.list_for_client(client_id)

    async def current(self, client_id: UUID) -> ClientStatus:
        client = await self._uow.clients.get(client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client.status

    async def verify_consistency(self, client_id: UUID) -> bool:
        """
        Check that the client's status matches its newest log entry.

        With no history the status must be Active. A mismatch means a
        status was written without its entry, or the other way round.
        """
        status = await self.current(client_id)
        last = await self._uow.status_log.latest(client_id)
        expected = last.new_status if last is not None else ClientStatus.default()

        if status != expected:
            logger.warning(
                "Client status does not match status history",
                extra={"extra_data": {
                    "client_id": str(client_id),
                    "status": status.value,
                    "expected": expected.value,
                }},
            )
            return False
        return True
