"""
Care Team Service - Application service for care-team operations.

This is the single entry point for callers:
- Preference and restriction writes, with mutual exclusion per pair
- Assignment lifecycle
- Client status transitions with their audit log
- Archival of clients
- Eligibility verdicts and candidate ranking

Each operation runs in its own unit of work. Writes that lose an
optimistic race are re-run a bounded number of times; if every attempt
loses, the caller gets ConflictError. Every accepted mutation writes one
activity row in the same transaction and publishes one domain event after
commit.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
from uuid import UUID

from audit import ActivityTrail, StatusAuditLog
from config.settings import ResilienceSettings
from domain.aggregates import (
    ActivityLogEntry,
    Assignment,
    AssignmentRoster,
    ClientSummary,
    Preference,
    Restriction,
    StaffMember,
    StatusLogEntry,
    StatusTransition,
)
from domain.clock import Clock, utcnow
from domain.events import (
    AssignmentAdded,
    AssignmentEnded,
    AssignmentRemoved,
    ClientArchived,
    ClientRestored,
    ClientStatusChanged,
    PreferenceRemoved,
    PreferenceSet,
    RestrictionRemoved,
    RestrictionSet,
)
from domain.exceptions import (
    ArchivedClientError,
    CareTeamError,
    ConflictError,
    NotFoundError,
    StaleWriteError,
    ValidationError,
)
from domain.repositories import IUnitOfWork
from domain.value_objects import (
    ClientStatus,
    EligibilityResult,
    PreferenceLevel,
    RestrictionSeverity,
    parse_enum,
)
from resilience import RetryConfig, RetryExhausted, async_retry
from services.logging_config import get_logger

from .assignments import AssignmentRegistry
from .eligibility import EligibilityEvaluator
from .preferences import PreferenceRegistry
from .restrictions import RestrictionRegistry, validate_reason


logger = get_logger(__name__)

T = TypeVar("T")


class CareTeamService:
    """
    Orchestrator for the care-team engine.

    Args:
        uow_factory: Callable returning a fresh unit of work; accepts
            ``read_only=True`` for read paths
        clock: Source of naive-UTC "now"
        retry_config: Stale-write retry policy; defaults to RESILIENCE_ settings
    """

    def __init__(
        self,
        uow_factory: Callable[..., IUnitOfWork],
        clock: Clock = utcnow,
        retry_config: Optional[RetryConfig] = None,
    ):
        self._uow_factory = uow_factory
        self._clock = clock
        self._retry_config = retry_config or RetryConfig.from_settings(
            ResilienceSettings(),
            retryable_exceptions=(StaleWriteError,),
        )

    # =========================================================================
    # PREFERENCES & RESTRICTIONS
    # =========================================================================

    async def set_preference(
        self,
        client_id: UUID,
        staff_id: UUID,
        level,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Preference:
        """
        Prefer a staff member for a client.

        Raises:
            ConflictError: the pair has an active restriction
            ValidationError: invalid level or inactive staff
            ArchivedClientError: the client is archived
            NotFoundError: unknown client or staff
        """
        async def set_preference() -> Preference:
            async with self._uow_factory() as uow:
                await self._mutable_client(uow, client_id)
                parsed_level = parse_enum(PreferenceLevel, level, "preferenceLevel")
                await self._staff(uow, staff_id, require_active=True)
                guard = await uow.pair_guards.read_version(client_id, staff_id)

                restrictions = await RestrictionRegistry(uow, self._clock).list_current_for_pair(
                    client_id, staff_id
                )
                if restrictions:
                    raise ConflictError(
                        "Staff member is restricted for this client; remove the restriction first",
                        {"restriction_id": str(restrictions[0].id)},
                    )

                preference = await PreferenceRegistry(uow, self._clock).add(
                    client_id, staff_id, parsed_level, notes=notes, created_by=actor
                )
                await self._advance_guard(uow, client_id, staff_id, guard)
                await self._record(
                    uow, "preference.set", "preference", preference.id, actor, client_id,
                    {"staff_id": str(staff_id), "level": parsed_level.value},
                )
                uow.collect_event(PreferenceSet(
                    client_id=client_id,
                    actor=actor,
                    preference_id=preference.id,
                    staff_id=staff_id,
                    level=parsed_level.value,
                ))
                return preference

        preference = await self._write(set_preference)
        self._accepted("Preference set", client_id=client_id, staff_id=staff_id, level=preference.level.value)
        return preference

    async def set_restriction(
        self,
        client_id: UUID,
        staff_id: UUID,
        reason: Optional[str],
        severity,
        actor: Optional[str] = None,
        effective_from: Optional[datetime] = None,
        effective_to: Optional[datetime] = None,
    ) -> Restriction:
        """
        Restrict a staff member for a client.

        Restrictions may be recorded against inactive staff.

        Raises:
            ConflictError: the pair has an active preference
            ValidationError: blank reason, invalid severity or window
            ArchivedClientError: the client is archived
            NotFoundError: unknown client or staff
        """
        async def set_restriction() -> Restriction:
            async with self._uow_factory() as uow:
                await self._mutable_client(uow, client_id)
                clean_reason = validate_reason(reason)
                parsed_severity = parse_enum(RestrictionSeverity, severity, "severity")
                await self._staff(uow, staff_id)
                guard = await uow.pair_guards.read_version(client_id, staff_id)

                preferences = await PreferenceRegistry(uow, self._clock).list_active_for_pair(
                    client_id, staff_id
                )
                if preferences:
                    raise ConflictError(
                        "Staff member is preferred for this client; remove the preference first",
                        {"preference_id": str(preferences[0].id)},
                    )

                restriction = await RestrictionRegistry(uow, self._clock).add(
                    client_id,
                    staff_id,
                    clean_reason,
                    parsed_severity,
                    effective_from=effective_from,
                    effective_to=effective_to,
                    created_by=actor,
                )
                await self._advance_guard(uow, client_id, staff_id, guard)
                await self._record(
                    uow, "restriction.set", "restriction", restriction.id, actor, client_id,
                    {"staff_id": str(staff_id), "severity": parsed_severity.value, "reason": clean_reason},
                )
                uow.collect_event(RestrictionSet(
                    client_id=client_id,
                    actor=actor,
                    restriction_id=restriction.id,
                    staff_id=staff_id,
                    severity=parsed_severity.value,
                    reason=clean_reason,
                ))
                return restriction

        restriction = await self._write(set_restriction)
        self._accepted("Restriction set", client_id=client_id, staff_id=staff_id, severity=restriction.severity.value)
        return restriction

    async def remove_preference(
        self,
        preference_id: UUID,
        actor: Optional[str] = None,
        hard: bool = False,
    ) -> Preference:
        """
        Deactivate a preference, or delete it when ``hard`` is set.

        Deactivating an already inactive preference changes nothing.
        """

        async def remove_preference() -> Preference:
            async with self._uow_factory() as uow:
                registry = PreferenceRegistry(uow, self._clock)
                preference = await registry.get(preference_id)
                await self._mutable_client(uow, preference.client_id)
                if not hard and not preference.is_active:
                    return preference

                guard = await uow.pair_guards.read_version(preference.client_id, preference.staff_id)
                if hard:
                    removed = await registry.remove(preference_id)
                else:
                    removed = await registry.deactivate(preference_id)
                await self._advance_guard(uow, preference.client_id, preference.staff_id, guard)

                action = "preference.deleted" if hard else "preference.deactivated"
                await self._record(
                    uow, action, "preference", preference_id, actor, preference.client_id,
                    {"staff_id": str(preference.staff_id)},
                )
                uow.collect_event(PreferenceRemoved(
                    client_id=preference.client_id,
                    actor=actor,
                    preference_id=preference_id,
                    staff_id=preference.staff_id,
                    hard_delete=hard,
                ))
                return removed

        removed = await self._write(remove_preference)
        self._accepted("Preference removed", preference_id=preference_id, hard=hard)
        return removed

    async def remove_restriction(
        self,
        restriction_id: UUID,
        actor: Optional[str] = None,
        hard: bool = False,
    ) -> Restriction:
        """
        Deactivate a restriction, or delete it when ``hard`` is set.

        Deactivating an already inactive restriction changes nothing.
        """

        async def remove_restriction() -> Restriction:
            async with self._uow_factory() as uow:
                registry = RestrictionRegistry(uow, self._clock)
                restriction = await registry.get(restriction_id)
                await self._mutable_client(uow, restriction.client_id)
                if not hard and not restriction.is_active:
                    return restriction

                guard = await uow.pair_guards.read_version(restriction.client_id, restriction.staff_id)
                if hard:
                    removed = await registry.remove(restriction_id)
                else:
                    removed = await registry.deactivate(restriction_id)
                await self._advance_guard(uow, restriction.client_id, restriction.staff_id, guard)

                action = "restriction.deleted" if hard else "restriction.deactivated"
                await self._record(
                    uow, action, "restriction", restriction_id, actor, restriction.client_id,
                    {"staff_id": str(restriction.staff_id)},
                )
                uow.collect_event(RestrictionRemoved(
                    client_id=restriction.client_id,
                    actor=actor,
                    restriction_id=restriction_id,
                    staff_id=restriction.staff_id,
                    hard_delete=hard,
                ))
                return removed

        removed = await self._write(remove_restriction)
        self._accepted("Restriction removed", restriction_id=restriction_id, hard=hard)
        return removed

    # =========================================================================
    # ASSIGNMENTS
    # =========================================================================

    async def add_assignment(
        self,
        client_id: UUID,
        staff_id: UUID,
        assignment_type,
        actor: Optional[str] = None,
        start_date: Optional[datetime] = None,
    ) -> Assignment:
        """
        Roster a staff member. Duplicates of the same type are allowed.

        Raises:
            ValidationError: invalid type or inactive staff
            ArchivedClientError: the client is archived
            NotFoundError: unknown client or staff
        """

        async def add_assignment() -> Assignment:
            async with self._uow_factory() as uow:
                await self._mutable_client(uow, client_id)
                await self._staff(uow, staff_id, require_active=True)
                assignment = await AssignmentRegistry(uow, self._clock).add(
                    client_id, staff_id, assignment_type, start_date=start_date, created_by=actor
                )
                await self._record(
                    uow, "assignment.added", "assignment", assignment.id, actor, client_id,
                    {"staff_id": str(staff_id), "assignment_type": assignment.assignment_type.value},
                )
                uow.collect_event(AssignmentAdded(
                    client_id=client_id,
                    actor=actor,
                    assignment_id=assignment.id,
                    staff_id=staff_id,
                    assignment_type=assignment.assignment_type.value,
                ))
                return assignment

        assignment = await self._write(add_assignment)
        self._accepted("Assignment added", client_id=client_id, staff_id=staff_id)
        return assignment

    async def end_assignment(
        self,
        assignment_id: UUID,
        end_date: Optional[datetime] = None,
        actor: Optional[str] = None,
    ) -> Assignment:
        """End an assignment at ``end_date`` (default now)."""

        async def end_assignment() -> Assignment:
            async with self._uow_factory() as uow:
                registry = AssignmentRegistry(uow, self._clock)
                assignment = await registry.get(assignment_id)
                await self._mutable_client(uow, assignment.client_id)
                ended = await registry.end(assignment_id, end_date or self._clock())
                await self._record(
                    uow, "assignment.ended", "assignment", assignment_id, actor, assignment.client_id,
                    {"end_date": ended.end_date.isoformat()},
                )
                uow.collect_event(AssignmentEnded(
                    client_id=assignment.client_id,
                    actor=actor,
                    assignment_id=assignment_id,
                    staff_id=assignment.staff_id,
                    end_date=ended.end_date,
                ))
                return ended

        ended = await self._write(end_assignment)
        self._accepted("Assignment ended", assignment_id=assignment_id)
        return ended

    async def remove_assignment(self, assignment_id: UUID, actor: Optional[str] = None) -> Assignment:
        """Hard delete an assignment."""

        async def remove_assignment() -> Assignment:
            async with self._uow_factory() as uow:
                registry = AssignmentRegistry(uow, self._clock)
                assignment = await registry.get(assignment_id)
                await self._mutable_client(uow, assignment.client_id)
                await registry.remove(assignment_id)
                await self._record(
                    uow, "assignment.removed", "assignment", assignment_id, actor, assignment.client_id,
                    {"staff_id": str(assignment.staff_id)},
                )
                uow.collect_event(AssignmentRemoved(
                    client_id=assignment.client_id,
                    actor=actor,
                    assignment_id=assignment_id,
                    staff_id=assignment.staff_id,
                ))
                return assignment

        removed = await self._write(remove_assignment)
        self._accepted("Assignment removed", assignment_id=assignment_id)
        return removed

    # =========================================================================
    # CLIENT STATUS & ARCHIVAL
    # =========================================================================

    async def change_status(
        self,
        client_id: UUID,
        new_status,
        reason: Optional[str],
        changed_by: str,
        changed_by_name: Optional[str] = None,
    ) -> StatusTransition:
        """
        Move a client to a new status and append the matching log entry.

        Raises:
            ValidationError: unknown status
            ArchivedClientError: the client is archived
            NotFoundError: unknown client
            ConflictError: concurrent transitions kept winning
        """

        async def change_status() -> StatusTransition:
            async with self._uow_factory() as uow:
                client = await self._mutable_client(uow, client_id)
                transition = await StatusAuditLog(uow, self._clock).transition(
                    client,
                    parse_enum(ClientStatus, new_status, "status"),
                    changed_by=changed_by,
                    reason=reason,
                    changed_by_name=changed_by_name,
                )
                await self._record(
                    uow, "client.status_changed", "client", client_id, changed_by, client_id,
                    {
                        "previous_status": transition.previous_status.value,
                        "new_status": transition.new_status.value,
                        "reason": reason,
                    },
                )
                uow.collect_event(ClientStatusChanged(
                    client_id=client_id,
                    actor=changed_by,
                    previous_status=transition.previous_status.value,
                    new_status=transition.new_status.value,
                    reason=reason,
                    log_entry_id=transition.log_entry_id,
                ))
                return transition

        transition = await self._write(change_status)
        self._accepted(
            "Client status changed",
            client_id=client_id,
            previous_status=transition.previous_status.value,
            new_status=transition.new_status.value,
        )
        return transition

    async def archive_client(self, client_id: UUID, reason: Optional[str], actor: str) -> ClientSummary:
        """
        Freeze a client. Archived clients reject every mutation except restore.

        Raises:
            ValidationError: blank reason or client already archived
        """
        if reason is None or not reason.strip():
            raise ValidationError("Archive reason is required", field="reason")
        reason = reason.strip()

        async def archive_client() -> ClientSummary:
            async with self._uow_factory() as uow:
                client = await self._client(uow, client_id)
                if client.is_archived:
                    raise ValidationError(f"Client {client_id} is already archived", field="clientId")
                await uow.clients.set_archived(client_id, True, actor, reason, self._clock())
                await self._record(
                    uow, "client.archived", "client", client_id, actor, client_id, {"reason": reason}
                )
                uow.collect_event(ClientArchived(client_id=client_id, actor=actor, reason=reason))
                return await self._client(uow, client_id)

        archived = await self._write(archive_client)
        self._accepted("Client archived", client_id=client_id)
        return archived

    async def restore_client(self, client_id: UUID, actor: str) -> ClientSummary:
        """
        Lift the archive freeze.

        Raises:
            ValidationError: client is not archived
        """

        async def restore_client() -> ClientSummary:
            async with self._uow_factory() as uow:
                client = await self._client(uow, client_id)
                if not client.is_archived:
                    raise ValidationError(f"Client {client_id} is not archived", field="clientId")
                await uow.clients.set_archived(client_id, False, actor, None, self._clock())
                await self._record(uow, "client.restored", "client", client_id, actor, client_id, {})
                uow.collect_event(ClientRestored(client_id=client_id, actor=actor))
                return await self._client(uow, client_id)

        restored = await self._write(restore_client)
        self._accepted("Client restored", client_id=client_id)
        return restored

    # =========================================================================
    # DIRECTORY
    # =========================================================================

    async def register_client(self, name: str, actor: Optional[str] = None) -> ClientSummary:
        name = _required_name(name)

        async def register_client() -> ClientSummary:
            async with self._uow_factory() as uow:
                client = await uow.clients.add(name, self._clock())
                await self._record(uow, "client.registered", "client", client.id, actor, client.id, {"name": name})
                return client

        return await self._write(register_client)

    async def register_staff(self, name: str, actor: Optional[str] = None) -> StaffMember:
        name = _required_name(name)

        async def register_staff() -> StaffMember:
            async with self._uow_factory() as uow:
                staff = await uow.staff.add(name, self._clock())
                await self._record(uow, "staff.registered", "staff", staff.id, actor, None, {"name": name})
                return staff

        return await self._write(register_staff)

    async def deactivate_staff(self, staff_id: UUID, actor: Optional[str] = None) -> StaffMember:
        """
        Mark a staff member inactive. Existing rows are untouched; new
        preferences and assignments for them are refused.
        """

        async def deactivate_staff() -> StaffMember:
            async with self._uow_factory() as uow:
                staff = await self._staff(uow, staff_id)
                if not staff.is_active:
                    return staff
                await uow.staff.set_active(staff_id, False)
                await self._record(uow, "staff.deactivated", "staff", staff_id, actor, None, {})
                return staff.model_copy(update={"is_active": False})

        return await self._write(deactivate_staff)

    async def get_client(self, client_id: UUID) -> ClientSummary:
        async with self._uow_factory(read_only=True) as uow:
            return await self._client(uow, client_id)

    async def get_staff(self, staff_id: UUID) -> StaffMember:
        async with self._uow_factory(read_only=True) as uow:
            return await self._staff(uow, staff_id)

    # =========================================================================
    # READS
    # =========================================================================

    async def evaluate(self, client_id: UUID, staff_id: UUID) -> EligibilityResult:
        """Verdict for one candidate. Archived clients can still be evaluated."""
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            await self._staff(uow, staff_id)
            return await self._evaluator(uow).evaluate(client_id, staff_id)

    async def rank_candidates(self, client_id: UUID, staff_ids: Sequence[UUID]) -> List[EligibilityResult]:
        """Candidates best first: preferred by level, neutral, warned, override, blocked."""
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            for staff_id in dict.fromkeys(staff_ids):
                await self._staff(uow, staff_id)
            return await self._evaluator(uow).rank(client_id, staff_ids)

    async def history(self, client_id: UUID) -> List[StatusLogEntry]:
        """Status history, newest first. Reading it never changes it."""
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            return await StatusAuditLog(uow, self._clock).history(client_id)

    async def current_status(self, client_id: UUID) -> ClientStatus:
        async with self._uow_factory(read_only=True) as uow:
            return await StatusAuditLog(uow, self._clock).current(client_id)

    async def verify_status_consistency(self, client_id: UUID) -> bool:
        async with self._uow_factory(read_only=True) as uow:
            return await StatusAuditLog(uow, self._clock).verify_consistency(client_id)

    async def list_active_assignments(self, client_id: UUID) -> AssignmentRoster:
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            return await AssignmentRegistry(uow, self._clock).list_active(client_id)

    async def list_staff_assignments(self, staff_id: UUID) -> List[Assignment]:
        async with self._uow_factory(read_only=True) as uow:
            await self._staff(uow, staff_id)
            return await AssignmentRegistry(uow, self._clock).list_active_for_staff(staff_id)

    async def list_preferences(self, client_id: UUID) -> List[Preference]:
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            return await PreferenceRegistry(uow, self._clock).list_active(client_id)

    async def list_restrictions(self, client_id: UUID) -> List[Restriction]:
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            return await RestrictionRegistry(uow, self._clock).list_active(client_id)

    async def list_staff_preferences(self, staff_id: UUID) -> List[Preference]:
        async with self._uow_factory(read_only=True) as uow:
            await self._staff(uow, staff_id)
            return await PreferenceRegistry(uow, self._clock).list_active_for_staff(staff_id)

    async def list_staff_restrictions(self, staff_id: UUID) -> List[Restriction]:
        async with self._uow_factory(read_only=True) as uow:
            await self._staff(uow, staff_id)
            return await RestrictionRegistry(uow, self._clock).list_active_for_staff(staff_id)

    async def activity(self, client_id: UUID, limit: int = 100) -> List[ActivityLogEntry]:
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            return await ActivityTrail(uow, self._clock).for_client(client_id, limit)

    async def verify_activity(self, client_id: UUID) -> Dict[str, Any]:
        async with self._uow_factory(read_only=True) as uow:
            await self._client(uow, client_id)
            valid, tampered = await ActivityTrail(uow, self._clock).verify_trail_integrity(client_id)
            return {"valid": valid, "tampered_entry_ids": tampered}

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _write(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a write with stale-write retry; log and re-raise rejections."""
        retried = async_retry(config=self._retry_config)(operation)
        try:
            return await retried()
        except RetryExhausted as e:
            logger.warning(
                f"Gave up on {operation.__name__} after {e.attempts} attempts",
                extra={"extra_data": {"attempts": e.attempts}},
            )
            raise ConflictError(
                "The record was modified concurrently; re-read and try again",
                {"attempts": e.attempts},
            ) from e
        except CareTeamError as e:
            logger.warning(
                f"Rejected {operation.__name__}: {e.message}",
                extra={"extra_data": {"code": e.code}},
            )
            raise

    def _evaluator(self, uow: IUnitOfWork) -> EligibilityEvaluator:
        return EligibilityEvaluator(
            PreferenceRegistry(uow, self._clock),
            RestrictionRegistry(uow, self._clock),
            self._clock,
        )

    async def _record(
        self,
        uow: IUnitOfWork,
        action: str,
        entity_type: str,
        entity_id: Any,
        actor: Optional[str],
        client_id: Optional[UUID],
        details: Dict[str, Any],
    ) -> None:
        await ActivityTrail(uow, self._clock).record(
            action, entity_type, entity_id, actor, client_id=client_id, details=details
        )

    async def _advance_guard(
        self,
        uow: IUnitOfWork,
        client_id: UUID,
        staff_id: UUID,
        version: Optional[int],
    ) -> None:
        if not await uow.pair_guards.advance(client_id, staff_id, version, self._clock()):
            raise StaleWriteError(f"Pair {client_id}/{staff_id} changed concurrently")

    @staticmethod
    async def _client(uow: IUnitOfWork, client_id: UUID) -> ClientSummary:
        client = await uow.clients.get(client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client

    async def _mutable_client(self, uow: IUnitOfWork, client_id: UUID) -> ClientSummary:
        client = await self._client(uow, client_id)
        if client.is_archived:
            raise ArchivedClientError(client_id)
        return client

    @staticmethod
    async def _staff(uow: IUnitOfWork, staff_id: UUID, require_active: bool = False) -> StaffMember:
        staff = await uow.staff.get(staff_id)
        if staff is None:
            raise NotFoundError("Staff", staff_id)
        if require_active and not staff.is_active:
            raise ValidationError(f"Staff member {staff_id} is inactive", field="staffId")
        return staff

    @staticmethod
    def _accepted(message: str, **fields) -> None:
        logger.info(message, extra={"extra_data": {k: str(v) for k, v in fields.items()}})


def _required_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Name is required", field="name")
    return name.strip()
