"""Tests for CareTeamService: mutual exclusion, archival, events and retries."""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import text

from database.models import ActivityLogRecord
from database.repositories import PairGuardRepository
from domain.events import AssignmentAdded, PreferenceRemoved, PreferenceSet, RestrictionSet
from domain.exceptions import (
    ArchivedClientError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from domain.value_objects import PreferenceLevel, RestrictionSeverity, Verdict


class TestMutualExclusion:
    """A pair is never both preferred and restricted."""

    @pytest.mark.asyncio
    async def test_restriction_then_preference_scenario(self, service, client_id, new_staff):
        """Block, refuse the preference, lift the block, prefer."""
        staff_id = await new_staff()

        restriction = await service.set_restriction(
            client_id, staff_id, "history of conflict", "hard_block", actor="user42"
        )
        result = await service.evaluate(client_id, staff_id)
        assert result.verdict is Verdict.BLOCKED
        assert result.severity is RestrictionSeverity.HARD_BLOCK
        assert result.reason == "history of conflict"

        with pytest.raises(ConflictError) as exc_info:
            await service.set_preference(client_id, staff_id, "primary", actor="user42")
        assert exc_info.value.details["restriction_id"] == str(restriction.id)

        await service.remove_restriction(restriction.id, actor="user42")
        preference = await service.set_preference(client_id, staff_id, "primary", actor="user42")
        assert preference.level is PreferenceLevel.PRIMARY

        result = await service.evaluate(client_id, staff_id)
        assert result.verdict is Verdict.PREFERRED
        assert result.level is PreferenceLevel.PRIMARY

    @pytest.mark.asyncio
    async def test_preference_blocks_restriction(self, service, client_id, new_staff):
        staff_id = await new_staff()
        await service.set_preference(client_id, staff_id, "secondary")

        with pytest.raises(ConflictError):
            await service.set_restriction(client_id, staff_id, "Missed visits", "warning")
        assert await service.list_restrictions(client_id) == []

    @pytest.mark.asyncio
    async def test_exclusion_is_per_pair(self, service, client_id, new_staff):
        restricted, preferred = await new_staff("Restricted"), await new_staff("Preferred")
        await service.set_restriction(client_id, restricted, "Conflict", "soft_block")
        await service.set_preference(client_id, preferred, "primary")

        other_client = (await service.register_client("Charles Babbage")).id
        await service.set_preference(other_client, restricted, "backup")

    @pytest.mark.asyncio
    async def test_future_restriction_still_excludes_preference(self, service, clock, client_id, new_staff):
        staff_id = await new_staff()
        await service.set_restriction(
            client_id, staff_id, "Starts after the audit", "hard_block",
            effective_from=clock.now + timedelta(days=3),
        )
        assert (await service.evaluate(client_id, staff_id)).verdict is Verdict.NEUTRAL
        with pytest.raises(ConflictError):
            await service.set_preference(client_id, staff_id, "primary")

    @pytest.mark.asyncio
    async def test_hard_deleted_preference_frees_the_pair(self, service, client_id, new_staff):
        staff_id = await new_staff()
        preference = await service.set_preference(client_id, staff_id, "primary")
        await service.remove_preference(preference.id, hard=True)

        with pytest.raises(NotFoundError):
            await service.remove_preference(preference.id)
        restriction = await service.set_restriction(client_id, staff_id, "New concern", "warning")
        assert restriction.is_active

    @pytest.mark.asyncio
    async def test_concurrent_preference_and_restriction(self, service, client_id, new_staff):
        """Racing writers on one pair: exactly one wins."""
        staff_id = await new_staff()

        outcomes = await asyncio.gather(
            service.set_preference(client_id, staff_id, "primary"),
            service.set_restriction(client_id, staff_id, "Racing concern", "hard_block"),
            return_exceptions=True,
        )

        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], ConflictError)

        preferences = await service.list_preferences(client_id)
        restrictions = await service.list_restrictions(client_id)
        assert len(preferences) + len(restrictions) == 1

    @pytest.mark.asyncio
    async def test_many_concurrent_writers_never_break_exclusion(self, service, client_id, new_staff):
        staff_id = await new_staff()
        writes = []
        for i in range(4):
            writes.append(service.set_preference(client_id, staff_id, "backup"))
            writes.append(service.set_restriction(client_id, staff_id, f"Concern {i}", "warning"))

        await asyncio.gather(*writes, return_exceptions=True)

        preferences = await service.list_preferences(client_id)
        restrictions = await service.list_restrictions(client_id)
        assert not (preferences and restrictions)


class TestHardBlockDominance:
    """A hard block wins over everything else recorded for the pair."""

    @pytest.mark.asyncio
    async def test_hard_block_over_warnings(self, service, client_id, new_staff):
        staff_id = await new_staff()
        await service.set_restriction(client_id, staff_id, "Late arrival", "warning")
        await service.set_restriction(client_id, staff_id, "Safeguarding concern", "hard_block")
        await service.set_restriction(client_id, staff_id, "Another late arrival", "warning")

        result = await service.evaluate(client_id, staff_id)
        assert result.verdict is Verdict.BLOCKED
        assert result.reason == "Safeguarding concern"

    @pytest.mark.asyncio
    async def test_former_preference_does_not_soften_block(self, service, client_id, new_staff):
        staff_id = await new_staff()
        preference = await service.set_preference(client_id, staff_id, "primary")
        await service.remove_preference(preference.id)
        await service.set_restriction(client_id, staff_id, "Incident report", "hard_block")

        assert (await service.evaluate(client_id, staff_id)).verdict is Verdict.BLOCKED


class TestRanking:
    """Comparing several candidates for one client."""

    @pytest.mark.asyncio
    async def test_rank_candidates(self, service, client_id, new_staff):
        blocked = await new_staff("Blocked")
        neutral = await new_staff("Neutral")
        backup = await new_staff("Backup")
        primary = await new_staff("Primary")
        await service.set_restriction(client_id, blocked, "Do not roster", "hard_block")
        await service.set_preference(client_id, backup, "backup")
        await service.set_preference(client_id, primary, "primary")

        ranked = await service.rank_candidates(client_id, [blocked, neutral, backup, primary, neutral])
        assert [r.staff_id for r in ranked] == [primary, backup, neutral, blocked]

    @pytest.mark.asyncio
    async def test_rank_unknown_staff(self, service, client_id):
        with pytest.raises(NotFoundError):
            await service.rank_candidates(client_id, [uuid4()])


class TestArchivedFreeze:
    """Archived clients refuse every mutation until restored."""

    @pytest.mark.asyncio
    async def test_every_mutation_is_refused(self, service, client_id, new_staff):
        staff_id, other = await new_staff(), await new_staff("Other")
        preference = await service.set_preference(client_id, staff_id, "primary")
        restriction = await service.set_restriction(client_id, other, "Conflict", "warning")
        assignment = await service.add_assignment(client_id, staff_id, "care_manager")

        archived = await service.archive_client(client_id, "Moved out of area", actor="admin")
        assert archived.is_archived
        assert archived.archive_reason == "Moved out of area"

        mutations = [
            service.set_preference(client_id, other, "backup"),
            service.set_restriction(client_id, staff_id, "x", "warning"),
            service.remove_preference(preference.id),
            service.remove_restriction(restriction.id, hard=True),
            service.add_assignment(client_id, staff_id, "primary_support"),
            service.end_assignment(assignment.id),
            service.remove_assignment(assignment.id),
            service.change_status(client_id, "Paused", "Holiday", changed_by="user42"),
            # Bad input still hits the freeze first
            service.set_preference(client_id, other, "favourite"),
            service.set_restriction(client_id, staff_id, "   ", "warning"),
            service.set_restriction(client_id, staff_id, "Conflict", "medium_block"),
            service.add_assignment(client_id, staff_id, "night_owl"),
            service.change_status(client_id, "Bogus", "Typo", changed_by="user42"),
        ]
        for mutation in mutations:
            with pytest.raises(ArchivedClientError):
                await mutation

        # Reads still work
        assert (await service.evaluate(client_id, staff_id)).verdict is Verdict.PREFERRED
        assert (await service.list_active_assignments(client_id)).active_assignment_count == 1

    @pytest.mark.asyncio
    async def test_archived_error_is_a_validation_error(self, service, client_id):
        await service.archive_client(client_id, "Deceased", actor="admin")
        with pytest.raises(ValidationError) as exc_info:
            await service.change_status(client_id, "Discharged", None, changed_by="user42")
        assert exc_info.value.code == "CLIENT_ARCHIVED"

    @pytest.mark.asyncio
    async def test_restore_lifts_the_freeze(self, service, client_id, new_staff):
        staff_id = await new_staff()
        await service.archive_client(client_id, "Paused contract", actor="admin")
        restored = await service.restore_client(client_id, actor="admin")

        assert not restored.is_archived
        await service.set_preference(client_id, staff_id, "primary")

    @pytest.mark.asyncio
    async def test_archive_rules(self, service, client_id):
        with pytest.raises(ValidationError):
            await service.archive_client(client_id, "  ", actor="admin")
        with pytest.raises(ValidationError):
            await service.restore_client(client_id, actor="admin")

        await service.archive_client(client_id, "Closed", actor="admin")
        with pytest.raises(ValidationError):
            await service.archive_client(client_id, "Closed again", actor="admin")


class TestStaffAndClientLookups:
    """Directory checks made by every write."""

    @pytest.mark.asyncio
    async def test_unknown_client_and_staff(self, service, client_id, new_staff):
        staff_id = await new_staff()
        with pytest.raises(NotFoundError) as exc_info:
            await service.set_preference(uuid4(), staff_id, "primary")
        assert exc_info.value.entity == "Client"

        with pytest.raises(NotFoundError) as exc_info:
            await service.set_restriction(client_id, uuid4(), "x", "warning")
        assert exc_info.value.entity == "Staff"

    @pytest.mark.asyncio
    async def test_inactive_staff(self, service, client_id, new_staff):
        staff_id = await new_staff()
        deactivated = await service.deactivate_staff(staff_id, actor="admin")
        assert deactivated.is_active is False

        with pytest.raises(ValidationError):
            await service.set_preference(client_id, staff_id, "primary")
        with pytest.raises(ValidationError):
            await service.add_assignment(client_id, staff_id, "primary_support")

        # Restrictions can still be recorded against them
        await service.set_restriction(client_id, staff_id, "Left under investigation", "hard_block")

    @pytest.mark.asyncio
    async def test_register_requires_name(self, service):
        with pytest.raises(ValidationError):
            await service.register_client("   ")
        with pytest.raises(ValidationError):
            await service.register_staff(None)

    @pytest.mark.asyncio
    async def test_new_client_reads_as_active(self, service, client_id):
        client = await service.get_client(client_id)
        assert client.status.value == "Active"
        assert client.status_version == 0


class TestAssignmentsThroughService:
    """Assignment lifecycle with the orchestrator."""

    @pytest.mark.asyncio
    async def test_add_end_remove(self, service, client_id, new_staff):
        staff_id = await new_staff()
        assignment = await service.add_assignment(client_id, staff_id, "clinical_nurse", actor="user42")
        assert [a.id for a in await service.list_staff_assignments(staff_id)] == [assignment.id]

        ended = await service.end_assignment(assignment.id, actor="user42")
        assert ended.end_date is not None
        assert (await service.list_active_assignments(client_id)).active_assignment_count == 0

        await service.remove_assignment(assignment.id, actor="user42")
        with pytest.raises(NotFoundError):
            await service.end_assignment(assignment.id)


class TestActivityAndEvents:
    """Each accepted mutation writes one activity row and publishes one event."""

    @pytest.mark.asyncio
    async def test_events_published_after_commit(self, service, event_bus, client_id, new_staff):
        received = []
        event_bus.subscribe_all(received.append)
        staff_id = await new_staff()

        await service.set_preference(client_id, staff_id, "primary", actor="user42")
        await service.add_assignment(client_id, staff_id, "primary_support", actor="user42")

        assert [type(e) for e in received] == [PreferenceSet, AssignmentAdded]
        assert received[0].actor == "user42"
        assert received[0].staff_id == staff_id

    @pytest.mark.asyncio
    async def test_rejected_write_publishes_nothing(self, service, event_bus, client_id, new_staff):
        received = []
        event_bus.subscribe_all(received.append)
        staff_id = await new_staff()
        await service.set_restriction(client_id, staff_id, "Conflict", "soft_block")
        received.clear()

        with pytest.raises(ConflictError):
            await service.set_preference(client_id, staff_id, "primary")
        assert received == []

    @pytest.mark.asyncio
    async def test_activity_rows(self, service, client_id, new_staff):
        staff_id = await new_staff()
        preference = await service.set_preference(client_id, staff_id, "primary", actor="user42")
        await service.remove_preference(preference.id, actor="user43")
        # Already inactive: nothing written
        await service.remove_preference(preference.id, actor="user43")

        entries = await service.activity(client_id)
        assert [e.action for e in entries] == [
            "preference.deactivated",
            "preference.set",
            "client.registered",
        ]
        assert entries[0].actor == "user43"
        assert entries[1].details == {"staff_id": str(staff_id), "level": "primary"}

    @pytest.mark.asyncio
    async def test_activity_tampering_detected(self, service, session_factory, client_id, new_staff):
        staff_id = await new_staff()
        await service.set_preference(client_id, staff_id, "primary", actor="user42")
        assert (await service.verify_activity(client_id))["valid"] is True

        async with session_factory() as session:
            await session.execute(
                text("UPDATE care_team_activity_log SET actor = 'mallory' WHERE action = 'preference.set'")
            )
            await session.commit()

        result = await service.verify_activity(client_id)
        assert result["valid"] is False
        assert len(result["tampered_entry_ids"]) == 1

    @pytest.mark.asyncio
    async def test_tampering_with_oldest_entry_of_long_trail_detected(self, service, session_factory, client_id):
        start = datetime(2025, 1, 1)
        async with session_factory() as session:
            session.add_all([
                ActivityLogRecord(
                    id=uuid4(),
                    client_id=client_id,
                    action="note.oldest" if i == 0 else "note.added",
                    entity_type="note",
                    entity_id=str(i),
                    actor="user42",
                    details={},
                    created_at=start + timedelta(seconds=i),
                )
                for i in range(10_050)
            ])
            await session.commit()

        assert (await service.verify_activity(client_id))["valid"] is True

        async with session_factory() as session:
            result = await session.execute(
                text("UPDATE care_team_activity_log SET actor = 'mallory' WHERE action = 'note.oldest'")
            )
            assert result.rowcount == 1
            await session.commit()

        result = await service.verify_activity(client_id)
        assert result["valid"] is False
        assert len(result["tampered_entry_ids"]) == 1

    @pytest.mark.asyncio
    async def test_removal_event_flags_hard_delete(self, service, event_bus, client_id, new_staff):
        received = []
        event_bus.subscribe(PreferenceRemoved, received.append)
        staff_id = await new_staff()
        preference = await service.set_preference(client_id, staff_id, "backup")

        await service.remove_preference(preference.id, hard=True)
        assert received[0].hard_delete is True


class TestStaleWriteRetry:
    """Lost optimistic races are retried, then surface as conflicts."""

    @pytest.mark.asyncio
    async def test_exhausted_retries_become_conflict(self, service, monkeypatch, client_id, new_staff):
        staff_id = await new_staff()
        attempts = []

        async def always_stale(self, client_id, staff_id, expected_version, at):
            attempts.append(expected_version)
            return False

        monkeypatch.setattr(PairGuardRepository, "advance", always_stale)

        with pytest.raises(ConflictError) as exc_info:
            await service.set_preference(client_id, staff_id, "primary")
        assert exc_info.value.details == {"attempts": 3}
        assert len(attempts) == 3

        monkeypatch.undo()
        assert await service.list_preferences(client_id) == []

    @pytest.mark.asyncio
    async def test_single_lost_race_is_retried(self, service, monkeypatch, client_id, new_staff):
        staff_id = await new_staff()
        real_advance = PairGuardRepository.advance
        calls = []

        async def stale_once(self, client_id, staff_id, expected_version, at):
            calls.append(expected_version)
            if len(calls) == 1:
                return False
            return await real_advance(self, client_id, staff_id, expected_version, at)

        monkeypatch.setattr(PairGuardRepository, "advance", stale_once)

        preference = await service.set_preference(client_id, staff_id, "secondary")
        assert len(calls) == 2
        assert [p.id for p in await service.list_preferences(client_id)] == [preference.id]
