"""Tests for client status transitions and their append-only history."""

import asyncio

import pytest

from audit import StatusAuditLog
from database.models import StatusLogRecord
from database.repositories import StatusLogRepository
from domain.exceptions import ImmutableRecordError, NotFoundError, ValidationError
from domain.value_objects import ClientStatus


class TestStatusTransitions:
    """The status state machine through the service."""

    @pytest.mark.asyncio
    async def test_hospital_round_trip_scenario(self, service, client_id):
        await service.change_status(client_id, "Hospital", "admitted for surgery", changed_by="user42")
        await service.change_status(client_id, "Active", "discharged from hospital", changed_by="user42")

        history = await service.history(client_id)
        assert len(history) == 2
        assert (history[0].previous_status, history[0].new_status) == (ClientStatus.HOSPITAL, ClientStatus.ACTIVE)
        assert history[0].reason == "discharged from hospital"
        assert (history[1].previous_status, history[1].new_status) == (ClientStatus.ACTIVE, ClientStatus.HOSPITAL)
        assert history[1].changed_by == "user42"

    @pytest.mark.asyncio
    async def test_transition_result(self, service, client_id):
        transition = await service.change_status(
            client_id, "Paused", None, changed_by="user42", changed_by_name="Uma User"
        )
        assert transition.previous_status is ClientStatus.ACTIVE
        assert transition.new_status is ClientStatus.PAUSED

        history = await service.history(client_id)
        assert history[0].id == transition.log_entry_id
        assert history[0].changed_by_name == "Uma User"
        assert history[0].reason is None
        assert await service.current_status(client_id) is ClientStatus.PAUSED

    @pytest.mark.asyncio
    async def test_any_state_reaches_any_other(self, service, client_id):
        for status in ("Discharged", "Active", "Paused", "Hospital", "Discharged"):
            await service.change_status(client_id, status, None, changed_by="user42")
        assert await service.current_status(client_id) is ClientStatus.DISCHARGED
        assert len(await service.history(client_id)) == 5

    @pytest.mark.asyncio
    async def test_same_status_is_logged(self, service, client_id):
        transition = await service.change_status(client_id, "Active", "Re-confirmed", changed_by="user42")
        assert transition.previous_status is transition.new_status is ClientStatus.ACTIVE
        assert len(await service.history(client_id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, service, client_id):
        with pytest.raises(ValidationError) as exc_info:
            await service.change_status(client_id, "Holiday", None, changed_by="user42")
        assert exc_info.value.field == "status"
        assert await service.history(client_id) == []

    @pytest.mark.asyncio
    async def test_unknown_client(self, service):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await service.change_status(uuid4(), "Paused", None, changed_by="user42")
        with pytest.raises(NotFoundError):
            await service.history(uuid4())


class TestHistoryOrdering:
    """Newest first, stable and non-decreasing per client."""

    @pytest.mark.asyncio
    async def test_history_read_is_idempotent(self, service, client_id):
        for status in ("Hospital", "Active", "Paused"):
            await service.change_status(client_id, status, None, changed_by="user42")

        first = await service.history(client_id)
        second = await service.history(client_id)
        assert first == second
        assert [e.sequence for e in first] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_timestamps_never_go_backwards(self, service, clock, client_id):
        await service.change_status(client_id, "Hospital", None, changed_by="user42")
        clock.advance(hours=-3)
        await service.change_status(client_id, "Active", None, changed_by="user42")

        newest, oldest = await service.history(client_id)
        assert newest.created_at >= oldest.created_at
        assert newest.new_status is ClientStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_concurrent_changes_are_serialized(self, service, client_id):
        await asyncio.gather(
            service.change_status(client_id, "Hospital", "Ambulance", changed_by="nurse-1"),
            service.change_status(client_id, "Paused", "Family request", changed_by="coordinator-2"),
        )

        history = await service.history(client_id)
        assert [e.sequence for e in history] == [2, 1]
        # Each transition starts where the previous one ended
        assert history[0].previous_status is history[1].new_status
        assert await service.current_status(client_id) is history[0].new_status
        assert await service.verify_status_consistency(client_id)


class TestAtomicity:
    """Status write and log append commit together or not at all."""

    @pytest.mark.asyncio
    async def test_failed_append_leaves_status_untouched(self, service, monkeypatch, client_id):
        async def broken_append(self, entry):
            raise RuntimeError("storage went away")

        monkeypatch.setattr(StatusLogRepository, "append", broken_append)

        with pytest.raises(RuntimeError):
            await service.change_status(client_id, "Hospital", None, changed_by="user42")

        monkeypatch.undo()
        assert await service.current_status(client_id) is ClientStatus.ACTIVE
        assert await service.history(client_id) == []
        assert await service.verify_status_consistency(client_id)

    @pytest.mark.asyncio
    async def test_split_transactions_are_detected(self, uow_factory, clock, client_id):
        """A double that commits the status on its own shows the drift."""
        async with uow_factory() as uow:
            client = await uow.clients.get(client_id)
            await uow.clients.compare_and_set_status(
                client_id,
                expected_version=client.status_version,
                new_status=ClientStatus.HOSPITAL,
                changed_at=clock(),
                changed_by="user42",
            )

        with pytest.raises(RuntimeError):
            async with uow_factory() as uow:
                raise RuntimeError("crashed before the log append")

        async with uow_factory(read_only=True) as uow:
            assert await StatusAuditLog(uow, clock).verify_consistency(client_id) is False

    @pytest.mark.asyncio
    async def test_consistent_after_normal_transitions(self, service, client_id):
        assert await service.verify_status_consistency(client_id)
        await service.change_status(client_id, "Discharged", "Care ended", changed_by="user42")
        assert await service.verify_status_consistency(client_id)


class TestAppendOnly:
    """Log rows cannot be rewritten through the ORM."""

    @pytest.mark.asyncio
    async def test_update_rejected(self, service, session_factory, client_id):
        transition = await service.change_status(client_id, "Paused", "Holiday", changed_by="user42")

        async with session_factory() as session:
            record = await session.get(StatusLogRecord, transition.log_entry_id)
            record.reason = "Rewritten"
            with pytest.raises(ImmutableRecordError):
                await session.flush()
            await session.rollback()

        history = await service.history(client_id)
        assert history[0].reason == "Holiday"

    @pytest.mark.asyncio
    async def test_delete_rejected(self, service, session_factory, client_id):
        transition = await service.change_status(client_id, "Paused", None, changed_by="user42")

        async with session_factory() as session:
            record = await session.get(StatusLogRecord, transition.log_entry_id)
            await session.delete(record)
            with pytest.raises(ImmutableRecordError):
                await session.flush()
            await session.rollback()

        assert len(await service.history(client_id)) == 1
