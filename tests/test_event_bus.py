"""Tests for the in-process event bus."""

from uuid import uuid4

import pytest

from domain.event_bus import EventBus, get_event_bus, reset_event_bus
from domain.events import PreferenceRemoved, PreferenceSet


def _preference_set():
    return PreferenceSet(client_id=uuid4(), preference_id=uuid4(), staff_id=uuid4(), level="preferred")


def _preference_removed():
    return PreferenceRemoved(client_id=uuid4(), preference_id=uuid4(), staff_id=uuid4())


class TestEventBus:

    async def test_typed_handler_sees_only_its_type(self):
        bus = EventBus()
        seen = []
        bus.subscribe(PreferenceSet, seen.append)

        await bus.publish_async(_preference_set())
        await bus.publish_async(_preference_removed())

        assert [type(e) for e in seen] == [PreferenceSet]

    async def test_catch_all_runs_after_typed(self):
        bus = EventBus()
        order = []
        bus.subscribe_all(lambda e: order.append("all"))
        bus.subscribe(PreferenceSet, lambda e: order.append("typed"))

        await bus.publish_async(_preference_set())

        assert order == ["typed", "all"]

    async def test_coroutine_handlers_are_awaited(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.event_id)

        bus.subscribe_all(handler)
        event = _preference_set()
        await bus.publish_async(event)

        assert seen == [event.event_id]

    async def test_failing_handler_does_not_stop_delivery(self, caplog):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe_all(broken)
        bus.subscribe_all(seen.append)

        await bus.publish_async(_preference_set())

        assert len(seen) == 1
        assert "Event handler failed" in caplog.text

    async def test_clear_drops_handlers(self):
        bus = EventBus()
        seen = []
        bus.subscribe_all(seen.append)
        bus.clear()

        await bus.publish_async(_preference_set())

        assert seen == []


class TestGlobalBus:

    def test_singleton_until_reset(self):
        first = get_event_bus()
        assert get_event_bus() is first
        reset_event_bus()
        assert get_event_bus() is not first

    def test_logging_handler_attached(self):
        reset_event_bus()
        assert len(get_event_bus().handlers_for(_preference_set())) == 1
