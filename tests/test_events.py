"""Tests for the event bus."""

import pytest

from interactive_orchestrator.events import EventBus, EventType


class TestEventBus:
	"""Tests for EventBus."""

	def test_emit_and_history(self):
		bus = EventBus()
		event = bus.emit(EventType.PLAN_STARTED, session_id="s-1", plan_id="p")
		bus.emit(EventType.PLAN_COMPLETED, session_id="s-2")

		assert event.data == {"plan_id": "p"}
		assert bus.history(EventType.PLAN_STARTED) == [event]
		assert [e.type for e in bus.history(session_id="s-2")] == [EventType.PLAN_COMPLETED]

	def test_typed_and_wildcard_handlers(self):
		bus = EventBus()
		typed, everything = [], []
		bus.subscribe(EventType.STEP_STARTED, typed.append)
		bus.subscribe(None, everything.append)

		bus.emit(EventType.STEP_STARTED)
		bus.emit(EventType.STEP_COMPLETED)

		assert len(typed) == 1
		assert len(everything) == 2

	def test_unsubscribe(self):
		bus = EventBus()
		seen = []
		bus.subscribe(EventType.USER_INPUT, seen.append)
		bus.unsubscribe(EventType.USER_INPUT, seen.append)
		bus.emit(EventType.USER_INPUT)
		assert seen == []

	def test_failing_handler_does_not_break_emit(self):
		bus = EventBus()
		seen = []

		def broken(event):
			raise RuntimeError("nope")

		bus.subscribe(EventType.PLAN_FAILED, broken)
		bus.subscribe(EventType.PLAN_FAILED, seen.append)
		bus.emit(EventType.PLAN_FAILED)
		assert len(seen) == 1

	def test_history_limit(self):
		bus = EventBus(history_limit=3)
		for _ in range(5):
			bus.emit(EventType.STREAM_CHUNK)
		assert len(bus.history()) == 3

	@pytest.mark.asyncio
	async def test_async_handler_drained(self):
		bus = EventBus()
		seen = []

		async def handler(event):
			seen.append(event.type)

		bus.subscribe(EventType.PLAN_PAUSED, handler)
		bus.emit(EventType.PLAN_PAUSED)
		await bus.drain()
		assert seen == [EventType.PLAN_PAUSED]
