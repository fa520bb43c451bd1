"""
Event bus for orchestration notifications.

Components publish lifecycle notifications (plan created, step
completed, stream chunk, interruption, routing decision, ...). The
bus never blocks the publisher: synchronous handlers run inline,
coroutine handlers are scheduled as tasks, and handler errors are
logged rather than raised.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class EventType(str, Enum):
	"""Notifications emitted during routing and execution."""
	PLAN_CREATED = "plan_created"
	PLAN_STARTED = "plan_started"
	STEP_STARTED = "step_started"
	STEP_COMPLETED = "step_completed"
	PLAN_PAUSED = "plan_paused"
	PLAN_RESUMED = "plan_resumed"
	PLAN_COMPLETED = "plan_completed"
	PLAN_FAILED = "plan_failed"
	USER_INTERRUPTED = "user_interrupted"
	STREAM_CHUNK = "stream_chunk"
	REDIRECTION_REQUESTED = "redirection_requested"
	AGENT_SWITCH_REQUESTED = "agent_switch_requested"
	NEW_PLAN_REQUESTED = "new_plan_requested"
	CLARIFICATION_REQUESTED = "clarification_requested"
	USER_INPUT = "user_input"
	ROUTING_DECISION = "routing_decision"
	ADAPTATION_APPLIED = "adaptation_applied"
	ADAPTATION_SKIPPED = "adaptation_skipped"


@dataclass
class Event:
	"""A single notification."""
	type: EventType
	data: dict[str, Any] = field(default_factory=dict)
	session_id: Optional[str] = None
	timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


Handler = Callable[[Event], Union[None, Awaitable[None]]]


class EventBus:
	"""Publish/subscribe hub for orchestration events."""

	def __init__(self, history_limit: int = 200):
		self._handlers: dict[Optional[EventType], list[Handler]] = {}
		self._history: list[Event] = []
		self._history_limit = history_limit
		self._pending: set[asyncio.Task] = set()

	def subscribe(self, event_type: Optional[EventType], handler: Handler) -> None:
		"""Subscribe to one event type, or to every event when event_type is None."""
		self._handlers.setdefault(event_type, []).append(handler)

	def unsubscribe(self, event_type: Optional[EventType], handler: Handler) -> None:
		handlers = self._handlers.get(event_type, [])
		if handler in handlers:
			handlers.remove(handler)

	def emit(self, event_type: EventType, session_id: Optional[str] = None, **data: Any) -> Event:
		"""Publish an event to its subscribers and return it."""
		event = Event(type=event_type, data=data, session_id=session_id)
		self._history.append(event)
		if len(self._history) > self._history_limit:
			self._history = self._history[-self._history_limit:]

		for handler in self._handlers.get(event_type, []) + self._handlers.get(None, []):
			try:
				result = handler(event)
				if inspect.isawaitable(result):
					task = asyncio.ensure_future(result)
					self._pending.add(task)
					task.add_done_callback(self._on_task_done)
			except Exception as e:
				logger.error(f"Event handler for {event_type.value} failed: {e}")

		return event

	def _on_task_done(self, task: asyncio.Task) -> None:
		self._pending.discard(task)
		if not task.cancelled() and task.exception() is not None:
			logger.error(f"Async event handler failed: {task.exception()}")

	def history(self, event_type: Optional[EventType] = None, session_id: Optional[str] = None) -> list[Event]:
		"""Recent events, optionally filtered."""
		events = self._history
		if event_type is not None:
			events = [e for e in events if e.type == event_type]
		if session_id is not None:
			events = [e for e in events if e.session_id == session_id]
		return list(events)

	async def drain(self) -> None:
		"""Wait for scheduled async handlers to finish."""
		if self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)
