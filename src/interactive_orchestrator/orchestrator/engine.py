"""
Execution Engine - Runs execution plans step by step, interruptibly.

Responsibilities:
- Run a plan's steps strictly in order, one worker turn per step
- Stream each worker's answer as word chunks
- Check for operator interruptions at every step boundary and before
  every chunk, as a tagged Continue / Interrupted result
- Move the execution through running, paused, interrupted, completed
  and failed, keyed by session
- Archive finished executions
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union

from ..config import get_config
from ..events import EventBus, EventType
from ..exceptions import ExecutionStateError, SessionBusyError
from ..plans.models import (
	ExecutionPlan,
	ExecutionState,
	ExecutionStatus,
	Interruption,
	InterruptionType,
	Level,
)
from ..workers import WorkerRegistry

logger = logging.getLogger(__name__)

MAX_HISTORY = 100

# Interruption types that end the run and hand control back to the orchestrator
HANDOFF_EVENTS = {
	InterruptionType.REDIRECT: EventType.REDIRECTION_REQUESTED,
	InterruptionType.AGENT_SWITCH: EventType.AGENT_SWITCH_REQUESTED,
	InterruptionType.NEW_PLAN: EventType.NEW_PLAN_REQUESTED,
}


@dataclass(frozen=True)
class Continue:
	"""Checkpoint result: keep going."""
	pass


@dataclass(frozen=True)
class Interrupted:
	"""Checkpoint result: an interruption is waiting to be handled."""
	interruption: Interruption


CheckpointResult = Union[Continue, Interrupted]


def split_chunks(text: str) -> list[str]:
	"""Split text into word chunks that concatenate back to the original."""
	words = text.split(" ")
	return [w + " " for w in words[:-1]] + [words[-1]] if words else []


class ExecutionEngine:
	"""
	Runs plans and owns their execution states.

	Only the engine mutates an ExecutionState. Live states are keyed
	by session id; terminal states move to the history list.
	"""

	def __init__(
		self,
		registry: WorkerRegistry,
		events: Optional[EventBus] = None,
		chunk_delay: Optional[float] = None,
		on_finished: Optional[Callable[[ExecutionState], Awaitable[None]]] = None,
	):
		"""
		Initialize the engine.

		Args:
			registry: Workers that plan steps are resolved against
			events: Event bus for lifecycle notifications
			chunk_delay: Seconds to wait after each streamed chunk
			on_finished: Callback(state) once a run reaches a terminal status
		"""
		self.registry = registry
		self.events = events or EventBus()
		self.chunk_delay = chunk_delay if chunk_delay is not None else get_config().stream_chunk_delay
		self.on_finished = on_finished

		self._states: dict[str, ExecutionState] = {}
		self._pending: dict[str, list[Interruption]] = {}
		self._cancelled: set[str] = set()
		self._history: list[ExecutionState] = []
		self._lock = asyncio.Lock()

	# --- Lifecycle ---

	async def execute_plan(self, plan: ExecutionPlan) -> ExecutionState:
		"""
		Run a plan until it finishes, pauses or is interrupted.

		Raises:
			SessionBusyError: If the session already has a live execution
		"""
		session_id = plan.context.session_id
		async with self._lock:
			if session_id in self._states:
				raise SessionBusyError(f"Session {session_id} already has a live execution")
			state = ExecutionState(plan=plan)
			self._states[session_id] = state
			self._pending[session_id] = []

		logger.info(f"Executing plan {plan.id} for session {session_id}: {len(plan.steps)} steps")
		self.events.emit(
			EventType.PLAN_STARTED,
			session_id=session_id,
			plan_id=plan.id,
			agents=list(plan.selected_agents),
			pattern=plan.collaboration_pattern,
		)
		return await self._run(state)

	async def resume_execution(self, session_id: str) -> ExecutionState:
		"""
		Resume a paused execution from its current step.

		The step that was interrupted is streamed again from the start.

		Raises:
			ExecutionStateError: If the session has no paused execution
		"""
		state = self._states.get(session_id)
		if state is None or state.status != ExecutionStatus.PAUSED:
			status = state.status.value if state else "none"
			raise ExecutionStateError(f"Cannot resume session {session_id}: status is {status}")

		self._set_status(state, ExecutionStatus.RUNNING)
		state.resumed_at = datetime.now().isoformat()
		logger.info(f"Resuming session {session_id} at step {state.current_step + 1}")
		self.events.emit(EventType.PLAN_RESUMED, session_id=session_id, step=state.current_step)
		return await self._run(state)

	def interrupt(self, interruption: Interruption) -> bool:
		"""
		Queue an interruption for the session's next checkpoint.

		Returns:
			False when the session has no running execution
		"""
		state = self._states.get(interruption.session_id)
		if state is None or state.status != ExecutionStatus.RUNNING:
			logger.warning(f"No running execution for session {interruption.session_id}, ignoring interruption")
			return False

		state.interruption_history.append(interruption)
		self._pending[interruption.session_id].append(interruption)
		self.events.emit(
			EventType.USER_INTERRUPTED,
			session_id=interruption.session_id,
			type=interruption.type.value,
			message=interruption.message,
			step=state.current_step,
		)
		return True

	def pause_execution(self, session_id: str) -> bool:
		"""
		Ask a running execution to pause at its next checkpoint.

		Raises:
			ExecutionStateError: If the session is not running
		"""
		state = self._states.get(session_id)
		if state is None or state.status != ExecutionStatus.RUNNING:
			status = state.status.value if state else "none"
			raise ExecutionStateError(f"Cannot pause session {session_id}: status is {status}")
		return self.interrupt(Interruption(
			session_id=session_id,
			type=InterruptionType.PAUSE,
			message="pause",
			urgency=Level.MEDIUM,
		))

	async def cancel_execution(self, session_id: str) -> bool:
		"""
		Abandon a live execution.

		A paused execution is archived immediately; a running one stops
		at its next checkpoint.
		"""
		state = self._states.get(session_id)
		if state is None:
			return False
		if state.status == ExecutionStatus.PAUSED:
			state.error = "Cancelled by operator"
			self._set_status(state, ExecutionStatus.INTERRUPTED)
			await self._finish(state)
			return True
		self._cancelled.add(session_id)
		return True

	# --- Checkpoints ---

	def checkpoint(self, session_id: str) -> CheckpointResult:
		"""Take the next pending interruption for a session, if any."""
		if session_id in self._cancelled:
			return Interrupted(Interruption(
				session_id=session_id,
				type=InterruptionType.STOP,
				message="cancel",
				urgency=Level.HIGH,
			))
		pending = self._pending.get(session_id)
		if pending:
			return Interrupted(pending.pop(0))
		return Continue()

	async def _handle_interruption(self, state: ExecutionState, interruption: Interruption) -> bool:
		"""
		Turn an interruption into a state transition.

		Returns:
			True when the run must stop here
		"""
		session_id = state.session_id
		if session_id in self._cancelled:
			self._cancelled.discard(session_id)
			state.error = "Cancelled by operator"
			self._set_status(state, ExecutionStatus.INTERRUPTED)
			await self._finish(state)
			return True

		if interruption.type == InterruptionType.CLARIFICATION:
			self.events.emit(
				EventType.CLARIFICATION_REQUESTED,
				session_id=session_id,
				question=interruption.message,
				step=state.current_step,
			)
			return False

		if interruption.type in (InterruptionType.STOP, InterruptionType.PAUSE):
			self._set_status(state, ExecutionStatus.PAUSED)
			state.paused_at = datetime.now().isoformat()
			logger.info(f"Paused session {session_id} at step {state.current_step + 1}")
			self.events.emit(
				EventType.PLAN_PAUSED,
				session_id=session_id,
				step=state.current_step,
				reason=interruption.message,
			)
			return True

		self._set_status(state, ExecutionStatus.INTERRUPTED)
		logger.info(f"Session {session_id} interrupted: {interruption.type.value}")
		self.events.emit(
			HANDOFF_EVENTS[interruption.type],
			session_id=session_id,
			step=state.current_step,
			message=interruption.message,
			target_agent=interruption.target_agent,
			new_direction=interruption.new_direction,
		)
		await self._finish(state)
		return True

	# --- Running ---

	async def _run(self, state: ExecutionState) -> ExecutionState:
		plan = state.plan
		session_id = state.session_id

		while state.current_step < len(plan.steps):
			result = self.checkpoint(session_id)
			if isinstance(result, Interrupted) and await self._handle_interruption(state, result.interruption):
				return state

			index = state.current_step
			step = plan.steps[index]
			registered = self.registry.find(step.agent_name)
			if registered is None:
				return await self._fail(state, f"Worker not registered: {step.agent_name}")

			self.events.emit(
				EventType.STEP_STARTED,
				session_id=session_id,
				step=index,
				agent=step.agent_name,
				action=step.action,
			)
			logger.info(f"Step {index + 1}/{len(plan.steps)}: {step.agent_name}")

			try:
				text = await registered.worker.respond(step.action, self._step_context(state, index))
			except Exception as e:
				logger.error(f"Worker {step.agent_name} failed on step {index + 1}: {e}")
				return await self._fail(state, f"{step.agent_name}: {e}")

			if await self._stream(state, index, step.agent_name, text):
				return state

			state.outputs[index] = text
			self.events.emit(
				EventType.STEP_COMPLETED,
				session_id=session_id,
				step=index,
				agent=step.agent_name,
				output=text,
			)
			state.current_step += 1

		self._set_status(state, ExecutionStatus.COMPLETED)
		logger.info(f"Completed plan {plan.id} for session {session_id}")
		self.events.emit(
			EventType.PLAN_COMPLETED,
			session_id=session_id,
			plan_id=plan.id,
			steps=len(plan.steps),
		)
		await self._finish(state)
		return state

	async def _stream(self, state: ExecutionState, index: int, agent: str, text: str) -> bool:
		"""
		Emit a worker's answer chunk by chunk.

		Returns:
			True when an interruption stopped the run mid-stream
		"""
		for chunk in split_chunks(text):
			result = self.checkpoint(state.session_id)
			if isinstance(result, Interrupted) and await self._handle_interruption(state, result.interruption):
				logger.debug(f"Stream for step {index + 1} stopped")
				return True

			self.events.emit(EventType.STREAM_CHUNK, session_id=state.session_id, step=index, agent=agent, chunk=chunk)
			await asyncio.sleep(self.chunk_delay)
		return False

	def _step_context(self, state: ExecutionState, index: int) -> dict:
		plan = state.plan
		step = plan.steps[index]
		return {
			"session_id": state.session_id,
			"user_id": plan.context.user_id,
			"topic": plan.context.topic,
			"user_goals": list(plan.context.user_goals),
			"conversation_history": list(plan.context.conversation_history),
			"previous_outputs": {plan.steps[i].agent_name: state.outputs[i] for i in sorted(state.outputs)},
			"parameters": dict(step.parameters),
			"step_index": index,
		}

	async def _fail(self, state: ExecutionState, error: str) -> ExecutionState:
		state.error = error
		self._set_status(state, ExecutionStatus.FAILED)
		self.events.emit(EventType.PLAN_FAILED, session_id=state.session_id, step=state.current_step, error=error)
		await self._finish(state)
		return state

	def _set_status(self, state: ExecutionState, status: ExecutionStatus) -> None:
		state.status = status
		state.status_history.append(status)

	async def _finish(self, state: ExecutionState) -> None:
		"""Archive a terminal state."""
		state.finished_at = datetime.now().isoformat()
		session_id = state.session_id
		async with self._lock:
			if self._states.get(session_id) is state:
				del self._states[session_id]
			self._pending.pop(session_id, None)
			self._cancelled.discard(session_id)
			self._history.append(state)
			if len(self._history) > MAX_HISTORY:
				self._history = self._history[-MAX_HISTORY:]

		if self.on_finished:
			try:
				await self.on_finished(state)
			except Exception as e:
				logger.error(f"on_finished callback failed for session {session_id}: {e}")

	# --- Queries ---

	def get_state(self, session_id: str) -> Optional[ExecutionState]:
		return self._states.get(session_id)

	def is_live(self, session_id: str) -> bool:
		return session_id in self._states

	def live_sessions(self) -> list[str]:
		return list(self._states.keys())

	def get_history(self, session_id: Optional[str] = None) -> list[ExecutionState]:
		if session_id is None:
			return list(self._history)
		return [s for s in self._history if s.session_id == session_id]
