"""Tests for the interruptible execution engine."""

import asyncio

import pytest

from interactive_orchestrator.events import EventBus, EventType
from interactive_orchestrator.exceptions import ExecutionStateError, SessionBusyError
from interactive_orchestrator.orchestrator.engine import Continue, ExecutionEngine, Interrupted, split_chunks
from interactive_orchestrator.plans.models import (
	AgentStep,
	ExecutionPlan,
	ExecutionStatus,
	Interruption,
	InterruptionType,
)
from interactive_orchestrator.workers import WorkerRegistry

from .helpers import BlockingWorker, FakeWorker, make_context


def _plan(*agents, session_id="s-1"):
	return ExecutionPlan(
		id=f"plan-{session_id}",
		selected_agents=list(agents),
		steps=[AgentStep(agent_name=a, action=f"Answer as {a}") for a in agents],
		user_intent="Plan the launch",
		context=make_context(session_id=session_id),
	)


def _engine(*workers, on_finished=None):
	registry = WorkerRegistry()
	for worker in workers:
		registry.register(worker)
	return ExecutionEngine(registry, EventBus(), chunk_delay=0, on_finished=on_finished)


def test_split_chunks_rejoin():
	text = "Launch  in three weeks"
	chunks = split_chunks(text)
	assert "".join(chunks) == text
	assert chunks[0] == "Launch "


class TestExecution:
	"""Tests for running plans to completion or failure."""

	@pytest.mark.asyncio
	async def test_completes_in_order(self):
		a, b = FakeWorker("A"), FakeWorker("B", reply="B agrees")
		engine = _engine(a, b)

		state = await engine.execute_plan(_plan("A", "B"))

		assert state.status == ExecutionStatus.COMPLETED
		assert state.outputs == {0: "A says the plan looks good", 1: "B agrees"}
		assert state.status_history == [ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED]
		assert state.finished_at is not None
		assert engine.is_live("s-1") is False
		assert engine.get_history("s-1") == [state]

		chunks = [e.data["chunk"] for e in engine.events.history(EventType.STREAM_CHUNK) if e.data["step"] == 1]
		assert "".join(chunks) == "B agrees"
		types = [e.type for e in engine.events.history() if e.type != EventType.STREAM_CHUNK]
		assert types == [
			EventType.PLAN_STARTED,
			EventType.STEP_STARTED,
			EventType.STEP_COMPLETED,
			EventType.STEP_STARTED,
			EventType.STEP_COMPLETED,
			EventType.PLAN_COMPLETED,
		]

	@pytest.mark.asyncio
	async def test_previous_outputs_reach_later_steps(self):
		a, b = FakeWorker("A", reply="first draft"), FakeWorker("B")
		engine = _engine(a, b)
		await engine.execute_plan(_plan("A", "B"))

		prompt, context = b.calls[0]
		assert prompt == "Answer as B"
		assert context["previous_outputs"] == {"A": "first draft"}
		assert context["step_index"] == 1
		assert context["user_id"] == "alice"
		assert a.calls[0][1]["previous_outputs"] == {}

	@pytest.mark.asyncio
	async def test_worker_error_fails_run(self):
		c = FakeWorker("C")
		engine = _engine(FakeWorker("A"), FakeWorker("B", reply=RuntimeError("boom")), c)

		state = await engine.execute_plan(_plan("A", "B", "C"))

		assert state.status == ExecutionStatus.FAILED
		assert state.error == "B: boom"
		assert state.current_step == 1
		assert c.calls == []
		assert engine.events.history(EventType.PLAN_FAILED)[0].data["error"] == "B: boom"

	@pytest.mark.asyncio
	async def test_unregistered_worker_fails_run(self):
		engine = _engine(FakeWorker("A"))
		state = await engine.execute_plan(_plan("A", "Ghost"))
		assert state.status == ExecutionStatus.FAILED
		assert state.error == "Worker not registered: Ghost"
		assert state.outputs == {0: "A says the plan looks good"}

	@pytest.mark.asyncio
	async def test_on_finished_called_once(self):
		finished = []

		async def on_finished(state):
			finished.append(state.status)

		engine = _engine(FakeWorker("A"), on_finished=on_finished)
		await engine.execute_plan(_plan("A"))
		assert finished == [ExecutionStatus.COMPLETED]

	def test_checkpoint_without_interruptions(self):
		engine = _engine()
		assert isinstance(engine.checkpoint("s-1"), Continue)


class TestInterruptions:
	"""Tests for pause, resume, redirect and clarification."""

	@pytest.mark.asyncio
	async def test_pause_then_resume(self):
		"""The paused step is streamed again on resume."""
		engine = None

		async def pause_once(worker, prompt, context):
			if len(worker.calls) == 1:
				engine.pause_execution(context["session_id"])

		a = FakeWorker("A", on_call=pause_once)
		b = FakeWorker("B")
		engine = _engine(a, b)

		state = await engine.execute_plan(_plan("A", "B"))
		assert state.status == ExecutionStatus.PAUSED
		assert state.paused_at is not None
		assert state.current_step == 0
		assert engine.is_live("s-1") is True
		assert b.calls == []

		state = await engine.resume_execution("s-1")
		assert state.status == ExecutionStatus.COMPLETED
		assert state.status_history == [
			ExecutionStatus.RUNNING,
			ExecutionStatus.PAUSED,
			ExecutionStatus.RUNNING,
			ExecutionStatus.COMPLETED,
		]
		assert len(a.calls) == 2
		assert len(b.calls) == 1
		assert engine.events.history(EventType.PLAN_RESUMED)

	@pytest.mark.asyncio
	async def test_stop_mid_stream(self):
		"""A stop typed during step 2's stream halts it after the chunk in flight."""
		a = FakeWorker("A")
		b = FakeWorker("B", reply="one two three four five")
		c = FakeWorker("C")
		engine = _engine(a, b, c)
		chunks = []

		def on_chunk(event):
			if event.data["step"] != 1:
				return
			chunks.append(event.data["chunk"])
			if len(chunks) == 2:
				engine.interrupt(Interruption(session_id="s-1", type=InterruptionType.STOP, message="stop"))

		engine.events.subscribe(EventType.STREAM_CHUNK, on_chunk)
		state = await engine.execute_plan(_plan("A", "B", "C"))

		assert chunks == ["one ", "two "]
		assert state.status == ExecutionStatus.PAUSED
		assert state.current_step == 1
		assert len(state.interruption_history) == 1
		assert list(state.outputs) == [0]
		assert c.calls == []
		assert engine.events.history(EventType.PLAN_PAUSED)

	@pytest.mark.asyncio
	async def test_resume_requires_paused(self):
		engine = _engine(FakeWorker("A"))
		with pytest.raises(ExecutionStateError):
			await engine.resume_execution("s-1")
		await engine.execute_plan(_plan("A"))
		with pytest.raises(ExecutionStateError):
			await engine.resume_execution("s-1")

	def test_pause_requires_running(self):
		engine = _engine()
		with pytest.raises(ExecutionStateError):
			engine.pause_execution("s-1")

	@pytest.mark.asyncio
	async def test_clarification_does_not_stop(self):
		engine = None

		async def ask(worker, prompt, context):
			if len(worker.calls) == 1:
				engine.interrupt(Interruption(
					session_id="s-1", type=InterruptionType.CLARIFICATION, message="why?",
				))

		engine = _engine(FakeWorker("A", on_call=ask), FakeWorker("B"))
		state = await engine.execute_plan(_plan("A", "B"))

		assert state.status == ExecutionStatus.COMPLETED
		assert len(state.interruption_history) == 1
		event = engine.events.history(EventType.CLARIFICATION_REQUESTED)[0]
		assert event.data["question"] == "why?"

	@pytest.mark.asyncio
	async def test_redirect_ends_run(self):
		engine = None

		async def redirect(worker, prompt, context):
			engine.interrupt(Interruption(
				session_id="s-1",
				type=InterruptionType.REDIRECT,
				message="instead cover pricing",
				new_direction="cover pricing",
			))

		b = FakeWorker("B")
		engine = _engine(FakeWorker("A", on_call=redirect), b)
		state = await engine.execute_plan(_plan("A", "B"))

		assert state.status == ExecutionStatus.INTERRUPTED
		assert state.outputs == {}
		assert b.calls == []
		assert engine.is_live("s-1") is False
		event = engine.events.history(EventType.REDIRECTION_REQUESTED)[0]
		assert event.data["new_direction"] == "cover pricing"
		assert engine.events.history(EventType.USER_INTERRUPTED)[0].data["type"] == "redirect"

	def test_interrupt_without_running_execution(self):
		engine = _engine()
		interruption = Interruption(session_id="s-1", type=InterruptionType.STOP, message="stop")
		assert engine.interrupt(interruption) is False
		assert engine.events.history() == []


class TestSessions:
	"""Tests for per-session exclusivity and cancellation."""

	@pytest.mark.asyncio
	async def test_one_live_execution_per_session(self):
		worker = BlockingWorker("A")
		engine = _engine(worker)

		task = asyncio.create_task(engine.execute_plan(_plan("A")))
		await asyncio.wait_for(worker.started.wait(), timeout=2)

		assert engine.live_sessions() == ["s-1"]
		assert engine.get_state("s-1").status == ExecutionStatus.RUNNING
		with pytest.raises(SessionBusyError):
			await engine.execute_plan(_plan("A"))

		worker.release.set()
		state = await asyncio.wait_for(task, timeout=2)
		assert state.status == ExecutionStatus.COMPLETED

	@pytest.mark.asyncio
	async def test_cancel_paused_execution(self):
		engine = None

		async def pause_once(worker, prompt, context):
			if len(worker.calls) == 1:
				engine.pause_execution("s-1")

		engine = _engine(FakeWorker("A", on_call=pause_once))
		await engine.execute_plan(_plan("A"))

		assert await engine.cancel_execution("s-1") is True
		assert engine.is_live("s-1") is False
		state = engine.get_history("s-1")[0]
		assert state.status == ExecutionStatus.INTERRUPTED
		assert state.error == "Cancelled by operator"

	@pytest.mark.asyncio
	async def test_cancel_running_execution(self):
		engine = None

		async def cancel(worker, prompt, context):
			await engine.cancel_execution("s-1")

		b = FakeWorker("B")
		engine = _engine(FakeWorker("A", on_call=cancel), b)
		state = await engine.execute_plan(_plan("A", "B"))

		assert state.status == ExecutionStatus.INTERRUPTED
		assert state.error == "Cancelled by operator"
		assert b.calls == []
		assert isinstance(engine.checkpoint("s-1"), Continue)

	@pytest.mark.asyncio
	async def test_cancel_unknown_session(self):
		engine = _engine()
		assert await engine.cancel_execution("nope") is False

	@pytest.mark.asyncio
	async def test_pending_interruption_is_taken_once(self):
		worker = BlockingWorker("A")
		engine = _engine(worker)
		task = asyncio.create_task(engine.execute_plan(_plan("A")))
		await asyncio.wait_for(worker.started.wait(), timeout=2)

		engine.interrupt(Interruption(session_id="s-1", type=InterruptionType.CLARIFICATION, message="how?"))
		result = engine.checkpoint("s-1")
		assert isinstance(result, Interrupted)
		assert result.interruption.message == "how?"
		assert isinstance(engine.checkpoint("s-1"), Continue)

		worker.release.set()
		await asyncio.wait_for(task, timeout=2)
