"""
Interactive Orchestrator - Routes requests to workers and runs them interruptibly.

Responsibilities:
- Hold the worker registry, session contexts and every pipeline component
- Route a request (intent, skills, prediction, pattern, sequence) and
  build an execution plan from the routing decision
- Run plans with one activity monitor per session
- Turn redirect, agent-switch and new-plan interruptions into follow-up runs
- Feed outcomes and feedback back into routing, patterns and behavior models
- Persist behavior models and finished executions when a store is supplied
"""

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterable, Awaitable, Optional

from ..analysis.patterns import PatternSelector
from ..analysis.sequencing import SequenceOptimizer
from ..analysis.skills import SkillsMatcher
from ..config import Config, get_config
from ..events import EventBus, EventType
from ..exceptions import NoSuitableWorker, SessionBusyError, StoreError
from ..learning.adaptive import AdaptivePlanner
from ..learning.feedback import FeedbackLearner
from ..learning.routing import PredictiveRouter
from ..llm import TextGenerator, create_generator
from ..plans.models import (
	ExecutionContext,
	ExecutionPlan,
	ExecutionState,
	ExecutionStatus,
	FeedbackEvent,
	FeedbackKind,
	Interruption,
	InterruptionType,
	RoutingDecision,
	Sentiment,
	UserBehaviorModel,
	WorkerProfile,
	clamp,
)
from ..plans.store import BehaviorStore
from ..workers import SessionContextStore, Worker, WorkerRegistry
from .engine import ExecutionEngine
from .monitor import ActivityMonitor
from .strategies import (
	Intent,
	create_intent_analyzer,
	create_plan_builder,
	create_worker_selector,
)

logger = logging.getLogger(__name__)

MAX_FOLLOW_UPS = 5

COMPLETION_SENTIMENT = {
	ExecutionStatus.COMPLETED: Sentiment.POSITIVE,
	ExecutionStatus.FAILED: Sentiment.NEGATIVE,
	ExecutionStatus.INTERRUPTED: Sentiment.NEUTRAL,
}


def elapsed_ms(state: ExecutionState) -> float:
	"""Wall-clock duration of a run in milliseconds."""
	end = datetime.fromisoformat(state.finished_at) if state.finished_at else datetime.now()
	return max(0.0, (end - datetime.fromisoformat(state.started_at)).total_seconds() * 1000)


def observed_satisfaction(state: ExecutionState) -> float:
	"""
	Satisfaction inferred from how a run ended.

	A completed run starts at 1.0 and loses 0.1 per interruption
	(floor 0.5); an interrupted run scores 0.3 and a failed one 0.0.
	"""
	if state.status == ExecutionStatus.COMPLETED:
		return max(0.5, 1.0 - 0.1 * len(state.interruption_history))
	if state.status == ExecutionStatus.INTERRUPTED:
		return 0.3
	return 0.0


class InteractiveOrchestrator:
	"""
	Front door of the routing and execution pipeline.

	Workers and session contexts live in the registry and context
	store handed in at construction. Each session gets its own
	ActivityMonitor and at most one live execution.
	"""

	def __init__(
		self,
		registry: Optional[WorkerRegistry] = None,
		contexts: Optional[SessionContextStore] = None,
		generator: Optional[TextGenerator] = None,
		events: Optional[EventBus] = None,
		store: Optional[BehaviorStore] = None,
		config: Optional[Config] = None,
	):
		"""
		Initialize the orchestrator.

		Args:
			registry: Workers available for routing
			contexts: Session-keyed conversation context
			generator: Text generator shared by the analysis components
			events: Event bus for routing and execution notifications
			store: Optional store for behavior models and execution history
			config: Configuration (defaults to the global config)
		"""
		self.config = config or get_config()
		self.registry = registry if registry is not None else WorkerRegistry()
		self.contexts = contexts if contexts is not None else SessionContextStore()
		self.generator = generator or create_generator()
		self.events = events or EventBus()
		self.store = store

		self.skills_matcher = SkillsMatcher(self.generator, self.config.skill_weights)
		self.pattern_selector = PatternSelector(self.generator)
		self.sequence_optimizer = SequenceOptimizer(self.generator)
		self.router = PredictiveRouter(self.generator, self.config.ema_alpha)
		self.feedback_learner = FeedbackLearner()
		self.adaptive_planner = AdaptivePlanner(self.generator, self.config.adaptation_threshold)
		self.engine = ExecutionEngine(
			self.registry,
			events=self.events,
			chunk_delay=self.config.stream_chunk_delay,
			on_finished=self._on_execution_finished,
		)

		self.intent_analyzer = create_intent_analyzer(self.config.intent_strategy)
		self.worker_selector = create_worker_selector(
			self.config.selector_strategy,
			self.skills_matcher,
			self.router,
			self.pattern_selector,
			self.sequence_optimizer,
			self.feedback_learner,
			self.config.max_selected_agents,
		)
		self.plan_builder = create_plan_builder(self.config.plan_strategy)

		self._monitors: dict[str, ActivityMonitor] = {}
		self._decisions: dict[str, tuple[str, RoutingDecision]] = {}
		self._reserved: set[str] = set()
		self._lock = asyncio.Lock()

	# --- Workers ---

	def register_worker(self, worker: Worker, profile: Optional[WorkerProfile] = None) -> WorkerProfile:
		"""Register a worker, deriving its profile from name and role when none is given."""
		return self.registry.register(worker, profile)

	def unregister_worker(self, name: str) -> bool:
		removed = self.registry.unregister(name)
		if removed:
			logger.info(f"Unregistered worker {name}")
		return removed

	def list_workers(self) -> list[WorkerProfile]:
		return list(self.registry.profiles().values())

	# --- Routing and planning ---

	def build_context(self, request: str, user_id: str, session_id: str) -> ExecutionContext:
		"""Shared context for a request: intent plus the session's conversation."""
		session = self.contexts.get(session_id, user_id)
		intent = self.intent_analyzer.analyze(request, session.history)
		return ExecutionContext(
			session_id=session_id,
			user_id=user_id,
			topic=intent.topic,
			user_goals=intent.goals,
			conversation_history=list(session.history),
		)

	async def analyze_and_route(
		self,
		request: str,
		user_id: str,
		session_id: str,
		context: Optional[ExecutionContext] = None,
	) -> RoutingDecision:
		"""
		Decide which workers handle a request and how they collaborate.

		Args:
			request: User request text
			user_id: Requesting user
			session_id: Session the request belongs to
			context: Prebuilt context (built from the session when omitted)

		Returns:
			RoutingDecision

		Raises:
			NoSuitableWorker: If no workers are registered
		"""
		if len(self.registry) == 0:
			raise NoSuitableWorker("No workers registered")

		context = context or self.build_context(request, user_id, session_id)
		intent = Intent(topic=context.topic, goals=list(context.user_goals))
		decision = await self.worker_selector.select(
			request,
			user_id,
			self.list_workers(),
			intent,
			list(context.conversation_history),
		)

		logger.info(
			f"Routed request for {user_id}: {', '.join(decision.selected_agents)} "
			f"via {decision.collaboration_pattern} ({decision.confidence:.0%})"
		)
		self.events.emit(
			EventType.ROUTING_DECISION,
			session_id=session_id,
			agents=list(decision.selected_agents),
			pattern=decision.collaboration_pattern,
			confidence=decision.confidence,
			estimated_duration=decision.estimated_duration,
			reasoning=decision.reasoning,
		)
		return decision

	def create_execution_plan(
		self,
		request: str,
		decision: RoutingDecision,
		context: ExecutionContext,
		reason: str = "request",
	) -> ExecutionPlan:
		"""Build the plan for a routing decision and remember the decision it came from."""
		plan = self.plan_builder.build(request, decision, context)
		self._decisions[plan.id] = (request, decision)
		self.events.emit(
			EventType.PLAN_CREATED,
			session_id=context.session_id,
			plan_id=plan.id,
			agents=list(plan.selected_agents),
			pattern=plan.collaboration_pattern,
			steps=len(plan.steps),
			reason=reason,
		)
		return plan

	# --- Running ---

	async def process_request(
		self,
		request: str,
		user_id: str,
		session_id: str,
		monitor_source: Optional[AsyncIterable[str]] = None,
	) -> ExecutionState:
		"""
		Route, plan and run a request end to end.

		Args:
			request: User request text
			user_id: Requesting user
			session_id: Session to run in
			monitor_source: Operator input lines (stdin when None)

		Returns:
			The ExecutionState the run (or its last follow-up) ended in

		Raises:
			SessionBusyError: If the session already has a live request
			NoSuitableWorker: If no workers are registered
		"""
		await self._reserve(session_id, allow_paused=False)
		try:
			self.contexts.get(session_id, user_id).add(f"user: {request}")
			context = self.build_context(request, user_id, session_id)
			decision = await self.analyze_and_route(request, user_id, session_id, context)
			plan = self.create_execution_plan(request, decision, context)
			return await self._drive(session_id, self.engine.execute_plan(plan), monitor_source)
		finally:
			await self._release(session_id)

	async def resume(
		self,
		session_id: str,
		monitor_source: Optional[AsyncIterable[str]] = None,
	) -> ExecutionState:
		"""
		Resume a paused session.

		Raises:
			SessionBusyError: If a request is already being driven for the session
			ExecutionStateError: If the session is not paused
		"""
		await self._reserve(session_id, allow_paused=True)
		try:
			return await self._drive(session_id, self.engine.resume_execution(session_id), monitor_source)
		finally:
			await self._release(session_id)

	def pause(self, session_id: str) -> bool:
		"""Pause a running session at its next checkpoint."""
		return self.engine.pause_execution(session_id)

	async def stop(self, session_id: str) -> bool:
		"""Abandon a session's live execution."""
		stopped = await self.engine.cancel_execution(session_id)
		if stopped:
			logger.info(f"Stop requested for session {session_id}")
		return stopped

	async def _reserve(self, session_id: str, allow_paused: bool) -> None:
		async with self._lock:
			if session_id in self._reserved:
				raise SessionBusyError(f"Session {session_id} already has a request in progress")
			if not allow_paused and self.engine.is_live(session_id):
				raise SessionBusyError(f"Session {session_id} already has a live execution")
			self._reserved.add(session_id)

	async def _release(self, session_id: str) -> None:
		async with self._lock:
			self._reserved.discard(session_id)

	def get_monitor(self, session_id: str) -> ActivityMonitor:
		"""The session's activity monitor, created on first use."""
		monitor = self._monitors.get(session_id)
		if monitor is None:
			monitor = ActivityMonitor(on_interruption=self.handle_interruption, on_input=self._on_user_input)
			self._monitors[session_id] = monitor
		return monitor

	async def _drive(
		self,
		session_id: str,
		run: Awaitable[ExecutionState],
		monitor_source: Optional[AsyncIterable[str]],
	) -> ExecutionState:
		"""Run under the session's monitor and chase any follow-ups."""
		monitor = self.get_monitor(session_id)
		await monitor.start_monitoring(session_id, monitor_source)
		try:
			state = await run
			for _ in range(MAX_FOLLOW_UPS):
				follow_up = await self._follow_up(state)
				if follow_up is None:
					break
				state = follow_up
			return state
		finally:
			await monitor.stop_monitoring(session_id)

	async def _follow_up(self, state: ExecutionState) -> Optional[ExecutionState]:
		"""Start the run an interruption asked for, if any."""
		if state.status != ExecutionStatus.INTERRUPTED or not state.interruption_history:
			return None
		interruption = state.interruption_history[-1]
		if interruption.type == InterruptionType.REDIRECT:
			return await self._redirect(state, interruption)
		if interruption.type == InterruptionType.AGENT_SWITCH:
			return await self._switch_agent(state, interruption)
		if interruption.type == InterruptionType.NEW_PLAN:
			return await self._new_plan(state, interruption)
		return None

	async def _redirect(self, state: ExecutionState, interruption: Interruption) -> ExecutionState:
		context = state.plan.context
		direction = interruption.new_direction or interruption.message
		logger.info(f"Redirecting session {context.session_id}: {direction[:50]!r}")
		self.contexts.get(context.session_id, context.user_id).add(f"user: {interruption.message}")

		new_context = self.build_context(direction, context.user_id, context.session_id)
		decision = await self.analyze_and_route(direction, context.user_id, context.session_id, new_context)
		plan = self.create_execution_plan(direction, decision, new_context, reason="redirect")
		return await self.engine.execute_plan(plan)

	async def _switch_agent(self, state: ExecutionState, interruption: Interruption) -> Optional[ExecutionState]:
		target = self.registry.find(interruption.target_agent or "")
		if target is None:
			logger.warning(f"Switch target not registered: {interruption.target_agent}")
			return None

		old = state.plan
		remaining = old.steps[state.current_step:] or old.steps[-1:]
		steps = [
			s.model_copy(
				update={
					"agent_name": target.name,
					"action": s.action.replace(f"from {s.agent_name}'s", f"from {target.name}'s"),
				},
				deep=True,
			)
			for s in remaining
		]
		logger.info(f"Switching session {old.context.session_id} to {target.name} for {len(steps)} steps")

		plan = old.model_copy(
			update={"id": f"{old.id}-{target.name.lower()}", "selected_agents": [target.name], "steps": steps},
			deep=True,
		)
		request, decision = self._decisions.get(old.id, (old.user_intent, None))
		if decision is not None:
			self._decisions[plan.id] = (request, decision)
		self.events.emit(
			EventType.PLAN_CREATED,
			session_id=old.context.session_id,
			plan_id=plan.id,
			agents=[target.name],
			pattern=plan.collaboration_pattern,
			steps=len(plan.steps),
			reason="agent_switch",
		)
		return await self.engine.execute_plan(plan)

	async def _new_plan(self, state: ExecutionState, interruption: Interruption) -> ExecutionState:
		context = state.plan.context
		request = state.plan.user_intent
		logger.info(f"Fresh plan for session {context.session_id}")
		self.contexts.get(context.session_id, context.user_id).add(f"user: {interruption.message}")

		new_context = self.build_context(request, context.user_id, context.session_id)
		decision = await self.analyze_and_route(request, context.user_id, context.session_id, new_context)
		plan = self.create_execution_plan(request, decision, new_context, reason="new_plan")
		return await self.engine.execute_plan(plan)

	# --- Interruptions and feedback ---

	async def handle_interruption(self, interruption: Interruption) -> bool:
		"""Forward an operator interruption to the session's execution."""
		accepted = self.engine.interrupt(interruption)
		if not accepted or interruption.type == InterruptionType.CLARIFICATION:
			return accepted

		state = self.engine.get_state(interruption.session_id)
		if state is not None:
			step = state.plan.steps[state.current_step] if state.current_step < len(state.plan.steps) else None
			self.feedback_learner.process_feedback(FeedbackEvent(
				user_id=state.plan.context.user_id,
				session_id=interruption.session_id,
				kind=FeedbackKind.INTERRUPTION,
				sentiment=Sentiment.NEUTRAL,
				agent_name=step.agent_name if step else None,
				pattern=state.plan.collaboration_pattern,
				message=interruption.message,
			))
		return accepted

	async def _on_user_input(self, session_id: str, line: str) -> None:
		state = self.engine.get_state(session_id)
		user_id = state.plan.context.user_id if state else "unknown"
		self.contexts.get(session_id, user_id).add(f"user: {line}")
		self.events.emit(EventType.USER_INPUT, session_id=session_id, message=line)

	async def handle_feedback(self, session_id: str, event: FeedbackEvent) -> dict:
		"""
		Learn from feedback and adapt the session's plan when warranted.

		Returns:
			Dict with applied, adaptation and reason
		"""
		result = self.feedback_learner.process_feedback(event)
		await self._save_model(result["model"])

		state = self.engine.get_state(session_id)
		if state is None:
			history = self.engine.get_history(session_id)
			state = history[-1] if history else None
		if state is None:
			return {"applied": False, "adaptation": None, "reason": f"no execution for session {session_id}"}

		adaptation = await self.adaptive_planner.propose_adaptation(state, event, self.registry.names())
		changed: list[int] = []
		if not state.is_terminal() and self.adaptive_planner.should_apply(adaptation):
			# A running step is already streaming; only later steps can change
			start = state.current_step + 1 if state.status == ExecutionStatus.RUNNING else state.current_step
			changed = self.adaptive_planner.apply_adaptation(
				state.plan, adaptation, event, start=start, available=self.registry.names(),
			)
		if not changed:
			logger.info(
				f"Skipped {adaptation.type.value} adaptation for session {session_id} "
				f"(confidence {adaptation.confidence:.0%})"
			)
			self.events.emit(
				EventType.ADAPTATION_SKIPPED,
				session_id=session_id,
				type=adaptation.type.value,
				confidence=adaptation.confidence,
			)
			return {"applied": False, "adaptation": adaptation, "reason": "no adaptation applied"}

		self.events.emit(
			EventType.ADAPTATION_APPLIED,
			session_id=session_id,
			type=adaptation.type.value,
			confidence=adaptation.confidence,
			changed_steps=changed,
		)
		return {"applied": True, "adaptation": adaptation, "reason": adaptation.reason}

	# --- Outcomes ---

	async def _on_execution_finished(self, state: ExecutionState) -> None:
		plan = state.plan
		request, decision = self._decisions.pop(plan.id, (plan.user_intent, None))
		success = state.status == ExecutionStatus.COMPLETED
		interrupted = bool(state.interruption_history) or state.status == ExecutionStatus.INTERRUPTED
		satisfaction = observed_satisfaction(state)
		duration = elapsed_ms(state)

		if decision is not None and decision.prediction is not None:
			self.router.record_routing_outcome(
				plan.context.user_id, request, decision.prediction, success, satisfaction, duration, interrupted
			)
		if decision is not None and decision.sequence is not None:
			self.sequence_optimizer.record_sequence_execution(
				request, decision.sequence, duration, success, len(state.interruption_history)
			)
		self.pattern_selector.record_pattern_usage(
			request, plan.collaboration_pattern, plan.selected_agents, success, state.error or ""
		)

		steps_run = max(1, len(state.outputs))
		for index, step in enumerate(plan.steps):
			self.adaptive_planner.record_agent_performance(
				step.agent_name,
				index in state.outputs,
				duration / steps_run,
				satisfaction,
				interrupted,
			)

		session = self.contexts.get(plan.context.session_id, plan.context.user_id)
		for index in sorted(state.outputs):
			session.add(f"{plan.steps[index].agent_name}: {state.outputs[index][:200]}")

		result = self.feedback_learner.process_feedback(FeedbackEvent(
			user_id=plan.context.user_id,
			session_id=plan.context.session_id,
			kind=FeedbackKind.COMPLETION,
			sentiment=COMPLETION_SENTIMENT.get(state.status, Sentiment.NEUTRAL),
			agent_name=plan.selected_agents[0] if plan.selected_agents else None,
			pattern=plan.collaboration_pattern,
			message=state.error or "",
			session_duration=duration,
		))

		await self._save_model(result["model"])
		if self.store is not None:
			try:
				await self.store.save_execution(state)
			except StoreError as e:
				logger.error(f"Failed to persist execution for session {plan.context.session_id}: {e}")

	async def _save_model(self, model: UserBehaviorModel) -> None:
		if self.store is None:
			return
		try:
			await self.store.save_model(model)
		except StoreError as e:
			logger.error(f"Failed to persist behavior model for {model.user_id}: {e}")

	async def load_behavior_models(self) -> int:
		"""Load persisted behavior models into the feedback learner."""
		if self.store is None:
			return 0
		return self.feedback_learner.import_models(await self.store.list_models())

	# --- Queries ---

	def get_behavior_model(self, user_id: str) -> Optional[UserBehaviorModel]:
		return self.feedback_learner.get_user_model(user_id)

	def get_routing_recommendations(self, user_id: Optional[str] = None) -> list[str]:
		recommendations = self.router.get_routing_recommendations(user_id)
		if user_id:
			recommendations.extend(self.feedback_learner.get_optimization_recommendations(user_id))
		return recommendations

	def get_execution_state(self, session_id: str) -> Optional[ExecutionState]:
		return self.engine.get_state(session_id)

	def get_execution_history(self, session_id: Optional[str] = None) -> list[ExecutionState]:
		return self.engine.get_history(session_id)

	def get_skills_matcher(self) -> SkillsMatcher:
		return self.skills_matcher

	def get_pattern_selector(self) -> PatternSelector:
		return self.pattern_selector

	def get_sequence_optimizer(self) -> SequenceOptimizer:
		return self.sequence_optimizer

	def get_router(self) -> PredictiveRouter:
		return self.router

	def get_feedback_learner(self) -> FeedbackLearner:
		return self.feedback_learner

	def get_adaptive_planner(self) -> AdaptivePlanner:
		return self.adaptive_planner

	def get_engine(self) -> ExecutionEngine:
		return self.engine

	def get_statistics(self) -> dict:
		"""Snapshot of workers, sessions, monitors and learned metrics."""
		return {
			"registered_workers": len(self.registry),
			"live_sessions": self.engine.live_sessions(),
			"monitoring": {sid: m.get_stats() for sid, m in self._monitors.items() if m.is_active},
			"executions": len(self.engine.get_history()),
			"patterns": self.pattern_selector.get_pattern_statistics(),
			"sequences": self.sequence_optimizer.get_statistics(),
			"routing": self.router.get_metrics(),
			"satisfaction": {
				m.user_id: clamp(m.positive_count / m.feedback_count) if m.feedback_count else 0.0
				for m in self.feedback_learner.export_models()
			},
		}

	async def shutdown(self) -> None:
		"""Stop every monitor and abandon live executions."""
		logger.info("Shutting down orchestrator")
		for session_id, monitor in list(self._monitors.items()):
			await monitor.stop_monitoring(session_id)
		for session_id in self.engine.live_sessions():
			await self.engine.cancel_execution(session_id)
		await self.events.drain()
