"""
Adaptive Planner - Proposes and applies changes to a running plan.

Asks the text generator how a plan should change after feedback,
gates the proposal on confidence, and rewrites the plan's remaining
steps when the proposal is accepted.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from ..config import get_config
from ..exceptions import GenerationError, MalformedAnalysis
from ..llm import TextGenerator, request_analysis
from ..plans.models import (
	AdaptationType,
	AgentStep,
	ExecutionPlan,
	ExecutionState,
	FeedbackEvent,
	Level,
	PlanAdaptation,
	Sentiment,
)
from ..schemas import ADAPTATION_SCHEMA

logger = logging.getLogger(__name__)

PERFORMANCE_ALPHA = 0.3
FEEDBACK_NOTE = "User feedback to consider"


def step_id(index: int) -> str:
	"""Stable id of the plan step at index."""
	return f"step-{index + 1}"


def replacement_worker(
	plan: ExecutionPlan,
	event: FeedbackEvent,
	available: list[str],
) -> Optional[str]:
	"""
	Pick the registered worker that takes over replaced steps.

	Negative feedback about a worker rules that worker out; any other
	feedback naming a registered worker asks for that worker. Returns
	None when no registered worker fits.
	"""
	if not event.agent_name:
		return None
	if event.sentiment != Sentiment.NEGATIVE:
		return event.agent_name if event.agent_name in available else None
	criticized = event.agent_name.lower()
	for name in plan.selected_agents + available:
		if name in available and name.lower() != criticized:
			return name
	return None


def resolve_step_indices(plan: ExecutionPlan, refs: list[str], start: int = 0) -> list[int]:
	"""
	Map step references to indices among the remaining steps.

	A reference may be a step id ("step-2"), a bare number, or a
	worker name. References before start are ignored.
	"""
	indices: list[int] = []
	for ref in refs:
		ref = ref.strip()
		match = re.fullmatch(r"(?:step[-_\s]?)?(\d+)", ref, re.IGNORECASE)
		if match:
			candidates = [int(match.group(1)) - 1]
		else:
			candidates = [i for i, s in enumerate(plan.steps) if s.agent_name.lower() == ref.lower()]
		for index in candidates:
			if start <= index < len(plan.steps) and index not in indices:
				indices.append(index)
	return sorted(indices)


class AdaptivePlanner:
	"""
	Adapts execution plans in response to feedback.

	Args:
		generator: Text generator used to propose adaptations
		threshold: Confidence an adaptation must exceed to be applied
	"""

	def __init__(self, generator: TextGenerator, threshold: Optional[float] = None):
		self.generator = generator
		self.threshold = threshold if threshold is not None else get_config().adaptation_threshold
		self._history: list[dict] = []
		self._learning_patterns: dict[str, dict] = {}
		self._agent_performance: dict[str, dict[str, float]] = {}

	async def propose_adaptation(
		self,
		state: ExecutionState,
		event: FeedbackEvent,
		available_agents: Optional[list[str]] = None,
	) -> PlanAdaptation:
		"""
		Ask for a plan change given feedback on a run.

		Falls back to a low-confidence "modify" proposal when the
		generator fails or replies outside the schema.
		"""
		prompt = self._build_prompt(state, event, available_agents or state.plan.selected_agents)
		try:
			data = await request_analysis(self.generator, prompt, ADAPTATION_SCHEMA)
			adaptation = PlanAdaptation(
				type=AdaptationType(data["adaptation_type"]),
				reason=data["reason"] or "User feedback indicates adjustment needed",
				confidence=data["confidence"],
				affected_steps=data["affected_steps"],
				estimated_improvement=float(data["estimated_improvement"]),
				risk_level=Level(data["risk_level"]),
				user_satisfaction_prediction=data["user_satisfaction_prediction"],
			)
		except (GenerationError, MalformedAnalysis) as e:
			logger.warning(f"Adaptation analysis failed: {e}, using fallback")
			adaptation = self.fallback_adaptation()

		self._update_learning_pattern(event, adaptation)
		self._history.append({
			"plan_id": state.plan.id,
			"session_id": state.session_id,
			"feedback": event,
			"adaptation": adaptation,
			"applied": False,
			"timestamp": datetime.now().isoformat(),
		})
		logger.info(
			f"Proposed {adaptation.type.value} adaptation for plan {state.plan.id} "
			f"(confidence {adaptation.confidence:.0%})"
		)
		return adaptation

	def fallback_adaptation(self) -> PlanAdaptation:
		return PlanAdaptation(
			type=AdaptationType.MODIFY,
			reason="Fallback adaptation based on user feedback",
			confidence=0.5,
			affected_steps=[],
			estimated_improvement=10,
			risk_level=Level.LOW,
			user_satisfaction_prediction=0.6,
			used_fallback=True,
		)

	def should_apply(self, adaptation: PlanAdaptation) -> bool:
		return adaptation.confidence > self.threshold

	def apply_adaptation(
		self,
		plan: ExecutionPlan,
		adaptation: PlanAdaptation,
		event: FeedbackEvent,
		start: int = 0,
		available: Optional[list[str]] = None,
	) -> list[int]:
		"""
		Rewrite the plan's steps from start onwards.

		Args:
			plan: Plan to mutate in place
			adaptation: Accepted adaptation
			event: The feedback that prompted it
			start: Index of the first step that has not run yet
			available: Registered worker names; defaults to the plan's workers

		Returns:
			Indices of the steps that changed
		"""
		available = list(available) if available is not None else list(plan.selected_agents)
		remaining = list(range(start, len(plan.steps)))
		affected = resolve_step_indices(plan, adaptation.affected_steps, start)
		changed: list[int] = []

		if adaptation.type == AdaptationType.REORDER and affected:
			moved = [plan.steps[i] for i in affected]
			rest = [plan.steps[i] for i in remaining if i not in affected]
			plan.steps[start:] = moved + rest
			changed = remaining

		elif adaptation.type == AdaptationType.REMOVE and affected:
			for index in reversed(affected):
				del plan.steps[index]
			changed = affected

		elif adaptation.type == AdaptationType.INSERT:
			anchor = plan.steps[start - 1].agent_name if 0 < start <= len(plan.steps) else None
			named = event.agent_name if event.agent_name in available else None
			agent = named or anchor or (plan.selected_agents[0] if plan.selected_agents else "assistant")
			plan.steps.insert(start, AgentStep(
				agent_name=agent,
				action=f'Clarify based on user feedback: "{event.message}"',
				parameters={"feedback": event.message},
				expected_output="Clarification addressing the feedback",
				can_interrupt=True,
				priority=1,
			))
			changed = [start]

		elif adaptation.type == AdaptationType.REPLACE:
			worker = replacement_worker(plan, event, available)
			if worker is None:
				logger.warning(f"No registered worker can replace steps of plan {plan.id}")
			else:
				targets = affected
				if not targets and event.sentiment == Sentiment.NEGATIVE:
					criticized = event.agent_name.lower()
					targets = [i for i in remaining if plan.steps[i].agent_name.lower() == criticized]
				elif not targets:
					targets = remaining
				targets = [i for i in targets if plan.steps[i].agent_name != worker]
				for index in targets:
					plan.steps[index].agent_name = worker
				if targets and worker not in plan.selected_agents:
					plan.selected_agents.append(worker)
				changed = targets

		elif adaptation.type in (AdaptationType.MODIFY, AdaptationType.REDESIGN):
			note = f'{FEEDBACK_NOTE}: "{event.message}"' if event.message else FEEDBACK_NOTE
			for index in remaining:
				plan.steps[index].action = f"{plan.steps[index].action}\n{note}"
			changed = remaining

		for record in reversed(self._history):
			if record["adaptation"] is adaptation:
				record["applied"] = bool(changed)
				break

		logger.info(f"Applied {adaptation.type.value} adaptation to plan {plan.id}: {len(changed)} steps changed")
		return changed

	def _build_prompt(self, state: ExecutionState, event: FeedbackEvent, agents: list[str]) -> str:
		plan = state.plan
		lines = [
			"ADAPTIVE PLAN OPTIMIZATION TASK",
			"",
			"CURRENT PLAN:",
			f"- Plan ID: {plan.id}",
			f"- Current Step: {state.current_step}/{len(plan.steps)}",
			f"- Agents: {', '.join(plan.selected_agents)}",
			f"- Collaboration Pattern: {plan.collaboration_pattern}",
			f'- User Intent: "{plan.user_intent}"',
			"",
			"STEPS:",
		]
		for i, step in enumerate(plan.steps):
			lines.append(f"- {step_id(i)}: {step.agent_name}")

		lines.extend([
			"",
			"USER FEEDBACK:",
			f"- Type: {event.kind.value}",
			f"- Sentiment: {event.sentiment.value}",
			f'- Content: "{event.message or "No explicit content"}"',
			f"- Agent: {event.agent_name or 'N/A'}",
			"",
			"EXECUTION STATE:",
			f"- Status: {state.status.value}",
			f"- Completed Steps: {len(state.outputs)}",
			f"- Interruptions: {len(state.interruption_history)}",
			"",
			"AVAILABLE AGENTS:",
		])
		lines.extend(f"- {name}" for name in agents)

		patterns = self._relevant_patterns(event)
		if patterns:
			lines.extend(["", "HISTORICAL PATTERNS:"])
			lines.extend(patterns)

		lines.extend(["", "Provide an adaptation recommendation in exactly this format:", ""])
		lines.append(ADAPTATION_SCHEMA.format_instructions())
		return "\n".join(lines)

	def _relevant_patterns(self, event: FeedbackEvent) -> list[str]:
		patterns = [p for k, p in self._learning_patterns.items() if k.startswith(f"{event.kind.value}-")]
		patterns.sort(key=lambda p: p["frequency"], reverse=True)
		return [f"- {p['pattern']}: seen {p['frequency']} times" for p in patterns[:3]]

	def _update_learning_pattern(self, event: FeedbackEvent, adaptation: PlanAdaptation) -> None:
		key = f"{event.kind.value}-{adaptation.type.value}"
		pattern = self._learning_patterns.setdefault(key, {
			"pattern": key,
			"frequency": 0,
			"recommended_action": adaptation.type.value,
			"confidence": 0.5,
			"last_occurred": None,
		})
		pattern["frequency"] += 1
		pattern["confidence"] = min(0.95, pattern["confidence"] + 0.05)
		pattern["last_occurred"] = datetime.now().isoformat()

	def record_agent_performance(
		self,
		agent_name: str,
		success: bool,
		response_time: float,
		satisfaction: float = 0.5,
		interrupted: bool = False,
	) -> dict[str, float]:
		"""Fold one step outcome into the worker's moving averages."""
		current = self._agent_performance.setdefault(agent_name, {
			"success_rate": 0.5,
			"average_response_time": 5000.0,
			"user_satisfaction": 0.5,
			"interruption_rate": 0.0,
		})
		a = PERFORMANCE_ALPHA
		current["success_rate"] = current["success_rate"] * (1 - a) + (1.0 if success else 0.0) * a
		current["average_response_time"] = current["average_response_time"] * (1 - a) + response_time * a
		current["user_satisfaction"] = current["user_satisfaction"] * (1 - a) + satisfaction * a
		current["interruption_rate"] = current["interruption_rate"] * (1 - a) + (1.0 if interrupted else 0.0) * a
		return dict(current)

	def get_agent_performance(self) -> dict[str, dict[str, float]]:
		return {name: dict(metrics) for name, metrics in self._agent_performance.items()}

	def get_learning_patterns(self) -> dict[str, dict]:
		return {k: dict(v) for k, v in self._learning_patterns.items()}

	def get_adaptation_history(self, plan_id: Optional[str] = None) -> list[dict]:
		if plan_id is None:
			return list(self._history)
		return [r for r in self._history if r["plan_id"] == plan_id]
