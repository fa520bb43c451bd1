"""
Strategies - Swappable steps of the orchestration pipeline.

The orchestrator is composed of three strategies chosen by name in
config: an IntentAnalyzer (topic and goals), a WorkerSelector (who
runs and how they collaborate) and a PlanBuilder (the concrete steps).
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from ..analysis.patterns import PATTERNS, PatternSelector
from ..analysis.sequencing import SequenceOptimizer
from ..analysis.skills import SkillsMatcher
from ..exceptions import NoSuitableWorker
from ..learning.feedback import FeedbackLearner
from ..learning.routing import PredictiveRouter
from ..plans.models import (
	AgentStep,
	ExecutionContext,
	ExecutionPlan,
	InterruptionPoint,
	InterruptionSafety,
	RoutingDecision,
	WorkerProfile,
	clamp,
)

logger = logging.getLogger(__name__)

TOPIC_KEYWORDS = ("strategy", "marketing", "technical", "financial", "sales", "research")
GOAL_KEYWORDS = [
	(("analyze", "analysis"), "analysis"),
	(("plan", "strategy"), "planning"),
	(("recommend", "suggest"), "recommendations"),
]
DEFAULT_GOAL = "general-assistance"


@dataclass
class Intent:
	"""What a request is about and what the user wants from it."""
	topic: str = "general"
	goals: list[str] = field(default_factory=lambda: [DEFAULT_GOAL])


def interruption_points_for(agents: list[str]) -> list[InterruptionPoint]:
	"""First step safe, later steps warning, with context preservation falling per step."""
	return [
		InterruptionPoint(
			step_index=i,
			agent_name=name,
			safety=InterruptionSafety.SAFE if i == 0 else InterruptionSafety.WARNING,
			context_preservation=clamp(0.8 - i * 0.1),
		)
		for i, name in enumerate(agents)
	]


# --- Intent analysis ---


class IntentAnalyzer(Protocol):
	def analyze(self, request: str, history: list[str]) -> Intent:
		...


class KeywordIntentAnalyzer:
	"""Topic and goals from keyword lists."""

	def analyze(self, request: str, history: list[str]) -> Intent:
		lowered = request.lower()
		words = set(re.findall(r"[a-z]+", lowered))
		topic = next((k for k in TOPIC_KEYWORDS if k in words), "general")
		goals = [goal for keywords, goal in GOAL_KEYWORDS if any(k in lowered for k in keywords)]
		return Intent(topic=topic, goals=goals or [DEFAULT_GOAL])


# --- Worker selection ---


class WorkerSelector(Protocol):
	async def select(
		self,
		request: str,
		user_id: str,
		profiles: list[WorkerProfile],
		intent: Intent,
		history: list[str],
	) -> RoutingDecision:
		...


class SkillsWorkerSelector:
	"""
	Top workers by skills match in a sequential handoff.

	Makes no pattern, sequence or prediction calls.
	"""

	def __init__(self, matcher: SkillsMatcher, max_agents: int = 3):
		self.matcher = matcher
		self.max_agents = max_agents

	async def select(
		self,
		request: str,
		user_id: str,
		profiles: list[WorkerProfile],
		intent: Intent,
		history: list[str],
	) -> RoutingDecision:
		analyses = await self.matcher.analyze_skills_match(request, profiles, history)
		top = analyses[:self.max_agents]
		agents = [a.agent_name for a in top]
		return RoutingDecision(
			selected_agents=agents,
			collaboration_pattern="sequential-handoff",
			confidence=top[0].confidence,
			estimated_duration=PATTERNS["sequential-handoff"].total_duration(),
			reasoning=f"Top {len(agents)} workers by skills match for {intent.topic} request",
			interruption_points=interruption_points_for(agents),
			analyses=analyses,
		)


class PredictiveWorkerSelector:
	"""
	Full pipeline: skills, prediction, pattern and sequence.

	Skills matching and prediction run first, then pattern selection
	and sequence optimization. The pattern recommendation decides who
	runs; the prediction lifts confidence, sets the duration estimate
	and supplies the pattern when the recommendation had to fall back.
	"""

	def __init__(
		self,
		matcher: SkillsMatcher,
		router: PredictiveRouter,
		pattern_selector: PatternSelector,
		optimizer: SequenceOptimizer,
		learner: FeedbackLearner,
		max_agents: int = 3,
	):
		self.matcher = matcher
		self.router = router
		self.pattern_selector = pattern_selector
		self.optimizer = optimizer
		self.learner = learner
		self.max_agents = max_agents

	async def select(
		self,
		request: str,
		user_id: str,
		profiles: list[WorkerProfile],
		intent: Intent,
		history: list[str],
	) -> RoutingDecision:
		analyses = await self.matcher.analyze_skills_match(request, profiles, history)
		behavior = self.learner.get_user_model(user_id)
		prediction = await self.router.predict_optimal_routing(request, user_id, analyses, None, behavior)

		opportunities = await self.matcher.detect_collaboration_opportunities(request, analyses)
		recommendation = await self.pattern_selector.recommend_pattern(request, analyses, opportunities)
		sequence = await self.optimizer.optimize_sequence(recommendation, analyses, request)

		agents = recommendation.selected_agents[:self.max_agents]
		if not agents:
			raise NoSuitableWorker(f"No worker selected for request: {request[:50]!r}")

		pattern = recommendation.pattern.name
		predicted = prediction.primary_route.pattern
		if recommendation.used_fallback and predicted in PATTERNS:
			pattern = predicted

		reasoning = [recommendation.reasoning]
		reasoning.append(
			f"Predicted route {' -> '.join(prediction.primary_route.agents)} via {predicted} "
			f"({prediction.primary_route.confidence:.0%})"
		)
		if prediction.risk_factors:
			reasoning.append(f"Risks: {'; '.join(prediction.risk_factors[:3])}")

		return RoutingDecision(
			selected_agents=agents,
			collaboration_pattern=pattern,
			confidence=max(prediction.primary_route.confidence, recommendation.confidence),
			estimated_duration=prediction.primary_route.estimated_duration or sequence.total_duration,
			reasoning=" ".join(reasoning),
			interruption_points=interruption_points_for(agents),
			analyses=analyses,
			recommendation=recommendation,
			sequence=sequence,
			prediction=prediction,
		)


# --- Plan building ---


class PlanBuilder(Protocol):
	def build(self, request: str, decision: RoutingDecision, context: ExecutionContext) -> ExecutionPlan:
		...


def new_plan_id() -> str:
	return str(uuid.uuid4())[:12]


class PerAgentPlanBuilder:
	"""One step per selected worker, each carrying the raw request."""

	def build(self, request: str, decision: RoutingDecision, context: ExecutionContext) -> ExecutionPlan:
		steps = [
			AgentStep(
				agent_name=name,
				action=f'Process user request: "{request}" from {name}\'s perspective',
				parameters={
					"user_message": request,
					"collaboration_pattern": decision.collaboration_pattern,
					"topic": context.topic,
				},
				expected_output=f"{name}'s analysis and response to the user request",
				can_interrupt=True,
				priority=i + 1,
			)
			for i, name in enumerate(decision.selected_agents)
		]
		return ExecutionPlan(
			id=new_plan_id(),
			selected_agents=list(decision.selected_agents),
			steps=steps,
			collaboration_pattern=decision.collaboration_pattern,
			interruption_points=list(decision.interruption_points),
			user_intent=request,
			context=context,
		)


class SequencePlanBuilder:
	"""
	One step per optimized-sequence step.

	Steps assigned to names outside the selection (such as a reviewer
	added by the quality variant) are dropped. Falls back to one step
	per worker when the decision carries no sequence.
	"""

	def __init__(self, variant: str = "base"):
		self.variant = variant
		self._fallback = PerAgentPlanBuilder()

	def build(self, request: str, decision: RoutingDecision, context: ExecutionContext) -> ExecutionPlan:
		sequence = decision.sequence
		if sequence is not None and self.variant != "base":
			sequence = sequence.get_alternative(self.variant) or sequence
		if sequence is None:
			return self._fallback.build(request, decision, context)

		selected = set(decision.selected_agents)
		steps = [
			AgentStep(
				agent_name=s.agent_name,
				action=f'{s.action}\nUser request: "{request}"',
				parameters={
					"user_message": request,
					"step_id": s.step_id,
					"dependencies": list(s.dependencies),
					"context_requirements": list(s.context_requirements),
				},
				expected_output=s.expected_output,
				can_interrupt=s.interruption_safety != InterruptionSafety.DANGEROUS,
				priority=s.priority,
			)
			for s in sequence.steps
			if s.agent_name in selected
		]
		if not steps:
			return self._fallback.build(request, decision, context)

		return ExecutionPlan(
			id=new_plan_id(),
			selected_agents=list(decision.selected_agents),
			steps=steps,
			collaboration_pattern=decision.collaboration_pattern,
			interruption_points=interruption_points_for([s.agent_name for s in steps]),
			user_intent=request,
			context=context,
		)


INTENT_STRATEGIES = {"keyword": KeywordIntentAnalyzer}
SELECTOR_STRATEGIES = ("skills", "predictive")
PLAN_STRATEGIES = {
	"per-agent": PerAgentPlanBuilder,
	"sequence": SequencePlanBuilder,
}


def create_intent_analyzer(name: str) -> IntentAnalyzer:
	if name not in INTENT_STRATEGIES:
		raise ValueError(f"Unknown intent strategy: {name}. Available: {', '.join(INTENT_STRATEGIES)}")
	return INTENT_STRATEGIES[name]()


def create_worker_selector(
	name: str,
	matcher: SkillsMatcher,
	router: PredictiveRouter,
	pattern_selector: PatternSelector,
	optimizer: SequenceOptimizer,
	learner: FeedbackLearner,
	max_agents: int = 3,
) -> WorkerSelector:
	if name == "skills":
		return SkillsWorkerSelector(matcher, max_agents)
	if name == "predictive":
		return PredictiveWorkerSelector(matcher, router, pattern_selector, optimizer, learner, max_agents)
	raise ValueError(f"Unknown selector strategy: {name}. Available: {', '.join(SELECTOR_STRATEGIES)}")


def create_plan_builder(name: str) -> PlanBuilder:
	if name not in PLAN_STRATEGIES:
		raise ValueError(f"Unknown plan strategy: {name}. Available: {', '.join(PLAN_STRATEGIES)}")
	return PLAN_STRATEGIES[name]()
