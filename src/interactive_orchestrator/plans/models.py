"""
Routing Models - Pydantic schemas for routing decisions, plans and learned behavior.

Defines worker profiles, per-request analyses, collaboration templates,
optimized sequences, execution plans and state, and the per-user
behavior model that feedback accumulates into.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
	"""Clamp a score into [low, high]."""
	return max(low, min(high, value))


class ComplexityLevel(str, Enum):
	"""How demanding a worker's typical tasks are."""
	BASIC = "basic"
	INTERMEDIATE = "intermediate"
	ADVANCED = "advanced"
	EXPERT = "expert"


class Level(str, Enum):
	"""Three-step level used for tolerance, urgency and risk."""
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"


class InterruptionSafety(str, Enum):
	"""Whether a step can be interrupted without damage."""
	SAFE = "safe"
	WARNING = "warning"
	DANGEROUS = "dangerous"


class ExecutionStatus(str, Enum):
	"""Status of a running execution."""
	RUNNING = "running"
	PAUSED = "paused"
	INTERRUPTED = "interrupted"
	COMPLETED = "completed"
	FAILED = "failed"


class InterruptionType(str, Enum):
	"""Kind of operator interruption."""
	STOP = "stop"
	REDIRECT = "redirect"
	AGENT_SWITCH = "agent_switch"
	NEW_PLAN = "new_plan"
	CLARIFICATION = "clarification"
	PAUSE = "pause"


class FeedbackKind(str, Enum):
	"""Source of a feedback event."""
	EXPLICIT = "explicit"
	IMPLICIT = "implicit"
	INTERRUPTION = "interruption"
	SATISFACTION = "satisfaction"
	COMPLETION = "completion"


class Sentiment(str, Enum):
	"""Sentiment of a feedback event."""
	POSITIVE = "positive"
	NEGATIVE = "negative"
	NEUTRAL = "neutral"
	MIXED = "mixed"


class AdaptationType(str, Enum):
	"""Kind of change proposed for a running plan."""
	REORDER = "reorder"
	REPLACE = "replace"
	INSERT = "insert"
	REMOVE = "remove"
	REDESIGN = "redesign"
	MODIFY = "modify"


class RiskType(str, Enum):
	"""Category of a sequence risk."""
	DEPENDENCY = "dependency"
	TIMING = "timing"
	CONTEXT_LOSS = "context-loss"
	AGENT_OVERLOAD = "agent-overload"
	INTERRUPTION_DAMAGE = "interruption-damage"


class RiskSeverity(str, Enum):
	"""Severity of a sequence risk."""
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"
	CRITICAL = "critical"


# --- Workers and analyses ---


class WorkerProfile(BaseModel):
	"""Capability profile of a worker. Fixed once the worker is registered."""
	model_config = ConfigDict(frozen=True)

	name: str = Field(description="Worker name")
	primary_skills: list[str] = Field(default_factory=list)
	secondary_skills: list[str] = Field(default_factory=list)
	domain_expertise: list[str] = Field(default_factory=list)
	task_types: list[str] = Field(default_factory=list)
	complexity_level: ComplexityLevel = Field(default=ComplexityLevel.INTERMEDIATE)
	interruption_tolerance: Level = Field(default=Level.MEDIUM)
	context_preservation: float = Field(default=0.7, ge=0.0, le=1.0)
	confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
	collaboration_strengths: list[str] = Field(default_factory=list)

	def all_skills(self) -> list[str]:
		"""Every skill-like tag on the profile, deduplicated in order."""
		seen: list[str] = []
		for tag in self.primary_skills + self.secondary_skills + self.domain_expertise + self.task_types:
			if tag not in seen:
				seen.append(tag)
		return seen


class SkillsMatchAnalysis(BaseModel):
	"""How well one worker fits one request."""
	agent_name: str
	primary_skill_match: float = Field(default=0.5, ge=0.0, le=1.0)
	secondary_skill_match: float = Field(default=0.5, ge=0.0, le=1.0)
	domain_expertise_match: float = Field(default=0.5, ge=0.0, le=1.0)
	task_type_match: float = Field(default=0.5, ge=0.0, le=1.0)
	overall_match: float = Field(default=0.5, ge=0.0, le=1.0)
	confidence: float = Field(default=0.5, ge=0.0, le=1.0)
	estimated_performance: float = Field(default=0.5, ge=0.0, le=1.0)
	reasoning: str = ""
	risk_factors: list[str] = Field(default_factory=list)
	collaboration_potential: list[str] = Field(default_factory=list)
	suitability_rank: int = 0
	used_fallback: bool = False


class CollaborationOpportunity(BaseModel):
	"""Synergy between two or three workers for one request."""
	agents: list[str]
	synergy_score: float = Field(ge=0.0, le=1.0)
	skill_complementarity: float = Field(default=0.5, ge=0.0, le=1.0)
	collaboration_pattern: str = "sequential-handoff"
	expected_outcome: str = ""
	reasoning: str = ""
	risk_level: Level = Level.MEDIUM


# --- Collaboration patterns ---


class PatternStep(BaseModel):
	"""One step of a collaboration template. Participants are roles until resolved."""
	step_type: str = Field(description="agent_action, evaluation, synthesis, handoff, parallel_start, parallel_end")
	description: str
	participants: list[str] = Field(default_factory=list)
	duration: int = Field(description="Estimated milliseconds")
	interruptible: bool = True
	output_expected: str = ""


class CollaborationPattern(BaseModel):
	"""A named collaboration template."""
	name: str
	description: str
	suitable_for: list[str] = Field(default_factory=list)
	min_agents: int = 2
	max_agents: int = 4
	steps: list[PatternStep] = Field(default_factory=list)
	benefits: list[str] = Field(default_factory=list)
	risks: list[str] = Field(default_factory=list)
	success_criteria: list[str] = Field(default_factory=list)

	def total_duration(self) -> int:
		return sum(step.duration for step in self.steps)


class CollaborationRecommendation(BaseModel):
	"""A chosen pattern resolved to concrete workers."""
	pattern: CollaborationPattern
	selected_agents: list[str] = Field(default_factory=list)
	confidence: float = Field(ge=0.0, le=1.0)
	reasoning: str = ""
	steps: list[PatternStep] = Field(default_factory=list, description="Steps with concrete participants")
	estimated_duration: int = 0
	risk_assessment: str = ""
	alternative_patterns: list[str] = Field(default_factory=list)
	used_fallback: bool = False


# --- Sequences ---


class SequenceStep(BaseModel):
	"""A fully specified step of an optimized sequence."""
	step_id: str
	agent_name: str
	action: str
	dependencies: list[str] = Field(default_factory=list)
	estimated_duration: int = Field(default=30000, description="Milliseconds")
	priority: int = Field(default=5, ge=1, le=10)
	interruption_safety: InterruptionSafety = InterruptionSafety.SAFE
	context_requirements: list[str] = Field(default_factory=list)
	expected_output: str = ""
	quality_checkpoints: list[str] = Field(default_factory=list)
	context_preservation: float = Field(default=0.5, ge=0.0, le=1.0)


class SequenceRisk(BaseModel):
	"""A classified risk attached to a sequence."""
	type: RiskType
	severity: RiskSeverity
	description: str
	mitigation: str


class OptimizedSequence(BaseModel):
	"""An ordered set of steps with annotations and mechanical alternatives."""
	variant: str = Field(default="base", description="base, speed or quality")
	steps: list[SequenceStep] = Field(default_factory=list)
	total_duration: int = 0
	interruption_points: list[str] = Field(default_factory=list, description="Step ids safe to interrupt")
	risks: list[SequenceRisk] = Field(default_factory=list)
	optimization_reasons: list[str] = Field(default_factory=list)
	alternatives: list["OptimizedSequence"] = Field(default_factory=list)
	used_fallback: bool = False

	def get_alternative(self, variant: str) -> Optional["OptimizedSequence"]:
		for alt in self.alternatives:
			if alt.variant == variant:
				return alt
		return None


# --- Routing ---


class RoutingFeatures(BaseModel):
	"""Features extracted from a request for predictive routing."""
	request_length: int = 0
	complexity: float = Field(default=0.0, ge=0.0, le=1.0)
	top_skill_score: float = Field(default=0.0, ge=0.0, le=1.0)
	skill_variance: float = Field(default=0.0, ge=0.0)
	user_interruption_tendency: float = Field(default=0.0, ge=0.0, le=1.0)
	historical_satisfaction: float = Field(default=0.5, ge=0.0, le=1.0)
	hour_of_day: int = 0
	request_type: str = "general"


class RouteOption(BaseModel):
	"""A candidate route: who runs, and in which pattern."""
	agents: list[str] = Field(default_factory=list)
	pattern: str = "sequential-handoff"
	confidence: float = Field(default=0.5, ge=0.0, le=1.0)
	expected_satisfaction: float = Field(default=0.5, ge=0.0, le=1.0)
	estimated_duration: int = 0
	reason: str = ""


class RoutingPrediction(BaseModel):
	"""Primary route plus ranked alternatives, risks and hints."""
	primary_route: RouteOption
	alternative_routes: list[RouteOption] = Field(default_factory=list, max_length=3)
	risk_factors: list[str] = Field(default_factory=list)
	optimizations: list[str] = Field(default_factory=list)
	interruption_points: list[int] = Field(default_factory=list)
	features: RoutingFeatures = Field(default_factory=RoutingFeatures)


# --- Plans and execution ---


class ExecutionContext(BaseModel):
	"""Session-scoped context shared by every step of a plan."""
	session_id: str
	user_id: str
	topic: str = "general"
	user_goals: list[str] = Field(default_factory=list)
	conversation_history: list[str] = Field(default_factory=list)


class AgentStep(BaseModel):
	"""One worker turn in an execution plan."""
	agent_name: str
	action: str
	parameters: dict[str, Any] = Field(default_factory=dict)
	expected_output: str = ""
	can_interrupt: bool = True
	priority: int = 1


class InterruptionPoint(BaseModel):
	"""A step boundary where interrupting is expected to be cheap."""
	step_index: int
	agent_name: str
	safety: InterruptionSafety = InterruptionSafety.SAFE
	context_preservation: float = Field(default=0.8, ge=0.0, le=1.0)


class RoutingDecision(BaseModel):
	"""Merged output of analysis and prediction for one request."""
	selected_agents: list[str]
	collaboration_pattern: str
	confidence: float = Field(ge=0.0, le=1.0)
	estimated_duration: int = 0
	reasoning: str = ""
	interruption_points: list[InterruptionPoint] = Field(default_factory=list)
	analyses: list[SkillsMatchAnalysis] = Field(default_factory=list)
	recommendation: Optional[CollaborationRecommendation] = None
	sequence: Optional[OptimizedSequence] = None
	prediction: Optional[RoutingPrediction] = None


class ExecutionPlan(BaseModel):
	"""The concrete, ordered per-worker steps for one request."""
	id: str
	selected_agents: list[str] = Field(default_factory=list)
	steps: list[AgentStep] = Field(default_factory=list)
	collaboration_pattern: str = "sequential-handoff"
	interruption_points: list[InterruptionPoint] = Field(default_factory=list)
	user_intent: str = ""
	context: ExecutionContext
	created_at: str = Field(default_factory=lambda: datetime.now().isoformat())


class Interruption(BaseModel):
	"""An operator signal that can alter or halt a running plan."""
	session_id: str
	type: InterruptionType
	message: str
	timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
	target_agent: Optional[str] = None
	new_direction: Optional[str] = None
	urgency: Level = Level.MEDIUM


class ExecutionState(BaseModel):
	"""
	The mutable record of one run.

	Only the execution engine mutates it. Once a run reaches a
	terminal status the state is archived and stops being live.
	"""
	plan: ExecutionPlan
	current_step: int = 0
	status: ExecutionStatus = ExecutionStatus.RUNNING
	started_at: str = Field(default_factory=lambda: datetime.now().isoformat())
	paused_at: Optional[str] = None
	resumed_at: Optional[str] = None
	finished_at: Optional[str] = None
	interruption_history: list[Interruption] = Field(default_factory=list)
	outputs: dict[int, str] = Field(default_factory=dict)
	status_history: list[ExecutionStatus] = Field(default_factory=lambda: [ExecutionStatus.RUNNING])
	error: Optional[str] = None

	@property
	def session_id(self) -> str:
		return self.plan.context.session_id

	def is_terminal(self) -> bool:
		return self.status in (
			ExecutionStatus.COMPLETED,
			ExecutionStatus.FAILED,
			ExecutionStatus.INTERRUPTED,
		)

	def get_progress(self) -> dict:
		"""Calculate step progress."""
		total = len(self.plan.steps)
		done = len(self.outputs)
		return {
			"total_steps": total,
			"completed_steps": done,
			"current_step": self.current_step,
			"percent_complete": round(done / total * 100, 1) if total > 0 else 0,
		}


# --- Learning ---


class FeedbackEvent(BaseModel):
	"""Feedback tied to a user, a worker and a pattern."""
	user_id: str
	session_id: Optional[str] = None
	kind: FeedbackKind = FeedbackKind.EXPLICIT
	sentiment: Sentiment = Sentiment.NEUTRAL
	agent_name: Optional[str] = None
	pattern: Optional[str] = None
	message: str = ""
	session_duration: Optional[float] = Field(default=None, description="Milliseconds")
	timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class UserBehaviorModel(BaseModel):
	"""Durable per-user record of preferences and tendencies."""
	user_id: str
	agent_preferences: dict[str, float] = Field(default_factory=dict)
	pattern_preferences: dict[str, float] = Field(default_factory=dict)
	interruption_frequency: float = Field(default=0.0, ge=0.0, le=1.0)
	average_session_duration: float = 120000.0
	satisfaction_drivers: list[str] = Field(default_factory=list, max_length=5)
	frustration_triggers: list[str] = Field(default_factory=list, max_length=5)
	learning_confidence: float = Field(default=0.1, ge=0.0, le=1.0)
	feedback_count: int = 0
	positive_count: int = 0
	recent_sentiments: list[Sentiment] = Field(default_factory=list)
	last_updated: str = Field(default_factory=lambda: datetime.now().isoformat())

	def preferred_pattern(self) -> Optional[str]:
		"""Pattern with the highest preference score, if any."""
		if not self.pattern_preferences:
			return None
		return max(self.pattern_preferences.items(), key=lambda kv: kv[1])[0]


class FeedbackPattern(BaseModel):
	"""A recurring (kind, worker, sentiment) combination."""
	key: str
	pattern_type: str = "preference"
	frequency: int = 0
	actionable: bool = False
	recommendation: str = ""
	last_seen: str = Field(default_factory=lambda: datetime.now().isoformat())


class LearningInsight(BaseModel):
	"""Something the learner noticed about a user."""
	user_id: str
	type: str = Field(description="preference-shift, pattern-discovery or performance-change")
	description: str
	confidence: float = Field(ge=0.0, le=1.0)
	actionable: bool = True
	recommendation: str = ""
	timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class PlanAdaptation(BaseModel):
	"""A proposed change to a running plan."""
	type: AdaptationType = AdaptationType.MODIFY
	reason: str = ""
	confidence: float = Field(default=0.5, ge=0.0, le=1.0)
	affected_steps: list[str] = Field(default_factory=list)
	estimated_improvement: float = 0.0
	risk_level: Level = Level.LOW
	user_satisfaction_prediction: float = Field(default=0.6, ge=0.0, le=1.0)
	used_fallback: bool = False


OptimizedSequence.model_rebuild()
