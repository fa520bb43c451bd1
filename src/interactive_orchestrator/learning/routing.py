"""
Predictive Router - Adjusts routing decisions with per-user history.

Responsibilities:
- Extract request features (length, complexity, request type, skill spread)
- Predict a primary route plus up to three alternatives
- Flag risks and optimization opportunities
- Predict where the user is likely to interrupt
- Keep exponential-moving-average metrics per worker, pattern and user
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..config import get_config
from ..exceptions import GenerationError, MalformedAnalysis
from ..llm import TextGenerator, request_analysis
from ..plans.models import (
	CollaborationRecommendation,
	RouteOption,
	RoutingFeatures,
	RoutingPrediction,
	SkillsMatchAnalysis,
	UserBehaviorModel,
	clamp,
)
from ..schemas import ROUTING_HINTS_SCHEMA

logger = logging.getLogger(__name__)

COMPLEX_KEYWORDS = ("analyze", "comprehensive", "detailed", "multiple", "complex")

REQUEST_TYPES = {
	"analysis": ("analyze", "examine", "investigate", "study"),
	"creation": ("create", "build", "develop", "design"),
	"optimization": ("optimize", "improve", "enhance", "refine"),
	"troubleshooting": ("fix", "debug", "solve", "troubleshoot"),
	"planning": ("plan", "strategy", "roadmap", "organize"),
}

DEFAULT_PATTERN = "sequential-handoff"
PATTERN_MULTIPLIERS = {"parallel-synthesis": 0.7, "debate-discussion": 1.5}
BASE_DURATION = 30000
PER_AGENT_DURATION = 15000
CONFIDENCE_THRESHOLD = 0.7
MAX_ALTERNATIVES = 3
MAX_ROUTE_AGENTS = 3
MAX_HISTORY = 100
SLOW_RESPONSE_MS = 60000


def calculate_complexity(request: str) -> float:
	lowered = request.lower()
	bonus = sum(0.2 for k in COMPLEX_KEYWORDS if k in lowered)
	return min(1.0, len(request) / 100 + bonus)


def classify_request_type(request: str) -> str:
	lowered = request.lower()
	for request_type, keywords in REQUEST_TYPES.items():
		if any(k in lowered for k in keywords):
			return request_type
	return "general"


def skill_variance(analyses: list[SkillsMatchAnalysis]) -> float:
	"""Population variance of the overall match scores."""
	if len(analyses) < 2:
		return 0.0
	scores = [a.overall_match for a in analyses]
	mean = sum(scores) / len(scores)
	return sum((s - mean) ** 2 for s in scores) / len(scores)


@dataclass
class RoutingMetrics:
	"""Moving-average metrics the router learns from outcomes."""
	agent_utilization: dict[str, int] = field(default_factory=dict)
	pattern_success_rates: dict[str, float] = field(default_factory=dict)
	average_response_times: dict[str, float] = field(default_factory=dict)
	user_satisfaction: dict[str, float] = field(default_factory=dict)
	interruption_rates: dict[str, float] = field(default_factory=dict)

	def to_dict(self) -> dict:
		return {
			"agent_utilization": dict(self.agent_utilization),
			"pattern_success_rates": dict(self.pattern_success_rates),
			"average_response_times": dict(self.average_response_times),
			"user_satisfaction": dict(self.user_satisfaction),
			"interruption_rates": dict(self.interruption_rates),
		}


@dataclass
class RoutingRecord:
	"""One routed request and how it turned out."""
	request: str
	agents: list[str]
	pattern: str
	success: bool
	satisfaction: float
	duration: float
	interrupted: bool
	timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class PredictiveRouter:
	"""
	Predicts routes from request features and learned metrics.

	Args:
		generator: Optional text generator for qualitative hints
		alpha: EMA smoothing factor (defaults to config.ema_alpha)
	"""

	def __init__(self, generator: Optional[TextGenerator] = None, alpha: Optional[float] = None):
		self.generator = generator
		self.alpha = alpha if alpha is not None else get_config().ema_alpha
		self.metrics = RoutingMetrics()
		self._accuracy: dict[str, float] = {}
		self._history: dict[str, list[RoutingRecord]] = {}

	def _ema(self, old: float, sample: float) -> float:
		return old * (1 - self.alpha) + sample * self.alpha

	def update_metrics(self, table: dict[str, float], name: str, sample: float, initial: Optional[float] = None) -> float:
		"""
		Fold one sample into a metric table.

		Args:
			table: One of the metric dicts
			name: Worker, pattern or user key
			sample: Observed value
			initial: Starting value when the key is new (defaults to the sample)
		"""
		old = table.get(name, sample if initial is None else initial)
		table[name] = self._ema(old, sample)
		return table[name]

	def get_accuracy(self, user_id: str) -> float:
		return self._accuracy.get(user_id, 0.5)

	async def predict_optimal_routing(
		self,
		request: str,
		user_id: str,
		analyses: list[SkillsMatchAnalysis],
		recommendation: Optional[CollaborationRecommendation] = None,
		behavior_model: Optional[UserBehaviorModel] = None,
	) -> RoutingPrediction:
		"""
		Predict the best route for a request.

		Args:
			request: User request text
			user_id: Requesting user
			analyses: Ranked skills analyses
			recommendation: Pattern recommendation, if already made
			behavior_model: The user's learned behavior, if any

		Returns:
			RoutingPrediction with primary route, alternatives, risks,
			optimizations and predicted interruption points
		"""
		logger.info(f"Predicting route for user {user_id}: {request[:50]!r}")
		features = self.extract_features(request, user_id, analyses, behavior_model)
		primary = self._primary_route(features, user_id, analyses, recommendation, behavior_model)
		risks = self._risk_factors(primary, user_id, behavior_model)
		optimizations = self._optimizations(primary, features, analyses)

		hints = await self._request_hints(request, primary, features)
		if hints:
			optimizations.extend(h for h in hints["optimizations"] if h not in optimizations)
			risks.extend(r for r in hints["risks"] if r not in risks)

		prediction = RoutingPrediction(
			primary_route=primary,
			alternative_routes=self._alternative_routes(features, analyses, primary),
			risk_factors=risks,
			optimizations=optimizations,
			interruption_points=self._interruption_points(primary, behavior_model),
			features=features,
		)
		logger.info(
			f"Route: {' -> '.join(primary.agents)} via {primary.pattern} "
			f"(confidence {primary.confidence:.0%}, satisfaction {primary.expected_satisfaction:.0%})"
		)
		return prediction

	async def _request_hints(
		self,
		request: str,
		primary: RouteOption,
		features: RoutingFeatures,
	) -> Optional[dict]:
		"""Qualitative hints from the generator; None when unavailable."""
		if self.generator is None:
			return None
		prompt = "\n".join([
			"ROUTING REVIEW",
			"",
			f'USER REQUEST: "{request}"',
			f"REQUEST TYPE: {features.request_type}",
			f"COMPLEXITY: {features.complexity:.0%}",
			f"ROUTE: {' -> '.join(primary.agents)} via {primary.pattern}",
			"",
			"Suggest optimizations and flag risks for this route in exactly this format:",
			"",
			ROUTING_HINTS_SCHEMA.format_instructions(),
		])
		try:
			return await request_analysis(self.generator, prompt, ROUTING_HINTS_SCHEMA)
		except (GenerationError, MalformedAnalysis) as e:
			logger.warning(f"Routing hints unavailable: {e}, using derived hints only")
			return None

	def extract_features(
		self,
		request: str,
		user_id: str,
		analyses: list[SkillsMatchAnalysis],
		behavior_model: Optional[UserBehaviorModel] = None,
	) -> RoutingFeatures:
		return RoutingFeatures(
			request_length=len(request),
			complexity=calculate_complexity(request),
			top_skill_score=analyses[0].overall_match if analyses else 0.0,
			skill_variance=skill_variance(analyses),
			user_interruption_tendency=behavior_model.interruption_frequency if behavior_model else 0.0,
			historical_satisfaction=self.metrics.user_satisfaction.get(user_id, 0.5),
			hour_of_day=datetime.now().hour,
			request_type=classify_request_type(request),
		)

	def _primary_route(
		self,
		features: RoutingFeatures,
		user_id: str,
		analyses: list[SkillsMatchAnalysis],
		recommendation: Optional[CollaborationRecommendation],
		behavior_model: Optional[UserBehaviorModel],
	) -> RouteOption:
		top = analyses[:MAX_ROUTE_AGENTS]
		agents = [a.agent_name for a in top]

		if features.complexity > 0.7:
			pattern = "parallel-synthesis"
		elif features.skill_variance > 0.2:
			pattern = "specialist-consultation"
		elif behavior_model and behavior_model.preferred_pattern() == "debate-discussion":
			pattern = "debate-discussion"
		elif recommendation is not None:
			pattern = recommendation.pattern.name
		else:
			pattern = DEFAULT_PATTERN

		top_confidence = top[0].confidence if top else 0.5
		learning_confidence = behavior_model.learning_confidence if behavior_model else 0.5
		confidence = self.get_accuracy(user_id) * 0.5 + top_confidence * 0.3 + learning_confidence * 0.2

		top_match = top[0].overall_match if top else 0.5
		satisfaction = features.historical_satisfaction * 0.6 + top_match * 0.4

		duration = (BASE_DURATION + len(agents) * PER_AGENT_DURATION) * PATTERN_MULTIPLIERS.get(pattern, 1.0)

		return RouteOption(
			agents=agents,
			pattern=pattern,
			confidence=clamp(confidence),
			expected_satisfaction=clamp(satisfaction),
			estimated_duration=round(duration),
			reason=f"Top {len(agents)} workers by skills match, {features.request_type} request",
		)

	def _alternative_routes(
		self,
		features: RoutingFeatures,
		analyses: list[SkillsMatchAnalysis],
		primary: RouteOption,
	) -> list[RouteOption]:
		alternatives: list[RouteOption] = []

		if analyses and analyses[0].overall_match > 0.8:
			alternatives.append(RouteOption(
				agents=[analyses[0].agent_name],
				pattern="single-expert",
				confidence=analyses[0].confidence,
				estimated_duration=BASE_DURATION + PER_AGENT_DURATION,
				reason="High skill match allows single worker handling",
			))

		if primary.pattern != "debate-discussion" and features.complexity > 0.5 and len(analyses) >= 2:
			alternatives.append(RouteOption(
				agents=[a.agent_name for a in analyses[:2]],
				pattern="debate-discussion",
				confidence=0.6,
				estimated_duration=round((BASE_DURATION + 2 * PER_AGENT_DURATION) * 1.5),
				reason="Complex request may benefit from debate",
			))

		if len(analyses) > 3 and features.complexity > 0.6:
			team = analyses[:4]
			alternatives.append(RouteOption(
				agents=[a.agent_name for a in team],
				pattern="workshop",
				confidence=0.5,
				estimated_duration=BASE_DURATION + len(team) * PER_AGENT_DURATION,
				reason="Comprehensive coverage with extended team",
			))

		return alternatives[:MAX_ALTERNATIVES]

	def _risk_factors(
		self,
		primary: RouteOption,
		user_id: str,
		behavior_model: Optional[UserBehaviorModel],
	) -> list[str]:
		risks = []
		if primary.confidence < CONFIDENCE_THRESHOLD:
			risks.append(f"Low confidence ({primary.confidence:.0%}) in routing prediction")

		if behavior_model:
			preferred = behavior_model.preferred_pattern()
			if preferred and preferred != primary.pattern:
				risks.append(f"Pattern mismatch with user preference (prefers {preferred})")

		recent = self._history.get(user_id, [])[-10:]
		failures = sum(1 for r in recent if not r.success)
		if recent and failures > len(recent) * 0.3:
			risks.append("High recent failure rate may indicate systematic issues")

		utilization = self.metrics.agent_utilization
		if utilization:
			average = sum(utilization.values()) / len(utilization)
			for agent in primary.agents:
				if utilization.get(agent, 0) > average * 2:
					risks.append(f"{agent} is heavily utilized and may be slower")

		return risks

	def _optimizations(
		self,
		primary: RouteOption,
		features: RoutingFeatures,
		analyses: list[SkillsMatchAnalysis],
	) -> list[str]:
		hints = []
		if analyses and analyses[0].collaboration_potential:
			hints.append(f"Consider involving: {', '.join(analyses[0].collaboration_potential[:2])}")

		rates = self.metrics.pattern_success_rates
		current = rates.get(primary.pattern, 0.5)
		if rates:
			best, best_rate = max(rates.items(), key=lambda kv: kv[1])
			if best != primary.pattern and best_rate > current + 0.2:
				hints.append(f"{best} pattern has {best_rate - current:.0%} higher success rate")

		if primary.pattern == DEFAULT_PATTERN and len(primary.agents) > 2:
			hints.append("Consider parallel execution for faster results")
		if features.request_type == "troubleshooting" and len(primary.agents) > 1:
			hints.append("Troubleshooting requests often resolve faster with a single expert")

		return hints

	def _interruption_points(
		self,
		primary: RouteOption,
		behavior_model: Optional[UserBehaviorModel],
	) -> list[int]:
		count = len(primary.agents)
		points = {0}
		if behavior_model and behavior_model.interruption_frequency > 0.2:
			points.update(range(1, count))
		elif count > 2:
			points.add(count // 2)

		if primary.pattern == "parallel-synthesis" and count:
			points.add(count - 1)

		return sorted(points)

	def record_routing_outcome(
		self,
		user_id: str,
		request: str,
		prediction: RoutingPrediction,
		success: bool,
		satisfaction: float,
		duration: float,
		interrupted: bool = False,
	) -> None:
		"""
		Learn from how a routed request turned out.

		Args:
			user_id: Requesting user
			request: Request text
			prediction: The prediction that was acted on
			success: Whether the run completed
			satisfaction: Observed satisfaction in [0, 1]
			duration: Actual duration in milliseconds
			interrupted: Whether the user interrupted the run
		"""
		route = prediction.primary_route
		history = self._history.setdefault(user_id, [])
		history.append(RoutingRecord(
			request=request,
			agents=list(route.agents),
			pattern=route.pattern,
			success=success,
			satisfaction=satisfaction,
			duration=duration,
			interrupted=interrupted,
		))
		if len(history) > MAX_HISTORY:
			del history[:-MAX_HISTORY]

		for agent in route.agents:
			self.metrics.agent_utilization[agent] = self.metrics.agent_utilization.get(agent, 0) + 1
			self.update_metrics(self.metrics.average_response_times, agent, duration)

		success_rate = self.update_metrics(self.metrics.pattern_success_rates, route.pattern, 1.0 if success else 0.0, 0.5)
		user_satisfaction = self.update_metrics(self.metrics.user_satisfaction, user_id, clamp(satisfaction), 0.5)
		self.update_metrics(self.metrics.interruption_rates, route.pattern, 1.0 if interrupted else 0.0, 0.0)

		hit = success and abs(route.expected_satisfaction - satisfaction) <= 0.3
		self._accuracy[user_id] = self._ema(self.get_accuracy(user_id), 1.0 if hit else 0.0)

		logger.info(
			f"Routing outcome for {user_id}: pattern success {success_rate:.0%}, "
			f"satisfaction {user_satisfaction:.0%}"
		)

	def get_routing_history(self, user_id: str) -> list[RoutingRecord]:
		return list(self._history.get(user_id, []))

	def get_routing_recommendations(self, user_id: Optional[str] = None) -> list[str]:
		"""Human-readable suggestions derived from the learned metrics."""
		recommendations = []
		utilization = self.metrics.agent_utilization
		if utilization:
			busiest = max(utilization.items(), key=lambda kv: kv[1])
			idlest = min(utilization.items(), key=lambda kv: kv[1])
			if busiest[1] > idlest[1] * 3:
				recommendations.append(
					f"Balance workload: {busiest[0]} is overutilized, consider {idlest[0]}"
				)

		rates = self.metrics.pattern_success_rates
		if rates:
			best, best_rate = max(rates.items(), key=lambda kv: kv[1])
			if best_rate > 0.8:
				recommendations.append(f"Prioritize {best} pattern ({best_rate:.0%} success)")

		interrupted = [p for p, rate in self.metrics.interruption_rates.items() if rate > 0.3]
		if interrupted:
			recommendations.append(f"Add more checkpoints for: {', '.join(interrupted)}")

		slow = [a for a, t in self.metrics.average_response_times.items() if t > SLOW_RESPONSE_MS]
		if slow:
			recommendations.append(f"Optimize or replace slow workers: {', '.join(slow)}")

		if user_id:
			history = self._history.get(user_id, [])
			if history:
				counts: dict[str, int] = {}
				for record in history:
					if record.success:
						for agent in record.agents:
							counts[agent] = counts.get(agent, 0) + 1
				if counts:
					favorite = max(counts.items(), key=lambda kv: kv[1])[0]
					recommendations.append(f"{favorite} most often succeeds for {user_id}")

		return recommendations

	def get_metrics(self) -> dict:
		return self.metrics.to_dict()
