"""
Feedback Learner - Builds per-user behavior models from feedback.

Responsibilities:
- Nudge worker and pattern preferences by feedback sentiment
- Track interruption tendency and typical session length
- Pick satisfaction drivers and frustration triggers out of messages
- Detect recurring (kind, worker, sentiment) feedback patterns
- Notice preference shifts and surface them as insights
"""

import logging
from datetime import datetime
from typing import Optional

from ..plans.models import (
	FeedbackEvent,
	FeedbackKind,
	FeedbackPattern,
	LearningInsight,
	Sentiment,
	UserBehaviorModel,
	clamp,
)

logger = logging.getLogger(__name__)

PREFERENCE_STEP = 0.05
NEUTRAL_PREFERENCE = 0.5
CONFIDENCE_STEP = 0.02
MAX_CONFIDENCE = 0.95
MAX_KEYWORDS = 5
PATTERN_THRESHOLD = 3
INSIGHT_MIN_CONFIDENCE = 0.3
RECENT_WINDOW = 20
RECENT_MIN_ITEMS = 10
SHIFT_THRESHOLD = 0.3
MAX_INSIGHTS = 50
MAX_FEEDBACK = 100

SATISFACTION_KEYWORDS = ("fast", "accurate", "helpful", "clear", "detailed", "perfect")
FRUSTRATION_KEYWORDS = ("slow", "wrong", "confused", "unclear", "repetitive", "irrelevant")

PATTERN_TYPES = {
	FeedbackKind.EXPLICIT: "satisfaction-driver",
	FeedbackKind.SATISFACTION: "satisfaction-driver",
	FeedbackKind.INTERRUPTION: "interruption-pattern",
	FeedbackKind.IMPLICIT: "timing-preference",
	FeedbackKind.COMPLETION: "agent-preference",
}


def _sentiment_step(sentiment: Sentiment) -> float:
	if sentiment == Sentiment.POSITIVE:
		return PREFERENCE_STEP
	if sentiment == Sentiment.NEGATIVE:
		return -PREFERENCE_STEP
	return 0.0


def _add_keywords(target: list[str], message: str, keywords: tuple[str, ...]) -> None:
	"""Append new keywords found in message, evicting the oldest past the cap."""
	lowered = message.lower()
	for keyword in keywords:
		if keyword in lowered and keyword not in target:
			target.append(keyword)
			if len(target) > MAX_KEYWORDS:
				target.pop(0)


class FeedbackLearner:
	"""Accumulates feedback into behavior models, patterns and insights."""

	def __init__(self):
		self._models: dict[str, UserBehaviorModel] = {}
		self._feedback: dict[str, list[FeedbackEvent]] = {}
		self._patterns: dict[str, FeedbackPattern] = {}
		self._pattern_outcomes: dict[str, dict[str, int]] = {}
		self._insights: list[LearningInsight] = []

	def process_feedback(self, event: FeedbackEvent) -> dict:
		"""
		Fold one feedback event into the user's model.

		Returns:
			Dict with the updated model, any actionable pattern and any new insight
		"""
		history = self._feedback.setdefault(event.user_id, [])
		history.append(event)
		if len(history) > MAX_FEEDBACK:
			del history[:-MAX_FEEDBACK]

		model = self._update_model(event)
		pattern = self._detect_pattern(event)
		insight = self._generate_insight(model)

		logger.info(
			f"Processed {event.kind.value} feedback from {event.user_id} "
			f"({event.sentiment.value}), confidence {model.learning_confidence:.2f}"
		)
		return {
			"user_id": event.user_id,
			"model": model,
			"pattern": pattern if pattern.actionable else None,
			"insight": insight,
		}

	def _update_model(self, event: FeedbackEvent) -> UserBehaviorModel:
		model = self._models.get(event.user_id)
		if model is None:
			model = UserBehaviorModel(user_id=event.user_id)
			self._models[event.user_id] = model

		step = _sentiment_step(event.sentiment)
		if event.agent_name:
			current = model.agent_preferences.get(event.agent_name, NEUTRAL_PREFERENCE)
			model.agent_preferences[event.agent_name] = clamp(current + step)
		if event.pattern:
			current = model.pattern_preferences.get(event.pattern, NEUTRAL_PREFERENCE)
			model.pattern_preferences[event.pattern] = clamp(current + step)

		if event.kind == FeedbackKind.INTERRUPTION:
			model.interruption_frequency = clamp(model.interruption_frequency * 0.9 + 0.1)
		else:
			model.interruption_frequency = model.interruption_frequency * 0.95

		if event.session_duration is not None:
			model.average_session_duration = model.average_session_duration * 0.8 + event.session_duration * 0.2

		if event.message:
			if event.sentiment == Sentiment.POSITIVE:
				_add_keywords(model.satisfaction_drivers, event.message, SATISFACTION_KEYWORDS)
			elif event.sentiment == Sentiment.NEGATIVE:
				_add_keywords(model.frustration_triggers, event.message, FRUSTRATION_KEYWORDS)

		model.feedback_count += 1
		if event.sentiment == Sentiment.POSITIVE:
			model.positive_count += 1
		model.recent_sentiments.append(event.sentiment)
		if len(model.recent_sentiments) > RECENT_WINDOW:
			model.recent_sentiments = model.recent_sentiments[-RECENT_WINDOW:]

		model.learning_confidence = min(MAX_CONFIDENCE, model.learning_confidence + CONFIDENCE_STEP)
		model.last_updated = datetime.now().isoformat()
		return model

	def _detect_pattern(self, event: FeedbackEvent) -> FeedbackPattern:
		key = f"{event.kind.value}-{event.agent_name or 'none'}-{event.sentiment.value}"
		pattern = self._patterns.get(key)
		if pattern is None:
			pattern = FeedbackPattern(key=key, pattern_type=PATTERN_TYPES[event.kind])
			self._patterns[key] = pattern

		outcomes = self._pattern_outcomes.setdefault(key, {"positive": 0, "negative": 0, "neutral": 0})
		if event.sentiment == Sentiment.POSITIVE:
			outcomes["positive"] += 1
		elif event.sentiment == Sentiment.NEGATIVE:
			outcomes["negative"] += 1
		else:
			outcomes["neutral"] += 1

		pattern.frequency += 1
		pattern.last_seen = datetime.now().isoformat()
		if pattern.frequency >= PATTERN_THRESHOLD:
			pattern.actionable = True
			pattern.recommendation = self._pattern_recommendation(pattern, outcomes)
			logger.debug(f"Feedback pattern {key} seen {pattern.frequency} times")
		return pattern

	def _pattern_recommendation(self, pattern: FeedbackPattern, outcomes: dict[str, int]) -> str:
		positive_rate = outcomes["positive"] / pattern.frequency
		negative_rate = outcomes["negative"] / pattern.frequency
		if pattern.pattern_type == "interruption-pattern" and pattern.frequency > 5:
			return "User frequently interrupts here - add explicit checkpoint"
		if positive_rate > 0.7:
			return f"Continue using this pattern - high satisfaction ({positive_rate:.0%})"
		if negative_rate > 0.5:
			return f"Avoid this pattern - causing frustration ({negative_rate:.0%} negative)"
		return "Keep monitoring this pattern"

	def _generate_insight(self, model: UserBehaviorModel) -> Optional[LearningInsight]:
		if model.learning_confidence < INSIGHT_MIN_CONFIDENCE:
			return None
		recent = model.recent_sentiments
		if len(recent) < RECENT_MIN_ITEMS or not model.feedback_count:
			return None

		recent_ratio = sum(1 for s in recent if s == Sentiment.POSITIVE) / len(recent)
		overall_ratio = model.positive_count / model.feedback_count
		if abs(recent_ratio - overall_ratio) <= SHIFT_THRESHOLD:
			return None

		direction = "more positive" if recent_ratio > overall_ratio else "more negative"
		insight = LearningInsight(
			user_id=model.user_id,
			type="preference-shift",
			description=f"User {model.user_id} feedback turned {direction} in recent interactions",
			confidence=0.7,
			recommendation="Re-evaluate routing strategies for this user",
		)
		self._insights.append(insight)
		if len(self._insights) > MAX_INSIGHTS:
			self._insights = self._insights[-MAX_INSIGHTS:]
		logger.info(f"Learning insight: {insight.description}")
		return insight

	def get_user_model(self, user_id: str) -> Optional[UserBehaviorModel]:
		return self._models.get(user_id)

	def get_learning_insights(self, limit: int = 10, user_id: Optional[str] = None) -> list[LearningInsight]:
		insights = self._insights
		if user_id:
			insights = [i for i in insights if i.user_id == user_id]
		return list(insights[-limit:])

	def get_feedback_patterns(self, actionable_only: bool = False) -> list[FeedbackPattern]:
		patterns = list(self._patterns.values())
		if actionable_only:
			patterns = [p for p in patterns if p.actionable]
		return sorted(patterns, key=lambda p: p.frequency, reverse=True)

	def predict_user_satisfaction(
		self,
		user_id: str,
		agents: list[str],
		pattern: str,
		estimated_duration: Optional[float] = None,
	) -> dict:
		"""
		Predict how satisfied a user will be with a proposed route.

		Returns:
			Dict with predicted_satisfaction, confidence, reasoning and risk_factors
		"""
		model = self._models.get(user_id)
		if model is None:
			return {
				"predicted_satisfaction": 0.5,
				"confidence": 0.1,
				"reasoning": "No behavior model available for user",
				"risk_factors": ["No historical data"],
			}

		satisfaction = 0.5
		reasons: list[str] = []
		risks: list[str] = []

		for agent in agents:
			preference = model.agent_preferences.get(agent, NEUTRAL_PREFERENCE)
			satisfaction += (preference - NEUTRAL_PREFERENCE) * 0.2
			if preference > 0.7:
				reasons.append(f"{agent} is a preferred worker")
			elif preference < 0.3:
				risks.append(f"{agent} has low preference score")

		pattern_preference = model.pattern_preferences.get(pattern, NEUTRAL_PREFERENCE)
		satisfaction += (pattern_preference - NEUTRAL_PREFERENCE) * 0.3
		if pattern_preference > 0.7:
			reasons.append(f"{pattern} is a preferred collaboration pattern")
		elif pattern_preference < 0.3:
			risks.append(f"{pattern} pattern has low preference")

		if estimated_duration is not None:
			if estimated_duration > model.average_session_duration * 1.5:
				satisfaction -= 0.1
				risks.append("Duration exceeds typical preference")
			elif estimated_duration < model.average_session_duration * 0.5:
				satisfaction += 0.1
				reasons.append("Quick execution aligns with preferences")

		return {
			"predicted_satisfaction": clamp(satisfaction),
			"confidence": model.learning_confidence,
			"reasoning": "; ".join(reasons) or "Based on historical patterns",
			"risk_factors": risks,
		}

	def get_optimization_recommendations(self, user_id: str) -> list[str]:
		model = self._models.get(user_id)
		if model is None:
			return ["Insufficient data for recommendations"]

		recommendations = []
		top_agents = sorted(model.agent_preferences.items(), key=lambda kv: kv[1], reverse=True)[:3]
		if top_agents:
			recommendations.append(f"Prioritize workers: {', '.join(a for a, _ in top_agents)}")

		preferred = model.preferred_pattern()
		if preferred:
			recommendations.append(f"Use {preferred} pattern when possible")

		if model.interruption_frequency > 0.3:
			recommendations.append("Design for frequent interruptions - add more checkpoints")
		elif model.interruption_frequency < 0.1:
			recommendations.append("User prefers uninterrupted flow - minimize checkpoints")

		if model.average_session_duration < 60000:
			recommendations.append("Keep interactions brief and focused")
		elif model.average_session_duration > 180000:
			recommendations.append("User comfortable with detailed, thorough responses")

		if model.satisfaction_drivers:
			recommendations.append(f"Focus on: {', '.join(model.satisfaction_drivers[:2])}")
		if model.frustration_triggers:
			recommendations.append(f"Avoid: {model.frustration_triggers[0]}")

		return recommendations

	def export_models(self) -> list[UserBehaviorModel]:
		return [m.model_copy(deep=True) for m in self._models.values()]

	def import_models(self, models: list[UserBehaviorModel]) -> int:
		"""Load persisted models, replacing any in-memory model for the same user."""
		for model in models:
			self._models[model.user_id] = model.model_copy(deep=True)
		logger.info(f"Imported {len(models)} behavior models")
		return len(models)
