"""Tests for the feedback learner."""

import pytest

from interactive_orchestrator.learning.feedback import FeedbackLearner
from interactive_orchestrator.plans.models import (
	FeedbackEvent,
	FeedbackKind,
	Sentiment,
	UserBehaviorModel,
)


def _event(sentiment=Sentiment.POSITIVE, kind=FeedbackKind.EXPLICIT, **kwargs):
	kwargs.setdefault("user_id", "alice")
	return FeedbackEvent(kind=kind, sentiment=sentiment, **kwargs)


class TestModelUpdates:
	"""Tests for folding feedback into behavior models."""

	def test_positive_feedback_nudges_preferences(self):
		learner = FeedbackLearner()
		result = learner.process_feedback(_event(agent_name="CEO", pattern="debate-discussion"))
		model = result["model"]

		assert model.agent_preferences["CEO"] == pytest.approx(0.55)
		assert model.pattern_preferences["debate-discussion"] == pytest.approx(0.55)
		assert model.feedback_count == 1
		assert model.positive_count == 1
		assert model.learning_confidence == pytest.approx(0.12)
		assert learner.get_user_model("alice") is model

	def test_preferences_stay_in_bounds(self):
		"""Repeated negative feedback bottoms out at zero."""
		learner = FeedbackLearner()
		for _ in range(20):
			learner.process_feedback(_event(Sentiment.NEGATIVE, agent_name="CEO"))
		model = learner.get_user_model("alice")
		assert model.agent_preferences["CEO"] == 0.0

	def test_confidence_is_capped(self):
		learner = FeedbackLearner()
		for _ in range(60):
			learner.process_feedback(_event(Sentiment.NEUTRAL))
		assert learner.get_user_model("alice").learning_confidence == 0.95

	def test_interruption_frequency(self):
		"""Interruptions raise the tendency; other feedback decays it."""
		learner = FeedbackLearner()
		learner.process_feedback(_event(Sentiment.NEUTRAL, FeedbackKind.INTERRUPTION))
		learner.process_feedback(_event(Sentiment.NEUTRAL, FeedbackKind.INTERRUPTION))
		model = learner.get_user_model("alice")
		assert model.interruption_frequency == pytest.approx(0.19)

		learner.process_feedback(_event(Sentiment.POSITIVE))
		assert model.interruption_frequency == pytest.approx(0.19 * 0.95)

	def test_session_duration_average(self):
		learner = FeedbackLearner()
		learner.process_feedback(_event(session_duration=60000))
		assert learner.get_user_model("alice").average_session_duration == pytest.approx(108000)

	def test_keyword_lists_capped_at_five(self):
		"""The oldest driver is evicted once a sixth is learned."""
		learner = FeedbackLearner()
		learner.process_feedback(_event(message="fast, accurate, helpful, clear, detailed and perfect"))
		model = learner.get_user_model("alice")
		assert model.satisfaction_drivers == ["accurate", "helpful", "clear", "detailed", "perfect"]

	def test_frustration_triggers_from_negative_feedback(self):
		learner = FeedbackLearner()
		learner.process_feedback(_event(Sentiment.NEGATIVE, message="Too slow and a bit repetitive"))
		model = learner.get_user_model("alice")
		assert model.frustration_triggers == ["slow", "repetitive"]
		assert model.satisfaction_drivers == []


class TestPatternsAndInsights:
	"""Tests for feedback pattern detection and insights."""

	def test_pattern_actionable_at_three(self):
		learner = FeedbackLearner()
		first = learner.process_feedback(_event(agent_name="CEO"))
		second = learner.process_feedback(_event(agent_name="CEO"))
		third = learner.process_feedback(_event(agent_name="CEO"))

		assert first["pattern"] is None
		assert second["pattern"] is None
		pattern = third["pattern"]
		assert pattern.key == "explicit-CEO-positive"
		assert pattern.frequency == 3
		assert pattern.pattern_type == "satisfaction-driver"
		assert pattern.recommendation.startswith("Continue using this pattern")

	def test_actionable_filter(self):
		learner = FeedbackLearner()
		for _ in range(3):
			learner.process_feedback(_event(Sentiment.NEGATIVE, agent_name="CEO"))
		learner.process_feedback(_event(agent_name="TechLead"))

		actionable = learner.get_feedback_patterns(actionable_only=True)
		assert [p.key for p in actionable] == ["explicit-CEO-negative"]
		assert actionable[0].recommendation.startswith("Avoid this pattern")
		assert len(learner.get_feedback_patterns()) == 2

	def test_preference_shift_insight(self):
		"""A run of positive feedback after mostly negative history is noticed."""
		learner = FeedbackLearner()
		for _ in range(40):
			learner.process_feedback(_event(Sentiment.NEGATIVE, user_id="bob"))
		for _ in range(20):
			learner.process_feedback(_event(Sentiment.POSITIVE, user_id="bob"))

		insights = learner.get_learning_insights(user_id="bob")
		assert insights
		assert insights[-1].type == "preference-shift"
		assert "more positive" in insights[-1].description

	def test_no_insight_for_steady_feedback(self):
		learner = FeedbackLearner()
		for _ in range(30):
			learner.process_feedback(_event(Sentiment.POSITIVE))
		assert learner.get_learning_insights() == []


class TestPredictions:
	"""Tests for satisfaction prediction and recommendations."""

	def test_prediction_without_model(self):
		prediction = FeedbackLearner().predict_user_satisfaction("nobody", ["CEO"], "sequential-handoff")
		assert prediction["predicted_satisfaction"] == 0.5
		assert prediction["confidence"] == 0.1

	def test_prediction_from_preferences(self):
		learner = FeedbackLearner()
		learner.import_models([UserBehaviorModel(
			user_id="alice",
			agent_preferences={"CEO": 0.9},
			pattern_preferences={"debate-discussion": 0.1},
			learning_confidence=0.4,
		)])
		prediction = learner.predict_user_satisfaction("alice", ["CEO"], "debate-discussion", 400000)

		# 0.5 + 0.4*0.2 - 0.4*0.3 - 0.1 for an overlong session
		assert prediction["predicted_satisfaction"] == pytest.approx(0.36)
		assert prediction["confidence"] == 0.4
		assert "CEO is a preferred worker" in prediction["reasoning"]
		assert "debate-discussion pattern has low preference" in prediction["risk_factors"]
		assert "Duration exceeds typical preference" in prediction["risk_factors"]

	def test_recommendations(self):
		learner = FeedbackLearner()
		assert learner.get_optimization_recommendations("alice") == ["Insufficient data for recommendations"]

		learner.process_feedback(_event(agent_name="CEO", pattern="review-refinement", message="very clear"))
		recommendations = learner.get_optimization_recommendations("alice")
		assert "Prioritize workers: CEO" in recommendations
		assert "Use review-refinement pattern when possible" in recommendations
		assert "Focus on: clear" in recommendations

	def test_export_is_a_copy(self):
		learner = FeedbackLearner()
		learner.process_feedback(_event(agent_name="CEO"))
		exported = learner.export_models()
		exported[0].agent_preferences["CEO"] = 0.0
		assert learner.get_user_model("alice").agent_preferences["CEO"] == pytest.approx(0.55)

	def test_import_replaces_model(self):
		learner = FeedbackLearner()
		learner.process_feedback(_event())
		count = learner.import_models([UserBehaviorModel(user_id="alice", feedback_count=42)])
		assert count == 1
		assert learner.get_user_model("alice").feedback_count == 42
