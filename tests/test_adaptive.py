"""Tests for the adaptive planner."""

import pytest

from interactive_orchestrator.learning.adaptive import AdaptivePlanner, resolve_step_indices
from interactive_orchestrator.plans.models import (
	AdaptationType,
	AgentStep,
	ExecutionPlan,
	ExecutionState,
	FeedbackEvent,
	PlanAdaptation,
	Sentiment,
)

from .helpers import FakeGenerator, make_context

ADAPTATION_REPLY = (
	"ADAPTATION_TYPE: insert\n"
	"REASON: The user needs a clarification first\n"
	"CONFIDENCE: 85\n"
	"AFFECTED_STEPS: step-2\n"
	"ESTIMATED_IMPROVEMENT: 20\n"
	"RISK_LEVEL: low\n"
	"USER_SATISFACTION_PREDICTION: 80"
)


def _plan(*agents):
	return ExecutionPlan(
		id="plan-1",
		selected_agents=list(agents),
		steps=[AgentStep(agent_name=a, action=f"Answer as {a}") for a in agents],
		user_intent="Plan the launch",
		context=make_context(),
	)


def _feedback(message="too vague", agent_name=None):
	return FeedbackEvent(user_id="alice", sentiment=Sentiment.NEGATIVE, message=message, agent_name=agent_name)


def _adaptation(kind, steps=None):
	return PlanAdaptation(type=kind, confidence=0.9, affected_steps=steps or [])


class TestStepReferences:
	"""Tests for resolve_step_indices."""

	def test_ids_numbers_and_names(self):
		plan = _plan("A", "B", "C")
		assert resolve_step_indices(plan, ["step-2", "3", "c", "step-9"]) == [1, 2]

	def test_references_before_start_ignored(self):
		plan = _plan("A", "B", "C")
		assert resolve_step_indices(plan, ["step-1", "B", "step-3"], start=2) == [2]


class TestProposal:
	"""Tests for propose_adaptation and the confidence gate."""

	@pytest.mark.asyncio
	async def test_generated_proposal(self):
		generator = FakeGenerator([("ADAPTIVE PLAN OPTIMIZATION TASK", ADAPTATION_REPLY)])
		planner = AdaptivePlanner(generator, threshold=0.7)
		state = ExecutionState(plan=_plan("A", "B"))

		adaptation = await planner.propose_adaptation(state, _feedback())

		assert adaptation.type == AdaptationType.INSERT
		assert adaptation.confidence == pytest.approx(0.85)
		assert adaptation.affected_steps == ["step-2"]
		assert adaptation.estimated_improvement == 20.0
		assert adaptation.user_satisfaction_prediction == pytest.approx(0.8)
		assert planner.should_apply(adaptation) is True
		assert planner.get_adaptation_history("plan-1")[0]["applied"] is False
		assert 'Content: "too vague"' in generator.prompts[0]

	@pytest.mark.asyncio
	async def test_fallback_proposal_is_below_threshold(self):
		planner = AdaptivePlanner(FakeGenerator(), threshold=0.7)
		adaptation = await planner.propose_adaptation(ExecutionState(plan=_plan("A")), _feedback())

		assert adaptation.type == AdaptationType.MODIFY
		assert adaptation.confidence == 0.5
		assert adaptation.used_fallback is True
		assert planner.should_apply(adaptation) is False

	@pytest.mark.asyncio
	async def test_learning_patterns_accumulate(self):
		planner = AdaptivePlanner(FakeGenerator())
		state = ExecutionState(plan=_plan("A"))
		await planner.propose_adaptation(state, _feedback())
		await planner.propose_adaptation(state, _feedback())

		patterns = planner.get_learning_patterns()
		assert patterns["explicit-modify"]["frequency"] == 2


class TestApply:
	"""Tests for apply_adaptation on the remaining steps."""

	def test_insert_clarification_step(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		changed = planner.apply_adaptation(plan, _adaptation(AdaptationType.INSERT), _feedback(), start=1)

		assert changed == [1]
		assert len(plan.steps) == 4
		assert plan.steps[1].agent_name == "A"
		assert plan.steps[1].action == 'Clarify based on user feedback: "too vague"'

	def test_modify_only_touches_remaining_steps(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		changed = planner.apply_adaptation(plan, _adaptation(AdaptationType.MODIFY), _feedback(), start=1)

		assert changed == [1, 2]
		assert plan.steps[0].action == "Answer as A"
		assert plan.steps[1].action == 'Answer as B\nUser feedback to consider: "too vague"'

	def test_remove_affected_step(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		planner.apply_adaptation(plan, _adaptation(AdaptationType.REMOVE, ["step-3"]), _feedback(), start=1)
		assert [s.agent_name for s in plan.steps] == ["A", "B"]

	def test_reorder_moves_affected_first(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		planner.apply_adaptation(plan, _adaptation(AdaptationType.REORDER, ["C"]), _feedback(), start=0)
		assert [s.agent_name for s in plan.steps] == ["C", "A", "B"]

	def test_replace_criticized_worker(self):
		"""Negative feedback about a worker hands its steps to another registered worker."""
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		changed = planner.apply_adaptation(
			plan, _adaptation(AdaptationType.REPLACE), _feedback(agent_name="B"), start=1, available=["A", "B", "C"],
		)
		assert changed == [1]
		assert [s.agent_name for s in plan.steps] == ["A", "A", "C"]

	def test_replace_never_picks_criticized_or_unregistered(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		changed = planner.apply_adaptation(
			plan,
			_adaptation(AdaptationType.REPLACE, ["step-2", "step-3"]),
			_feedback(agent_name="Ghost"),
			start=1,
			available=["A", "B", "C"],
		)
		assert changed == [1, 2]
		assert "Ghost" not in [s.agent_name for s in plan.steps]
		assert [s.agent_name for s in plan.steps] == ["A", "A", "A"]

	def test_replace_with_requested_worker(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B", "C")
		event = FeedbackEvent(user_id="alice", sentiment=Sentiment.POSITIVE, message="more of D", agent_name="D")
		changed = planner.apply_adaptation(
			plan, _adaptation(AdaptationType.REPLACE), event, start=1, available=["A", "B", "C", "D"],
		)
		assert changed == [1, 2]
		assert [s.agent_name for s in plan.steps] == ["A", "D", "D"]
		assert "D" in plan.selected_agents

	def test_replace_without_registered_target_is_noop(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B")
		event = FeedbackEvent(user_id="alice", message="use Ghost", agent_name="Ghost")
		changed = planner.apply_adaptation(plan, _adaptation(AdaptationType.REPLACE), event, start=1, available=["A", "B"])
		assert changed == []
		assert [s.agent_name for s in plan.steps] == ["A", "B"]

		only = _plan("A")
		changed = planner.apply_adaptation(
			only, _adaptation(AdaptationType.REPLACE), _feedback(agent_name="A"), start=0, available=["A"],
		)
		assert changed == []
		assert [s.agent_name for s in only.steps] == ["A"]

	def test_insert_ignores_unregistered_worker(self):
		planner = AdaptivePlanner(FakeGenerator())
		plan = _plan("A", "B")
		planner.apply_adaptation(plan, _adaptation(AdaptationType.INSERT), _feedback(agent_name="Ghost"), start=1)
		assert plan.steps[1].agent_name == "A"

	@pytest.mark.asyncio
	async def test_apply_marks_history(self):
		generator = FakeGenerator([("ADAPTIVE PLAN OPTIMIZATION TASK", ADAPTATION_REPLY)])
		planner = AdaptivePlanner(generator)
		state = ExecutionState(plan=_plan("A", "B"))
		adaptation = await planner.propose_adaptation(state, _feedback())
		planner.apply_adaptation(state.plan, adaptation, _feedback(), start=0)
		assert planner.get_adaptation_history()[0]["applied"] is True


class TestAgentPerformance:
	"""Tests for record_agent_performance."""

	def test_moving_averages(self):
		planner = AdaptivePlanner(FakeGenerator())
		metrics = planner.record_agent_performance("A", True, 1000, satisfaction=1.0, interrupted=True)

		assert metrics["success_rate"] == pytest.approx(0.65)
		assert metrics["average_response_time"] == pytest.approx(3800)
		assert metrics["user_satisfaction"] == pytest.approx(0.65)
		assert metrics["interruption_rate"] == pytest.approx(0.3)
		assert planner.get_agent_performance()["A"] == metrics
