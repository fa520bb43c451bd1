"""
Sequence Optimizer - Turns a collaboration recommendation into ordered steps.

Responsibilities:
- Ask the text generator for a step-by-step sequence with durations,
  priorities and interruption-safety annotations
- Fall back to one chained, interruption-safe step per worker
- Derive speed and quality alternatives mechanically
- Classify free-text risks into typed, mitigated risks
- Track how sequences performed once executed
"""

import logging
from collections import Counter

from ..exceptions import GenerationError, MalformedAnalysis
from ..llm import TextGenerator
from ..plans.models import (
	CollaborationRecommendation,
	InterruptionSafety,
	OptimizedSequence,
	RiskSeverity,
	RiskType,
	SequenceRisk,
	SequenceStep,
	SkillsMatchAnalysis,
	clamp,
)
from ..schemas import SEQUENCE_SCHEMA, SEQUENCE_STEP_SCHEMA, split_blocks

logger = logging.getLogger(__name__)

FALLBACK_STEP_DURATION = 30000
SPEED_FACTOR = 0.8
REVIEW_PRIORITY_THRESHOLD = 7
REVIEWER_NAME = "Quality Reviewer"
REVIEW_STEP_DURATION = 15000

MITIGATIONS = {
	RiskType.DEPENDENCY: "Validate dependencies before execution",
	RiskType.TIMING: "Monitor execution timeline closely",
	RiskType.CONTEXT_LOSS: "Implement context preservation mechanisms",
	RiskType.AGENT_OVERLOAD: "Balance workload distribution",
	RiskType.INTERRUPTION_DAMAGE: "Use safe interruption points only",
}


def infer_risk_type(text: str) -> RiskType:
	"""Classify a risk statement by keyword."""
	lowered = text.lower()
	if "depend" in lowered:
		return RiskType.DEPENDENCY
	if "timing" in lowered or "duration" in lowered:
		return RiskType.TIMING
	if "context" in lowered or "handoff" in lowered:
		return RiskType.CONTEXT_LOSS
	if "overload" in lowered or "capacity" in lowered:
		return RiskType.AGENT_OVERLOAD
	if "interrupt" in lowered:
		return RiskType.INTERRUPTION_DAMAGE
	return RiskType.DEPENDENCY


def infer_risk_severity(text: str) -> RiskSeverity:
	"""Infer severity from intensity words."""
	lowered = text.lower()
	if "critical" in lowered or "major" in lowered:
		return RiskSeverity.CRITICAL
	if "high" in lowered or "significant" in lowered:
		return RiskSeverity.HIGH
	if "medium" in lowered or "moderate" in lowered:
		return RiskSeverity.MEDIUM
	return RiskSeverity.LOW


def classify_risk(text: str) -> SequenceRisk:
	risk_type = infer_risk_type(text)
	return SequenceRisk(
		type=risk_type,
		severity=infer_risk_severity(text),
		description=text,
		mitigation=MITIGATIONS[risk_type],
	)


def context_preservation(index: int, total: int, priority: int) -> float:
	"""Later and higher-priority steps preserve more context."""
	position = index / total if total else 0.0
	return min(1.0, (position + priority / 10) / 2)


def quality_checkpoints(action: str) -> list[str]:
	lowered = action.lower()
	if "analyz" in lowered or "analys" in lowered:
		return ["Analysis completeness", "Data accuracy", "Conclusion validity"]
	if "review" in lowered:
		return ["Review thoroughness", "Feedback quality", "Improvement suggestions"]
	return ["Output completeness", "Relevance check", "Quality assessment"]


def safe_points(steps: list[SequenceStep]) -> list[str]:
	return [s.step_id for s in steps if s.interruption_safety == InterruptionSafety.SAFE]


def _with_preservation(steps: list[SequenceStep]) -> list[SequenceStep]:
	total = len(steps)
	return [
		s.model_copy(update={"context_preservation": context_preservation(i, total, s.priority)})
		for i, s in enumerate(steps)
	]


class SequenceOptimizer:
	"""
	Builds optimized execution sequences.

	Args:
		generator: Text generator used for sequence planning
	"""

	def __init__(self, generator: TextGenerator):
		self.generator = generator
		self._executions: list[dict] = []

	async def optimize_sequence(
		self,
		recommendation: CollaborationRecommendation,
		analyses: list[SkillsMatchAnalysis],
		request: str = "",
	) -> OptimizedSequence:
		"""
		Build the sequence for a recommendation.

		The base sequence always carries a speed and a quality alternative.
		"""
		logger.info(
			f"Planning sequence for {recommendation.pattern.name} "
			f"with {len(recommendation.selected_agents)} workers"
		)
		prompt = self._build_prompt(recommendation, analyses, request)

		try:
			sequence = await self._request_sequence(prompt, recommendation)
		except (GenerationError, MalformedAnalysis) as e:
			logger.warning(f"Sequence planning failed: {e}, using fallback")
			sequence = self.fallback_sequence(recommendation)

		sequence.alternatives = [
			self.speed_variant(sequence),
			self.quality_variant(sequence),
		]
		return sequence

	async def _request_sequence(
		self,
		prompt: str,
		recommendation: CollaborationRecommendation,
	) -> OptimizedSequence:
		response = await self.generator.generate(prompt)
		blocks = split_blocks(response, "STEP_ID")
		if not blocks:
			raise MalformedAnalysis(SEQUENCE_STEP_SCHEMA.name, "no STEP_ID blocks")

		known = {name.lower(): name for name in recommendation.selected_agents}
		steps: list[SequenceStep] = []
		for block in blocks:
			data = SEQUENCE_STEP_SCHEMA.parse(block)
			agent = known.get(data["agent"].lower())
			if agent is None:
				raise MalformedAnalysis(SEQUENCE_STEP_SCHEMA.name, f"unknown agent {data['agent']!r}")
			priority = max(1, min(10, data["priority"]))
			steps.append(SequenceStep(
				step_id=data["step_id"],
				agent_name=agent,
				action=data["action"],
				dependencies=[d for d in data["dependencies"] if d.lower() != "none"],
				estimated_duration=data["duration"] * 1000,
				priority=priority,
				interruption_safety=InterruptionSafety(data["interruption_safety"]),
				context_requirements=[c for c in data["context_requirements"] if c.lower() != "none"],
				expected_output=data["expected_output"] or "Agent response",
				quality_checkpoints=quality_checkpoints(data["action"]),
			))

		summary = SEQUENCE_SCHEMA.parse(response)
		steps = _with_preservation(steps)
		step_ids = {s.step_id for s in steps}
		points = [p for p in summary["interruption_points"] if p in step_ids]
		for step_id in safe_points(steps):
			if step_id not in points:
				points.append(step_id)

		return OptimizedSequence(
			steps=steps,
			total_duration=sum(s.estimated_duration for s in steps),
			interruption_points=points,
			risks=[classify_risk(r) for r in summary["risk_assessment"]],
			optimization_reasons=summary["optimization_reasons"],
		)

	def fallback_sequence(self, recommendation: CollaborationRecommendation) -> OptimizedSequence:
		"""One strictly chained, interruption-safe step per selected worker."""
		steps = []
		for index, agent in enumerate(recommendation.selected_agents):
			steps.append(SequenceStep(
				step_id=f"step-{index + 1}",
				agent_name=agent,
				action=f"Process request from {agent} perspective",
				dependencies=[f"step-{index}"] if index > 0 else [],
				estimated_duration=FALLBACK_STEP_DURATION,
				priority=max(8 - index, 1),
				interruption_safety=InterruptionSafety.SAFE,
				context_requirements=["Previous agent output"] if index > 0 else [],
				expected_output=f"{agent} analysis and response",
				quality_checkpoints=["Output completeness", "Relevance check"],
			))
		steps = _with_preservation(steps)

		return OptimizedSequence(
			steps=steps,
			total_duration=sum(s.estimated_duration for s in steps),
			interruption_points=safe_points(steps),
			risks=[SequenceRisk(
				type=RiskType.CONTEXT_LOSS,
				severity=RiskSeverity.MEDIUM,
				description="Fallback sequence may not be optimally structured",
				mitigation="Monitor execution closely for issues",
			)],
			optimization_reasons=["Fallback to sequential execution", "Conservative interruption points"],
			used_fallback=True,
		)

	def speed_variant(self, base: OptimizedSequence) -> OptimizedSequence:
		"""
		Same steps with durations cut to 80% and a single checkpoint each.

		Step durations are rounded on the running total, so the variant's
		total is always the base total times the speed factor, rounded once.
		"""
		steps: list[SequenceStep] = []
		elapsed = 0
		scaled = 0
		for s in base.steps:
			elapsed += s.estimated_duration
			duration = round(elapsed * SPEED_FACTOR) - scaled
			scaled += duration
			steps.append(s.model_copy(update={
				"estimated_duration": duration,
				"quality_checkpoints": s.quality_checkpoints[:1],
			}))
		return OptimizedSequence(
			variant="speed",
			steps=steps,
			total_duration=sum(s.estimated_duration for s in steps),
			interruption_points=[base.interruption_points[0]] if base.interruption_points else [],
			risks=[SequenceRisk(
				type=RiskType.TIMING,
				severity=RiskSeverity.MEDIUM,
				description="Reduced time may compromise quality",
				mitigation="Monitor output quality closely",
			)],
			optimization_reasons=["Reduced step duration", "Minimal quality checkpoints", "Fewer interruption points"],
			used_fallback=base.used_fallback,
		)

	def quality_variant(self, base: OptimizedSequence) -> OptimizedSequence:
		"""Adds a review step after every high-priority step."""
		steps: list[SequenceStep] = []
		for step in base.steps:
			steps.append(step.model_copy(update={
				"quality_checkpoints": step.quality_checkpoints + ["Quality review checkpoint"],
			}))
			if step.priority >= REVIEW_PRIORITY_THRESHOLD:
				steps.append(SequenceStep(
					step_id=f"{step.step_id}-review",
					agent_name=REVIEWER_NAME,
					action=f"Review and validate output from {step.agent_name}",
					dependencies=[step.step_id],
					estimated_duration=REVIEW_STEP_DURATION,
					priority=8,
					interruption_safety=InterruptionSafety.SAFE,
					context_requirements=[step.expected_output],
					expected_output="Quality validation report",
					quality_checkpoints=["Output quality assessment"],
				))
		steps = _with_preservation(steps)

		return OptimizedSequence(
			variant="quality",
			steps=steps,
			total_duration=sum(s.estimated_duration for s in steps),
			interruption_points=safe_points(steps),
			risks=[SequenceRisk(
				type=RiskType.TIMING,
				severity=RiskSeverity.LOW,
				description="Extended timeline for quality assurance",
				mitigation="Quality improvements justify additional time",
			)],
			optimization_reasons=["Prioritized output quality", "Added review checkpoints", "Enhanced validation"],
			used_fallback=base.used_fallback,
		)

	def _build_prompt(
		self,
		recommendation: CollaborationRecommendation,
		analyses: list[SkillsMatchAnalysis],
		request: str,
	) -> str:
		by_name = {a.agent_name: a for a in analyses}
		lines = [
			"OPTIMAL SEQUENCE PLANNING",
			"",
			f'USER REQUEST: "{request}"',
			"",
			f"COLLABORATION PATTERN: {recommendation.pattern.name}",
			f"PATTERN DESCRIPTION: {recommendation.pattern.description}",
			f"SELECTED AGENTS: {', '.join(recommendation.selected_agents)}",
			"",
			"AGENT CAPABILITIES:",
		]
		for name in recommendation.selected_agents:
			a = by_name.get(name)
			if a is None:
				lines.append(f"- {name}: no analysis available")
				continue
			lines.append(
				f"- {name}: match {a.overall_match:.0%}, performance {a.estimated_performance:.0%}, "
				f"risks: {', '.join(a.risk_factors) or 'none identified'}"
			)

		lines.extend(["", "PATTERN FLOW:"])
		for i, step in enumerate(recommendation.steps, start=1):
			lines.append(
				f"{i}. {step.step_type} by {', '.join(step.participants)}: {step.description} "
				f"({step.duration}ms, interruptible: {step.interruptible})"
			)

		lines.extend([
			"",
			"Create an optimized sequence. For each step, write a block:",
			"",
			SEQUENCE_STEP_SCHEMA.format_instructions(),
			"",
			"After the steps, write:",
			"",
			SEQUENCE_SCHEMA.format_instructions(),
		])
		return "\n".join(lines)

	def record_sequence_execution(
		self,
		request: str,
		sequence: OptimizedSequence,
		actual_duration: float,
		success: bool,
		interruption_count: int = 0,
	) -> None:
		"""Record how an executed sequence went."""
		self._executions.append({
			"request": request,
			"sequence": sequence,
			"actual_duration": actual_duration,
			"success": success,
			"interruption_count": interruption_count,
		})
		logger.info(
			f"Recorded sequence execution: {'success' if success else 'failure'}, "
			f"{interruption_count} interruptions"
		)

	def get_statistics(self) -> dict:
		"""Success rate, duration accuracy, interruptions and common optimizations."""
		executions = self._executions
		total = len(executions)
		successes = [e for e in executions if e["success"]]

		accuracy = 0.0
		timed = [e for e in successes if e["sequence"].total_duration > 0]
		if timed:
			errors = [
				abs(e["sequence"].total_duration - e["actual_duration"]) / e["sequence"].total_duration
				for e in timed
			]
			accuracy = clamp(1 - sum(errors) / len(errors))

		reasons = Counter(r for e in executions for r in e["sequence"].optimization_reasons)
		return {
			"total_executions": total,
			"success_rate": len(successes) / total if total else 0.0,
			"avg_duration_accuracy": accuracy,
			"avg_interruptions": sum(e["interruption_count"] for e in executions) / total if total else 0.0,
			"common_optimizations": [r for r, _ in reasons.most_common(3)],
		}

