"""
Pattern Selector - Chooses how workers collaborate on a request.

Holds the static registry of collaboration templates, asks the text
generator which template fits, and resolves the template's symbolic
roles ("all", "lead", "synthesizer", ...) to concrete worker names.
"""

import logging
from typing import Optional

from ..exceptions import GenerationError, MalformedAnalysis
from ..llm import TextGenerator, request_analysis
from ..plans.models import (
	CollaborationOpportunity,
	CollaborationPattern,
	CollaborationRecommendation,
	PatternStep,
	SkillsMatchAnalysis,
)
from ..schemas import PATTERN_SCHEMA

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "sequential-handoff"
FALLBACK_CONFIDENCE = 0.6
LEADERSHIP_KEYWORDS = ("manager", "ceo", "lead", "director", "chief")


def _step(step_type: str, description: str, participants: list[str], duration: int,
		interruptible: bool, output_expected: str) -> PatternStep:
	return PatternStep(
		step_type=step_type,
		description=description,
		participants=participants,
		duration=duration,
		interruptible=interruptible,
		output_expected=output_expected,
	)


PATTERNS: dict[str, CollaborationPattern] = {
	p.name: p
	for p in [
		CollaborationPattern(
			name="sequential-handoff",
			description="Sequential execution where each agent builds on the previous output",
			suitable_for=["complex-analysis", "step-by-step-processing", "pipeline-tasks"],
			min_agents=2,
			max_agents=5,
			steps=[
				_step("agent_action", "First agent provides initial analysis/response", ["agent-1"], 30000, True,
					"Initial analysis or foundation work"),
				_step("handoff", "Context and output transferred to next agent", ["agent-1", "agent-2"], 5000, False,
					"Contextual handoff summary"),
				_step("agent_action", "Second agent refines and builds upon first output", ["agent-2"], 30000, True,
					"Enhanced analysis building on previous work"),
			],
			benefits=["Builds complexity progressively", "Each agent adds specialized expertise", "Clear accountability"],
			risks=["Earlier mistakes compound", "Slower execution", "Context loss between handoffs"],
			success_criteria=[
				"Each agent adds clear value",
				"No significant contradiction between agents",
				"Progressive improvement in output quality",
			],
		),
		CollaborationPattern(
			name="parallel-synthesis",
			description="Multiple agents work on the same task, then results are synthesized",
			suitable_for=["multi-perspective-analysis", "comprehensive-coverage", "brainstorming"],
			min_agents=2,
			max_agents=4,
			steps=[
				_step("parallel_start", "Multiple agents begin working on the same task", ["all"], 1000, False,
					"Parallel execution initiation"),
				_step("agent_action", "Each agent provides their perspective", ["all"], 45000, True,
					"Multiple independent perspectives"),
				_step("parallel_end", "Parallel work ends, prepare for synthesis", ["all"], 1000, False,
					"Parallel execution completion"),
				_step("synthesis", "Combine all perspectives into a coherent response", ["synthesizer"], 20000, True,
					"Unified synthesis of all perspectives"),
			],
			benefits=["Comprehensive coverage", "Multiple viewpoints", "Faster than sequential"],
			risks=["Potential conflicts between perspectives", "Synthesis complexity", "Coordination overhead"],
			success_criteria=[
				"All perspectives add unique value",
				"Successful synthesis without major conflicts",
				"Comprehensive coverage achieved",
			],
		),
		CollaborationPattern(
			name="debate-discussion",
			description="Agents engage in structured debate to explore different viewpoints",
			suitable_for=["controversial-topics", "decision-making", "exploring-tradeoffs"],
			min_agents=2,
			max_agents=3,
			steps=[
				_step("agent_action", "First agent presents initial position", ["agent-1"], 30000, True,
					"Initial position or argument"),
				_step("agent_action", "Second agent presents counter-perspective", ["agent-2"], 30000, True,
					"Counter-argument or alternative viewpoint"),
				_step("agent_action", "First agent responds and refines position", ["agent-1"], 20000, True,
					"Refined position based on counter-arguments"),
				_step("synthesis", "Final synthesis of debate outcomes", ["moderator"], 15000, True,
					"Balanced conclusion considering all viewpoints"),
			],
			benefits=["Thorough exploration of viewpoints", "Identifies weaknesses in reasoning", "Balanced outcome"],
			risks=["May create confusion", "Time-intensive", "Requires good moderation"],
			success_criteria=[
				"Both perspectives well-represented",
				"Constructive rather than adversarial",
				"Clear synthesis achieved",
			],
		),
		CollaborationPattern(
			name="specialist-consultation",
			description="Lead agent consults with specialists for specific expertise",
			suitable_for=["expert-input-needed", "specialized-knowledge", "technical-validation"],
			min_agents=2,
			max_agents=4,
			steps=[
				_step("agent_action", "Lead agent analyzes and identifies areas needing specialist input", ["lead"],
					25000, True, "Initial analysis with specialist consultation requests"),
				_step("agent_action", "Specialists provide targeted expertise", ["specialists"], 35000, True,
					"Specialist insights and recommendations"),
				_step("synthesis", "Lead agent integrates specialist input into final response", ["lead"], 20000, True,
					"Comprehensive response incorporating specialist expertise"),
			],
			benefits=["Leverages specialized knowledge", "Maintains clear leadership", "Efficient use of expertise"],
			risks=["Specialist input may conflict", "Lead agent may not integrate well", "Coordination complexity"],
			success_criteria=[
				"Specialist input clearly valuable",
				"Good integration by lead agent",
				"Enhanced quality from collaboration",
			],
		),
		CollaborationPattern(
			name="review-refinement",
			description="One agent creates initial output, others review and suggest improvements",
			suitable_for=["quality-assurance", "error-checking", "improvement-suggestions"],
			min_agents=2,
			max_agents=3,
			steps=[
				_step("agent_action", "Primary agent creates initial comprehensive response", ["primary"], 40000, True,
					"Complete initial response or solution"),
				_step("evaluation", "Review agents analyze and provide feedback", ["reviewers"], 30000, True,
					"Constructive feedback and improvement suggestions"),
				_step("agent_action", "Primary agent refines based on feedback", ["primary"], 20000, True,
					"Refined response incorporating feedback"),
			],
			benefits=["Quality assurance", "Error reduction", "Multiple perspective validation"],
			risks=["May slow down simple tasks", "Feedback may conflict", "Over-refinement possible"],
			success_criteria=[
				"Meaningful feedback provided",
				"Successful incorporation of suggestions",
				"Clear improvement in final output",
			],
		),
	]
}


def resolve_role(role: str, agents: list[str]) -> list[str]:
	"""Resolve one symbolic role to concrete worker names."""
	if not agents:
		return []
	if role == "all":
		return list(agents)
	if role in ("lead", "primary", "agent-1", "lead-agent", "primary-agent"):
		return [agents[0]]
	if role == "agent-2":
		return [agents[1]] if len(agents) > 1 else [agents[0]]
	if role in ("specialists", "reviewers"):
		return agents[1:] or [agents[0]]
	if role in ("synthesizer", "moderator"):
		for name in agents:
			if any(k in name.lower() for k in LEADERSHIP_KEYWORDS):
				return [name]
		return [agents[0]]
	return [role]


def resolve_steps(pattern: CollaborationPattern, agents: list[str]) -> list[PatternStep]:
	"""Copy a template's steps with roles replaced by worker names."""
	resolved = []
	for step in pattern.steps:
		participants: list[str] = []
		for role in step.participants:
			for name in resolve_role(role, agents):
				if name not in participants:
					participants.append(name)
		resolved.append(step.model_copy(update={"participants": participants}))
	return resolved


class PatternSelector:
	"""
	Recommends a collaboration pattern for a request.

	Args:
		generator: Text generator used for the recommendation
	"""

	def __init__(self, generator: TextGenerator):
		self.generator = generator
		self._usage: list[dict] = []

	def get_pattern(self, name: str) -> Optional[CollaborationPattern]:
		return PATTERNS.get(name.lower().strip())

	def list_patterns(self) -> list[CollaborationPattern]:
		return list(PATTERNS.values())

	async def recommend_pattern(
		self,
		request: str,
		analyses: list[SkillsMatchAnalysis],
		opportunities: Optional[list[CollaborationOpportunity]] = None,
	) -> CollaborationRecommendation:
		"""
		Pick a pattern and workers for the request.

		Falls back to sequential-handoff over the top two workers when
		the generator fails, names an unknown pattern, or selects no
		known worker.
		"""
		logger.info(f"Selecting collaboration pattern for: {request[:50]!r}")
		prompt = self._build_prompt(request, analyses, opportunities or [])

		try:
			data = await request_analysis(self.generator, prompt, PATTERN_SCHEMA)
		except (GenerationError, MalformedAnalysis) as e:
			logger.warning(f"Pattern selection failed: {e}, using fallback")
			return self.fallback_recommendation(analyses)

		pattern = self.get_pattern(data["recommended_pattern"])
		if pattern is None:
			logger.warning(f"Unknown pattern recommended: {data['recommended_pattern']}, using fallback")
			return self.fallback_recommendation(analyses)

		known = {a.agent_name.lower(): a.agent_name for a in analyses}
		selected: list[str] = []
		for name in data["selected_agents"]:
			match = known.get(name.lower())
			if match and match not in selected:
				selected.append(match)
		if not selected:
			logger.warning(f"No recommended worker matched the roster: {data['selected_agents']}, using fallback")
			return self.fallback_recommendation(analyses)
		selected = selected[:pattern.max_agents]

		alternatives = [
			p.name for p in (self.get_pattern(n) for n in data["alternative_patterns"])
			if p is not None and p.name != pattern.name
		]
		steps = resolve_steps(pattern, selected)

		return CollaborationRecommendation(
			pattern=pattern,
			selected_agents=selected,
			confidence=data["confidence"],
			reasoning=data["reasoning"] or "Pattern analysis completed",
			steps=steps,
			estimated_duration=sum(s.duration for s in steps),
			risk_assessment=data["risk_assessment"] or "Standard collaboration risks apply",
			alternative_patterns=alternatives,
		)

	def fallback_recommendation(self, analyses: list[SkillsMatchAnalysis]) -> CollaborationRecommendation:
		"""Sequential handoff over the two best-ranked workers."""
		pattern = PATTERNS[DEFAULT_PATTERN]
		selected = [a.agent_name for a in analyses[:2]]
		steps = resolve_steps(pattern, selected)
		return CollaborationRecommendation(
			pattern=pattern,
			selected_agents=selected,
			confidence=FALLBACK_CONFIDENCE,
			reasoning="Fallback to sequential handoff pattern with top-performing agents",
			steps=steps,
			estimated_duration=sum(s.duration for s in steps),
			risk_assessment="Standard sequential execution risks",
			alternative_patterns=["parallel-synthesis"],
			used_fallback=True,
		)

	def _build_prompt(
		self,
		request: str,
		analyses: list[SkillsMatchAnalysis],
		opportunities: list[CollaborationOpportunity],
	) -> str:
		lines = [
			"COLLABORATION PATTERN ANALYSIS",
			"",
			f'USER REQUEST: "{request}"',
			"",
			"AVAILABLE AGENTS & SKILLS:",
		]
		for a in analyses[:5]:
			lines.append(
				f"- {a.agent_name} (match {a.overall_match:.0%}, performance {a.estimated_performance:.0%}): "
				f"{', '.join(a.collaboration_potential) or 'no listed strengths'}"
			)

		if opportunities:
			lines.extend(["", "COLLABORATION OPPORTUNITIES:"])
			for opp in opportunities[:3]:
				lines.append(
					f"- {' + '.join(opp.agents)}: synergy {opp.synergy_score:.0%}, "
					f"pattern {opp.collaboration_pattern}. {opp.reasoning}"
				)

		lines.extend(["", "AVAILABLE PATTERNS:"])
		for p in PATTERNS.values():
			lines.append(
				f"- {p.name}: {p.description}. Suitable for: {', '.join(p.suitable_for)}. "
				f"Agent count: {p.min_agents}-{p.max_agents}"
			)

		lines.extend(["", "Recommend the best collaboration approach in exactly this format:", ""])
		lines.append(PATTERN_SCHEMA.format_instructions())
		return "\n".join(lines)

	def record_pattern_usage(
		self,
		request: str,
		pattern: str,
		agents: list[str],
		success: bool,
		feedback: str = "",
	) -> None:
		"""Record how a pattern performed."""
		self._usage.append({
			"request": request,
			"pattern": pattern,
			"agents": list(agents),
			"success": success,
			"feedback": feedback,
		})
		logger.info(f"Recorded pattern usage: {pattern} ({'success' if success else 'failure'})")

	def get_pattern_statistics(self) -> dict[str, dict]:
		"""Usage and success rate per pattern."""
		stats = {}
		for name, pattern in PATTERNS.items():
			usage = [u for u in self._usage if u["pattern"] == name]
			successes = sum(1 for u in usage if u["success"])
			stats[name] = {
				"description": pattern.description,
				"total_usage": len(usage),
				"success_rate": successes / len(usage) if usage else 0.0,
				"avg_agents": sum(len(u["agents"]) for u in usage) / len(usage) if usage else 0.0,
			}
		return stats
