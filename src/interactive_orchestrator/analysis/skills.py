"""
Skills Matcher - Scores every candidate worker against a request.

Responsibilities:
- Ask the text generator for a per-worker skills assessment
- Fall back to deterministic keyword overlap when the generator is
  unavailable or its reply is malformed
- Rank workers by overall match
- Detect pairs and triples of workers with high collaboration synergy
"""

import asyncio
import logging
from itertools import combinations
from typing import Optional

from ..config import get_config
from ..exceptions import GenerationError, MalformedAnalysis, NoSuitableWorker
from ..llm import TextGenerator, request_analysis
from ..plans.models import (
	CollaborationOpportunity,
	Level,
	SkillsMatchAnalysis,
	WorkerProfile,
	clamp,
)
from ..schemas import COLLABORATION_SCHEMA, SKILLS_MATCH_SCHEMA
from ..workers import tokenize

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.6
PAIR_SYNERGY_THRESHOLD = 0.6
TRIPLE_SYNERGY_THRESHOLD = 0.7
MAX_COLLABORATION_CANDIDATES = 4
MAX_HISTORY = 100


class SkillsMatcher:
	"""
	Scores workers against requests.

	Args:
		generator: Text generator used for assessments
		weights: Sub-score weights for primary, secondary, task_type and
			collaboration fit (defaults from config)
	"""

	def __init__(self, generator: TextGenerator, weights: Optional[dict[str, float]] = None):
		self.generator = generator
		self.weights = dict(weights or get_config().skill_weights)
		self._history: dict[str, list[SkillsMatchAnalysis]] = {}

	async def analyze_skills_match(
		self,
		request: str,
		workers: list[WorkerProfile],
		conversation_history: Optional[list[str]] = None,
	) -> list[SkillsMatchAnalysis]:
		"""
		Score every worker and rank them.

		Args:
			request: User request text
			workers: Candidate worker profiles
			conversation_history: Recent conversation snippets

		Returns:
			Analyses sorted by overall match, ranks 1..N

		Raises:
			NoSuitableWorker: If the roster is empty
		"""
		if not workers:
			raise NoSuitableWorker("No workers available to analyze")

		logger.info(f"Analyzing skills match for {len(workers)} workers: {request[:50]!r}")
		history = conversation_history or []

		analyses = await asyncio.gather(
			*(self._analyze_worker(request, profile, history) for profile in workers)
		)
		ranked = sorted(analyses, key=lambda a: (-a.overall_match, a.agent_name))
		for rank, analysis in enumerate(ranked, start=1):
			analysis.suitability_rank = rank

		top = ranked[0]
		logger.info(f"Top worker: {top.agent_name} ({top.overall_match:.0%} match)")
		self._history[request] = ranked
		if len(self._history) > MAX_HISTORY:
			self._history.pop(next(iter(self._history)))
		return ranked

	async def _analyze_worker(
		self,
		request: str,
		profile: WorkerProfile,
		history: list[str],
	) -> SkillsMatchAnalysis:
		prompt = self._build_analysis_prompt(request, profile, history)
		try:
			data = await request_analysis(self.generator, prompt, SKILLS_MATCH_SCHEMA)
		except (GenerationError, MalformedAnalysis) as e:
			logger.warning(f"Skills analysis for {profile.name} failed: {e}, using fallback")
			return self.keyword_fallback(request, profile)

		return self._analysis_from_data(profile, data)

	def _build_analysis_prompt(self, request: str, profile: WorkerProfile, history: list[str]) -> str:
		lines = [
			"AGENT SKILLS ANALYSIS TASK",
			"",
			"Analyze how well this agent matches the user request.",
			"",
			f'USER REQUEST: "{request}"',
			"",
			f"AGENT: {profile.name}",
			f"- Primary Skills: {', '.join(profile.primary_skills) or 'none'}",
			f"- Secondary Skills: {', '.join(profile.secondary_skills) or 'none'}",
			f"- Domain Expertise: {', '.join(profile.domain_expertise) or 'none'}",
			f"- Task Types: {', '.join(profile.task_types) or 'none'}",
			f"- Complexity Handling: {profile.complexity_level.value}",
			f"- Collaboration Strengths: {', '.join(profile.collaboration_strengths) or 'none'}",
			"",
			f"CONVERSATION CONTEXT: {' | '.join(history[-5:]) if history else 'None'}",
			"",
			"Provide the analysis in exactly this format:",
			"",
			SKILLS_MATCH_SCHEMA.format_instructions(),
		]
		return "\n".join(lines)

	def _analysis_from_data(self, profile: WorkerProfile, data: dict) -> SkillsMatchAnalysis:
		primary = data["primary_skill_match"]
		secondary = (data["secondary_skill_match"] + data["domain_expertise_match"]) / 2
		task_type = data["task_type_match"]
		collaboration = min(1.0, len(data["collaboration_potential"]) / 3) if data["collaboration_potential"] else 0.5

		if "overall_match" in data["_defaulted"]:
			overall = (
				primary * self.weights.get("primary", 0.40)
				+ secondary * self.weights.get("secondary", 0.25)
				+ task_type * self.weights.get("task_type", 0.20)
				+ collaboration * self.weights.get("collaboration", 0.15)
			)
		else:
			overall = data["overall_match"]

		return SkillsMatchAnalysis(
			agent_name=profile.name,
			primary_skill_match=primary,
			secondary_skill_match=data["secondary_skill_match"],
			domain_expertise_match=data["domain_expertise_match"],
			task_type_match=task_type,
			overall_match=clamp(overall),
			confidence=data["confidence"],
			estimated_performance=data["estimated_performance"],
			reasoning=data["reasoning"] or "Analysis completed",
			risk_factors=data["risk_factors"],
			collaboration_potential=data["collaboration_potential"],
		)

	def keyword_fallback(self, request: str, profile: WorkerProfile) -> SkillsMatchAnalysis:
		"""Deterministic keyword-overlap analysis."""
		request_tokens = set(tokenize(request))
		skills = profile.primary_skills + profile.secondary_skills + profile.domain_expertise
		all_skills = list(dict.fromkeys(skills)) or ["general"]

		matching = [
			skill for skill in all_skills
			if request_tokens.intersection(tokenize(skill.replace("-", " ")))
		]
		overall = min(0.8, len(matching) / len(all_skills) + 0.2)

		return SkillsMatchAnalysis(
			agent_name=profile.name,
			primary_skill_match=overall * 0.9,
			secondary_skill_match=overall * 0.7,
			domain_expertise_match=overall * 0.8,
			task_type_match=overall * 0.6,
			overall_match=overall,
			confidence=FALLBACK_CONFIDENCE,
			estimated_performance=overall * 0.8,
			reasoning=f"Fallback analysis based on keyword matching. Found {len(matching)} matching skills.",
			risk_factors=["Analysis performed without language-model reasoning"],
			collaboration_potential=list(profile.collaboration_strengths),
			used_fallback=True,
		)

	async def detect_collaboration_opportunities(
		self,
		request: str,
		analyses: list[SkillsMatchAnalysis],
	) -> list[CollaborationOpportunity]:
		"""
		Find worker pairs and triples that would work well together.

		Pairs above the synergy threshold are kept. A strong pair is also
		tried with the next-ranked worker, and the triple is kept when it
		beats the pair.
		"""
		top = analyses[:MAX_COLLABORATION_CANDIDATES]
		opportunities: list[CollaborationOpportunity] = []

		for i, j in combinations(range(len(top)), 2):
			pair = await self._analyze_group(request, [top[i], top[j]])
			if pair.synergy_score > PAIR_SYNERGY_THRESHOLD:
				opportunities.append(pair)

			if pair.synergy_score > TRIPLE_SYNERGY_THRESHOLD and j + 1 < len(top):
				triple = await self._analyze_group(request, [top[i], top[j], top[j + 1]])
				if triple.synergy_score > pair.synergy_score:
					opportunities.append(triple)

		opportunities.sort(key=lambda o: o.synergy_score, reverse=True)
		logger.info(f"Found {len(opportunities)} collaboration opportunities")
		return opportunities

	async def _analyze_group(
		self,
		request: str,
		group: list[SkillsMatchAnalysis],
	) -> CollaborationOpportunity:
		names = [a.agent_name for a in group]
		lines = [
			"COLLABORATION ANALYSIS TASK",
			"",
			f'USER REQUEST: "{request}"',
			f"AGENTS: {', '.join(names)}",
			"",
		]
		for a in group:
			lines.append(
				f"{a.agent_name}: match {a.overall_match:.0%}, performance {a.estimated_performance:.0%}, "
				f"strengths: {', '.join(a.collaboration_potential) or 'none'}, "
				f"risks: {', '.join(a.risk_factors) or 'none'}"
			)
		lines.extend(["", "Assess their collaboration potential in exactly this format:", ""])
		lines.append(COLLABORATION_SCHEMA.format_instructions())

		try:
			data = await request_analysis(self.generator, "\n".join(lines), COLLABORATION_SCHEMA)
		except (GenerationError, MalformedAnalysis) as e:
			logger.warning(f"Collaboration analysis for {names} failed: {e}, using fallback")
			return self._fallback_group(group)

		return CollaborationOpportunity(
			agents=names,
			synergy_score=data["synergy_score"],
			skill_complementarity=data["skill_complementarity"],
			collaboration_pattern=data["collaboration_pattern"] or "sequential-handoff",
			expected_outcome=data["expected_outcome"] or "Collaborative response",
			reasoning=data["reasoning"] or "Collaboration analysis completed",
			risk_level=Level(data["risk_level"]),
		)

	def _fallback_group(self, group: list[SkillsMatchAnalysis]) -> CollaborationOpportunity:
		average = sum(a.overall_match for a in group) / len(group)
		names = [a.agent_name for a in group]
		return CollaborationOpportunity(
			agents=names,
			synergy_score=min(0.8, average * 1.2),
			skill_complementarity=clamp(average * 0.9),
			collaboration_pattern="sequential-handoff",
			expected_outcome=f"Collaborative response from {' and '.join(names)}",
			reasoning="Fallback collaboration analysis based on individual match scores",
			risk_level=Level.MEDIUM,
		)

	def get_analysis_history(self) -> dict[str, list[SkillsMatchAnalysis]]:
		return dict(self._history)
