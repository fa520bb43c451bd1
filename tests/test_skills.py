"""Tests for the skills matcher."""

import pytest

from interactive_orchestrator.analysis.skills import SkillsMatcher
from interactive_orchestrator.exceptions import NoSuitableWorker
from interactive_orchestrator.plans.models import Level

from .helpers import FakeGenerator, make_analysis, make_profile, skills_reply


def _profiles():
	return [
		make_profile("TechLead", ["architecture", "technical-analysis"], ["code-review"]),
		make_profile("MarketingLead", ["marketing-strategy", "branding"]),
	]


class TestKeywordFallback:
	"""Analyses when the generator is unavailable."""

	@pytest.mark.asyncio
	async def test_fallback_scores_keyword_overlap(self):
		"""Overlap ratio plus 0.2, capped at 0.8, with fixed confidence."""
		matcher = SkillsMatcher(FakeGenerator())
		analyses = await matcher.analyze_skills_match("Review the technical architecture", _profiles())

		assert [a.agent_name for a in analyses] == ["TechLead", "MarketingLead"]
		tech, marketing = analyses
		assert tech.overall_match == pytest.approx(0.8)
		assert marketing.overall_match == pytest.approx(0.2)
		assert tech.confidence == 0.6
		assert tech.used_fallback is True
		assert "3 matching skills" in tech.reasoning
		assert [a.suitability_rank for a in analyses] == [1, 2]

	@pytest.mark.asyncio
	async def test_fallback_is_deterministic(self):
		"""The same request and roster always produce the same analyses."""
		matcher = SkillsMatcher(FakeGenerator())
		first = await matcher.analyze_skills_match("branding ideas for launch", _profiles())
		second = await matcher.analyze_skills_match("branding ideas for launch", _profiles())
		assert [a.model_dump() for a in first] == [a.model_dump() for a in second]

	@pytest.mark.asyncio
	async def test_malformed_reply_falls_back_per_worker(self):
		"""Only the worker with the bad reply uses the keyword fallback."""
		generator = FakeGenerator([
			("AGENT: TechLead", skills_reply(90, 85)),
			("AGENT: MarketingLead", "I think this agent is fine."),
		])
		matcher = SkillsMatcher(generator)
		analyses = await matcher.analyze_skills_match("Review the architecture", _profiles())
		by_name = {a.agent_name: a for a in analyses}

		assert by_name["TechLead"].used_fallback is False
		assert by_name["TechLead"].overall_match == pytest.approx(0.85)
		assert by_name["MarketingLead"].used_fallback is True

	def test_profile_without_skills_counts_as_general(self):
		matcher = SkillsMatcher(FakeGenerator())
		analysis = matcher.keyword_fallback("general question", make_profile("Helper", []))
		assert analysis.overall_match == pytest.approx(0.8)


class TestRanking:
	"""Tests for ranking analyses."""

	@pytest.mark.asyncio
	async def test_empty_roster_raises(self):
		matcher = SkillsMatcher(FakeGenerator())
		with pytest.raises(NoSuitableWorker):
			await matcher.analyze_skills_match("anything", [])

	@pytest.mark.asyncio
	async def test_ranking_ignores_roster_order(self):
		"""Ranks depend on scores, not on the order workers are listed in."""
		generator = FakeGenerator([
			("AGENT: Alpha", skills_reply(50, 40)),
			("AGENT: Beta", skills_reply(80, 90)),
			("AGENT: Gamma", skills_reply(70, 65)),
		])
		profiles = [make_profile(n, ["general"]) for n in ("Alpha", "Beta", "Gamma")]

		forward = await SkillsMatcher(generator).analyze_skills_match("request", profiles)
		backward = await SkillsMatcher(generator).analyze_skills_match("request", list(reversed(profiles)))

		expected = ["Beta", "Gamma", "Alpha"]
		assert [a.agent_name for a in forward] == expected
		assert [a.agent_name for a in backward] == expected
		assert [a.suitability_rank for a in forward] == [1, 2, 3]

	@pytest.mark.asyncio
	async def test_ties_break_by_name(self):
		generator = FakeGenerator(default=skills_reply(70, 70))
		profiles = [make_profile(n, ["general"]) for n in ("Zed", "Amy")]
		analyses = await SkillsMatcher(generator).analyze_skills_match("request", profiles)
		assert [a.agent_name for a in analyses] == ["Amy", "Zed"]

	@pytest.mark.asyncio
	async def test_overall_computed_from_weights_when_absent(self):
		"""Without OVERALL_MATCH the weighted sub-scores are used."""
		reply = (
			"PRIMARY_SKILL_MATCH: 80\n"
			"SECONDARY_SKILL_MATCH: 60\n"
			"DOMAIN_EXPERTISE_MATCH: 40\n"
			"TASK_TYPE_MATCH: 50\n"
			"CONFIDENCE: 70\n"
			"COLLABORATION_POTENTIAL: synthesis, review, drafting"
		)
		matcher = SkillsMatcher(FakeGenerator(default=reply))
		analyses = await matcher.analyze_skills_match("request", [make_profile("Solo", ["general"])])
		# 0.8*0.40 + 0.5*0.25 + 0.5*0.20 + 1.0*0.15
		assert analyses[0].overall_match == pytest.approx(0.695)

	@pytest.mark.asyncio
	async def test_prompt_describes_worker(self):
		generator = FakeGenerator()
		await SkillsMatcher(generator).analyze_skills_match("request", _profiles())
		prompts = generator.prompts_with("AGENT SKILLS ANALYSIS TASK")
		assert len(prompts) == 2
		assert any("- Primary Skills: architecture, technical-analysis" in p for p in prompts)

	@pytest.mark.asyncio
	async def test_history_records_ranking(self):
		matcher = SkillsMatcher(FakeGenerator())
		await matcher.analyze_skills_match("Review the architecture", _profiles())
		history = matcher.get_analysis_history()
		assert history["Review the architecture"][0].agent_name == "TechLead"


class TestCollaborationOpportunities:
	"""Tests for pair and triple synergy detection."""

	@pytest.mark.asyncio
	async def test_fallback_keeps_strong_pairs(self):
		"""Fallback synergy is the mean match times 1.2, capped at 0.8."""
		generator = FakeGenerator()
		matcher = SkillsMatcher(generator)
		analyses = [make_analysis("A", 0.8), make_analysis("B", 0.7), make_analysis("C", 0.1)]

		opportunities = await matcher.detect_collaboration_opportunities("request", analyses)

		assert len(opportunities) == 1
		assert opportunities[0].agents == ["A", "B"]
		assert opportunities[0].synergy_score == pytest.approx(0.8)
		# Three pairs plus one triple attempt for the strong pair
		assert len(generator.prompts_with("COLLABORATION ANALYSIS TASK")) == 4

	@pytest.mark.asyncio
	async def test_generated_opportunity(self):
		generator = FakeGenerator([(
			"COLLABORATION ANALYSIS TASK",
			"SYNERGY_SCORE: 90\nSKILL_COMPLEMENTARITY: 80\n"
			"COLLABORATION_PATTERN: parallel-synthesis\nRISK_LEVEL: low",
		)])
		matcher = SkillsMatcher(generator)
		analyses = [make_analysis("A", 0.8), make_analysis("B", 0.7)]

		opportunities = await matcher.detect_collaboration_opportunities("request", analyses)

		assert len(opportunities) == 1
		opportunity = opportunities[0]
		assert opportunity.synergy_score == pytest.approx(0.9)
		assert opportunity.collaboration_pattern == "parallel-synthesis"
		assert opportunity.risk_level == Level.LOW
