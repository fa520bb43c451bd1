"""Tests for workers, profiles, the registry and session context."""

import pytest

from interactive_orchestrator.plans.models import ComplexityLevel
from interactive_orchestrator.workers import (
	LLMWorker,
	SessionContextStore,
	WorkerRegistry,
	derive_profile,
	tokenize,
)

from .helpers import FakeGenerator, FakeWorker, make_profile


def test_tokenize_drops_stop_words():
	assert tokenize("Please help me plan the Q3 launch") == ["plan", "q3", "launch"]


class TestDeriveProfile:
	"""Tests for profile derivation from name and role."""

	def test_camel_case_name(self):
		profile = derive_profile("TechLead")
		assert profile.primary_skills[0] == "architecture"
		assert profile.complexity_level == ComplexityLevel.INTERMEDIATE

	def test_several_families(self):
		profile = derive_profile("CEO", "a founder who does finance review")
		assert "strategy" in profile.primary_skills
		assert "financial-analysis" in profile.primary_skills
		assert "review" in profile.primary_skills
		assert profile.complexity_level == ComplexityLevel.ADVANCED

	def test_general_fallback(self):
		profile = derive_profile("Zed")
		assert profile.primary_skills == ["general"]
		assert profile.collaboration_strengths == ["general-support"]


class TestWorkerRegistry:
	"""Tests for WorkerRegistry."""

	def test_register_derives_profile(self):
		registry = WorkerRegistry()
		profile = registry.register(FakeWorker("ResearchPro", role="market analyst"))
		assert "market-research" in profile.primary_skills
		assert "ResearchPro" in registry
		assert len(registry) == 1

	def test_declared_profile_renamed_to_worker(self):
		registry = WorkerRegistry()
		profile = registry.register(FakeWorker("A"), make_profile("other", ["x"]))
		assert profile.name == "A"
		assert registry.profiles() == {"A": profile}

	def test_worker_profile_attribute(self):
		worker = FakeWorker("A")
		worker.profile = make_profile("A", ["pricing"])
		assert WorkerRegistry().register(worker).primary_skills == ["pricing"]

	def test_find_ignores_case(self):
		registry = WorkerRegistry()
		registry.register(FakeWorker("Reviewer"))
		assert registry.find("reviewer").name == "Reviewer"
		assert registry.get("reviewer") is None
		assert registry.find("nobody") is None

	def test_unregister(self):
		registry = WorkerRegistry()
		registry.register(FakeWorker("A"))
		assert registry.unregister("A") is True
		assert registry.unregister("A") is False
		assert registry.names() == []


class TestLLMWorker:
	"""Tests for the generator-backed worker."""

	@pytest.mark.asyncio
	async def test_prompt_includes_persona_and_prior_output(self):
		generator = FakeGenerator(default="sure")
		worker = LLMWorker("CEO", "the chief executive", generator)
		answer = await worker.respond("Decide the budget", {
			"conversation_history": ["user: hi"],
			"previous_outputs": {"TechLead": "costs are high"},
		})

		assert answer == "sure"
		prompt = generator.prompts[0]
		assert prompt.startswith("You are CEO, the chief executive.")
		assert "- user: hi" in prompt
		assert "[TechLead] costs are high" in prompt
		assert prompt.endswith("Decide the budget")


class TestSessionContext:
	"""Tests for SessionContextStore."""

	def test_history_is_capped(self):
		contexts = SessionContextStore(max_history=3)
		session = contexts.get("s-1", "alice")
		for i in range(5):
			session.add(f"line {i}")
		assert session.history == ["line 2", "line 3", "line 4"]
		assert contexts.get("s-1", "bob") is session

	def test_drop(self):
		contexts = SessionContextStore()
		contexts.get("s-1", "alice")
		contexts.drop("s-1")
		assert contexts.sessions() == []
