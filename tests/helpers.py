"""Shared test fakes for interactive-orchestrator tests."""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

from interactive_orchestrator.exceptions import GenerationError
from interactive_orchestrator.plans.models import (
	ExecutionContext,
	SkillsMatchAnalysis,
	WorkerProfile,
)

Reply = Union[str, Exception]


class FakeGenerator:
	"""Text generator that answers by prompt substring.

	Rules are checked in order; the first needle found in the prompt
	decides the reply. An Exception reply is raised. Prompts with no
	matching rule get the default, or a GenerationError when there is none.
	"""

	def __init__(self, rules: Optional[list[tuple[str, Reply]]] = None, default: Optional[str] = None):
		self.rules = list(rules or [])
		self.default = default
		self.prompts: list[str] = []

	async def generate(self, prompt, model=None, temperature=None, max_tokens=None) -> str:
		self.prompts.append(prompt)
		for needle, reply in self.rules:
			if needle in prompt:
				if isinstance(reply, Exception):
					raise reply
				return reply
		if self.default is None:
			raise GenerationError("no canned reply")
		return self.default

	def prompts_with(self, needle: str) -> list[str]:
		return [p for p in self.prompts if needle in p]


class FakeWorker:
	"""Worker with a canned reply that records every call.

	Args:
		name: Worker name
		reply: Text to answer with, or an Exception to raise
		role: Role text used when deriving a profile
		on_call: Optional coroutine(worker, prompt, context) run before replying
	"""

	def __init__(
		self,
		name: str,
		reply: Optional[Reply] = None,
		role: str = "",
		on_call: Optional[Callable[["FakeWorker", str, dict], Awaitable[None]]] = None,
	):
		self.name = name
		self.role = role
		self.profile = None
		self.reply = reply if reply is not None else f"{name} says the plan looks good"
		self.on_call = on_call
		self.calls: list[tuple[str, dict[str, Any]]] = []

	async def respond(self, prompt: str, context: dict[str, Any]) -> str:
		self.calls.append((prompt, context))
		if self.on_call is not None:
			await self.on_call(self, prompt, context)
		if isinstance(self.reply, Exception):
			raise self.reply
		return self.reply


class BlockingWorker(FakeWorker):
	"""Worker that waits on an event before answering."""

	def __init__(self, name: str, reply: Optional[str] = None):
		super().__init__(name, reply)
		self.started = asyncio.Event()
		self.release = asyncio.Event()

	async def respond(self, prompt: str, context: dict[str, Any]) -> str:
		self.calls.append((prompt, context))
		self.started.set()
		await self.release.wait()
		return self.reply


async def no_input():
	"""Monitor source that never produces a line."""
	return
	yield


def make_profile(name: str, primary: list[str], secondary: Optional[list[str]] = None, **kwargs) -> WorkerProfile:
	return WorkerProfile(
		name=name,
		primary_skills=primary,
		secondary_skills=secondary or [],
		**kwargs,
	)


def make_analysis(name: str, overall: float, confidence: float = 0.8, **kwargs) -> SkillsMatchAnalysis:
	return SkillsMatchAnalysis(
		agent_name=name,
		overall_match=overall,
		confidence=confidence,
		**kwargs,
	)


def make_context(session_id: str = "s-1", user_id: str = "alice") -> ExecutionContext:
	return ExecutionContext(session_id=session_id, user_id=user_id)


def skills_reply(primary: int, overall: int, confidence: int = 80) -> str:
	"""A well-formed skills analysis reply."""
	return (
		f"PRIMARY_SKILL_MATCH: {primary}\n"
		f"SECONDARY_SKILL_MATCH: 60\n"
		f"DOMAIN_EXPERTISE_MATCH: 70\n"
		f"TASK_TYPE_MATCH: 65\n"
		f"OVERALL_MATCH: {overall}\n"
		f"CONFIDENCE: {confidence}\n"
		f"ESTIMATED_PERFORMANCE: 75\n"
		f"REASONING: Strong fit for the request.\n"
		f"COLLABORATION_POTENTIAL: synthesis, review\n"
		f"RISK_FACTORS: narrow scope"
	)
