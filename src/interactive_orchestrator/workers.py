"""
Workers - The units that actually answer requests.

Responsibilities:
- Define the worker contract (a name plus ``respond(prompt, context)``)
- Provide an LLM-backed worker with a role persona
- Derive capability profiles from name/role keywords
- Hold registered workers and per-session conversation context in
  explicit stores that are passed to the orchestrator
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from .llm import TextGenerator
from .plans.models import ComplexityLevel, Level, WorkerProfile

logger = logging.getLogger(__name__)

STOP_WORDS = {
	"a", "an", "and", "the", "of", "to", "for", "in", "on", "with", "me", "my",
	"i", "is", "it", "be", "we", "our", "you", "your", "please", "can", "could",
	"help", "what", "how", "do", "this", "that", "about",
}


def tokenize(text: str) -> list[str]:
	"""Lowercase word tokens without stop words."""
	return [t for t in re.findall(r"[a-z0-9]+", text.lower()) if t not in STOP_WORDS]


@runtime_checkable
class Worker(Protocol):
	"""A named unit that produces a natural-language answer."""

	name: str

	async def respond(self, prompt: str, context: dict[str, Any]) -> str:
		...


class LLMWorker:
	"""
	Worker that answers through the text generator with a persona.

	Args:
		name: Worker name
		role: One-line description of the worker's role
		generator: Text generator used for answers
		profile: Optional declared capability profile
	"""

	def __init__(
		self,
		name: str,
		role: str,
		generator: TextGenerator,
		profile: Optional[WorkerProfile] = None,
	):
		self.name = name
		self.role = role
		self.generator = generator
		self.profile = profile

	async def respond(self, prompt: str, context: dict[str, Any]) -> str:
		lines = [
			f"You are {self.name}, {self.role}.",
			"",
		]
		history = context.get("conversation_history") or []
		if history:
			lines.append("Recent conversation:")
			lines.extend(f"- {h}" for h in history[-5:])
			lines.append("")
		previous = context.get("previous_outputs") or {}
		if previous:
			lines.append("Contributions so far:")
			for agent, text in previous.items():
				lines.append(f"[{agent}] {text[:500]}")
			lines.append("")
		lines.append(prompt)
		return await self.generator.generate("\n".join(lines))


# Keyword families used to derive a profile when none is declared.
# Each entry: (name/role keywords, primary, secondary, domain, task types, collaboration strengths)
PROFILE_FAMILIES: list[tuple[tuple[str, ...], list[str], list[str], list[str], list[str], list[str]]] = [
	(
		("ceo", "strategy", "executive", "founder"),
		["strategy", "leadership", "decision-making"],
		["business-planning", "vision"],
		["business", "management"],
		["planning", "decision"],
		["synthesis", "direction-setting"],
	),
	(
		("tech", "engineer", "developer", "architect", "cto"),
		["architecture", "technical-analysis", "implementation"],
		["scalability", "code-review"],
		["software", "technology"],
		["analysis", "troubleshooting", "creation"],
		["technical-validation", "feasibility-checks"],
	),
	(
		("marketing", "brand", "growth"),
		["marketing-strategy", "branding", "campaigns"],
		["customer-analysis", "content"],
		["marketing", "customers"],
		["creation", "planning"],
		["audience-insight", "messaging"],
	),
	(
		("sales", "revenue", "account"),
		["sales-strategy", "revenue-optimization"],
		["customer-relations", "negotiation"],
		["sales", "customers"],
		["optimization", "planning"],
		["customer-perspective"],
	),
	(
		("research", "analyst", "scientist"),
		["market-research", "competitive-analysis", "data-analysis"],
		["reporting", "fact-checking"],
		["research", "markets"],
		["analysis"],
		["evidence-gathering", "fact-checking"],
	),
	(
		("project", "manager", "coordinator", "pm"),
		["project-planning", "coordination", "timeline-management"],
		["risk-tracking", "resource-allocation"],
		["projects", "operations"],
		["planning", "optimization"],
		["coordination", "synthesis"],
	),
	(
		("finance", "financial", "cfo", "accountant"),
		["financial-analysis", "budgeting", "roi-calculation"],
		["risk-assessment", "forecasting"],
		["finance"],
		["analysis", "optimization"],
		["cost-validation"],
	),
	(
		("review", "quality", "qa", "critic", "editor"),
		["review", "quality-assurance"],
		["error-checking", "editing"],
		["quality"],
		["review", "troubleshooting"],
		["critique", "refinement"],
	),
	(
		("writer", "content", "copy", "author"),
		["writing", "content-creation"],
		["editing", "storytelling"],
		["content", "communication"],
		["creation"],
		["drafting"],
	),
	(
		("data", "ml", "statistic"),
		["data-analysis", "statistics", "modeling"],
		["visualization", "forecasting"],
		["data"],
		["analysis", "optimization"],
		["quantitative-validation"],
	),
]


def derive_profile(name: str, role: str = "") -> WorkerProfile:
	"""
	Derive a capability profile from a worker's name and role.

	Names are split on camel case and separators, so "TechLead" and
	"tech_lead" both hit the technology family. Workers that match no
	family get a general profile.
	"""
	spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", name)
	words = set(tokenize(f"{spaced} {role}"))

	primary: list[str] = []
	secondary: list[str] = []
	domain: list[str] = []
	task_types: list[str] = []
	strengths: list[str] = []
	matched = 0
	for keywords, fam_primary, fam_secondary, fam_domain, fam_tasks, fam_strengths in PROFILE_FAMILIES:
		if not words.intersection(keywords):
			continue
		matched += 1
		primary.extend(s for s in fam_primary if s not in primary)
		secondary.extend(s for s in fam_secondary if s not in secondary)
		domain.extend(s for s in fam_domain if s not in domain)
		task_types.extend(s for s in fam_tasks if s not in task_types)
		strengths.extend(s for s in fam_strengths if s not in strengths)

	if not matched:
		return WorkerProfile(
			name=name,
			primary_skills=["general"],
			task_types=["general"],
			collaboration_strengths=["general-support"],
		)

	return WorkerProfile(
		name=name,
		primary_skills=primary,
		secondary_skills=secondary,
		domain_expertise=domain,
		task_types=task_types,
		complexity_level=ComplexityLevel.ADVANCED if matched > 1 else ComplexityLevel.INTERMEDIATE,
		interruption_tolerance=Level.MEDIUM,
		collaboration_strengths=strengths,
	)


@dataclass
class RegisteredWorker:
	"""A worker together with its fixed profile."""
	worker: Worker
	profile: WorkerProfile

	@property
	def name(self) -> str:
		return self.worker.name


class WorkerRegistry:
	"""
	Explicit store of registered workers.

	An orchestrator is handed a registry instead of keeping workers in
	hidden module state, so separate orchestrators never share a roster
	by accident.
	"""

	def __init__(self):
		self._workers: dict[str, RegisteredWorker] = {}

	def register(self, worker: Worker, profile: Optional[WorkerProfile] = None) -> WorkerProfile:
		"""
		Register a worker, deriving its profile when none is supplied.

		Returns:
			The profile the worker was registered with
		"""
		if profile is None:
			profile = getattr(worker, "profile", None) or derive_profile(
				worker.name, getattr(worker, "role", "")
			)
		if profile.name != worker.name:
			profile = profile.model_copy(update={"name": worker.name})

		if worker.name in self._workers:
			logger.warning(f"Replacing registered worker: {worker.name}")
		self._workers[worker.name] = RegisteredWorker(worker=worker, profile=profile)
		logger.info(f"Registered worker {worker.name} with {len(profile.primary_skills)} primary skills")
		return profile

	def unregister(self, name: str) -> bool:
		return self._workers.pop(name, None) is not None

	def get(self, name: str) -> Optional[RegisteredWorker]:
		return self._workers.get(name)

	def find(self, name: str) -> Optional[RegisteredWorker]:
		"""Look a worker up by name, ignoring case."""
		found = self._workers.get(name)
		if found:
			return found
		lowered = name.lower()
		for registered in self._workers.values():
			if registered.name.lower() == lowered:
				return registered
		return None

	def all(self) -> list[RegisteredWorker]:
		return list(self._workers.values())

	def names(self) -> list[str]:
		return list(self._workers.keys())

	def profiles(self) -> dict[str, WorkerProfile]:
		return {name: rw.profile for name, rw in self._workers.items()}

	def __len__(self) -> int:
		return len(self._workers)

	def __contains__(self, name: str) -> bool:
		return name in self._workers


@dataclass
class SessionContext:
	"""Conversation context for one session."""
	session_id: str
	user_id: str
	history: list[str] = field(default_factory=list)
	max_history: int = 20

	def add(self, entry: str) -> None:
		self.history.append(entry)
		if len(self.history) > self.max_history:
			self.history = self.history[-self.max_history:]


class SessionContextStore:
	"""Session-keyed conversation context, passed into the orchestrator."""

	def __init__(self, max_history: int = 20):
		self.max_history = max_history
		self._sessions: dict[str, SessionContext] = {}

	def get(self, session_id: str, user_id: str) -> SessionContext:
		"""Get the context for a session, creating it on first use."""
		ctx = self._sessions.get(session_id)
		if ctx is None:
			ctx = SessionContext(session_id=session_id, user_id=user_id, max_history=self.max_history)
			self._sessions[session_id] = ctx
		return ctx

	def drop(self, session_id: str) -> None:
		self._sessions.pop(session_id, None)

	def sessions(self) -> list[str]:
		return list(self._sessions.keys())
