"""
Text generation client.

Analytical components and workers talk to the text-generation service
through the TextGenerator protocol. The default implementation shells
out to the Claude CLI in print mode, feeding the prompt on stdin.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from .config import get_config
from .exceptions import GenerationError
from .schemas import AnalysisSchema

logger = logging.getLogger(__name__)


@runtime_checkable
class TextGenerator(Protocol):
	"""Anything that turns a prompt into a single text reply."""

	async def generate(
		self,
		prompt: str,
		model: Optional[str] = None,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		...


class ClaudeCLIGenerator:
	"""
	Generates text with ``claude --print``.

	Args:
		command: CLI executable name
		timeout: Seconds to wait for a reply
		model: Default model passed with --model, if any
	"""

	def __init__(
		self,
		command: Optional[str] = None,
		timeout: Optional[float] = None,
		model: Optional[str] = None,
	):
		config = get_config()
		self.command = command or config.llm_command
		self.timeout = timeout or config.llm_timeout
		self.model = model or config.model

	async def generate(
		self,
		prompt: str,
		model: Optional[str] = None,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		# The CLI has no temperature or length flags; those stay advisory here.
		args = [self.command, "--print", "--output-format", "text"]
		chosen_model = model or self.model
		if chosen_model:
			args.extend(["--model", chosen_model])

		try:
			process = await asyncio.create_subprocess_exec(
				*args,
				stdin=asyncio.subprocess.PIPE,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
			)
		except FileNotFoundError as e:
			raise GenerationError(f"{self.command} CLI not found") from e
		except OSError as e:
			raise GenerationError(f"Failed to start {self.command}: {e}") from e

		try:
			stdout, stderr = await asyncio.wait_for(
				process.communicate(input=prompt.encode()),
				timeout=self.timeout,
			)
		except asyncio.TimeoutError as e:
			process.kill()
			await process.wait()
			raise GenerationError(f"Generation timed out after {self.timeout}s") from e
		except OSError as e:
			raise GenerationError(f"Failed to talk to {self.command}: {e}") from e

		if process.returncode != 0:
			raise GenerationError(f"CLI error: {stderr.decode(errors='replace').strip()}")

		return stdout.decode(errors="replace").strip()


class OfflineGenerator:
	"""Generator that always fails, forcing every component onto its fallback."""

	async def generate(
		self,
		prompt: str,
		model: Optional[str] = None,
		temperature: Optional[float] = None,
		max_tokens: Optional[int] = None,
	) -> str:
		raise GenerationError("Text generation is disabled")


def create_generator() -> TextGenerator:
	"""Build the generator the config asks for."""
	config = get_config()
	if not config.use_llm:
		return OfflineGenerator()
	return ClaudeCLIGenerator()


async def request_analysis(
	generator: TextGenerator,
	prompt: str,
	schema: AnalysisSchema,
	**kwargs: Any,
) -> dict[str, Any]:
	"""
	Ask the generator and validate the reply against a schema.

	Raises:
		GenerationError: If the service call fails
		MalformedAnalysis: If the reply does not satisfy the schema
	"""
	config = get_config()
	response = await generator.generate(
		prompt,
		model=kwargs.get("model"),
		temperature=kwargs.get("temperature", config.temperature),
		max_tokens=kwargs.get("max_tokens", config.max_tokens),
	)
	logger.debug(f"{schema.name} reply: {response[:200]}")
	return schema.parse(response)
