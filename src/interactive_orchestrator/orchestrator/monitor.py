"""
Activity Monitor - Watches operator input while a plan runs.

Responsibilities:
- Read lines from an async source (stdin by default) in the background
- Classify each line as an interruption type or plain context
- Extract the target worker of a switch and the new direction of a redirect
- Hand interruptions and plain input to callbacks
- Count interruptions per type
"""

import asyncio
import logging
import os
import re
import sys
from datetime import datetime
from typing import IO, AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

from ..plans.models import Interruption, InterruptionType, Level

logger = logging.getLogger(__name__)

# Ordered: the first group with a matching pattern wins
INTERRUPTION_PATTERNS: list[tuple[InterruptionType, list[re.Pattern]]] = [
	(InterruptionType.STOP, [re.compile(p, re.IGNORECASE) for p in (r"^stop", r"^halt", r"^pause", r"^wait")]),
	(InterruptionType.REDIRECT, [
		re.compile(p, re.IGNORECASE) for p in (r"^change", r"^instead", r"^redirect", r"^no,?\s", r"^actually")
	]),
	(InterruptionType.AGENT_SWITCH, [re.compile(p, re.IGNORECASE) for p in (r"^@(\w+)", r"^switch to", r"^talk to")]),
	(InterruptionType.NEW_PLAN, [
		re.compile(p, re.IGNORECASE)
		for p in (r"^new direction", r"^start over", r"^forget that", r"^different approach")
	]),
	(InterruptionType.CLARIFICATION, [re.compile(p, re.IGNORECASE) for p in (r"^what", r"^why", r"^how", r"^explain")]),
	(InterruptionType.PAUSE, [re.compile(p, re.IGNORECASE) for p in (r"^hold on", r"^give me a second")]),
]

INTERRUPTION_KEYWORDS = (
	"interrupt", "break", "abort", "cancel", "switch", "change course",
	"hold up", "wait up", "time out", "different", "wrong direction",
)

TARGET_PATTERNS = [
	re.compile(r"@(\w+)", re.IGNORECASE),
	re.compile(r"(?:switch to|talk to)\s+(\w+)", re.IGNORECASE),
]
REDIRECT_PREFIX = re.compile(r"^(change|instead|redirect|no,?\s|actually)\s*", re.IGNORECASE)

URGENCY = {
	InterruptionType.STOP: Level.HIGH,
	InterruptionType.NEW_PLAN: Level.HIGH,
	InterruptionType.CLARIFICATION: Level.LOW,
}


def classify(line: str) -> Optional[InterruptionType]:
	"""
	Classify one line of operator input.

	Returns:
		The interruption type, or None when the line is plain context
	"""
	text = line.strip()
	if not text:
		return None
	for interruption_type, patterns in INTERRUPTION_PATTERNS:
		if any(p.search(text) for p in patterns):
			return interruption_type

	lowered = text.lower()
	if any(k in lowered for k in INTERRUPTION_KEYWORDS):
		return InterruptionType.CLARIFICATION if "?" in text else InterruptionType.REDIRECT
	return None


def extract_target(line: str) -> Optional[str]:
	for pattern in TARGET_PATTERNS:
		match = pattern.search(line)
		if match:
			return match.group(1)
	return None


def extract_direction(line: str) -> Optional[str]:
	cleaned = REDIRECT_PREFIX.sub("", line.strip(), count=1).strip()
	return cleaned or None


def parse_interruption(session_id: str, line: str) -> Optional[Interruption]:
	"""Build an Interruption from a line, or None when it is not one."""
	interruption_type = classify(line)
	if interruption_type is None:
		return None

	text = line.strip()
	return Interruption(
		session_id=session_id,
		type=interruption_type,
		message=text,
		target_agent=extract_target(text) if interruption_type == InterruptionType.AGENT_SWITCH else None,
		new_direction=extract_direction(text) if interruption_type == InterruptionType.REDIRECT else None,
		urgency=URGENCY.get(interruption_type, Level.MEDIUM),
	)


async def stdin_lines(stream: Optional[IO] = None) -> AsyncIterator[str]:
	"""
	Yield lines typed on stdin without blocking the event loop.

	The pipe is read by the event loop itself, so cancelling the
	consuming task ends the read at once.

	Args:
		stream: File to read; sys.stdin when None
	"""
	stream = stream if stream is not None else sys.stdin
	loop = asyncio.get_running_loop()
	reader = asyncio.StreamReader()
	try:
		fd = stream.fileno()
		blocking = os.get_blocking(fd)
		pipe = os.fdopen(os.dup(fd), "rb", buffering=0)
	except (OSError, ValueError) as e:
		logger.warning(f"Cannot watch operator input: {e}")
		return
	try:
		transport, _ = await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), pipe)
	except (OSError, ValueError) as e:
		pipe.close()
		logger.warning(f"Cannot watch operator input: {e}")
		return

	try:
		while True:
			line = await reader.readline()
			if not line:
				return
			yield line.decode(errors="replace").rstrip("\r\n")
	finally:
		transport.close()
		# The duplicate shares the original's blocking flag
		os.set_blocking(fd, blocking)


class ActivityMonitor:
	"""
	Monitors one session's operator input.

	Each session gets its own monitor; a monitor watches one session
	at a time.
	"""

	def __init__(
		self,
		on_interruption: Optional[Callable[[Interruption], Awaitable[None]]] = None,
		on_input: Optional[Callable[[str, str], Awaitable[None]]] = None,
	):
		"""
		Initialize the monitor.

		Args:
			on_interruption: Callback(interruption)
			on_input: Callback(session_id, line) for non-interrupting input
		"""
		self.on_interruption = on_interruption
		self.on_input = on_input

		self.session_id: Optional[str] = None
		self.started_at: Optional[str] = None
		self.last_input_at: Optional[str] = None
		self._counts: dict[InterruptionType, int] = {t: 0 for t in InterruptionType}
		self._input_count = 0
		self._reader: Optional[asyncio.Task] = None

	@property
	def is_active(self) -> bool:
		return self.session_id is not None

	async def start_monitoring(
		self,
		session_id: str,
		source: Optional[AsyncIterable[str]] = None,
	) -> bool:
		"""
		Start watching a session.

		Args:
			session_id: Session to attribute input to
			source: Async iterable of lines; stdin when None. Pass an
				empty iterable to rely on ``feed_line`` only.

		Returns:
			False when the monitor is already watching a session
		"""
		if self.is_active:
			logger.warning(
				f"Monitor already active for session {self.session_id}, ignoring start for {session_id}"
			)
			return False

		self.session_id = session_id
		self.started_at = datetime.now().isoformat()
		self._counts = {t: 0 for t in InterruptionType}
		self._input_count = 0
		self._reader = asyncio.create_task(self._read(source if source is not None else stdin_lines()))
		logger.info(f"Started monitoring session {session_id}")
		return True

	async def stop_monitoring(self, session_id: Optional[str] = None) -> bool:
		"""
		Stop watching.

		A stop for a session other than the watched one is ignored.
		"""
		if not self.is_active:
			return False
		if session_id is not None and session_id != self.session_id:
			logger.warning(
				f"Ignoring stop for session {session_id}, monitor is watching {self.session_id}"
			)
			return False

		if self._reader is not None and self._reader is not asyncio.current_task():
			self._reader.cancel()
			try:
				await self._reader
			except asyncio.CancelledError:
				pass
		self._reader = None

		logger.info(f"Stopped monitoring session {self.session_id}")
		self.session_id = None
		return True

	async def _read(self, source: AsyncIterable[str]) -> None:
		try:
			async for line in source:
				await self.feed_line(line)
		except asyncio.CancelledError:
			raise
		except Exception as e:
			logger.error(f"Monitor input source failed: {e}")

	async def feed_line(self, line: str) -> Optional[Interruption]:
		"""
		Process one line of operator input.

		Returns:
			The interruption the line produced, if any
		"""
		if not self.is_active or not line.strip():
			return None

		self.last_input_at = datetime.now().isoformat()
		interruption = parse_interruption(self.session_id, line)
		if interruption is None:
			self._input_count += 1
			if self.on_input:
				await self.on_input(self.session_id, line.strip())
			return None

		self._counts[interruption.type] += 1
		logger.info(f"Interruption in {self.session_id}: {interruption.type.value} ({interruption.message[:40]!r})")
		if self.on_interruption:
			await self.on_interruption(interruption)
		return interruption

	def get_stats(self) -> dict:
		"""Monitoring state and interruption counts per type."""
		return {
			"is_active": self.is_active,
			"session_id": self.session_id,
			"started_at": self.started_at,
			"last_input_at": self.last_input_at,
			"interruption_count": sum(self._counts.values()),
			"interruptions_by_type": {t.value: n for t, n in self._counts.items()},
			"input_count": self._input_count,
		}
