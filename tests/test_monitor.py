"""Tests for operator input classification and the activity monitor."""

import asyncio
import os

import pytest

from interactive_orchestrator.orchestrator.monitor import (
	ActivityMonitor,
	classify,
	extract_direction,
	parse_interruption,
	stdin_lines,
)
from interactive_orchestrator.plans.models import InterruptionType, Level

from .helpers import no_input


class TestClassify:
	"""Tests for line classification."""

	@pytest.mark.parametrize("line,expected", [
		("STOP", InterruptionType.STOP),
		("wait a moment", InterruptionType.STOP),
		("@reviewer please pause", InterruptionType.AGENT_SWITCH),
		("switch to CEO", InterruptionType.AGENT_SWITCH),
		("instead focus on costs", InterruptionType.REDIRECT),
		("No, talk about pricing", InterruptionType.REDIRECT),
		("start over", InterruptionType.NEW_PLAN),
		("why is that?", InterruptionType.CLARIFICATION),
		("hold on", InterruptionType.PAUSE),
		("this is the wrong direction", InterruptionType.REDIRECT),
		("can you cancel?", InterruptionType.CLARIFICATION),
	])
	def test_classification(self, line, expected):
		assert classify(line) == expected

	def test_plain_context(self):
		assert classify("please continue") is None
		assert classify("   ") is None

	def test_redirect_direction(self):
		assert extract_direction("instead focus on costs") == "focus on costs"
		assert extract_direction("No, talk about pricing") == "talk about pricing"

	def test_parse_switch_target(self):
		interruption = parse_interruption("s-1", "  @reviewer please pause ")
		assert interruption.type == InterruptionType.AGENT_SWITCH
		assert interruption.target_agent == "reviewer"
		assert interruption.new_direction is None
		assert interruption.message == "@reviewer please pause"

	def test_urgency(self):
		assert parse_interruption("s-1", "stop now").urgency == Level.HIGH
		assert parse_interruption("s-1", "start over").urgency == Level.HIGH
		assert parse_interruption("s-1", "what does that mean").urgency == Level.LOW
		assert parse_interruption("s-1", "instead do X").urgency == Level.MEDIUM


class TestActivityMonitor:
	"""Tests for ActivityMonitor."""

	@pytest.mark.asyncio
	async def test_feed_lines_and_stats(self):
		interruptions = []
		inputs = []

		async def on_interruption(interruption):
			interruptions.append(interruption)

		async def on_input(session_id, line):
			inputs.append((session_id, line))

		monitor = ActivityMonitor(on_interruption, on_input)
		assert await monitor.start_monitoring("s-1", no_input()) is True

		await monitor.feed_line("stop")
		await monitor.feed_line("the budget is fixed")
		await monitor.feed_line("why?")

		stats = monitor.get_stats()
		assert stats["is_active"] is True
		assert stats["session_id"] == "s-1"
		assert stats["interruption_count"] == 2
		assert stats["interruptions_by_type"]["stop"] == 1
		assert stats["interruptions_by_type"]["clarification"] == 1
		assert stats["input_count"] == 1
		assert [i.type for i in interruptions] == [InterruptionType.STOP, InterruptionType.CLARIFICATION]
		assert inputs == [("s-1", "the budget is fixed")]

		assert await monitor.stop_monitoring("s-1") is True
		assert monitor.is_active is False

	@pytest.mark.asyncio
	async def test_single_session_per_monitor(self):
		monitor = ActivityMonitor()
		assert await monitor.start_monitoring("s-1", no_input()) is True
		assert await monitor.start_monitoring("s-2", no_input()) is False
		assert monitor.session_id == "s-1"

		assert await monitor.stop_monitoring("s-2") is False
		assert monitor.is_active is True
		assert await monitor.stop_monitoring() is True
		assert await monitor.stop_monitoring() is False

	@pytest.mark.asyncio
	async def test_feed_while_inactive_is_ignored(self):
		monitor = ActivityMonitor()
		assert await monitor.feed_line("stop") is None
		assert monitor.get_stats()["interruption_count"] == 0

	@pytest.mark.asyncio
	async def test_reads_from_source(self):
		"""Lines from the async source reach the callback."""
		seen = asyncio.Event()
		received = []

		async def on_interruption(interruption):
			received.append(interruption)
			seen.set()

		async def source():
			yield "the weather is nice"
			yield "@CEO weigh in"

		monitor = ActivityMonitor(on_interruption)
		await monitor.start_monitoring("s-9", source())
		await asyncio.wait_for(seen.wait(), timeout=2)
		await monitor.stop_monitoring()

		assert received[0].target_agent == "CEO"
		assert received[0].session_id == "s-9"
		assert monitor.get_stats()["input_count"] == 1


class TestStdinLines:
	"""Tests for reading operator input from a pipe."""

	@pytest.mark.asyncio
	async def test_yields_lines_until_eof(self):
		read_fd, write_fd = os.pipe()
		with os.fdopen(read_fd, "rb", buffering=0) as stream:
			os.write(write_fd, b"stop\n\xffhello\r\n")
			os.close(write_fd)
			lines = [line async for line in stdin_lines(stream)]

		assert lines == ["stop", "\ufffdhello"]

	@pytest.mark.asyncio
	async def test_stop_monitoring_ends_a_pending_read(self):
		"""Stopping the monitor does not wait for the operator to type anything."""
		read_fd, write_fd = os.pipe()
		try:
			with os.fdopen(read_fd, "rb", buffering=0) as stream:
				monitor = ActivityMonitor()
				await monitor.start_monitoring("s-1", stdin_lines(stream))
				await asyncio.sleep(0.05)

				assert await asyncio.wait_for(monitor.stop_monitoring(), timeout=1) is True
				assert os.get_blocking(stream.fileno()) is True
		finally:
			os.close(write_fd)

	@pytest.mark.asyncio
	async def test_unreadable_stream_yields_nothing(self, tmp_path):
		"""A regular file cannot be watched, so there is simply no input."""
		path = tmp_path / "input.txt"
		path.write_text("stop\n")
		with open(path, "rb") as stream:
			lines = [line async for line in stdin_lines(stream)]
		assert lines == []
