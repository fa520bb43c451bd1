"""Shared utilities for visualizer views."""

from ..plans.models import ExecutionStatus, InterruptionSafety


def format_duration(ms: float) -> str:
	"""Format a millisecond duration for display. e.g. '45ms', '1.2s', '2m 3s'."""
	if ms < 1:
		return "<1ms"
	if ms < 1000:
		return f"{ms:.0f}ms"
	seconds = ms / 1000
	if seconds < 60.0:
		return f"{seconds:.1f}s"
	minutes = int(seconds // 60)
	secs = seconds % 60
	return f"{minutes}m {secs:.0f}s"


def format_percent(value: float) -> str:
	return f"{value * 100:.0f}%"


def score_style(value: float) -> str:
	"""Return a Rich style string for a [0, 1] score."""
	if value >= 0.7:
		return "green"
	if value >= 0.4:
		return "yellow"
	return "red"


def truncate(text: str, max_len: int = 60) -> str:
	"""Shorten text for table display."""
	text = " ".join(text.split())
	if len(text) <= max_len:
		return text
	return text[:max_len - 3] + "..."


STATUS_STYLES = {
	ExecutionStatus.RUNNING: "yellow",
	ExecutionStatus.PAUSED: "cyan",
	ExecutionStatus.INTERRUPTED: "magenta",
	ExecutionStatus.COMPLETED: "green",
	ExecutionStatus.FAILED: "red",
}

SAFETY_STYLES = {
	InterruptionSafety.SAFE: "green",
	InterruptionSafety.WARNING: "yellow",
	InterruptionSafety.DANGEROUS: "red",
}
