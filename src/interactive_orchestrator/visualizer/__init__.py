"""Visualizer package - Rich terminal views for routing and execution."""

from .utils import format_duration
from .views import (
	render_behavior_model,
	render_execution_state,
	render_patterns,
	render_routing_decision,
	render_sequence,
)

__all__ = [
	"format_duration",
	"render_behavior_model",
	"render_execution_state",
	"render_patterns",
	"render_routing_decision",
	"render_sequence",
]
