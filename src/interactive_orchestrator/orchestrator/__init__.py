"""Orchestrator module - Routing front door, execution engine and activity monitoring."""

from .engine import Continue, ExecutionEngine, Interrupted
from .interactive import InteractiveOrchestrator
from .monitor import ActivityMonitor
from .strategies import (
	KeywordIntentAnalyzer,
	PerAgentPlanBuilder,
	PredictiveWorkerSelector,
	SequencePlanBuilder,
	SkillsWorkerSelector,
)

__all__ = [
	"InteractiveOrchestrator",
	"ExecutionEngine",
	"Continue",
	"Interrupted",
	"ActivityMonitor",
	"KeywordIntentAnalyzer",
	"PredictiveWorkerSelector",
	"SkillsWorkerSelector",
	"PerAgentPlanBuilder",
	"SequencePlanBuilder",
]
