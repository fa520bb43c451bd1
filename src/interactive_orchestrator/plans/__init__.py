"""Plans module - Routing models, execution state and behavior storage."""

from .models import (
	ExecutionPlan,
	ExecutionState,
	ExecutionStatus,
	Interruption,
	InterruptionType,
	RoutingDecision,
	UserBehaviorModel,
	WorkerProfile,
)
from .store import BehaviorStore

__all__ = [
	"WorkerProfile",
	"RoutingDecision",
	"ExecutionPlan",
	"ExecutionState",
	"ExecutionStatus",
	"Interruption",
	"InterruptionType",
	"UserBehaviorModel",
	"BehaviorStore",
]
