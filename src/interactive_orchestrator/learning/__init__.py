"""Learning module - Predictive routing, feedback learning and plan adaptation."""

from .adaptive import AdaptivePlanner
from .feedback import FeedbackLearner
from .routing import PredictiveRouter

__all__ = [
	"PredictiveRouter",
	"FeedbackLearner",
	"AdaptivePlanner",
]
