"""Analysis module - Skills matching, pattern selection and sequence planning."""

from .patterns import PATTERNS, PatternSelector
from .sequencing import SequenceOptimizer
from .skills import SkillsMatcher

__all__ = [
	"SkillsMatcher",
	"PatternSelector",
	"PATTERNS",
	"SequenceOptimizer",
]
