"""
Analysis schemas for text-generation replies.

Every analytical decision asks the text generator for a reply made of
``FIELD_NAME: value`` lines. Each decision has its own schema naming the
fields it expects, their kinds and which of them are required. A reply
that is missing a required field, or whose field cannot be read as its
declared kind, raises MalformedAnalysis so the caller can switch to its
deterministic fallback.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .exceptions import MalformedAnalysis

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50
_FIELD_LINE = re.compile(r"^\s*[A-Za-z][A-Za-z0-9_]*\s*:")


class FieldKind(str, Enum):
	"""How a field value is read."""
	SCORE = "score"  # 0-100, returned as a 0-1 float
	INTEGER = "integer"
	TEXT = "text"
	LIST = "list"
	CHOICE = "choice"


@dataclass
class AnalysisField:
	"""A single expected field of a reply."""

	name: str
	kind: FieldKind
	description: str = ""
	required: bool = False
	choices: tuple[str, ...] = ()
	default: Any = None

	@property
	def key(self) -> str:
		return self.name.lower()


def strip_brackets(value: str) -> str:
	"""Remove one layer of surrounding brackets and quotes."""
	value = value.strip()
	if len(value) >= 2 and value[0] == "[" and value[-1] == "]":
		value = value[1:-1].strip()
	return value.strip("\"'").strip()


def extract_field(text: str, name: str) -> Optional[str]:
	"""
	Return the raw value of ``NAME: value`` in text.

	Continuation lines up to the next field line are appended, so list
	values written one item per line are captured too.
	"""
	pattern = re.compile(rf"^\s*{re.escape(name)}\s*:[ \t]*(.*)$", re.IGNORECASE | re.MULTILINE)
	match = pattern.search(text)
	if not match:
		return None

	parts = [match.group(1).strip()]
	rest = text[match.end():].splitlines()
	for line in rest[1:] if rest and rest[0] == "" else rest:
		if _FIELD_LINE.match(line) or not line.strip():
			break
		parts.append(line.strip())
	return "\n".join(p for p in parts if p)


def extract_score(text: str, name: str) -> Optional[int]:
	"""First integer after ``NAME:``, or None when the field is absent."""
	match = re.search(
		rf"^\s*{re.escape(name)}\s*:\s*\[?\s*(\d+)", text, re.IGNORECASE | re.MULTILINE
	)
	if match:
		return int(match.group(1))
	return None


def split_list(value: str) -> list[str]:
	"""Split a list value on commas and newlines, trimming decoration."""
	items = []
	for raw in re.split(r"[,\n]", strip_brackets(value)):
		item = raw.strip().lstrip("-*•").strip()
		item = strip_brackets(item)
		if item:
			items.append(item)
	return items


@dataclass
class AnalysisSchema:
	"""Strict schema for one analytical decision."""

	name: str
	description: str
	fields: list[AnalysisField] = field(default_factory=list)

	def format_instructions(self) -> str:
		"""Render the ``FIELD: [description]`` block for a prompt."""
		return "\n".join(f"{f.name}: [{f.description}]" for f in self.fields)

	def validate(self, response_str: str) -> tuple[bool, Optional[dict[str, Any]], Optional[str]]:
		"""
		Parse and validate a reply against this schema.

		Parsed data is keyed by lowercase field name. Optional fields
		that were absent get their default and are listed under the
		``_defaulted`` key.

		Returns:
			Tuple of (is_valid, parsed_data, error_message)
		"""
		if not response_str or not response_str.strip():
			return False, None, "Empty response"

		data: dict[str, Any] = {"_defaulted": []}
		for entry in self.fields:
			raw = extract_field(response_str, entry.name)
			if raw is None or raw == "":
				if entry.required:
					return False, data, f"Missing required field: {entry.name}"
				data[entry.key] = _default_for(entry)
				data["_defaulted"].append(entry.key)
				continue

			ok, value = _read_value(entry, response_str, raw)
			if not ok:
				return False, data, f"Field '{entry.name}' is not a valid {entry.kind.value}: {raw[:40]}"
			data[entry.key] = value

		return True, data, None

	def parse(self, response_str: str) -> dict[str, Any]:
		"""Validate a reply, raising MalformedAnalysis when it deviates."""
		is_valid, data, error = self.validate(response_str)
		if not is_valid:
			raise MalformedAnalysis(self.name, error or "invalid response")
		return data


def _default_for(entry: AnalysisField) -> Any:
	if entry.default is not None:
		return entry.default
	if entry.kind == FieldKind.SCORE:
		return DEFAULT_SCORE / 100
	if entry.kind == FieldKind.INTEGER:
		return DEFAULT_SCORE
	if entry.kind == FieldKind.LIST:
		return []
	return ""


def _read_value(entry: AnalysisField, text: str, raw: str) -> tuple[bool, Any]:
	"""Read a raw field value as the field's kind."""
	if entry.kind == FieldKind.SCORE:
		score = extract_score(text, entry.name)
		if score is None:
			return False, None
		return True, max(0.0, min(1.0, score / 100))
	if entry.kind == FieldKind.INTEGER:
		number = extract_score(text, entry.name)
		if number is None:
			return False, None
		return True, number
	if entry.kind == FieldKind.LIST:
		return True, split_list(raw)
	if entry.kind == FieldKind.CHOICE:
		value = strip_brackets(raw.splitlines()[0]).lower()
		if entry.choices and value not in entry.choices:
			return False, None
		return True, value
	return True, strip_brackets(raw)


def split_blocks(text: str, marker: str) -> list[str]:
	"""Split text into blocks that each begin with a ``MARKER:`` line."""
	pattern = re.compile(rf"^\s*{re.escape(marker)}\s*:", re.IGNORECASE | re.MULTILINE)
	starts = [m.start() for m in pattern.finditer(text)]
	blocks = []
	for i, start in enumerate(starts):
		end = starts[i + 1] if i + 1 < len(starts) else len(text)
		blocks.append(text[start:end])
	return blocks


# Predefined schemas

SKILLS_MATCH_SCHEMA = AnalysisSchema(
	name="skills_match",
	description="How well one worker fits a request",
	fields=[
		AnalysisField("PRIMARY_SKILL_MATCH", FieldKind.SCORE, "0-100 match of core skills", required=True),
		AnalysisField("SECONDARY_SKILL_MATCH", FieldKind.SCORE, "0-100 match of supporting skills"),
		AnalysisField("DOMAIN_EXPERTISE_MATCH", FieldKind.SCORE, "0-100 domain knowledge fit"),
		AnalysisField("TASK_TYPE_MATCH", FieldKind.SCORE, "0-100 fit for this kind of task"),
		AnalysisField("OVERALL_MATCH", FieldKind.SCORE, "0-100 overall suitability"),
		AnalysisField("CONFIDENCE", FieldKind.SCORE, "0-100 confidence in this assessment", required=True),
		AnalysisField("ESTIMATED_PERFORMANCE", FieldKind.SCORE, "0-100 expected quality of the answer"),
		AnalysisField("REASONING", FieldKind.TEXT, "one or two sentences"),
		AnalysisField("COLLABORATION_POTENTIAL", FieldKind.LIST, "comma-separated collaboration strengths"),
		AnalysisField("RISK_FACTORS", FieldKind.LIST, "comma-separated risks"),
	],
)

COLLABORATION_SCHEMA = AnalysisSchema(
	name="collaboration_opportunity",
	description="Synergy between a group of workers",
	fields=[
		AnalysisField("SYNERGY_SCORE", FieldKind.SCORE, "0-100 how well they work together", required=True),
		AnalysisField("SKILL_COMPLEMENTARITY", FieldKind.SCORE, "0-100 how much their skills complement"),
		AnalysisField("COLLABORATION_PATTERN", FieldKind.TEXT, "best pattern name"),
		AnalysisField("EXPECTED_OUTCOME", FieldKind.TEXT, "what the group would produce"),
		AnalysisField("REASONING", FieldKind.TEXT, "one or two sentences"),
		AnalysisField(
			"RISK_LEVEL", FieldKind.CHOICE, "low, medium or high",
			choices=("low", "medium", "high"), default="medium",
		),
	],
)

PATTERN_SCHEMA = AnalysisSchema(
	name="pattern_recommendation",
	description="Which collaboration pattern and workers to use",
	fields=[
		AnalysisField("RECOMMENDED_PATTERN", FieldKind.TEXT, "pattern name from the list above", required=True),
		AnalysisField("SELECTED_AGENTS", FieldKind.LIST, "comma-separated worker names", required=True),
		AnalysisField("CONFIDENCE", FieldKind.SCORE, "0-100 confidence in this recommendation"),
		AnalysisField("REASONING", FieldKind.TEXT, "2-3 sentences explaining the choice"),
		AnalysisField("ESTIMATED_DURATION", FieldKind.INTEGER, "milliseconds", default=0),
		AnalysisField("RISK_ASSESSMENT", FieldKind.TEXT, "brief assessment of the main risks"),
		AnalysisField("ALTERNATIVE_PATTERNS", FieldKind.LIST, "comma-separated viable alternatives"),
	],
)

SEQUENCE_STEP_SCHEMA = AnalysisSchema(
	name="sequence_step",
	description="One step of an execution sequence",
	fields=[
		AnalysisField("STEP_ID", FieldKind.TEXT, "unique id, e.g. step-1", required=True),
		AnalysisField("AGENT", FieldKind.TEXT, "worker name", required=True),
		AnalysisField("ACTION", FieldKind.TEXT, "what the worker does", required=True),
		AnalysisField("DURATION", FieldKind.INTEGER, "seconds", default=30),
		AnalysisField("PRIORITY", FieldKind.INTEGER, "1-10", default=5),
		AnalysisField(
			"INTERRUPTION_SAFETY", FieldKind.CHOICE, "safe, warning or dangerous",
			choices=("safe", "warning", "dangerous"), default="safe",
		),
		AnalysisField("DEPENDENCIES", FieldKind.LIST, "comma-separated step ids or none"),
		AnalysisField("CONTEXT_REQUIREMENTS", FieldKind.LIST, "comma-separated context needs"),
		AnalysisField("EXPECTED_OUTPUT", FieldKind.TEXT, "what the step produces"),
	],
)

SEQUENCE_SCHEMA = AnalysisSchema(
	name="sequence",
	description="Sequence-level annotations",
	fields=[
		AnalysisField("INTERRUPTION_POINTS", FieldKind.LIST, "comma-separated step ids safe to interrupt"),
		AnalysisField("RISK_ASSESSMENT", FieldKind.LIST, "one risk per line"),
		AnalysisField("OPTIMIZATION_REASONS", FieldKind.LIST, "one reason per line"),
		AnalysisField("TOTAL_DURATION", FieldKind.INTEGER, "seconds", default=0),
	],
)

ADAPTATION_SCHEMA = AnalysisSchema(
	name="plan_adaptation",
	description="How to change a running plan after feedback",
	fields=[
		AnalysisField(
			"ADAPTATION_TYPE", FieldKind.CHOICE, "reorder, replace, insert, remove, redesign or modify",
			required=True, choices=("reorder", "replace", "insert", "remove", "redesign", "modify"),
		),
		AnalysisField("REASON", FieldKind.TEXT, "why this change helps"),
		AnalysisField("CONFIDENCE", FieldKind.SCORE, "0-100 confidence in this change", required=True),
		AnalysisField("AFFECTED_STEPS", FieldKind.LIST, "comma-separated step ids"),
		AnalysisField("ESTIMATED_IMPROVEMENT", FieldKind.INTEGER, "expected improvement in percent", default=0),
		AnalysisField(
			"RISK_LEVEL", FieldKind.CHOICE, "low, medium or high",
			choices=("low", "medium", "high"), default="low",
		),
		AnalysisField("USER_SATISFACTION_PREDICTION", FieldKind.SCORE, "0-100 predicted satisfaction"),
	],
)

ROUTING_HINTS_SCHEMA = AnalysisSchema(
	name="routing_hints",
	description="Qualitative hints for a routing decision",
	fields=[
		AnalysisField("OPTIMIZATIONS", FieldKind.LIST, "comma-separated suggestions", required=True),
		AnalysisField("RISKS", FieldKind.LIST, "comma-separated risks"),
	],
)

SCHEMAS = {
	s.name: s
	for s in [
		SKILLS_MATCH_SCHEMA,
		COLLABORATION_SCHEMA,
		PATTERN_SCHEMA,
		SEQUENCE_STEP_SCHEMA,
		SEQUENCE_SCHEMA,
		ADAPTATION_SCHEMA,
		ROUTING_HINTS_SCHEMA,
	]
}


def get_schema(name: str) -> Optional[AnalysisSchema]:
	"""Get a predefined schema by name."""
	return SCHEMAS.get(name)
