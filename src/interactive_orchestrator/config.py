"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import platformdirs

APP_NAME = "interactive-orchestrator"
APP_AUTHOR = "interactive-orchestrator"
ENV_PREFIX = "INTERACTIVE_ORCHESTRATOR_"


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	# Text generation
	use_llm: bool = True
	llm_command: str = "claude"
	llm_timeout: float = 120.0
	model: Optional[str] = None
	temperature: float = 0.3
	max_tokens: int = 1000

	# Routing and learning
	ema_alpha: float = 0.1
	adaptation_threshold: float = 0.7
	max_selected_agents: int = 3
	skill_weights: dict = field(default_factory=lambda: {
		"primary": 0.40,
		"secondary": 0.25,
		"task_type": 0.20,
		"collaboration": 0.15,
	})

	# Execution
	stream_chunk_delay: float = 0.01

	# Strategy selection
	intent_strategy: str = "keyword"
	selector_strategy: str = "predictive"
	plan_strategy: str = "per-agent"

	log_level: str = "INFO"

	def __post_init__(self) -> None:
		self.db_path = self.data_dir / "behavior.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)


_PATH_FIELDS = {"config_dir", "data_dir"}
_BOOL_FIELDS = {"use_llm"}
_FLOAT_FIELDS = {"llm_timeout", "temperature", "ema_alpha", "adaptation_threshold", "stream_chunk_delay"}
_INT_FIELDS = {"max_tokens", "max_selected_agents"}
_STR_FIELDS = {"llm_command", "model", "intent_strategy", "selector_strategy", "plan_strategy", "log_level"}


def _coerce(attr: str, val: str):
	if attr in _PATH_FIELDS:
		return Path(os.path.expanduser(val))
	if attr in _BOOL_FIELDS:
		return val.strip().lower() in ("1", "true", "yes", "on")
	if attr in _FLOAT_FIELDS:
		return float(val)
	if attr in _INT_FIELDS:
		return int(val)
	return val


def _apply_env_overrides(config: Config) -> Config:
	"""Apply INTERACTIVE_ORCHESTRATOR_* environment variable overrides."""
	for attr in _PATH_FIELDS | _BOOL_FIELDS | _FLOAT_FIELDS | _INT_FIELDS | _STR_FIELDS:
		val = os.getenv(ENV_PREFIX + attr.upper())
		if val:
			setattr(config, attr, _coerce(attr, val))
	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	for key, val in data.items():
		if hasattr(config, key):
			if key in _PATH_FIELDS:
				setattr(config, key, Path(os.path.expanduser(val)))
			elif key == "skill_weights" and isinstance(val, dict):
				config.skill_weights.update(val)
			else:
				setattr(config, key, val)

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config


def set_config(config: Config | None) -> None:
	"""Replace the global config instance (None resets it)."""
	global _config
	_config = config
