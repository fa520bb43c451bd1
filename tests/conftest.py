"""Test configuration: every test runs against a throwaway config."""

from pathlib import Path

import pytest

from interactive_orchestrator.config import Config, set_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path):
	"""Point config at tmp_path with text generation off and no stream delay."""
	config = Config(
		config_dir=tmp_path / "config",
		data_dir=tmp_path / "data",
		use_llm=False,
		stream_chunk_delay=0.0,
	)
	set_config(config)
	yield config
	set_config(None)
