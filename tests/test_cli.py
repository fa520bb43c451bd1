"""Tests for the CLI module."""

import argparse
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console

from interactive_orchestrator.cli import DEFAULT_ROSTER, build_registry, cmd_doctor, cmd_patterns, cmd_route, main
from interactive_orchestrator.llm import OfflineGenerator


def _console(tmp_path: Path) -> Console:
	return Console(file=open(tmp_path / "out.txt", "w"), force_terminal=True, width=160, highlight=False)


def test_main_without_command_exits_1():
	with patch("sys.argv", ["interactive-orchestrator"]):
		with pytest.raises(SystemExit) as exc_info:
			main()
		assert exc_info.value.code == 1


def test_route_subparser_registered():
	"""route should be a registered subcommand."""
	with patch("sys.argv", ["interactive-orchestrator", "route", "--help"]):
		with pytest.raises(SystemExit) as exc_info:
			main()
		assert exc_info.value.code == 0


def test_default_roster_profiles():
	registry = build_registry(OfflineGenerator())
	assert registry.names() == [name for name, _ in DEFAULT_ROSTER]
	assert "architecture" in registry.get("TechLead").profile.primary_skills
	assert "financial-analysis" in registry.get("FinanceAdvisor").profile.primary_skills


def test_patterns_command(tmp_path: Path):
	console = _console(tmp_path)
	with patch("interactive_orchestrator.cli.console", console):
		cmd_patterns(argparse.Namespace())
	console.file.close()
	output = (tmp_path / "out.txt").read_text()
	assert "sequential-handoff" in output
	assert "review-refinement" in output


def test_route_command_offline(tmp_path: Path):
	"""Routing works with text generation off, using keyword fallbacks."""
	console = _console(tmp_path)
	args = argparse.Namespace(request="Plan the marketing budget", user="local", session="s-1")
	with patch("interactive_orchestrator.cli.console", console):
		cmd_route(args)
	console.file.close()
	output = (tmp_path / "out.txt").read_text()
	assert "Routing Decision" in output
	assert "MarketingLead" in output


class TestDoctorExitCode:
	"""Test that doctor returns proper exit codes."""

	def test_doctor_exits_1_on_issues(self):
		"""Doctor should exit(1) when there are issues."""
		args = argparse.Namespace()
		with patch("interactive_orchestrator.cli.pkg_version", side_effect=Exception("nope")):
			with pytest.raises(SystemExit) as exc_info:
				cmd_doctor(args)
			assert exc_info.value.code == 1

	def test_doctor_passes_offline(self, capsys):
		with patch("interactive_orchestrator.cli.pkg_version", return_value="1.0"):
			cmd_doctor(argparse.Namespace())
		output = capsys.readouterr().out
		assert "disabled" in output
		assert "All checks passed." in output
