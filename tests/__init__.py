"""Tests for interactive-orchestrator."""
