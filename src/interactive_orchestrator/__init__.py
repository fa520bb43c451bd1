"""Interactive orchestrator - skills-based routing and interruptible multi-agent execution."""

__version__ = "0.1.0"
