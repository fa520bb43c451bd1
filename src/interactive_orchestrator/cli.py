"""CLI for interactive-orchestrator: route, run, patterns, profile and doctor commands."""

import argparse
import asyncio
import platform
import shutil
import sys
import uuid
from importlib.metadata import version as pkg_version

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from .config import get_config
from .events import Event, EventType
from .llm import create_generator
from .logging_config import setup_logging
from .plans.store import BehaviorStore
from .workers import LLMWorker, WorkerRegistry

DEFAULT_ROSTER = [
	("CEO", "the chief executive focused on strategy, vision and business decisions"),
	("TechLead", "the technical lead covering architecture, engineering and feasibility"),
	("MarketingLead", "the marketing lead covering brand, campaigns and customer messaging"),
	("ResearchPro", "a research specialist who investigates data, markets and evidence"),
	("FinanceAdvisor", "a finance advisor covering budgets, forecasts and financial risk"),
	("ProjectManager", "a project manager who plans timelines, coordination and delivery"),
]

console = Console()


def build_registry(generator) -> WorkerRegistry:
	"""Registry holding the built-in worker roster."""
	registry = WorkerRegistry()
	for name, role in DEFAULT_ROSTER:
		registry.register(LLMWorker(name, role, generator))
	return registry


async def _open_store() -> BehaviorStore:
	config = get_config()
	config.ensure_dirs()
	store = BehaviorStore(str(config.db_path))
	await store.init()
	return store


async def _build_orchestrator(store: BehaviorStore):
	from .orchestrator import InteractiveOrchestrator

	generator = create_generator()
	orchestrator = InteractiveOrchestrator(
		registry=build_registry(generator),
		generator=generator,
		store=store,
	)
	await orchestrator.load_behavior_models()
	return orchestrator


def cmd_route(args: argparse.Namespace) -> None:
	"""Show the routing decision for a request without running it."""
	from .visualizer import render_routing_decision, render_sequence

	async def _route():
		store = await _open_store()
		try:
			orchestrator = await _build_orchestrator(store)
			return await orchestrator.analyze_and_route(args.request, args.user, args.session)
		finally:
			await store.close()

	decision = asyncio.run(_route())
	render_routing_decision(decision, console=console)
	if decision.sequence is not None:
		render_sequence(decision.sequence, console=console)


def cmd_run(args: argparse.Namespace) -> None:
	"""Run a request with the stdin activity monitor, streaming worker output."""
	from .visualizer import render_execution_state

	def on_event(event: Event) -> None:
		if event.type == EventType.STREAM_CHUNK:
			sys.stdout.write(event.data["chunk"])
			sys.stdout.flush()
		elif event.type == EventType.STEP_STARTED:
			console.print(f"\n[bold cyan]{event.data['agent']}[/bold cyan]")
		elif event.type == EventType.STEP_COMPLETED:
			sys.stdout.write("\n")
		elif event.type in (EventType.PLAN_PAUSED, EventType.PLAN_FAILED):
			console.print(f"\n[yellow]{event.type.value}[/yellow] {escape(str(event.data))}")

	async def _run():
		store = await _open_store()
		try:
			orchestrator = await _build_orchestrator(store)
			orchestrator.events.subscribe(None, on_event)
			console.print("[dim]Type 'stop', '@Worker', 'instead ...' or a question to steer the run.[/dim]")
			try:
				return await orchestrator.process_request(args.request, args.user, args.session)
			finally:
				await orchestrator.shutdown()
		finally:
			await store.close()

	state = asyncio.run(_run())
	console.print()
	render_execution_state(state, console=console)


def cmd_patterns(args: argparse.Namespace) -> None:
	"""List the collaboration pattern templates."""
	from .analysis.patterns import PATTERNS
	from .visualizer import render_patterns

	render_patterns(list(PATTERNS.values()), console=console)


def cmd_profile(args: argparse.Namespace) -> None:
	"""Show a user's stored behavior model and recent executions."""
	from .visualizer import render_behavior_model, render_execution_state

	async def _load():
		store = await _open_store()
		try:
			model = await store.get_model(args.user)
			executions = [s for s in await store.list_executions(limit=args.limit) if s.plan.context.user_id == args.user]
			return model, executions
		finally:
			await store.close()

	model, executions = asyncio.run(_load())
	if model is None:
		print(f"No behavior model for user '{args.user}'.")
		sys.exit(1)
	render_behavior_model(model, console=console)
	for state in executions:
		render_execution_state(state, console=console)


def cmd_doctor(args: argparse.Namespace) -> None:
	"""Health check - verify dependencies, the claude CLI and data directories."""
	print("interactive-orchestrator doctor")
	print(f"{'=' * 40}")

	config = get_config()
	issues: list[str] = []

	py_ver = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
	print(f"  Python:       {py_ver}")
	print(f"  Platform:     {platform.system()} {platform.machine()}")
	print()

	print("  Core deps:")
	for dep in ["pydantic", "aiosqlite", "platformdirs", "python-dotenv", "rich"]:
		try:
			print(f"    {dep:22s} {pkg_version(dep)}")
		except Exception:
			print(f"    {dep:22s} NOT INSTALLED")
			issues.append(f"{dep} package not installed")
	print()

	print("  Text generation:")
	if not config.use_llm:
		print("    disabled (keyword fallbacks only)")
	else:
		path = shutil.which(config.llm_command)
		print(f"    {config.llm_command:22s} {path or 'NOT FOUND'}")
		if path is None:
			issues.append(f"'{config.llm_command}' not on PATH; analyses will use fallbacks")
	print()

	print("  Data:")
	try:
		config.ensure_dirs()
		print(f"    data dir:            {config.data_dir}")
		print(f"    database:            {config.db_path}")
	except OSError as e:
		print(f"    data dir:            FAILED ({e})")
		issues.append(f"Cannot create data directories: {e}")
	print()

	if issues:
		print(f"  {len(issues)} issue(s) found:")
		for issue in issues:
			print(f"    - {issue}")
		sys.exit(1)
	else:
		print("  All checks passed.")


def main() -> None:
	"""CLI entry point."""
	load_dotenv()
	config = get_config()
	setup_logging(level=config.log_level, log_dir=config.log_dir)

	parser = argparse.ArgumentParser(
		prog="interactive-orchestrator",
		description="Route requests to specialized workers and run them interruptibly",
	)
	subparsers = parser.add_subparsers(dest="command")

	# route
	route_parser = subparsers.add_parser("route", help="Show the routing decision for a request")
	route_parser.add_argument("request", help="Request text")
	route_parser.add_argument("--user", default="local", help="User id (default: local)")
	route_parser.add_argument("--session", default=None, help="Session id (default: random)")
	route_parser.set_defaults(func=cmd_route)

	# run
	run_parser = subparsers.add_parser("run", help="Run a request with live interruption")
	run_parser.add_argument("request", help="Request text")
	run_parser.add_argument("--user", default="local", help="User id (default: local)")
	run_parser.add_argument("--session", default=None, help="Session id (default: random)")
	run_parser.set_defaults(func=cmd_run)

	# patterns
	patterns_parser = subparsers.add_parser("patterns", help="List collaboration patterns")
	patterns_parser.set_defaults(func=cmd_patterns)

	# profile
	profile_parser = subparsers.add_parser("profile", help="Show a user's behavior model")
	profile_parser.add_argument("user", help="User id")
	profile_parser.add_argument("--limit", type=int, default=5, help="Recent executions to show")
	profile_parser.set_defaults(func=cmd_profile)

	# doctor
	doctor_parser = subparsers.add_parser("doctor", help="Health check")
	doctor_parser.set_defaults(func=cmd_doctor)

	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	if getattr(args, "session", "") is None:
		args.session = str(uuid.uuid4())[:8]

	args.func(args)


if __name__ == "__main__":
	main()
