"""Rich views for routing decisions, sequences, executions and behavior models."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ..plans.models import (
	CollaborationPattern,
	ExecutionState,
	ExecutionStatus,
	OptimizedSequence,
	RoutingDecision,
	UserBehaviorModel,
)
from .utils import SAFETY_STYLES, STATUS_STYLES, format_duration, format_percent, score_style, truncate

STEP_ICONS = {
	"done": "[green]\\[x][/green]",
	"current": "[yellow]\\[~][/yellow]",
	"paused": "[cyan]\\[=][/cyan]",
	"failed": "[red]\\[!][/red]",
	"pending": "[dim]\\[ ][/dim]",
}


def render_routing_decision(decision: RoutingDecision, console: Optional[Console] = None) -> None:
	"""Render a routing decision as a summary panel with the ranked workers."""
	console = console or Console()

	lines = []
	lines.append(f"[bold]Workers:[/bold] {' -> '.join(decision.selected_agents)}")
	lines.append(f"[bold]Pattern:[/bold] {decision.collaboration_pattern}")
	style = score_style(decision.confidence)
	lines.append(f"[bold]Confidence:[/bold] [{style}]{format_percent(decision.confidence)}[/{style}]")
	lines.append(f"[bold]Estimated duration:[/bold] {format_duration(decision.estimated_duration)}")
	if decision.reasoning:
		lines.append("")
		lines.append(escape(decision.reasoning))

	prediction = decision.prediction
	if prediction is not None:
		if prediction.risk_factors:
			lines.append("")
			lines.append("[bold]Risks:[/bold]")
			for risk in prediction.risk_factors:
				lines.append(f"  - {escape(risk)}")
		if prediction.optimizations:
			lines.append("")
			lines.append("[bold]Optimizations:[/bold]")
			for hint in prediction.optimizations:
				lines.append(f"  - {escape(hint)}")

	console.print(Panel("\n".join(lines), title="Routing Decision", border_style="cyan"))

	if decision.analyses:
		table = Table(title="Skills Match")
		table.add_column("#", justify="right")
		table.add_column("Worker", style="cyan")
		table.add_column("Overall", justify="right")
		table.add_column("Primary", justify="right")
		table.add_column("Confidence", justify="right")
		table.add_column("Source")

		for analysis in decision.analyses:
			style = score_style(analysis.overall_match)
			table.add_row(
				str(analysis.suitability_rank),
				analysis.agent_name,
				f"[{style}]{format_percent(analysis.overall_match)}[/{style}]",
				format_percent(analysis.primary_skill_match),
				format_percent(analysis.confidence),
				"keywords" if analysis.used_fallback else "analysis",
			)
		console.print(table)


def render_sequence(sequence: OptimizedSequence, console: Optional[Console] = None) -> None:
	"""Render an optimized sequence and its alternatives as a Tree."""
	console = console or Console()

	tree = Tree(
		f"[bold]Sequence ({sequence.variant})[/bold]  "
		f"[dim]({len(sequence.steps)} steps, {format_duration(sequence.total_duration)})[/dim]"
	)
	for step in sequence.steps:
		style = SAFETY_STYLES.get(step.interruption_safety, "white")
		branch = tree.add(
			f"[bold]{step.step_id}[/bold] {step.agent_name} "
			f"[{style}]{step.interruption_safety.value}[/{style}] "
			f"[dim]p{step.priority}, {format_duration(step.estimated_duration)}[/dim]"
		)
		branch.add(escape(truncate(step.action, 80)))
		if step.dependencies:
			branch.add(f"[dim]after {', '.join(step.dependencies)}[/dim]")

	if sequence.risks:
		risks = tree.add("[bold]Risks[/bold]")
		for risk in sequence.risks:
			risks.add(f"{risk.severity.value} {risk.type.value}: {escape(truncate(risk.description, 60))}")

	for alternative in sequence.alternatives:
		tree.add(
			f"[dim]{alternative.variant}: {len(alternative.steps)} steps, "
			f"{format_duration(alternative.total_duration)}[/dim]"
		)

	console.print(tree)


def _step_icon(state: ExecutionState, index: int) -> str:
	if index in state.outputs:
		return STEP_ICONS["done"]
	if index != state.current_step:
		return STEP_ICONS["pending"]
	if state.status == ExecutionStatus.FAILED:
		return STEP_ICONS["failed"]
	if state.status == ExecutionStatus.PAUSED:
		return STEP_ICONS["paused"]
	if state.status == ExecutionStatus.RUNNING:
		return STEP_ICONS["current"]
	return STEP_ICONS["pending"]


def render_execution_state(state: ExecutionState, console: Optional[Console] = None) -> None:
	"""Render an execution as a Tree with a status icon per step."""
	console = console or Console()

	progress = state.get_progress()
	style = STATUS_STYLES.get(state.status, "white")
	tree = Tree(
		f"[bold]{escape(truncate(state.plan.user_intent, 60))}[/bold]  "
		f"[{style}]{state.status.value}[/{style}]  "
		f"[dim]({progress['completed_steps']}/{progress['total_steps']} steps, "
		f"{progress['percent_complete']:.0f}%)[/dim]"
	)

	for index, step in enumerate(state.plan.steps):
		branch = tree.add(f"{_step_icon(state, index)} [bold]{step.agent_name}[/bold]")
		if index in state.outputs:
			branch.add(f"[dim]{escape(truncate(state.outputs[index], 80))}[/dim]")

	if state.interruption_history:
		interruptions = tree.add("[bold]Interruptions[/bold]")
		for interruption in state.interruption_history:
			interruptions.add(f"{interruption.type.value}: {escape(truncate(interruption.message, 60))}")

	if state.error:
		tree.add(f"[red]{escape(state.error)}[/red]")

	console.print(tree)


def render_behavior_model(model: UserBehaviorModel, console: Optional[Console] = None) -> None:
	"""Render a user's behavior model as tables."""
	console = console or Console()

	summary = (
		f"[bold]Feedback:[/bold] {model.feedback_count}  |  "
		f"[bold]Positive:[/bold] {model.positive_count}  |  "
		f"[bold]Interruptions:[/bold] {format_percent(model.interruption_frequency)}  |  "
		f"[bold]Avg session:[/bold] {format_duration(model.average_session_duration)}  |  "
		f"[bold]Confidence:[/bold] {format_percent(model.learning_confidence)}"
	)
	console.print(Panel(summary, title=f"User: {model.user_id}", border_style="green"))

	table = Table(title="Preferences")
	table.add_column("Kind")
	table.add_column("Name", style="cyan")
	table.add_column("Score", justify="right")

	for name, score in sorted(model.agent_preferences.items(), key=lambda kv: kv[1], reverse=True):
		style = score_style(score)
		table.add_row("worker", name, f"[{style}]{format_percent(score)}[/{style}]")
	for name, score in sorted(model.pattern_preferences.items(), key=lambda kv: kv[1], reverse=True):
		style = score_style(score)
		table.add_row("pattern", name, f"[{style}]{format_percent(score)}[/{style}]")

	if table.row_count:
		console.print(table)
	else:
		console.print("[dim]No preferences learned yet.[/dim]")

	if model.satisfaction_drivers:
		console.print(f"[green]Satisfied by:[/green] {', '.join(model.satisfaction_drivers)}")
	if model.frustration_triggers:
		console.print(f"[red]Frustrated by:[/red] {', '.join(model.frustration_triggers)}")


def render_patterns(
	patterns: list[CollaborationPattern],
	statistics: Optional[dict[str, dict]] = None,
	console: Optional[Console] = None,
) -> None:
	"""Render the collaboration pattern templates with usage statistics."""
	console = console or Console()
	statistics = statistics or {}

	table = Table(title="Collaboration Patterns")
	table.add_column("Pattern", style="cyan")
	table.add_column("Agents", justify="center")
	table.add_column("Steps", justify="right")
	table.add_column("Duration", justify="right")
	table.add_column("Suitable for")
	table.add_column("Used", justify="right")
	table.add_column("Success", justify="right")

	for pattern in patterns:
		stats = statistics.get(pattern.name, {})
		used = stats.get("total_usage", 0)
		table.add_row(
			pattern.name,
			f"{pattern.min_agents}-{pattern.max_agents}",
			str(len(pattern.steps)),
			format_duration(pattern.total_duration()),
			escape(truncate(", ".join(pattern.suitable_for), 40)),
			str(used),
			format_percent(stats.get("success_rate", 0.0)) if used else "-",
		)

	console.print(table)
