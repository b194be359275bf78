"""Rich rendering of the session snapshots."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cchud.config import Config
from cchud.context_tracker import ContextHealth, ContextStatus
from cchud.cost_tracker import CostEstimate
from cchud.git_status import GitSnapshot, collect_git_snapshot
from cchud.lifecycle import LifecycleSnapshot, SessionState
from cchud.pipeline import HudPipeline, build_pipeline
from cchud.tool_stream import ToolEntry
from cchud.utils import format_cost, format_duration, format_token_count, sparkline

logger = logging.getLogger(__name__)

BAR_WIDTH = 30

_STATUS_COLORS: dict[ContextStatus, str] = {
    ContextStatus.HEALTHY: "green",
    ContextStatus.WARNING: "yellow",
    ContextStatus.CRITICAL: "red",
}

_STATE_STYLES: dict[SessionState, str] = {
    SessionState.INIT: "dim",
    SessionState.ACTIVE: "bold green",
    SessionState.IDLE: "cyan",
    SessionState.RESETTING: "magenta",
    SessionState.DISCONNECTED: "bold red",
}


@dataclass(frozen=True)
class DashboardView:
    """Everything one frame renders, taken from immutable snapshots."""

    lifecycle: LifecycleSnapshot
    tools: tuple[ToolEntry, ...]
    context: ContextHealth
    cost: CostEstimate
    model: str = ""
    git: GitSnapshot | None = None


def collect_view(pipeline: HudPipeline, git: GitSnapshot | None = None) -> DashboardView:
    """Take snapshots from every aggregator."""
    return DashboardView(
        lifecycle=pipeline.lifecycle.snapshot(),
        tools=pipeline.tools.snapshot(),
        context=pipeline.context.snapshot(),
        cost=pipeline.cost.get_cost(),
        model=pipeline.cost.model,
        git=git,
    )


def build_header_panel(lifecycle: LifecycleSnapshot, model: str = "", git: GitSnapshot | None = None) -> Panel:
    """Build the session header.

    Args:
        lifecycle: Lifecycle snapshot.
        model: Active model id.
        git: Latest git snapshot, if polling is enabled.

    Returns:
        Panel with session id, state, model and git branch.
    """
    text = Text()
    text.append("Session: ", style="dim")
    session = lifecycle.session_id or "waiting"
    text.append(f"{session[:8]}  ", style="bold cyan")
    text.append("State: ", style="dim")
    text.append(lifecycle.state.value, style=_STATE_STYLES[lifecycle.state])
    if lifecycle.is_disconnected:
        attempts = f" (attempt {lifecycle.reconnect_attempts})" if lifecycle.reconnect_attempts else ""
        text.append(f"  ↻ reconnecting{attempts}", style="bold yellow")
    if model:
        text.append("  Model: ", style="dim")
        text.append(model, style="bold")

    text.append("\n")
    text.append("Agents: ", style="dim")
    text.append(f"{lifecycle.pending_subagents} running  ", style="bold magenta" if lifecycle.pending_subagents else "")
    text.append("Tools in flight: ", style="dim")
    text.append(f"{lifecycle.active_tools}  ")
    if lifecycle.compactions:
        text.append("Compactions: ", style="dim")
        text.append(f"{lifecycle.compactions}  ")

    if git is not None and git.is_repo:
        text.append("Branch: ", style="dim")
        text.append(git.branch_display, style="green")
        arrows: list[str] = []
        if git.ahead:
            arrows.append(f"↑{git.ahead}")
        if git.behind:
            arrows.append(f"↓{git.behind}")
        if arrows:
            text.append(f" {' '.join(arrows)}", style="bold yellow")
        if git.dirty:
            text.append(f"  +{git.staged} ~{git.modified} ?{git.untracked}", style="dim yellow")

    return Panel(text, title="Claude Code HUD", border_style="cyan")


def build_tools_panel(entries: tuple[ToolEntry, ...], max_visible: int = 12) -> Panel:
    """Build the tool stream table.

    Args:
        entries: Tool entries, most recent first.
        max_visible: Maximum rows to show.

    Returns:
        Panel with a table of recent tool calls.
    """
    if not entries:
        return Panel(Text("No tool activity yet", style="dim"), title="Tools", border_style="green")

    table = Table(show_header=False, box=None, padding=(0, 1), expand=True)
    table.add_column("status", width=1)
    table.add_column("tool", style="bold", no_wrap=True)
    table.add_column("summary", overflow="ellipsis", no_wrap=True, ratio=1)
    table.add_column("duration", justify="right", style="dim", no_wrap=True)

    for entry in entries[:max_visible]:
        table.add_row(
            Text(entry.symbol, style=entry.color),
            entry.name,
            Text(entry.summary, style="dim"),
            format_duration(entry.duration),
        )

    subtitle = f"{len(entries) - max_visible} older" if len(entries) > max_visible else None
    return Panel(table, title="Tools", subtitle=subtitle, border_style="green")


def _bar(percent: int, width: int = BAR_WIDTH) -> str:
    filled = min(max(round(percent / 100 * width), 0), width)
    return "█" * filled + "░" * (width - filled)


def build_context_panel(health: ContextHealth, show_breakdown: bool = True) -> Panel:
    """Build the context meter.

    Args:
        health: Context snapshot.
        show_breakdown: Whether to list tokens per category.

    Returns:
        Panel with usage bar, totals, burn rate and sparkline.
    """
    color = _STATUS_COLORS[health.status]
    text = Text()
    text.append(_bar(health.percent), style=color)
    text.append(f" {health.percent}%", style=f"bold {color}")
    if health.should_compact:
        text.append("  ⚠ COMPACT SOON", style="bold red")

    text.append("\n")
    text.append(f"{format_token_count(health.tokens)} used", style="bold")
    text.append(" / ", style="dim")
    text.append(f"{format_token_count(health.remaining)} left", style="bold")
    text.append(f"  (~{format_token_count(round(health.burn_rate))}/min", style="dim")
    minutes_left = health.projected_minutes_left
    if minutes_left is not None:
        text.append(f", ~{format_duration(minutes_left * 60)} to full", style="dim")
    text.append(")", style="dim")

    if show_breakdown:
        breakdown = health.breakdown
        text.append("\n")
        text.append("outputs ", style="dim")
        text.append(format_token_count(breakdown.tool_outputs))
        text.append("  inputs ", style="dim")
        text.append(format_token_count(breakdown.tool_inputs))
        text.append("  messages ", style="dim")
        text.append(format_token_count(breakdown.messages))
        text.append("  other ", style="dim")
        text.append(format_token_count(breakdown.other))

    if health.token_history:
        text.append("\n")
        text.append(sparkline(health.token_history), style=color)
        text.append(" usage", style="dim")

    return Panel(text, title="Context (est.)", border_style=color)


def build_cost_panel(cost: CostEstimate, model: str = "") -> Panel:
    """Build the cost estimate panel.

    Args:
        cost: Cost snapshot.
        model: Active model id.

    Returns:
        Panel with token totals and estimated cost.
    """
    text = Text()
    text.append("In: ", style="dim")
    text.append(f"{format_token_count(cost.input_tokens)} ({format_cost(cost.input_cost)})  ", style="bold")
    text.append("Out: ", style="dim")
    text.append(f"{format_token_count(cost.output_tokens)} ({format_cost(cost.output_cost)})  ", style="bold")
    text.append("Total: ", style="dim")
    text.append(f"~{format_cost(cost.total_cost)}", style="bold yellow")
    subtitle = f"{model} pricing" if model else None
    return Panel(text, title="Cost (est.)", subtitle=subtitle, border_style="yellow")


def build_display(view: DashboardView, show_breakdown: bool = True, max_tools_visible: int = 12) -> Group:
    """Compose all panels into a Rich Group."""
    return Group(
        build_header_panel(view.lifecycle, view.model, view.git),
        build_context_panel(view.context, show_breakdown=show_breakdown),
        build_cost_panel(view.cost, view.model),
        build_tools_panel(view.tools, max_visible=max_tools_visible),
    )


def run_dashboard(
    config: Config,
    transport_path: Path | None = None,
    repo_path: Path | None = None,
    console: Console | None = None,
) -> None:
    """Run the live dashboard until Ctrl+C.

    Args:
        config: Loaded configuration.
        transport_path: Event transport override.
        repo_path: Repository to poll for git state (default: cwd).
        console: Console to render to.
    """
    console = console or Console()
    pipeline = build_pipeline(config, transport_path)
    effective_repo = repo_path or Path.cwd()
    dash = config.dashboard

    consumer = threading.Thread(target=pipeline.run, name="cchud-consumer", daemon=True)
    consumer.start()

    git: GitSnapshot | None = collect_git_snapshot(effective_repo) if dash.show_git else None
    last_git_poll = time.monotonic()

    def make_display() -> Group:
        return build_display(
            collect_view(pipeline, git),
            show_breakdown=dash.show_breakdown,
            max_tools_visible=dash.max_tools_visible,
        )

    console.clear()
    try:
        with Live(make_display(), console=console, refresh_per_second=dash.refresh_per_second) as live:
            while consumer.is_alive():
                time.sleep(1 / dash.refresh_per_second)
                if dash.show_git and time.monotonic() - last_git_poll >= dash.git_poll_interval:
                    git = collect_git_snapshot(effective_repo)
                    last_git_poll = time.monotonic()
                live.update(make_display())
    except KeyboardInterrupt:
        console.print("\n[dim]Dashboard stopped.[/]")
    finally:
        pipeline.stop()
        consumer.join(timeout=2.0)
        if consumer.is_alive():
            logger.warning("consumer thread did not stop within 2s")
