"""Tests for cchud.dashboard module."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from rich.console import Console, Group
from rich.panel import Panel

from cchud.config import Config
from cchud.context_tracker import ContextHealth, ContextTracker
from cchud.cost_tracker import CostEstimate, CostTracker
from cchud.dashboard import (
    DashboardView,
    _bar,
    build_context_panel,
    build_cost_panel,
    build_display,
    build_header_panel,
    build_tools_panel,
    collect_view,
)
from cchud.git_status import GitSnapshot
from cchud.lifecycle import LifecycleSnapshot, SessionState
from cchud.pipeline import build_pipeline
from cchud.tool_stream import ToolStreamTracker

T0 = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def _render(renderable: object) -> str:
    console = Console(record=True, width=120, color_system=None)
    console.print(renderable)
    return console.export_text()


class TestBar:
    """Tests for the usage bar."""

    def test_empty_and_full(self) -> None:
        assert _bar(0, width=10) == "░" * 10
        assert _bar(100, width=10) == "█" * 10

    def test_overflow_clamped(self) -> None:
        assert _bar(150, width=10) == "█" * 10

    def test_half(self) -> None:
        assert _bar(50, width=10) == "█" * 5 + "░" * 5


class TestHeaderPanel:
    """Tests for build_header_panel."""

    def test_waiting_session(self) -> None:
        output = _render(build_header_panel(LifecycleSnapshot()))
        assert "waiting" in output
        assert "init" in output

    def test_reconnecting_indicator(self) -> None:
        snapshot = LifecycleSnapshot(state=SessionState.DISCONNECTED, session_id="abc", reconnect_attempts=2)
        output = _render(build_header_panel(snapshot))
        assert "reconnecting" in output
        assert "attempt 2" in output

    def test_no_indicator_when_active(self) -> None:
        output = _render(build_header_panel(LifecycleSnapshot(state=SessionState.ACTIVE, session_id="abc")))
        assert "reconnecting" not in output

    def test_git_branch(self) -> None:
        git = GitSnapshot(is_repo=True, branch="main", ahead=2, untracked=1)
        output = _render(build_header_panel(LifecycleSnapshot(), model="claude-opus-4", git=git))
        assert "main" in output
        assert "↑2" in output
        assert "claude-opus-4" in output


class TestToolsPanel:
    """Tests for build_tools_panel."""

    def test_empty(self) -> None:
        assert "No tool activity yet" in _render(build_tools_panel(()))

    def test_rows_and_overflow(self) -> None:
        tracker = ToolStreamTracker()
        for i in range(5):
            tracker.on_pre_tool_use(f"Tool{i}", T0 + timedelta(seconds=i), summary=f"arg{i}")
        tracker.on_post_tool_use("Tool4", T0 + timedelta(seconds=6))
        output = _render(build_tools_panel(tracker.snapshot(), max_visible=3))
        assert "Tool4" in output
        assert "2.0s" in output
        assert "Tool0" not in output
        assert "2 older" in output


class TestContextPanel:
    """Tests for build_context_panel."""

    def test_compact_warning(self) -> None:
        tracker = ContextTracker(max_tokens=1000)
        tracker.mark_session_start(T0)
        tracker.on_tool_output(950, at=T0 + timedelta(seconds=30))
        output = _render(build_context_panel(tracker.snapshot()))
        assert "95%" in output
        assert "COMPACT SOON" in output
        assert "Context (est.)" in output
        assert "usage" in output

    def test_healthy(self) -> None:
        output = _render(build_context_panel(ContextHealth(), show_breakdown=False))
        assert "0%" in output
        assert "COMPACT" not in output
        assert "outputs" not in output

    def test_breakdown(self) -> None:
        tracker = ContextTracker()
        tracker.on_tool_output(150_000, at=T0)
        output = _render(build_context_panel(tracker.snapshot()))
        assert "150k used" in output
        assert "outputs" in output


class TestCostPanel:
    """Tests for build_cost_panel."""

    def test_estimate_labelled(self) -> None:
        tracker = CostTracker()
        tracker.add_output_tokens(10_004)
        output = _render(build_cost_panel(tracker.get_cost(), model="sonnet"))
        assert "Cost (est.)" in output
        assert "$0.15" in output

    def test_zero(self) -> None:
        assert "$0.0000" in _render(build_cost_panel(CostEstimate()))


class TestBuildDisplay:
    """Tests for composing the full display."""

    def test_group_of_panels(self) -> None:
        view = DashboardView(
            lifecycle=LifecycleSnapshot(),
            tools=(),
            context=ContextHealth(),
            cost=CostEstimate(),
        )
        display = build_display(view)
        assert isinstance(display, Group)
        assert all(isinstance(panel, Panel) for panel in display.renderables)
        assert len(display.renderables) == 4

    def test_collect_view_from_pipeline(self, tmp_path: Path) -> None:
        pipeline = build_pipeline(Config(model="claude-haiku"), tmp_path / "events.jsonl")
        pipeline.feed('{"event": "PreToolUse", "session": "s1", "ts": 1760000000, "tool": "Grep"}')
        view = collect_view(pipeline)
        assert view.lifecycle.session_id == "s1"
        assert view.tools[0].name == "Grep"
        assert view.model == "claude-haiku"
        assert "Grep" in _render(build_display(view))
