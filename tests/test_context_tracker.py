"""Tests for context_tracker module."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from cchud.context_tracker import (
    ContextCategory,
    ContextStatus,
    ContextTracker,
    context_status,
    usage_percent,
)
from cchud.events import EventKind, NormalizedEvent

T0 = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


class TestContextStatus:
    """Tests for status thresholds."""

    @pytest.mark.parametrize(
        ("percent", "status"),
        [
            (0, ContextStatus.HEALTHY),
            (69, ContextStatus.HEALTHY),
            (70, ContextStatus.WARNING),
            (89, ContextStatus.WARNING),
            (90, ContextStatus.CRITICAL),
            (120, ContextStatus.CRITICAL),
        ],
    )
    def test_thresholds(self, percent: int, status: ContextStatus) -> None:
        assert context_status(percent) == status

    def test_usage_percent_rounds_half_up(self) -> None:
        assert usage_percent(1, 200) == 1
        assert usage_percent(50, 200) == 25
        assert usage_percent(0, 200) == 0


class TestContextTracker:
    """Tests for ContextTracker."""

    def test_initial_snapshot(self) -> None:
        health = ContextTracker().snapshot()
        assert health.tokens == 0
        assert health.percent == 0
        assert health.remaining == 200_000
        assert health.status == ContextStatus.HEALTHY
        assert not health.should_compact
        assert health.token_history == ()
        assert health.session_start is None

    def test_tokens_plus_remaining_is_max(self) -> None:
        tracker = ContextTracker(max_tokens=1000)
        for amount in (10, 250, 3, 400):
            tracker.on_tool_output(amount, at=T0)
            health = tracker.snapshot()
            assert health.tokens + health.remaining == 1000

    def test_percent_monotone(self) -> None:
        tracker = ContextTracker(max_tokens=1000)
        last = 0
        for i in range(20):
            tracker.on_message(37, at=_at(i))
            percent = tracker.snapshot().percent
            assert percent >= last
            last = percent

    def test_overflow_not_capped(self) -> None:
        tracker = ContextTracker(max_tokens=100)
        tracker.on_tool_output(150, at=T0)
        health = tracker.snapshot()
        assert health.percent == 150
        assert health.remaining == 0
        assert health.status == ContextStatus.CRITICAL

    def test_should_compact_at_ninety_percent(self) -> None:
        tracker = ContextTracker(max_tokens=1000)
        tracker.on_tool_output(899, at=T0)
        assert not tracker.snapshot().should_compact
        tracker.on_tool_output(1, at=T0)
        health = tracker.snapshot()
        assert health.percent == 90
        assert health.should_compact

    def test_warning_status(self) -> None:
        tracker = ContextTracker(max_tokens=1000)
        tracker.on_tool_output(750, at=T0)
        assert tracker.snapshot().status == ContextStatus.WARNING

    def test_breakdown_categories(self) -> None:
        tracker = ContextTracker()
        tracker.on_tool_output(100, at=T0)
        tracker.on_tool_input(20, at=T0)
        tracker.on_message(5, at=T0)
        tracker.on_tool_output(7, ContextCategory.OTHER, at=T0)
        breakdown = tracker.snapshot().breakdown
        assert breakdown.tool_outputs == 100
        assert breakdown.tool_inputs == 20
        assert breakdown.messages == 5
        assert breakdown.other == 7
        assert tracker.tokens == 132

    def test_history_bounded(self) -> None:
        tracker = ContextTracker(history_size=50)
        for i in range(60):
            tracker.on_tool_output(1, at=_at(i))
        history = tracker.snapshot().token_history
        assert len(history) == 50
        assert history[-1] == 60
        assert history[0] == 11

    def test_zero_tokens_not_recorded_in_history(self) -> None:
        tracker = ContextTracker()
        tracker.on_tool_output(0, at=T0)
        assert tracker.snapshot().token_history == ()

    def test_burn_rate_per_minute(self) -> None:
        """600 tokens over 30 seconds is 1200 tokens per minute."""
        tracker = ContextTracker(burn_window=60)
        tracker.mark_session_start(T0)
        tracker.on_tool_output(300, at=_at(10))
        tracker.on_tool_output(300, at=_at(30))
        health = tracker.snapshot()
        assert health.burn_rate == pytest.approx(1200.0)
        assert health.projected_minutes_left == pytest.approx((200_000 - 600) / 1200.0)

    def test_burn_rate_drops_samples_outside_window(self) -> None:
        tracker = ContextTracker(burn_window=60)
        tracker.mark_session_start(T0)
        tracker.on_tool_output(1000, at=_at(1))
        tracker.on_tool_output(60, at=_at(200))
        assert tracker.snapshot().burn_rate == pytest.approx(60.0)

    def test_burn_rate_counts_every_sample_in_window(self) -> None:
        """Thousands of small outputs inside the window all count toward the rate."""
        tracker = ContextTracker(burn_window=60)
        tracker.mark_session_start(T0)
        for i in range(3000):
            tracker.on_tool_output(1, at=_at(i * 0.01))
        tracker.on_tool_output(1, at=_at(60))
        # 3001 tokens over the full 60 second window
        assert tracker.snapshot().burn_rate == pytest.approx(3001.0)

    def test_no_burn_rate_projection_when_idle(self) -> None:
        assert ContextTracker().snapshot().projected_minutes_left is None

    def test_session_start_kept(self) -> None:
        tracker = ContextTracker()
        tracker.mark_session_start(T0)
        tracker.mark_session_start(_at(100))
        assert tracker.snapshot().session_start == T0

    def test_reset(self) -> None:
        tracker = ContextTracker()
        tracker.mark_session_start(T0)
        tracker.on_tool_output(5000, at=_at(5))
        tracker.reset()
        health = tracker.snapshot()
        assert health.tokens == 0
        assert health.percent == 0
        assert health.burn_rate == 0.0
        assert health.token_history == ()
        assert health.session_start is None
        assert health.last_update is None

    def test_invalid_max_tokens(self) -> None:
        with pytest.raises(ValueError):
            ContextTracker(max_tokens=0)

    def test_consume_routes_payloads(self) -> None:
        tracker = ContextTracker()
        tracker.consume(
            NormalizedEvent(kind=EventKind.SESSION_START, session_id="s", timestamp=T0, name="SessionStart")
        )
        tracker.consume(
            NormalizedEvent(
                kind=EventKind.USER_PROMPT_SUBMIT,
                session_id="s",
                timestamp=_at(1),
                name="UserPromptSubmit",
                prompt="x" * 40,
            )
        )
        tracker.consume(
            NormalizedEvent(
                kind=EventKind.POST_TOOL_USE,
                session_id="s",
                timestamp=_at(2),
                name="PostToolUse",
                tool="Read",
                tool_input="y" * 8,
                response="z" * 400,
            )
        )
        health = tracker.snapshot()
        assert health.session_start == T0
        assert health.breakdown.messages == 10
        assert health.breakdown.tool_inputs == 2
        assert health.breakdown.tool_outputs == 100
        assert health.last_update == _at(2)
