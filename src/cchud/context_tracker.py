"""Context window usage estimate for the current session.

Token counts come from ``estimate_tokens`` (characters / 4), so every figure
here is approximate. Thresholds are fixed policy, not configuration.
"""

from __future__ import annotations

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from cchud.events import EventKind, NormalizedEvent, estimate_tokens

DEFAULT_MAX_TOKENS = 200_000
DEFAULT_HISTORY_SIZE = 50
DEFAULT_BURN_WINDOW = 60.0

WARNING_PERCENT = 70
CRITICAL_PERCENT = 90
COMPACT_PERCENT = 90


class ContextStatus(StrEnum):
    """Health of the context window."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class ContextCategory(StrEnum):
    """Breakdown buckets for context usage."""

    TOOL_OUTPUTS = "tool_outputs"
    TOOL_INPUTS = "tool_inputs"
    MESSAGES = "messages"
    OTHER = "other"


@dataclass(frozen=True)
class ContextBreakdown:
    """Estimated tokens per category."""

    tool_outputs: int = 0
    tool_inputs: int = 0
    messages: int = 0
    other: int = 0


def _empty_history() -> tuple[int, ...]:
    return ()


@dataclass(frozen=True)
class ContextHealth:
    """Snapshot of context usage."""

    tokens: int = 0
    percent: int = 0
    remaining: int = DEFAULT_MAX_TOKENS
    max_tokens: int = DEFAULT_MAX_TOKENS
    burn_rate: float = 0.0  # tokens per minute
    status: ContextStatus = ContextStatus.HEALTHY
    should_compact: bool = False
    breakdown: ContextBreakdown = ContextBreakdown()
    session_start: datetime | None = None
    last_update: datetime | None = None
    token_history: tuple[int, ...] = field(default_factory=_empty_history)

    @property
    def projected_minutes_left(self) -> float | None:
        """Minutes until the window fills at the current burn rate."""
        if self.burn_rate <= 0:
            return None
        return self.remaining / self.burn_rate


def context_status(percent: int) -> ContextStatus:
    """Map a usage percentage to its status."""
    if percent >= CRITICAL_PERCENT:
        return ContextStatus.CRITICAL
    if percent >= WARNING_PERCENT:
        return ContextStatus.WARNING
    return ContextStatus.HEALTHY


def usage_percent(tokens: int, max_tokens: int) -> int:
    """Percentage of the window used, rounded half up."""
    return math.floor(100 * tokens / max_tokens + 0.5)


class ContextTracker:
    """Accumulates estimated context usage and publishes ContextHealth snapshots."""

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        history_size: int = DEFAULT_HISTORY_SIZE,
        burn_window: float = DEFAULT_BURN_WINDOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be positive")
        self.max_tokens = max_tokens
        self.burn_window = burn_window
        self._clock = clock
        self._history: deque[int] = deque(maxlen=history_size)
        self._window: deque[tuple[float, int]] = deque()
        self._window_total = 0
        self._breakdown: dict[ContextCategory, int] = dict.fromkeys(ContextCategory, 0)
        self._session_start: float | None = None
        self._last_update: float | None = None
        self._burn_rate = 0.0
        self._snapshot = self._build()

    def mark_session_start(self, at: datetime | None = None) -> None:
        """Record when the session started, if not known yet."""
        if self._session_start is None:
            self._session_start = at.timestamp() if at is not None else self._clock()
            self._snapshot = self._build()

    def on_tool_output(
        self,
        tokens: int,
        category: ContextCategory = ContextCategory.TOOL_OUTPUTS,
        at: datetime | None = None,
    ) -> None:
        """Add tokens from a tool result."""
        self._add(tokens, category, at)

    def on_tool_input(self, tokens: int, at: datetime | None = None) -> None:
        """Add tokens from a tool's input arguments."""
        self._add(tokens, ContextCategory.TOOL_INPUTS, at)

    def on_message(self, tokens: int, at: datetime | None = None) -> None:
        """Add tokens from a user message."""
        self._add(tokens, ContextCategory.MESSAGES, at)

    def consume(self, event: NormalizedEvent) -> None:
        """Route an event's payload into the breakdown."""
        if event.kind == EventKind.SESSION_START:
            self.mark_session_start(event.timestamp)
        elif event.kind == EventKind.POST_TOOL_USE:
            self.on_tool_input(estimate_tokens(event.input_text), at=event.timestamp)
            self.on_tool_output(estimate_tokens(event.response_text), at=event.timestamp)
        elif event.kind == EventKind.USER_PROMPT_SUBMIT:
            self.on_message(estimate_tokens(event.prompt), at=event.timestamp)
        elif event.kind == EventKind.SUBAGENT_STOP:
            self.on_tool_output(estimate_tokens(event.response_text), ContextCategory.OTHER, at=event.timestamp)

    def reset(self) -> None:
        """Zero all usage."""
        self._history.clear()
        self._window.clear()
        self._window_total = 0
        self._breakdown = dict.fromkeys(ContextCategory, 0)
        self._session_start = None
        self._last_update = None
        self._burn_rate = 0.0
        self._snapshot = self._build()

    def snapshot(self) -> ContextHealth:
        """Return the latest ContextHealth."""
        return self._snapshot

    @property
    def tokens(self) -> int:
        """Total estimated tokens."""
        return sum(self._breakdown.values())

    def _add(self, tokens: int, category: ContextCategory, at: datetime | None) -> None:
        tokens = max(int(tokens), 0)
        now = at.timestamp() if at is not None else self._clock()
        if self._session_start is None:
            self._session_start = now
        self._last_update = now

        if tokens:
            self._breakdown[category] += tokens
            self._window.append((now, tokens))
            self._window_total += tokens
            self._history.append(self.tokens)

        self._burn_rate = self._compute_burn_rate(now)
        self._snapshot = self._build()

    def _compute_burn_rate(self, now: float) -> float:
        cutoff = now - self.burn_window
        while self._window and self._window[0][0] < cutoff:
            self._window_total -= self._window.popleft()[1]
        start = self._session_start if self._session_start is not None else now
        elapsed = max(min(self.burn_window, now - start), 1.0)
        return self._window_total / elapsed * 60.0

    def _build(self) -> ContextHealth:
        tokens = self.tokens
        percent = usage_percent(tokens, self.max_tokens)
        return ContextHealth(
            tokens=tokens,
            percent=percent,
            remaining=max(self.max_tokens - tokens, 0),
            max_tokens=self.max_tokens,
            burn_rate=self._burn_rate,
            status=context_status(percent),
            should_compact=percent >= COMPACT_PERCENT,
            breakdown=ContextBreakdown(
                tool_outputs=self._breakdown[ContextCategory.TOOL_OUTPUTS],
                tool_inputs=self._breakdown[ContextCategory.TOOL_INPUTS],
                messages=self._breakdown[ContextCategory.MESSAGES],
                other=self._breakdown[ContextCategory.OTHER],
            ),
            session_start=_to_datetime(self._session_start),
            last_update=_to_datetime(self._last_update),
            token_history=tuple(self._history),
        )


def _to_datetime(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)
