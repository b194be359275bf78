"""Bounded rolling history of tool invocations."""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Any, cast

from cchud.events import EventKind, NormalizedEvent
from cchud.utils import compress_path, compress_paths_in_text

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 30


class ToolStatus(StrEnum):
    """Resolution status of a tool invocation."""

    PENDING = "pending"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ToolEntry:
    """One tool invocation in the rolling history."""

    id: str
    name: str
    status: ToolStatus
    started_at: datetime
    duration: float | None = None  # seconds, set on resolution
    summary: str = ""
    invocation_id: str = ""

    @property
    def symbol(self) -> str:
        """Get display symbol for the status."""
        return {ToolStatus.PENDING: "◐", ToolStatus.DONE: "✓", ToolStatus.ERROR: "✗"}[self.status]

    @property
    def color(self) -> str:
        """Get display color for the status."""
        return {ToolStatus.PENDING: "yellow", ToolStatus.DONE: "green", ToolStatus.ERROR: "red"}[self.status]


def summarize_tool_input(tool_input: Any) -> str:
    """Extract a short summary of tool input for display."""
    if not tool_input:
        return ""
    if isinstance(tool_input, str):
        return compress_paths_in_text(tool_input[:100])
    if not isinstance(tool_input, dict):
        return compress_paths_in_text(str(tool_input)[:100])

    data = cast(dict[str, Any], tool_input)
    if "command" in data:
        return compress_paths_in_text(str(data["command"]))
    if "file_path" in data:
        return compress_path(str(data["file_path"]))
    if "pattern" in data:
        return compress_paths_in_text(str(data["pattern"]))
    if "query" in data:
        return compress_paths_in_text(str(data["query"]))
    if "url" in data:
        return str(data["url"])
    if "description" in data:
        return str(data["description"])[:100]

    for value in data.values():
        if isinstance(value, str) and value:
            return compress_paths_in_text(value[:100])
    return compress_paths_in_text(str(data)[:100])


def is_error_response(response: Any) -> bool:
    """Check whether a tool response reports a failure."""
    if not isinstance(response, dict):
        return False
    data = cast(dict[str, Any], response)
    return bool(data.get("is_error") or data.get("error")) or data.get("success") is False


class ToolStreamTracker:
    """Pairs tool start/end events into a fixed-size, most-recent-first history.

    Pairing uses the producer's invocation id when both events carry one.
    Otherwise the oldest pending entry with the same tool name is resolved,
    which can mis-pair concurrent calls of one tool that finish out of order.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[ToolEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._snapshot: tuple[ToolEntry, ...] = ()

    def on_pre_tool_use(
        self,
        name: str,
        started_at: datetime,
        summary: str = "",
        invocation_id: str = "",
    ) -> str:
        """Record a tool start.

        Args:
            name: Tool name.
            started_at: When the tool started.
            summary: Short display summary of the input.
            invocation_id: Producer-supplied call id, if any.

        Returns:
            The new entry id.
        """
        entry = ToolEntry(
            id=f"tool-{next(self._ids)}",
            name=name,
            status=ToolStatus.PENDING,
            started_at=started_at,
            summary=summary,
            invocation_id=invocation_id,
        )
        if len(self._entries) == self.capacity:
            evicted = self._entries[0]
            if evicted.status == ToolStatus.PENDING:
                logger.debug("evicting unresolved %s entry %s", evicted.name, evicted.id)
        self._entries.append(entry)
        self._publish()
        return entry.id

    def on_post_tool_use(
        self,
        name: str,
        finished_at: datetime,
        error: bool = False,
        invocation_id: str = "",
    ) -> ToolEntry | None:
        """Resolve the matching pending entry.

        Args:
            name: Tool name.
            finished_at: When the tool finished.
            error: Whether the tool reported a failure.
            invocation_id: Producer-supplied call id, if any.

        Returns:
            The resolved entry, or None when nothing was pending.
        """
        index = self._find_pending(name, invocation_id)
        if index is None:
            logger.debug("no pending %s entry to resolve", name)
            return None

        entry = self._entries[index]
        resolved = replace(
            entry,
            status=ToolStatus.ERROR if error else ToolStatus.DONE,
            duration=max((finished_at - entry.started_at).total_seconds(), 0.0),
        )
        self._entries[index] = resolved
        self._publish()
        return resolved

    def consume(self, event: NormalizedEvent) -> None:
        """Apply a tool start or end event; other kinds are ignored."""
        if event.kind == EventKind.PRE_TOOL_USE:
            self.on_pre_tool_use(
                event.tool or "unknown",
                event.timestamp,
                summary=summarize_tool_input(event.tool_input),
                invocation_id=event.invocation_id,
            )
        elif event.kind == EventKind.POST_TOOL_USE:
            self.on_post_tool_use(
                event.tool or "unknown",
                event.timestamp,
                error=is_error_response(event.response),
                invocation_id=event.invocation_id,
            )

    def reset(self) -> None:
        """Forget all entries."""
        self._entries.clear()
        self._ids = itertools.count(1)
        self._publish()

    def snapshot(self) -> tuple[ToolEntry, ...]:
        """Return up to ``capacity`` entries, most recent first."""
        return self._snapshot

    def _find_pending(self, name: str, invocation_id: str) -> int | None:
        if invocation_id:
            for index, entry in enumerate(self._entries):
                if entry.invocation_id == invocation_id and entry.status == ToolStatus.PENDING:
                    return index
        for index, entry in enumerate(self._entries):
            if entry.name == name and entry.status == ToolStatus.PENDING and not (
                invocation_id and entry.invocation_id
            ):
                return index
        return None

    def _publish(self) -> None:
        self._snapshot = tuple(reversed(self._entries))
