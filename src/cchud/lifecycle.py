"""Session lifecycle tracking and fan-out to the aggregators.

State machine::

    INIT ---(first event)---> ACTIVE
    ACTIVE ---(Stop, nothing in flight)---> IDLE
    IDLE ---(tool event or prompt)---> ACTIVE
    any ---(new session id)---> RESETTING ---> ACTIVE
    any ---(transport ended)---> DISCONNECTED
    DISCONNECTED ---(transport available)---> INIT

A change of session id is the only reset trigger. Every aggregator is reset
exactly once, and the new id is published, before the event that carried it
is delivered. Session-independent facts such as git status live outside this
manager and are never reset.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from cchud.events import EventKind, NormalizedEvent
from cchud.transport import ReconnectState, TransportSignal

logger = logging.getLogger(__name__)

# Tools that start a subagent; each is closed by a SubagentStop
SUBAGENT_TOOLS = frozenset({"Task", "Agent"})


class SessionState(StrEnum):
    """Lifecycle state of the tracked session."""

    INIT = "init"
    ACTIVE = "active"
    IDLE = "idle"
    RESETTING = "resetting"
    DISCONNECTED = "disconnected"


class NoticeKind(StrEnum):
    """Kinds of lifecycle notifications."""

    SESSION_CHANGED = "session_changed"
    SESSION_ENDED = "session_ended"
    STATE_CHANGED = "state_changed"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"


class Aggregator(Protocol):
    """What the manager needs from each domain aggregator."""

    def consume(self, event: NormalizedEvent) -> None: ...

    def reset(self) -> None: ...


@dataclass(frozen=True)
class LifecycleSnapshot:
    """Read-only view of the lifecycle state."""

    state: SessionState = SessionState.INIT
    session_id: str | None = None
    reconnect_attempts: int = 0
    active_tools: int = 0
    pending_subagents: int = 0
    compactions: int = 0
    resets: int = 0
    last_event_at: datetime | None = None

    @property
    def is_disconnected(self) -> bool:
        """True when the dashboard should show a reconnecting indicator."""
        return self.state == SessionState.DISCONNECTED


@dataclass(frozen=True)
class LifecycleNotice:
    """A lifecycle notification delivered to listeners."""

    kind: NoticeKind
    snapshot: LifecycleSnapshot
    previous_session_id: str | None = None


class SessionLifecycleManager:
    """Owns the session state and delivers events to the aggregators in order."""

    def __init__(self, aggregators: Sequence[Aggregator] = ()) -> None:
        self._aggregators: list[Aggregator] = list(aggregators)
        self._listeners: list[Callable[[LifecycleNotice], None]] = []

        self._state = SessionState.INIT
        self._session_id: str | None = None
        self._reconnect_attempts = 0
        self._active_tools = 0
        self._pending_subagents = 0
        self._compactions = 0
        self._resets = 0
        self._last_event_at: datetime | None = None
        self._snapshot = LifecycleSnapshot()

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def current_session_id(self) -> str | None:
        """Id of the session being tracked."""
        return self._session_id

    def add_aggregator(self, aggregator: Aggregator) -> None:
        """Append an aggregator to the fan-out list."""
        self._aggregators.append(aggregator)

    def add_listener(self, listener: Callable[[LifecycleNotice], None]) -> None:
        """Register a callback for lifecycle notifications."""
        self._listeners.append(listener)

    def snapshot(self) -> LifecycleSnapshot:
        """Return the latest published snapshot."""
        return self._snapshot

    def consume(self, event: NormalizedEvent) -> None:
        """Observe one event, reset on identity change, then fan it out.

        Args:
            event: The normalized event, in transport order.
        """
        if self._session_id is None:
            logger.info("tracking session %s", event.session_id)
            self._session_id = event.session_id
        elif event.session_id != self._session_id:
            self._reset_for(event.session_id)

        self._track_counters(event)
        self._last_event_at = event.timestamp
        self._set_state(self._next_state(event))
        self._publish()

        for aggregator in self._aggregators:
            aggregator.consume(event)

    def on_transport_signal(self, signal: TransportSignal, state: ReconnectState) -> None:
        """Mirror a transport reader signal into the lifecycle."""
        if signal == TransportSignal.RECONNECTING:
            self._reconnect_attempts = state.attempts
            self._publish()
            self._notify(NoticeKind.RECONNECTING)
        elif signal == TransportSignal.RECONNECTED:
            self._reconnect_attempts = 0
            self._publish()
            self._notify(NoticeKind.RECONNECTED)
        elif signal == TransportSignal.SESSION_ENDED:
            self.on_session_ended()

    def on_session_ended(self) -> None:
        """The transport is gone; move to DISCONNECTED."""
        if self._state == SessionState.DISCONNECTED:
            return
        logger.info("session %s disconnected", self._session_id)
        self._set_state(SessionState.DISCONNECTED)
        self._publish()
        self._notify(NoticeKind.SESSION_ENDED)

    def on_transport_available(self) -> None:
        """A transport exists again; wait for its first event in INIT.

        Ignored unless the session is DISCONNECTED.
        """
        if self._state != SessionState.DISCONNECTED:
            return
        self._reconnect_attempts = 0
        self._active_tools = 0
        self._pending_subagents = 0
        self._set_state(SessionState.INIT)
        self._publish()
        self._notify(NoticeKind.RECONNECTED)

    # -- internals ----------------------------------------------------------

    def _reset_for(self, new_session_id: str) -> None:
        previous = self._session_id
        logger.info("session changed %s -> %s; resetting aggregators", previous, new_session_id)
        self._set_state(SessionState.RESETTING)
        for aggregator in self._aggregators:
            aggregator.reset()

        self._session_id = new_session_id
        self._active_tools = 0
        self._pending_subagents = 0
        self._compactions = 0
        self._resets += 1
        self._set_state(SessionState.ACTIVE)
        self._publish()
        self._notify(NoticeKind.SESSION_CHANGED, previous_session_id=previous)

    def _track_counters(self, event: NormalizedEvent) -> None:
        if event.kind == EventKind.PRE_TOOL_USE:
            self._active_tools += 1
            if event.tool in SUBAGENT_TOOLS:
                self._pending_subagents += 1
        elif event.kind == EventKind.POST_TOOL_USE:
            self._active_tools = max(self._active_tools - 1, 0)
        elif event.kind == EventKind.SUBAGENT_STOP:
            self._pending_subagents = max(self._pending_subagents - 1, 0)
        elif event.kind == EventKind.PRE_COMPACT:
            self._compactions += 1

    def _next_state(self, event: NormalizedEvent) -> SessionState:
        state = self._state
        if state in (SessionState.INIT, SessionState.DISCONNECTED, SessionState.RESETTING):
            state = SessionState.ACTIVE

        if state == SessionState.ACTIVE and event.kind == EventKind.STOP:
            if self._active_tools == 0 and self._pending_subagents == 0:
                return SessionState.IDLE
            logger.debug(
                "stop with %d tools and %d subagents in flight; staying active",
                self._active_tools,
                self._pending_subagents,
            )
        elif state == SessionState.IDLE and (
            event.is_tool_event or event.kind in (EventKind.USER_PROMPT_SUBMIT, EventKind.SESSION_START)
        ):
            return SessionState.ACTIVE
        return state

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug("lifecycle %s -> %s", self._state, state)
        self._state = state
        self._publish()
        self._notify(NoticeKind.STATE_CHANGED)

    def _publish(self) -> None:
        self._snapshot = LifecycleSnapshot(
            state=self._state,
            session_id=self._session_id,
            reconnect_attempts=self._reconnect_attempts,
            active_tools=self._active_tools,
            pending_subagents=self._pending_subagents,
            compactions=self._compactions,
            resets=self._resets,
            last_event_at=self._last_event_at,
        )

    def _notify(self, kind: NoticeKind, previous_session_id: str | None = None) -> None:
        notice = LifecycleNotice(kind=kind, snapshot=self._snapshot, previous_session_id=previous_session_id)
        for listener in self._listeners:
            listener(notice)
