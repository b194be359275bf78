"""Hook event records and their normalization.

Producers append one JSON object per line. Only ``event``, ``session`` and
``ts`` are required; everything else is optional and defaults rather than
fails. Malformed records come back as ``ParseFailure`` values so a bad line
never takes the dashboard down.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, cast

RawEvent = dict[str, Any]

# Epoch values at or above this are milliseconds (1e11 s is year 5138)
MILLISECONDS_THRESHOLD = 1e11

CHARS_PER_TOKEN = 4


class EventKind(StrEnum):
    """Known hook event kinds."""

    SESSION_START = "SessionStart"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    PRE_COMPACT = "PreCompact"
    UNKNOWN = "Unknown"


_KIND_BY_NAME: dict[str, EventKind] = {kind.value: kind for kind in EventKind if kind is not EventKind.UNKNOWN}


def _empty_raw() -> RawEvent:
    return {}


def serialize_payload(value: Any) -> str:
    """Serialize a payload field to the text whose length feeds token estimates."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return str(value)


def estimate_tokens(text: str) -> int:
    """Approximate token count for text.

    No tokenizer is involved: four characters count as one token. Figures
    built on this are estimates and are labelled as such.
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class NormalizedEvent:
    """A hook event with a known kind, session id and timestamp."""

    kind: EventKind
    session_id: str
    timestamp: datetime
    name: str = ""
    tool: str = ""
    tool_input: Any = None
    response: Any = None
    prompt: str = ""
    model: str = ""
    invocation_id: str = ""
    raw: RawEvent = field(default_factory=_empty_raw, repr=False, compare=False)

    @property
    def input_text(self) -> str:
        """Serialized tool input."""
        return serialize_payload(self.tool_input)

    @property
    def response_text(self) -> str:
        """Serialized tool response."""
        return serialize_payload(self.response)

    @property
    def is_tool_event(self) -> bool:
        """True for tool start/end events."""
        return self.kind in (EventKind.PRE_TOOL_USE, EventKind.POST_TOOL_USE)


@dataclass(frozen=True)
class ParseFailure:
    """A record that could not be normalized."""

    reason: str
    raw: object = field(default=None, repr=False)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an epoch timestamp in seconds or milliseconds.

    Args:
        value: Number or numeric string.

    Returns:
        Aware UTC datetime, or None when the value is not a usable number.
    """
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return None
    try:
        # Ints beyond the float range raise OverflowError
        seconds = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        return None

    if not math.isfinite(seconds):
        return None
    if abs(seconds) >= MILLISECONDS_THRESHOLD:
        seconds /= 1000.0
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _model_id(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        data = cast(dict[str, Any], value)
        for key in ("id", "display_name", "name"):
            if isinstance(data.get(key), str):
                return data[key]
    return ""


def _str_field(data: RawEvent, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def normalize(raw: RawEvent | str | bytes) -> NormalizedEvent | ParseFailure:
    """Normalize one transport record.

    Args:
        raw: Decoded JSON object, or a raw line to decode first.

    Returns:
        NormalizedEvent, or ParseFailure describing why the record was rejected.
    """
    data: object = raw
    if isinstance(raw, bytes | str):
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError, UnicodeDecodeError and the int digit limit are all ValueError
            return ParseFailure(reason=f"invalid JSON: {type(e).__name__}: {e}", raw=raw)

    if not isinstance(data, dict):
        return ParseFailure(reason=f"record is {type(data).__name__}, not an object", raw=raw)
    record = cast(RawEvent, data)

    name = record.get("event")
    if not isinstance(name, str) or not name:
        return ParseFailure(reason="missing event name", raw=raw)

    session_id = record.get("session")
    if not isinstance(session_id, str) or not session_id:
        return ParseFailure(reason="missing session id", raw=raw)

    if "ts" not in record:
        return ParseFailure(reason="missing ts", raw=raw)
    timestamp = parse_timestamp(record["ts"])
    if timestamp is None:
        return ParseFailure(reason=f"unparseable ts of type {type(record['ts']).__name__}", raw=raw)

    prompt = record.get("prompt")
    return NormalizedEvent(
        kind=_KIND_BY_NAME.get(name, EventKind.UNKNOWN),
        session_id=session_id,
        timestamp=timestamp,
        name=name,
        tool=_str_field(record, "tool", "tool_name"),
        tool_input=record.get("input", record.get("tool_input")),
        response=record.get("response", record.get("tool_response")),
        prompt=prompt if isinstance(prompt, str) else serialize_payload(prompt),
        model=_model_id(record.get("model")),
        invocation_id=_str_field(record, "tool_use_id", "tool_call_id"),
        raw=record,
    )
