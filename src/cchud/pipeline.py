"""The single consumer loop: transport -> normalizer -> lifecycle -> aggregators."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from cchud.config import Config
from cchud.context_tracker import ContextTracker
from cchud.cost_tracker import CostTracker
from cchud.events import NormalizedEvent, ParseFailure, RawEvent, normalize
from cchud.lifecycle import SessionLifecycleManager
from cchud.tool_stream import ToolStreamTracker
from cchud.transport import EndOfStream, TransportReader
from cchud.xdg_paths import get_default_transport_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineStats:
    """Counters for diagnostics."""

    records: int = 0
    events: int = 0
    parse_failures: int = 0


class HudPipeline:
    """Drives records from the transport through normalization and fan-out.

    Everything after ``read_next`` runs synchronously on the calling thread,
    so events reach the aggregators in transport order and no aggregator is
    ever mutated concurrently.
    """

    def __init__(
        self,
        reader: TransportReader,
        lifecycle: SessionLifecycleManager,
        tools: ToolStreamTracker,
        context: ContextTracker,
        cost: CostTracker,
        rescan_interval: float = 1.0,
        on_parse_failure: Callable[[ParseFailure], None] | None = None,
    ) -> None:
        self.reader = reader
        self.lifecycle = lifecycle
        self.tools = tools
        self.context = context
        self.cost = cost
        self.rescan_interval = rescan_interval
        self._on_parse_failure = on_parse_failure
        self._stopped = threading.Event()
        self._stats = PipelineStats()

    @property
    def stats(self) -> PipelineStats:
        """Current counters."""
        return self._stats

    def feed(self, record: RawEvent | str | bytes) -> NormalizedEvent | ParseFailure:
        """Normalize and deliver one record.

        Malformed records are logged and dropped; they never raise.

        Args:
            record: A raw transport line or decoded object.

        Returns:
            The normalized event or the parse failure.
        """
        result = normalize(record)
        if isinstance(result, ParseFailure):
            self._stats = PipelineStats(
                records=self._stats.records + 1,
                events=self._stats.events,
                parse_failures=self._stats.parse_failures + 1,
            )
            logger.warning("dropping malformed record: %s", result.reason)
            if self._on_parse_failure is not None:
                self._on_parse_failure(result)
            return result

        self._stats = PipelineStats(
            records=self._stats.records + 1,
            events=self._stats.events + 1,
            parse_failures=self._stats.parse_failures,
        )
        self.lifecycle.consume(result)
        return result

    def run(self) -> None:
        """Consume records until ``stop`` is called or the reader is closed."""
        logger.info("pipeline started on %s", self.reader.path)
        if not self.reader.connected and not self.reader.ended:
            self.reader.open()
        while not self._stopped.is_set():
            record = self.reader.read_next()
            if isinstance(record, EndOfStream):
                if self.reader.closed or self._stopped.is_set():
                    break
                self.lifecycle.on_session_ended()
                if not self.reader.wait_for_transport(self.rescan_interval):
                    break
                logger.info("transport %s available again", self.reader.path)
                self.lifecycle.on_transport_available()
                self.reader.reopen()
                continue
            try:
                self.feed(record)
            except Exception:
                logger.exception("failed to process record")
        logger.info("pipeline stopped")

    def stop(self) -> None:
        """Stop the loop promptly, interrupting any wait in the reader."""
        self._stopped.set()
        self.reader.close()


def build_pipeline(config: Config, path: Path | None = None) -> HudPipeline:
    """Wire a pipeline from configuration.

    Args:
        config: Loaded configuration.
        path: Transport path override.

    Returns:
        A pipeline whose reader is not opened yet.
    """
    transport_path = path or (Path(config.transport.path) if config.transport.path else get_default_transport_path())

    tools = ToolStreamTracker(capacity=config.trackers.max_tools)
    context = ContextTracker(
        max_tokens=config.trackers.context_max_tokens,
        history_size=config.trackers.token_history,
        burn_window=config.trackers.burn_window,
    )
    cost = CostTracker(model=config.model)
    lifecycle = SessionLifecycleManager([tools, context, cost])

    reader = TransportReader(
        transport_path,
        poll_interval=config.transport.poll_interval,
        reconnect_base=config.transport.reconnect_base,
        reconnect_cap=config.transport.reconnect_cap,
        on_signal=lifecycle.on_transport_signal,
    )
    return HudPipeline(
        reader,
        lifecycle,
        tools,
        context,
        cost,
        rescan_interval=config.transport.rescan_interval,
    )
