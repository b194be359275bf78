"""Running cost estimate for the current session.

Token counts are character-based estimates, so the cost is too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cchud.events import EventKind, NormalizedEvent, estimate_tokens

logger = logging.getLogger(__name__)

# Model pricing per 1M tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "opus": {"input": 15.00, "output": 75.00},
    "sonnet": {"input": 3.00, "output": 15.00},
    "haiku": {"input": 0.25, "output": 1.25},
}

DEFAULT_TIER = "sonnet"


def get_model_tier(model: str) -> str:
    """Determine pricing tier from model name; unknown models use the default tier."""
    model_lower = model.lower()
    for tier in MODEL_PRICING:
        if tier in model_lower:
            return tier
    return DEFAULT_TIER


@dataclass(frozen=True)
class CostEstimate:
    """Accumulated token and cost estimate in USD."""

    input_tokens: int = 0
    output_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


class CostTracker:
    """Accumulates input/output token estimates and prices them per model.

    Prices apply at accumulation time: switching models never re-prices
    tokens already counted.
    """

    def __init__(self, model: str = DEFAULT_TIER) -> None:
        self.model = model
        self._tier = get_model_tier(model)
        self._input_tokens = 0
        self._output_tokens = 0
        self._input_cost = 0.0
        self._output_cost = 0.0
        self._snapshot = CostEstimate()

    @property
    def tier(self) -> str:
        """Pricing tier of the active model."""
        return self._tier

    def set_model(self, model_id: str) -> None:
        """Switch the model used for future accumulation."""
        if not model_id or model_id == self.model:
            return
        self.model = model_id
        tier = get_model_tier(model_id)
        if tier not in model_id.lower():
            logger.debug("unknown model %s; using %s pricing", model_id, tier)
        self._tier = tier

    def add_input_tokens(self, tokens: int) -> None:
        """Add input-bound tokens at the current price."""
        if tokens <= 0:
            return
        self._input_tokens += tokens
        self._input_cost += tokens / 1_000_000 * MODEL_PRICING[self._tier]["input"]
        self._publish()

    def add_output_tokens(self, tokens: int) -> None:
        """Add output-bound tokens at the current price."""
        if tokens <= 0:
            return
        self._output_tokens += tokens
        self._output_cost += tokens / 1_000_000 * MODEL_PRICING[self._tier]["output"]
        self._publish()

    def process_event(self, event: NormalizedEvent) -> None:
        """Classify an event's payload text and accumulate its estimate."""
        if event.model:
            self.set_model(event.model)

        if event.kind == EventKind.USER_PROMPT_SUBMIT:
            self.add_input_tokens(estimate_tokens(event.prompt))
        elif event.kind == EventKind.POST_TOOL_USE:
            self.add_input_tokens(estimate_tokens(event.input_text))
            self.add_output_tokens(estimate_tokens(event.response_text))

    consume = process_event

    def get_cost(self) -> CostEstimate:
        """Return the current estimate."""
        return self._snapshot

    def reset(self) -> None:
        """Zero all counters; the active model is kept."""
        self._input_tokens = 0
        self._output_tokens = 0
        self._input_cost = 0.0
        self._output_cost = 0.0
        self._publish()

    def _publish(self) -> None:
        self._snapshot = CostEstimate(
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
            input_cost=self._input_cost,
            output_cost=self._output_cost,
            total_cost=self._input_cost + self._output_cost,
        )
