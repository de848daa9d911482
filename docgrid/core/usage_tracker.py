"""Token and cost tracking for provider calls.

Records what each provider reported about token usage, tagged with the
table and row it was spent on, and prices it. A tracker is created by the
caller and handed to the orchestrator; nothing here is process-global.
"""

import csv
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# USD per million tokens, used when litellm has no price for a model.
PRICE_PER_MILLION: dict[str, dict[str, float]] = {
    "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "google/gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "openai/gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "openai/gpt-4o": {"input": 2.50, "output": 10.00},
}

_ROUTING_PREFIXES = ("openrouter/", "gemini/")

CSV_HEADER = [
    "ts",
    "provider",
    "model",
    "table_id",
    "row_id",
    "prompt_tokens",
    "completion_tokens",
    "cached_tokens",
    "thoughts_tokens",
    "total_tokens",
]


def pricing_model(model: str) -> str:
    """Model id as pricing tables know it ('openrouter/openai/x' -> 'openai/x')."""
    for prefix in _ROUTING_PREFIXES:
        if model.startswith(prefix):
            return model[len(prefix):]
    return model


def table_price(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Cost from PRICE_PER_MILLION; 0.0 for models it does not list."""
    price = PRICE_PER_MILLION.get(pricing_model(model))
    if price is None:
        return 0.0
    return (prompt_tokens * price["input"] + completion_tokens * price["output"]) / 1_000_000


@dataclass
class ProviderUsage:
    """Token counts for a single provider call.

    ChatPDF reports nothing, so its calls are recorded with zero counts to
    keep the call count honest.
    """

    provider: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cached_tokens: int = 0
    thoughts_tokens: int = 0
    table_id: str = ""
    row_id: str = ""
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens + self.thoughts_tokens

    @property
    def cost(self) -> float:
        """Cost in USD via litellm's pricing database, else the fallback table."""
        if not self.prompt_tokens and not self.completion_tokens:
            return 0.0
        normalized = pricing_model(self.model)
        try:
            from litellm import cost_per_token
            input_cost, output_cost = cost_per_token(
                model=normalized,
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
            )
            return input_cost + output_cost
        except Exception:
            return table_price(self.model, self.prompt_tokens, self.completion_tokens)


@dataclass
class UsageTracker:
    """Accumulates provider usage across extractions."""

    calls: list[ProviderUsage] = field(default_factory=list)

    def record(self, usage: ProviderUsage) -> ProviderUsage:
        self.calls.append(usage)
        return usage

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def total_prompt_tokens(self) -> int:
        return sum(c.prompt_tokens for c in self.calls)

    @property
    def total_completion_tokens(self) -> int:
        return sum(c.completion_tokens for c in self.calls)

    @property
    def total_tokens(self) -> int:
        return sum(c.total_tokens for c in self.calls)

    @property
    def total_cost(self) -> float:
        return sum(c.cost for c in self.calls)

    def by_provider(self) -> dict[str, dict[str, Any]]:
        """Breakdown of calls, tokens and cost per provider."""
        breakdown: dict[str, dict[str, Any]] = {}
        for call in self.calls:
            stats = breakdown.setdefault(
                call.provider, {"calls": 0, "total_tokens": 0, "cost": 0.0}
            )
            stats["calls"] += 1
            stats["total_tokens"] += call.total_tokens
            stats["cost"] += call.cost
        return breakdown

    def summary(self) -> str:
        """Plain-text usage report printed at the end of a CLI run."""
        header = (
            f"Provider calls: {self.call_count} | "
            f"tokens {self.total_tokens:,} "
            f"(prompt {self.total_prompt_tokens:,}, completion {self.total_completion_tokens:,}) | "
            f"${self.total_cost:.4f}"
        )
        rows = [
            f"  {name:<11} {stats['calls']:>4} calls {stats['total_tokens']:>10,} tokens  ${stats['cost']:.4f}"
            for name, stats in sorted(self.by_provider().items())
        ]
        return "\n".join([header, *rows])

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls": self.call_count,
            "prompt_tokens": self.total_prompt_tokens,
            "completion_tokens": self.total_completion_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": round(self.total_cost, 6),
            "by_provider": self.by_provider(),
        }

    def write_csv(self, path: str | Path) -> Path:
        """Append recorded calls to a CSV file, writing the header for a new file."""
        path = Path(path)
        is_new = not path.exists() or path.stat().st_size == 0
        with open(path, "a", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if is_new:
                writer.writerow(CSV_HEADER)
            for call in self.calls:
                writer.writerow([
                    call.ts.isoformat(),
                    call.provider,
                    call.model,
                    call.table_id,
                    call.row_id,
                    call.prompt_tokens,
                    call.completion_tokens,
                    call.cached_tokens,
                    call.thoughts_tokens,
                    call.total_tokens,
                ])
        logger.debug("Wrote %d usage rows to %s", len(self.calls), path)
        return path
