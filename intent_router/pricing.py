"""
Pricing table for Intent Router.

Static lookup of per-model unit costs (per 1K tokens) and the tier label
each model is sold under.  Loaded once from configuration and never
mutated afterwards.
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import ConfigurationError

# Rough characters-per-token ratio used for all pre-call estimates.
CHARS_PER_TOKEN = 4

# Assumed response length when estimating the cost of a routed request.
DEFAULT_OUTPUT_TOKENS = 500


def estimate_tokens(text: str) -> int:
    """Estimate the token count of *text* (~4 characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class PricingEntry:
    """Unit costs and tier label for one model."""
    model_id: str
    input_unit_cost: float
    output_unit_cost: float
    tier: str

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost for given token usage.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens

        Returns:
            Total cost in dollars
        """
        input_cost = (input_tokens / 1000) * self.input_unit_cost
        output_cost = (output_tokens / 1000) * self.output_unit_cost
        return input_cost + output_cost


class PricingTable:
    """Read-only registry of :class:`PricingEntry` objects keyed by model id."""

    def __init__(self, entries: Iterable[PricingEntry]):
        self._entries: Mapping[str, PricingEntry] = MappingProxyType(
            {e.model_id: e for e in entries}
        )

    @classmethod
    def from_config(cls, data: Mapping[str, Mapping[str, Any]]) -> "PricingTable":
        """Build a table from ``{model_id: {"input", "output", "tier"}}``.

        Raises:
            ConfigurationError: If an entry is missing a field or has a
                negative cost.
        """
        entries = []
        for model_id, spec in data.items():
            try:
                entry = PricingEntry(
                    model_id=model_id,
                    input_unit_cost=float(spec["input"]),
                    output_unit_cost=float(spec["output"]),
                    tier=str(spec["tier"]).lower(),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Malformed pricing entry for {model_id!r}: {e}"
                ) from e
            if entry.input_unit_cost < 0 or entry.output_unit_cost < 0:
                raise ConfigurationError(f"Negative unit cost for {model_id!r}")
            entries.append(entry)
        return cls(entries)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, model_id: Optional[str]) -> Optional[PricingEntry]:
        """Get the pricing entry for *model_id*, or None if unknown."""
        if not model_id:
            return None
        return self._entries.get(model_id)

    def list_entries(self) -> List[PricingEntry]:
        return list(self._entries.values())

    def models_for_tier(self, tier: str) -> List[PricingEntry]:
        """Entries sold under *tier*, cheapest first."""
        entries = [e for e in self._entries.values() if e.tier == tier.lower()]
        entries.sort(key=lambda e: (e.input_unit_cost + e.output_unit_cost) / 2)
        return entries

    def calculate_cost(self, model_id: Optional[str], input_tokens: int,
                       output_tokens: int) -> float:
        """Cost of a call to *model_id*; unknown models cost nothing."""
        entry = self.get(model_id)
        if entry is None:
            return 0.0
        return entry.calculate_cost(input_tokens, output_tokens)

    def tier_of(self, model_id: Optional[str]) -> Optional[str]:
        entry = self.get(model_id)
        return entry.tier if entry else None

    def to_config(self) -> Dict[str, Dict[str, Any]]:
        return {
            e.model_id: {
                "input": e.input_unit_cost,
                "output": e.output_unit_cost,
                "tier": e.tier,
            }
            for e in self._entries.values()
        }
