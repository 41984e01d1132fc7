"""
Tier schemes for Intent Router.

A tier scheme is an ordered list of complexity tiers, each owning a
score band.  Bands are contiguous and together cover ``[0.0, 1.0]``:
every band is half-open ``[low, high)`` except the top one, which is
closed at 1.0 so that a maximal score still lands somewhere.

The number of tiers and their bounds are configuration, not constants.
:data:`DEFAULT_TIERS` is the 4-tier layout used by the packaged presets;
:data:`FIVE_TIERS` adds a ``trivial`` tier underneath.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import ConfigurationError

# Tolerance used when comparing band edges read from JSON.
_EPSILON = 1e-9


@dataclass(frozen=True)
class Tier:
    """A single complexity tier and its score band."""
    name: str
    low: float
    high: float
    rank: int

    def contains(self, score: float, is_top: bool = False) -> bool:
        """Return True if *score* falls inside this tier's band."""
        if is_top:
            return self.low <= score <= self.high
        return self.low <= score < self.high

    @property
    def width(self) -> float:
        return self.high - self.low


class TierScheme:
    """Ordered, validated collection of tiers.

    Construction fails with :class:`ConfigurationError` when the bands
    leave a gap, overlap, or do not span ``[0.0, 1.0]``.
    """

    def __init__(self, bands: Sequence[Tuple[str, float, float]]):
        """Initialize the scheme.

        Args:
            bands: ``(name, low, high)`` triples, lowest tier first.

        Raises:
            ConfigurationError: If the bands are not a valid partition.
        """
        if not bands:
            raise ConfigurationError("A tier scheme needs at least one tier")

        tiers: List[Tier] = []
        seen = set()
        for rank, (name, low, high) in enumerate(bands):
            if not name or not isinstance(name, str):
                raise ConfigurationError(f"Tier #{rank} has no name")
            key = name.lower()
            if key in seen:
                raise ConfigurationError(f"Duplicate tier name {name!r}")
            seen.add(key)
            low, high = float(low), float(high)
            if high <= low:
                raise ConfigurationError(
                    f"Tier {name!r} has an empty band [{low}, {high})"
                )
            tiers.append(Tier(name=key, low=low, high=high, rank=rank))

        if abs(tiers[0].low - 0.0) > _EPSILON:
            raise ConfigurationError(
                f"Lowest tier {tiers[0].name!r} must start at 0.0, got {tiers[0].low}"
            )
        if abs(tiers[-1].high - 1.0) > _EPSILON:
            raise ConfigurationError(
                f"Highest tier {tiers[-1].name!r} must end at 1.0, got {tiers[-1].high}"
            )
        for prev, cur in zip(tiers, tiers[1:]):
            if cur.low - prev.high > _EPSILON:
                raise ConfigurationError(
                    f"Gap between tiers {prev.name!r} and {cur.name!r} "
                    f"({prev.high} → {cur.low})"
                )
            if prev.high - cur.low > _EPSILON:
                raise ConfigurationError(
                    f"Tiers {prev.name!r} and {cur.name!r} overlap "
                    f"({prev.high} > {cur.low})"
                )

        self._tiers: Tuple[Tier, ...] = tuple(tiers)
        self._by_name: Dict[str, Tier] = {t.name: t for t in tiers}

    # ── Construction helpers ──────────────────────────────────────────────

    @classmethod
    def from_config(cls, data: Iterable[Dict[str, Any]]) -> "TierScheme":
        """Build a scheme from a list of ``{"name", "low", "high"}`` dicts."""
        try:
            bands = [(d["name"], d["low"], d["high"]) for d in data]
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"Malformed tier definition: {e}") from e
        return cls(bands)

    def to_config(self) -> List[Dict[str, Any]]:
        return [{"name": t.name, "low": t.low, "high": t.high} for t in self._tiers]

    # ── Queries ───────────────────────────────────────────────────────────

    def __iter__(self) -> Iterator[Tier]:
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._by_name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TierScheme):
            return NotImplemented
        return self._tiers == other._tiers

    def __hash__(self) -> int:
        return hash(self._tiers)

    def __repr__(self) -> str:  # pragma: no cover
        return "TierScheme(" + ", ".join(
            f"{t.name}=[{t.low}, {t.high})" for t in self._tiers
        ) + ")"

    @property
    def names(self) -> List[str]:
        return [t.name for t in self._tiers]

    @property
    def lowest(self) -> Tier:
        return self._tiers[0]

    @property
    def highest(self) -> Tier:
        return self._tiers[-1]

    def get(self, name: str) -> Optional[Tier]:
        """Return the tier called *name* (case-insensitive), or None."""
        return self._by_name.get(name.lower()) if name else None

    def require(self, name: str) -> Tier:
        """Return the tier called *name* or raise ConfigurationError."""
        tier = self.get(name)
        if tier is None:
            raise ConfigurationError(
                f"Unknown tier {name!r}; declared tiers: {self.names}"
            )
        return tier

    def tier_for_score(self, score: float) -> Tier:
        """Locate the tier whose band contains *score* (clamped to [0, 1])."""
        score = max(0.0, min(1.0, score))
        for tier in self._tiers[:-1]:
            if tier.contains(score):
                return tier
        return self._tiers[-1]

    def max_tier(self, a: Tier, b: Tier) -> Tier:
        """Return the higher-ranked of two tiers."""
        return a if a.rank >= b.rank else b

    def interior_boundaries(self, tier: Tier) -> List[float]:
        """Band edges of *tier* that border another tier (not 0.0 / 1.0)."""
        edges = []
        if tier.rank > 0:
            edges.append(tier.low)
        if tier.rank < len(self._tiers) - 1:
            edges.append(tier.high)
        return edges


DEFAULT_TIERS = TierScheme([
    ("simple", 0.0, 0.35),
    ("moderate", 0.35, 0.60),
    ("complex", 0.60, 0.80),
    ("expert", 0.80, 1.0),
])

FIVE_TIERS = TierScheme([
    ("trivial", 0.0, 0.15),
    ("simple", 0.15, 0.35),
    ("moderate", 0.35, 0.60),
    ("complex", 0.60, 0.80),
    ("expert", 0.80, 1.0),
])
