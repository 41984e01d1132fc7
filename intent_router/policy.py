"""
Routing policies for Intent Router.

A :class:`RouterPolicy` bundles everything the router needs for one
``(endpoint, preset)`` pair: the tier scheme, the tier→model mapping,
the confidence threshold, the tool catalog and the minimum tier for
tool-using turns.  Policies are immutable; to change one, build a new
one and replace it in the cache.
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from .config import Config
from .errors import ConfigurationError
from .pricing import PricingTable
from .tiers import Tier, TierScheme

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouterPolicy:
    """Immutable routing policy for one endpoint + preset."""
    target_endpoint: str
    preset_name: str
    tier_scheme: TierScheme
    tier_to_model: Mapping[str, str]
    confidence_threshold: float
    tool_catalog: FrozenSet[str] = field(default_factory=frozenset)
    min_tier_for_tools: Optional[str] = None

    def __post_init__(self) -> None:
        missing = [t.name for t in self.tier_scheme if not self.tier_to_model.get(t.name)]
        if missing:
            raise ConfigurationError(
                f"Preset {self.preset_name!r} for endpoint {self.target_endpoint!r} "
                f"has no model for tier(s) {missing}"
            )
        if not (0.0 <= self.confidence_threshold <= 1.0):
            raise ConfigurationError(
                f"confidence_threshold must be 0.0–1.0, got {self.confidence_threshold}"
            )
        if self.min_tier_for_tools is not None:
            self.tier_scheme.require(self.min_tier_for_tools)
        # Freeze the mapping so a caller's dict cannot leak mutations in.
        object.__setattr__(
            self, "tier_to_model", MappingProxyType(dict(self.tier_to_model))
        )
        object.__setattr__(self, "tool_catalog", frozenset(self.tool_catalog))

    @property
    def lowest_tier(self) -> Tier:
        return self.tier_scheme.lowest

    @property
    def tool_floor(self) -> Optional[Tier]:
        if self.min_tier_for_tools is None:
            return None
        return self.tier_scheme.require(self.min_tier_for_tools)

    def model_for(self, tier: Tier) -> str:
        """Model id serving *tier* under this policy."""
        return self.tier_to_model[tier.name]


class PolicyFactory:
    """Builds :class:`RouterPolicy` objects from configuration."""

    def __init__(self, config: Config, confidence_threshold: Optional[float] = None):
        """Initialize the factory.

        Args:
            config: Source of tiers, presets, pricing and tool catalog.
            confidence_threshold: Overrides the threshold from settings.
        """
        self.config = config
        self.tier_scheme = config.get_tier_scheme()
        self.pricing: PricingTable = config.get_pricing()
        self.confidence_threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else config.get_settings().confidence_threshold
        )

    def build(self, endpoint: str, preset: str) -> RouterPolicy:
        """Construct the policy for *endpoint* and *preset*.

        Raises:
            ConfigurationError: Unknown preset, or a preset that does not
                map every declared tier to a model.
        """
        mapping = self.config.get_preset(endpoint, preset)
        if mapping is None:
            raise ConfigurationError(
                f"No preset {preset!r} configured for endpoint {endpoint!r}"
            )
        normalized = {str(tier).lower(): model for tier, model in mapping.items()}

        unknown = sorted(set(normalized) - set(self.tier_scheme.names))
        if unknown:
            _log.warning(
                "Preset %r for %r maps undeclared tier(s) %s; ignoring them",
                preset, endpoint, unknown,
            )
        for model_id in set(normalized.values()):
            if model_id not in self.pricing:
                _log.warning("Model %r in preset %r has no pricing entry", model_id, preset)

        policy = RouterPolicy(
            target_endpoint=endpoint,
            preset_name=preset,
            tier_scheme=self.tier_scheme,
            tier_to_model={k: v for k, v in normalized.items() if k in self.tier_scheme},
            confidence_threshold=self.confidence_threshold,
            tool_catalog=frozenset(self.config.get_tool_catalog()),
            min_tier_for_tools=self.config.get_min_tier_for_tools(),
        )
        _log.info("Built routing policy %s/%s", endpoint, preset)
        return policy


class PolicyCache:
    """Lazily built, process-lifetime store of routing policies.

    Reads are lock-free; misses build outside the lock and publish under
    it.  Two racing misses for the same key may both build, and the last
    one to publish wins, which is harmless because construction is
    deterministic.
    """

    def __init__(self, factory: PolicyFactory):
        self.factory = factory
        self._policies: Dict[Tuple[str, str], RouterPolicy] = {}
        self._lock = threading.Lock()

    def get_policy(self, endpoint: str, preset: str) -> RouterPolicy:
        """Return the cached policy for the pair, building it on first use."""
        key = (endpoint, preset)
        policy = self._policies.get(key)
        if policy is not None:
            return policy

        policy = self.factory.build(endpoint, preset)
        with self._lock:
            self._policies[key] = policy
        return policy

    def put(self, policy: RouterPolicy) -> None:
        """Replace the cached policy for the policy's own key."""
        with self._lock:
            self._policies[(policy.target_endpoint, policy.preset_name)] = policy

    def clear_cache(self) -> None:
        """Drop every cached policy (config hot-reload, tests)."""
        with self._lock:
            self._policies = {}

    def __len__(self) -> int:
        return len(self._policies)

    def keys(self) -> Iterable[Tuple[str, str]]:
        return list(self._policies.keys())
