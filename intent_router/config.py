"""
Configuration management for Intent Router.

Loads the tier scheme, pricing table, routing presets and router
settings from JSON configuration files.
"""

import copy
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigurationError
from .pricing import PricingTable
from .tiers import TierScheme

DEFAULT_PRESET = "costOptimized"
DEFAULT_CONFIDENCE_THRESHOLD = 0.6


@dataclass(frozen=True)
class EndpointOverride:
    """Per-endpoint switch and preset override."""
    enabled: Optional[bool] = None
    preset: Optional[str] = None


@dataclass(frozen=True)
class RouterSettings:
    """Operator-facing routing switches.

    Attributes:
        enabled: Global on/off switch for model routing.
        preset: Preset used when an endpoint does not override it.
        per_endpoint_overrides: ``{endpoint: EndpointOverride}``.
        confidence_threshold: Deterministic confidence below this value
            triggers the fallback classifier.
        debug: Log per-pattern match details.
    """
    enabled: bool = False
    preset: str = DEFAULT_PRESET
    per_endpoint_overrides: Dict[str, EndpointOverride] = field(default_factory=dict)
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    debug: bool = False

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence_threshold <= 1.0):
            raise ConfigurationError(
                f"confidence_threshold must be 0.0–1.0, got {self.confidence_threshold}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouterSettings":
        overrides = {
            endpoint: EndpointOverride(
                enabled=spec.get("enabled"),
                preset=spec.get("preset"),
            )
            for endpoint, spec in (data.get("per_endpoint_overrides") or {}).items()
        }
        return cls(
            enabled=bool(data.get("enabled", False)),
            preset=data.get("preset") or DEFAULT_PRESET,
            per_endpoint_overrides=overrides,
            confidence_threshold=float(
                data.get("confidence_threshold", DEFAULT_CONFIDENCE_THRESHOLD)
            ),
            debug=bool(data.get("debug", False)),
        )

    def for_endpoint(self, endpoint: str) -> Tuple[bool, str]:
        """Resolve the effective ``(enabled, preset)`` pair for *endpoint*.

        An override's ``enabled`` wins over the global switch in both
        directions; an endpoint without an override inherits the global
        values.
        """
        override = self.per_endpoint_overrides.get(endpoint)
        if override is None:
            return self.enabled, self.preset
        enabled = self.enabled if override.enabled is None else override.enabled
        return enabled, override.preset or self.preset


class Config:
    """Configuration manager for tiers, pricing, presets and settings."""

    def __init__(self, config_path: str = None, overrides: Dict[str, Any] = None):
        """Initialize configuration.

        Args:
            config_path: Path to config directory. If None, uses defaults.
            overrides: Optional top-level keys replacing the loaded values,
                handy for tests and embedding applications.
        """
        self.config_path = config_path
        self.config = self._load_config()
        if overrides:
            self.config.update(copy.deepcopy(overrides))

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or defaults."""
        if self.config_path and os.path.exists(os.path.join(self.config_path, 'config.json')):
            config_file = os.path.join(self.config_path, 'config.json')
        else:
            config_file = Path(__file__).parent / 'defaults.json'
        try:
            with open(config_file, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_file}: {e}") from e

    def get_tier_scheme(self) -> TierScheme:
        """Build the tier scheme declared under ``tiers``."""
        return TierScheme.from_config(self.config.get('tiers', []))

    def get_pricing(self) -> PricingTable:
        """Build the pricing table declared under ``pricing``."""
        return PricingTable.from_config(self.config.get('pricing', {}))

    def get_presets(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        """Get ``{endpoint: {preset: {tier: model_id}}}``."""
        return self.config.get('presets', {})

    def get_preset(self, endpoint: str, preset: str) -> Optional[Dict[str, str]]:
        """Get the tier→model mapping for *preset* on *endpoint*.

        Presets declared under the ``"*"`` endpoint are shared by every
        endpoint and consulted when the endpoint has no preset of that name.
        """
        presets = self.get_presets()
        mapping = presets.get(endpoint, {}).get(preset)
        if mapping is None:
            mapping = presets.get('*', {}).get(preset)
        return mapping

    def get_tool_catalog(self) -> List[str]:
        return list(self.config.get('tool_catalog', []))

    def get_min_tier_for_tools(self) -> Optional[str]:
        return self.config.get('min_tier_for_tools')

    def get_fallback_settings(self) -> Dict[str, Any]:
        return self.config.get('fallback', {})

    def get_settings(self) -> RouterSettings:
        return RouterSettings.from_dict(self.config.get('settings', {}))

    def save_config(self, config_path: str) -> None:
        """Save current configuration to file.

        Args:
            config_path: Path to config directory
        """
        os.makedirs(config_path, exist_ok=True)
        config_file = os.path.join(config_path, 'config.json')
        tmp_file = config_file + '.tmp'
        with open(tmp_file, 'w') as f:
            json.dump(self.config, f, indent=2)
        os.replace(tmp_file, config_file)

    def add_preset(self, endpoint: str, preset: str, mapping: Dict[str, str]) -> None:
        """Add or replace a preset's tier→model mapping."""
        presets = self.config.setdefault('presets', {})
        presets.setdefault(endpoint, {})[preset] = dict(mapping)

    def update_settings(self, settings: Dict[str, Any]) -> None:
        """Merge new values into the ``settings`` section."""
        current = self.config.get('settings', {})
        current.update(settings)
        self.config['settings'] = current
