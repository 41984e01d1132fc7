"""
Intent Router: per-turn tool and model selection for chat services.

Scores each request's complexity with weighted pattern groups, matches
tool intent from text and attachments, consults a cheap fallback
classifier only when the deterministic signals are unsure, and maps the
resulting tier to a model through an immutable per-endpoint policy.
The tool orchestrator then turns the chosen tool ids into tools.

Usage:
    import asyncio
    from intent_router import Config, RoutingRequest, RoutingService

    service = RoutingService(Config("./config"))
    decision = asyncio.run(service.route(
        "bedrock",
        RoutingRequest("what's today's weather", current_model_id="us.anthropic.claude-sonnet-4-5-20250929-v1:0"),
    ))
    if decision is not None:
        print(decision.model_id, sorted(decision.tools), decision.reason)

Fallback classifier (any async callable reaching a cheap model):
    async def transport(prompt, *, temperature, max_tokens):
        ...  # call the model, return its text

    service = RoutingService.from_config(Config(), transport=transport)

Tool loading:
    from intent_router import ToolOrchestrator, LoadContext

    orchestrator = ToolOrchestrator(credential_resolver=lookup_user_key)
    result = asyncio.run(orchestrator.load(["web_search", "search::github"],
                                           LoadContext(user_id="u1")))
"""

__version__ = "1.0.0"

from .tiers import Tier, TierScheme, DEFAULT_TIERS, FIVE_TIERS
from .pricing import PricingEntry, PricingTable, estimate_tokens
from .scorer import ComplexityScorer, PatternGroup, ScoreResult
from .matcher import ResourceMeta, ToolIntentMatcher, ToolMatchResult, ToolPatternGroup
from .fallback import (
    ClassificationOutcome,
    ClassifierUsage,
    FallbackClassifierGateway,
    parse_classifier_response,
)
from .policy import RouterPolicy, PolicyFactory, PolicyCache
from .router import Router, RoutingDecision, RoutingRequest, RoutingService
from .orchestrator import (
    LoadContext,
    LoadResult,
    ProviderRequest,
    Tool,
    ToolOrchestrator,
    ToolSpec,
)
from .credentials import AuthField, load_auth_values, validate_tools
from .deadline import Deadline
from .errors import (
    IntentRouterError,
    ConfigurationError,
    ClassificationUnavailable,
    ToolUnavailable,
    ProviderUnreachable,
    OperationCancelled,
)
from .config import Config, RouterSettings, EndpointOverride
from .stats import RoutingStats
from .calibration import CalibrationResult, calibrate_threshold, generate_calibration_report

__all__ = [
    # Tiers & pricing
    "Tier",
    "TierScheme",
    "DEFAULT_TIERS",
    "FIVE_TIERS",
    "PricingEntry",
    "PricingTable",
    "estimate_tokens",

    # Signals
    "ComplexityScorer",
    "PatternGroup",
    "ScoreResult",
    "ResourceMeta",
    "ToolIntentMatcher",
    "ToolMatchResult",
    "ToolPatternGroup",

    # Fallback classifier
    "ClassificationOutcome",
    "ClassifierUsage",
    "FallbackClassifierGateway",
    "parse_classifier_response",

    # Policies & routing
    "RouterPolicy",
    "PolicyFactory",
    "PolicyCache",
    "Router",
    "RoutingDecision",
    "RoutingRequest",
    "RoutingService",

    # Tools
    "LoadContext",
    "LoadResult",
    "ProviderRequest",
    "Tool",
    "ToolOrchestrator",
    "ToolSpec",
    "AuthField",
    "load_auth_values",
    "validate_tools",

    # Infrastructure
    "Deadline",
    "IntentRouterError",
    "ConfigurationError",
    "ClassificationUnavailable",
    "ToolUnavailable",
    "ProviderUnreachable",
    "OperationCancelled",
    "Config",
    "RouterSettings",
    "EndpointOverride",
    "RoutingStats",
    "CalibrationResult",
    "calibrate_threshold",
    "generate_calibration_report",
]
