"""
Main routing interface for Intent Router.

Combines complexity scoring, tool intent matching and the optional
fallback classifier into a single :class:`RoutingDecision` per turn:
which tools to activate and which model should answer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .config import Config
from .deadline import Deadline
from .fallback import DEFAULT_TIMEOUT_SECONDS, ClassifierUsage, FallbackClassifierGateway
from .matcher import ResourceMeta, ToolIntentMatcher, ToolMatchResult
from .policy import PolicyCache, PolicyFactory, RouterPolicy
from .pricing import DEFAULT_OUTPUT_TOKENS, PricingTable, estimate_tokens
from .scorer import ComplexityScorer, HistoryEntry, ScoreResult
from .stats import RoutingStats
from .tiers import Tier

_log = logging.getLogger(__name__)

# reason_category values
REASON_EMPTY = "empty_input"
REASON_CONFIDENT = "confident"
REASON_FALLBACK = "fallback"
REASON_FALLBACK_UNAVAILABLE = "fallback_unavailable"
REASON_LOW_CONFIDENCE = "low_confidence"


# ── Request / decision ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RoutingRequest:
    """One user turn to be routed.

    Attributes:
        text: Raw user-turn text.
        current_model_id: Model the conversation would use without routing.
        history: Prior turns, ``{"role", "content"}`` dicts or strings.
        attachments: Metadata of files attached to the turn.
        available_tools: Tools the caller can provide this turn. None
            means every tool in the policy catalog.
    """
    text: str
    current_model_id: Optional[str] = None
    history: Tuple[HistoryEntry, ...] = ()
    attachments: Tuple[ResourceMeta, ...] = ()
    available_tools: Optional[FrozenSet[str]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "history", tuple(self.history or ()))
        object.__setattr__(self, "attachments", tuple(self.attachments or ()))
        if self.available_tools is not None:
            object.__setattr__(self, "available_tools", frozenset(self.available_tools))


@dataclass(frozen=True)
class RoutingDecision:
    """Result of routing one turn."""
    tools: FrozenSet[str]
    model_id: str
    tier: Tier
    confidence: float
    reason: str
    used_fallback: bool = False
    estimated_cost_delta: float = 0.0
    estimated_cost: float = 0.0
    matched_categories: FrozenSet[str] = field(default_factory=frozenset)
    classifier_usage: Optional[ClassifierUsage] = None
    reason_category: str = REASON_CONFIDENT
    tool_floor_applied: bool = False

    @property
    def tier_name(self) -> str:
        return self.tier.name

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        d: Dict[str, Any] = {
            "tools": sorted(self.tools),
            "model_id": self.model_id,
            "tier": self.tier.name,
            "confidence": self.confidence,
            "reason": self.reason,
            "reason_category": self.reason_category,
            "used_fallback": self.used_fallback,
            "estimated_cost": self.estimated_cost,
            "estimated_cost_delta": self.estimated_cost_delta,
            "matched_categories": sorted(self.matched_categories),
            "tool_floor_applied": self.tool_floor_applied,
        }
        if self.classifier_usage is not None:
            d["classifier_usage"] = {
                "input_tokens": self.classifier_usage.input_tokens,
                "output_tokens": self.classifier_usage.output_tokens,
                "estimated_cost": self.classifier_usage.estimated_cost,
            }
        return d


# ── Router ────────────────────────────────────────────────────────────────────

class Router:
    """Per-turn tool and model selection.

    The router holds no per-request state; one instance may serve any
    number of concurrent requests.

    Example:
        >>> router = Router(config.get_pricing())
        >>> decision = router.route_sync(RoutingRequest("hi"), policy)
        >>> decision.tier.name
        'simple'
    """

    def __init__(
        self,
        pricing: PricingTable,
        scorer: Optional[ComplexityScorer] = None,
        matcher: Optional[ToolIntentMatcher] = None,
        gateway: Optional[FallbackClassifierGateway] = None,
        stats: Optional[RoutingStats] = None,
    ):
        """Initialize the router.

        Args:
            pricing: Pricing table used for cost estimates.
            scorer: Complexity scorer. Defaults to the built-in patterns.
            matcher: Tool intent matcher. Defaults to the built-in patterns.
            gateway: Fallback classifier consulted on low confidence.
            stats: Decision log; every decision is recorded when given.
        """
        self.pricing = pricing
        self.scorer = scorer or ComplexityScorer()
        self.matcher = matcher or ToolIntentMatcher()
        self.gateway = gateway
        self.stats = stats

    async def route(
        self,
        request: RoutingRequest,
        policy: RouterPolicy,
        deadline: Optional[Deadline] = None,
    ) -> RoutingDecision:
        """Decide tools and model for one turn.

        Args:
            request: The turn to route.
            policy: Tier→model mapping, threshold and tool catalog.
            deadline: Caller time limit / cancel signal, forwarded to the
                fallback classifier.

        Returns:
            RoutingDecision. Only caller cancellation of the awaiting task
            escapes, as ``asyncio.CancelledError``.
        """
        available = self._available_tools(request, policy)
        text = request.text or ""

        if not text.strip():
            tier = policy.lowest_tier
            decision = self._decide(
                request, policy, tier, frozenset(), confidence=1.0,
                reason="empty input; lowest tier",
                reason_category=REASON_EMPTY,
            )
            return self._finish(decision, request.text)

        scored = self._score(text, request.history, policy)
        matched = self.matcher.match(
            text, request.attachments, available,
            history=self.scorer.truncate_history(request.history),
        )
        confidence = min(scored.confidence, matched.confidence)

        tier = scored.tier
        tools = matched.tools
        used_fallback = False
        usage: Optional[ClassifierUsage] = None
        notes: List[str] = [self._signal_summary(scored, matched)]

        if confidence >= policy.confidence_threshold:
            category = REASON_CONFIDENT
            notes.append(
                f"confidence {confidence:.2f} >= threshold {policy.confidence_threshold:.2f}"
            )
        elif self.gateway is None:
            category = REASON_LOW_CONFIDENCE
            notes.append(
                f"low confidence {confidence:.2f} < {policy.confidence_threshold:.2f}; "
                f"no fallback classifier configured"
            )
        else:
            outcome = await self.gateway.classify(text, deadline=deadline)
            if outcome.ok:
                used_fallback = True
                category = REASON_FALLBACK
                usage = outcome.usage
                guessed = policy.tier_scheme.get(outcome.tier.name) if outcome.tier else None
                if guessed is not None:
                    tier = guessed
                tools = frozenset((tools | outcome.tools) & available)
                notes.append(
                    f"low confidence {confidence:.2f}; fallback classifier chose "
                    f"{guessed.name if guessed else 'no tier'}"
                    + (f" and tools {sorted(outcome.tools)}" if outcome.tools else "")
                )
            else:
                category = REASON_FALLBACK_UNAVAILABLE
                notes.append(f"fallback unavailable: {outcome.error}")

        decision = self._decide(
            request, policy, tier, tools,
            confidence=confidence,
            reason="; ".join(notes),
            reason_category=category,
            used_fallback=used_fallback,
            matched_categories=scored.matched_categories,
            classifier_usage=usage,
        )
        return self._finish(decision, request.text)

    def route_sync(
        self,
        request: RoutingRequest,
        policy: RouterPolicy,
        deadline: Optional[Deadline] = None,
    ) -> RoutingDecision:
        """Blocking :meth:`route` for threaded callers without a running loop."""
        return asyncio.run(self.route(request, policy, deadline))

    def explain(self, decision: RoutingDecision) -> str:
        """Generate a human-readable explanation of a routing decision.

        Args:
            decision: The :class:`RoutingDecision` to explain.

        Returns:
            Multi-line explanation string.
        """
        conf_pct = int(round(decision.confidence * 100))

        # ── Model line ────────────────────────────────────────────────────
        lines: List[str] = [
            f"Model selected: {decision.model_id} "
            f"(tier: {decision.tier.name}, confidence: {conf_pct}%)"
        ]

        # ── Tools ─────────────────────────────────────────────────────────
        if decision.tools:
            lines.append("Tools: " + ", ".join(sorted(decision.tools)))
        else:
            lines.append("Tools: none")

        # ── Signals ───────────────────────────────────────────────────────
        if decision.matched_categories:
            lines.append(
                "Matched categories: " + ", ".join(sorted(decision.matched_categories))
            )

        # ── Fallback ──────────────────────────────────────────────────────
        if decision.used_fallback:
            lines.append("Fallback classifier: used")
            if decision.classifier_usage is not None:
                u = decision.classifier_usage
                lines.append(
                    f"  {u.input_tokens} in / {u.output_tokens} out tokens, "
                    f"${u.estimated_cost:.6f}"
                )
        elif decision.reason_category == REASON_FALLBACK_UNAVAILABLE:
            lines.append("Fallback classifier: unavailable, kept pattern result")

        if decision.tool_floor_applied:
            lines.append("Tier raised to the minimum tier for tool use.")

        # ── Cost ──────────────────────────────────────────────────────────
        lines.append(f"Estimated cost: ${decision.estimated_cost:.6f}")
        delta = decision.estimated_cost_delta
        if delta < 0:
            lines.append(f"  saves ${-delta:.6f} versus the current model")
        elif delta > 0:
            lines.append(f"  costs ${delta:.6f} more than the current model")

        lines.append(f"Reason: {decision.reason}")
        return "\n".join(lines)

    # ── Internals ─────────────────────────────────────────────────────────

    def _score(self, text: str, history: Sequence[HistoryEntry],
               policy: RouterPolicy) -> ScoreResult:
        if self.scorer.tier_scheme == policy.tier_scheme:
            return self.scorer.score(text, history)
        # Policy declares its own bands: rescore with a scorer on that scheme.
        scorer = ComplexityScorer(
            tier_scheme=policy.tier_scheme,
            groups=self.scorer.groups,
            history_turns=self.scorer.history_turns,
            history_char_budget=self.scorer.history_char_budget,
            history_weight=self.scorer.history_weight,
            debug=self.scorer.debug,
        )
        return scorer.score(text, history)

    @staticmethod
    def _available_tools(request: RoutingRequest, policy: RouterPolicy) -> FrozenSet[str]:
        if request.available_tools is None:
            return policy.tool_catalog
        return policy.tool_catalog & request.available_tools

    @staticmethod
    def _signal_summary(scored: ScoreResult, matched: ToolMatchResult) -> str:
        if scored.matched_categories:
            summary = (
                f"matched {', '.join(sorted(scored.matched_categories))} "
                f"(score {scored.score:.2f})"
            )
        else:
            summary = "no complexity signals"
        if matched.inherited:
            summary += f"; follow-up, kept tools {', '.join(sorted(matched.inherited))}"
        elif matched.tools:
            summary += f"; tools {', '.join(sorted(matched.tools))}"
        return summary

    def _decide(
        self,
        request: RoutingRequest,
        policy: RouterPolicy,
        tier: Tier,
        tools: FrozenSet[str],
        confidence: float,
        reason: str,
        reason_category: str,
        used_fallback: bool = False,
        matched_categories: FrozenSet[str] = frozenset(),
        classifier_usage: Optional[ClassifierUsage] = None,
    ) -> RoutingDecision:
        floor_applied = False
        floor = policy.tool_floor
        if tools and floor is not None and tier.rank < floor.rank:
            tier = floor
            floor_applied = True
            reason += f"; raised to {floor.name} for tool use"

        model_id = policy.model_for(tier)
        input_tokens = estimate_tokens(request.text)
        cost = self.pricing.calculate_cost(model_id, input_tokens, DEFAULT_OUTPUT_TOKENS)
        current = self.pricing.calculate_cost(
            request.current_model_id, input_tokens, DEFAULT_OUTPUT_TOKENS
        )
        return RoutingDecision(
            tools=frozenset(tools),
            model_id=model_id,
            tier=tier,
            confidence=round(confidence, 4),
            reason=reason,
            used_fallback=used_fallback,
            estimated_cost_delta=cost - current,
            estimated_cost=cost,
            matched_categories=frozenset(matched_categories),
            classifier_usage=classifier_usage,
            reason_category=reason_category,
            tool_floor_applied=floor_applied,
        )

    def _finish(self, decision: RoutingDecision, text: str) -> RoutingDecision:
        _log.info(
            "Routed to %s (tier=%s confidence=%.2f tools=%s fallback=%s cost=$%.6f delta=$%.6f)",
            decision.model_id, decision.tier.name, decision.confidence,
            sorted(decision.tools), decision.used_fallback,
            decision.estimated_cost, decision.estimated_cost_delta,
        )
        if self.stats is not None:
            self.stats.record(decision, text)
        return decision


# ── Service ───────────────────────────────────────────────────────────────────

class RoutingService:
    """Endpoint-aware front door: settings, policy cache and router together.

    ``route`` returns None when routing is disabled for the endpoint, in
    which case the caller keeps its current model.
    """

    def __init__(self, config: Config, router: Optional[Router] = None,
                 cache: Optional[PolicyCache] = None, transport=None,
                 stats: Optional[RoutingStats] = None):
        if router is not None:
            stats = stats if stats is not None else router.stats
            if transport is None and router.gateway is not None:
                transport = router.gateway.transport
        self.transport = transport
        self.stats = stats
        self.config = config
        self.settings = config.get_settings()
        self.cache = cache or PolicyCache(PolicyFactory(config))
        self.router = router or self.build_router(config, transport, stats)

    @classmethod
    def from_config(cls, config: Config, transport=None,
                    stats: Optional[RoutingStats] = None) -> "RoutingService":
        """Wire a service from *config*, with a fallback gateway when a
        transport is supplied."""
        return cls(config, transport=transport, stats=stats)

    @staticmethod
    def build_router(config: Config, transport=None,
                     stats: Optional[RoutingStats] = None) -> Router:
        """Router with pricing, tiers and fallback settings taken from *config*."""
        settings = config.get_settings()
        tier_scheme = config.get_tier_scheme()
        pricing = config.get_pricing()
        matcher = ToolIntentMatcher(debug=settings.debug)

        gateway = None
        if transport is not None:
            fallback = config.get_fallback_settings()
            catalog = set(config.get_tool_catalog())
            gateway = FallbackClassifierGateway(
                transport,
                tier_scheme=tier_scheme,
                tool_vocabulary=[t for t in matcher.vocabulary if t in catalog],
                pricing=pricing,
                model_id=fallback.get("model"),
                timeout=float(fallback.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            )

        return Router(
            pricing,
            scorer=ComplexityScorer(tier_scheme, debug=settings.debug),
            matcher=matcher,
            gateway=gateway,
            stats=stats,
        )

    def policy_for(self, endpoint: str) -> Optional[RouterPolicy]:
        """Effective policy for *endpoint*, or None when routing is off."""
        enabled, preset = self.settings.for_endpoint(endpoint)
        if not enabled:
            return None
        return self.cache.get_policy(endpoint, preset)

    async def route(self, endpoint: str, request: RoutingRequest,
                    deadline: Optional[Deadline] = None) -> Optional[RoutingDecision]:
        policy = self.policy_for(endpoint)
        if policy is None:
            _log.debug("Routing disabled for endpoint %s", endpoint)
            return None
        return await self.router.route(request, policy, deadline)

    def reload(self, config: Config) -> None:
        """Swap in new configuration: settings, cached policies and the
        router (pricing, tiers, fallback gateway) are all rebuilt. The
        transport and stats tracker carry over."""
        self.config = config
        self.settings = config.get_settings()
        self.cache = PolicyCache(PolicyFactory(config))
        self.router = self.build_router(config, self.transport, self.stats)
        _log.info("Routing configuration reloaded")
