"""
Tests for the Router and RoutingService.

Covers:
  1. End-to-end scenarios (greeting, debugging, weather)
  2. Confidence gate and fallback classifier merge
  3. Fallback-unavailable degradation
  4. Tool floor enforcement
  5. Cost delta, idempotence, explain, stats
  6. Endpoint enable/disable through RoutingService
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from intent_router import (
    Config,
    FallbackClassifierGateway,
    PolicyCache,
    PolicyFactory,
    ResourceMeta,
    Router,
    RouterPolicy,
    RoutingRequest,
    RoutingService,
    RoutingStats,
    ToolIntentMatcher,
)
from intent_router.deadline import Deadline
from intent_router.pricing import DEFAULT_OUTPUT_TOKENS, estimate_tokens
from intent_router.router import (
    REASON_CONFIDENT,
    REASON_EMPTY,
    REASON_FALLBACK,
    REASON_FALLBACK_UNAVAILABLE,
    REASON_LOW_CONFIDENCE,
)
from intent_router.tiers import DEFAULT_TIERS, FIVE_TIERS

HAIKU = "us.anthropic.claude-haiku-4-5-20251001-v1:0"
NOVA_LITE = "us.amazon.nova-lite-v1:0"
OPUS = "global.anthropic.claude-opus-4-5-20251101-v1:0"

# Matches no pattern group, so the scorer reports low confidence.
AMBIGUOUS = "banana bread"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def policy(config) -> RouterPolicy:
    return PolicyCache(PolicyFactory(config)).get_policy("bedrock", "costOptimized")


@pytest.fixture
def router(config) -> Router:
    return Router(config.get_pricing())


def _gateway_router(config, transport) -> Router:
    gateway = FallbackClassifierGateway(
        transport,
        tier_scheme=config.get_tier_scheme(),
        tool_vocabulary=ToolIntentMatcher().vocabulary,
        pricing=config.get_pricing(),
        model_id="us.amazon.nova-micro-v1:0",
        timeout=1.0,
    )
    return Router(config.get_pricing(), gateway=gateway)


def _route(router, policy, text, **kwargs):
    return asyncio.run(router.route(RoutingRequest(text, **kwargs), policy))


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------

class TestScenarios:

    def test_greeting(self, router, policy):
        decision = _route(router, policy, "hi")
        assert decision.tier.name == "simple"
        assert decision.tools == frozenset()
        assert decision.used_fallback is False
        assert decision.model_id == NOVA_LITE

    def test_segfault(self, router, policy):
        decision = _route(router, policy, "fix this segfault in my C program")
        assert decision.tier.rank >= DEFAULT_TIERS.require("complex").rank
        assert decision.tools == frozenset()
        assert decision.used_fallback is False
        assert "debugging" in decision.matched_categories

    def test_weather_with_web_search(self, router, policy):
        decision = _route(
            router, policy, "what's today's weather", available_tools={"web_search"}
        )
        assert decision.tools == frozenset({"web_search"})
        assert decision.tier.rank >= policy.tool_floor.rank
        assert decision.tool_floor_applied
        assert decision.model_id == HAIKU

    def test_follow_up_keeps_previous_tools(self, router, policy):
        history = [
            {"user": "what's the weather in Paris today"},
            {"assistant": "Sunny, 22C (via web_search)"},
        ]
        decision = _route(
            router, policy, "and in London?", history=history, available_tools={"web_search"},
        )
        assert decision.tools == frozenset({"web_search"})
        assert decision.reason_category == REASON_CONFIDENT
        assert decision.tier.name == "moderate"
        assert decision.model_id == HAIKU
        assert "follow-up" in decision.reason

    def test_greeting_after_tool_turn(self, router, policy):
        history = ["what's the weather in Paris today", "Sunny, 22C (via web_search)"]
        decision = _route(router, policy, "thanks", history=history, available_tools={"web_search"})
        assert decision.tools == frozenset()

    def test_empty_text(self, router, policy):
        decision = _route(router, policy, "   ")
        assert decision.tier == DEFAULT_TIERS.lowest
        assert decision.tools == frozenset()
        assert decision.reason_category == REASON_EMPTY
        assert decision.model_id == NOVA_LITE


# ---------------------------------------------------------------------------
# Confidence gate & fallback
# ---------------------------------------------------------------------------

class TestFallback:

    def test_confident_result_skips_gateway(self, config, policy):
        transport = AsyncMock(return_value="tier: expert")
        router = _gateway_router(config, transport)
        decision = _route(router, policy, "fix this segfault in my C program")
        transport.assert_not_awaited()
        assert decision.reason_category == REASON_CONFIDENT

    def test_low_confidence_without_gateway(self, router, policy):
        decision = _route(router, policy, AMBIGUOUS)
        assert decision.reason_category == REASON_LOW_CONFIDENCE
        assert decision.used_fallback is False
        assert "low confidence" in decision.reason

    def test_gateway_failure_degrades_to_regex(self, config, policy, router):
        async def broken(prompt, **kwargs):
            raise RuntimeError("service down")

        degraded = _route(_gateway_router(config, broken), policy, AMBIGUOUS)
        regex_only = _route(router, policy, AMBIGUOUS)

        assert degraded.used_fallback is False
        assert degraded.reason_category == REASON_FALLBACK_UNAVAILABLE
        assert "fallback unavailable" in degraded.reason
        assert degraded.tier == regex_only.tier
        assert degraded.model_id == regex_only.model_id
        assert degraded.tools == regex_only.tools

    def test_gateway_timeout_degrades(self, config, policy):
        async def slow(prompt, **kwargs):
            await asyncio.sleep(5)
            return "tier: expert"

        router = _gateway_router(config, slow)
        router.gateway.timeout = 0.05
        decision = _route(router, policy, AMBIGUOUS)
        assert decision.used_fallback is False
        assert decision.reason_category == REASON_FALLBACK_UNAVAILABLE

    def test_gateway_tier_preferred(self, config, policy):
        transport = AsyncMock(return_value="tier: complex\ntools: web_search")
        decision = _route(_gateway_router(config, transport), policy, AMBIGUOUS)
        assert decision.used_fallback is True
        assert decision.reason_category == REASON_FALLBACK
        assert decision.tier.name == "complex"
        assert decision.tools == frozenset({"web_search"})
        assert decision.classifier_usage is not None
        assert decision.classifier_usage.estimated_cost > 0

        kwargs = transport.await_args.kwargs
        assert kwargs == {"temperature": 0.0, "max_tokens": 64}

    def test_gateway_without_tier_keeps_regex_tier(self, config, policy):
        transport = AsyncMock(return_value="tools: none")
        decision = _route(_gateway_router(config, transport), policy, AMBIGUOUS)
        assert decision.used_fallback is True
        assert decision.tier == DEFAULT_TIERS.lowest

    def test_gateway_tools_filtered_by_availability(self, config, policy):
        transport = AsyncMock(return_value="tier: simple\ntools: web_search")
        decision = _route(
            _gateway_router(config, transport), policy, AMBIGUOUS,
            available_tools={"calculator"},
        )
        assert decision.tools == frozenset()

    def test_resource_match_survives_fallback(self, config, policy):
        transport = AsyncMock(return_value="tier: simple\ntools: none")
        decision = _route(
            _gateway_router(config, transport), policy, AMBIGUOUS,
            attachments=(ResourceMeta(name="q3.csv"),),
        )
        assert "execute_code" in decision.tools
        assert decision.tier.rank >= DEFAULT_TIERS.require("moderate").rank

    def test_cancel_signal_reaches_gateway(self, config, policy):
        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            transport = AsyncMock(return_value="tier: expert")
            router = _gateway_router(config, transport)
            return await router.route(
                RoutingRequest(AMBIGUOUS), policy, Deadline(cancel_event=cancel)
            )

        decision = asyncio.run(scenario())
        assert decision.used_fallback is False
        assert decision.reason_category == REASON_FALLBACK_UNAVAILABLE

    def test_caller_cancellation_propagates(self, config, policy):
        async def hang(prompt, **kwargs):
            await asyncio.sleep(5)
            return "tier: expert"

        async def scenario():
            router = _gateway_router(config, hang)
            router.gateway.timeout = 10.0
            task = asyncio.ensure_future(router.route(RoutingRequest(AMBIGUOUS), policy))
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Tool floor, cost, determinism
# ---------------------------------------------------------------------------

class TestDecisionDetails:

    def test_tool_floor_never_lowers(self, router, policy):
        decision = _route(
            router, policy, "fix this segfault in my C program, then run the code",
            available_tools={"execute_code"},
        )
        assert "execute_code" in decision.tools
        assert decision.tier.name == "expert"
        assert not decision.tool_floor_applied

    def test_no_floor_configured(self, router, policy):
        import dataclasses
        no_floor = dataclasses.replace(policy, min_tier_for_tools=None)
        decision = _route(router, no_floor, "what's today's weather",
                          available_tools={"web_search"})
        assert decision.tier.name == "simple"
        assert decision.tools == frozenset({"web_search"})

    def test_cost_delta(self, config, router, policy):
        text = "hi"
        decision = _route(router, policy, text, current_model_id=OPUS)
        pricing = config.get_pricing()
        tokens = estimate_tokens(text)
        expected = (
            pricing.calculate_cost(NOVA_LITE, tokens, DEFAULT_OUTPUT_TOKENS)
            - pricing.calculate_cost(OPUS, tokens, DEFAULT_OUTPUT_TOKENS)
        )
        assert decision.estimated_cost_delta == pytest.approx(expected)
        assert decision.estimated_cost_delta < 0

    def test_cost_delta_zero_for_same_model(self, router, policy):
        decision = _route(router, policy, "hi", current_model_id=NOVA_LITE)
        assert decision.estimated_cost_delta == 0.0

    def test_idempotent(self, router, policy):
        request = RoutingRequest(
            "what's today's weather",
            current_model_id=OPUS,
            history=({"role": "user", "content": "hello"},),
        )
        first = asyncio.run(router.route(request, policy))
        second = asyncio.run(router.route(request, policy))
        assert first == second

    def test_policy_with_own_tier_scheme(self, router):
        policy = RouterPolicy(
            target_endpoint="openai",
            preset_name="five",
            tier_scheme=FIVE_TIERS,
            tier_to_model={t: f"m-{t}" for t in FIVE_TIERS.names},
            confidence_threshold=0.6,
        )
        decision = _route(router, policy, "hi")
        assert decision.tier.name == "trivial"
        assert decision.model_id == "m-trivial"

    def test_route_sync(self, router, policy):
        decision = router.route_sync(RoutingRequest("hi"), policy)
        assert decision.model_id == NOVA_LITE

    def test_to_dict(self, router, policy):
        d = _route(router, policy, "what's today's weather",
                   available_tools={"web_search"}).to_dict()
        assert d["tools"] == ["web_search"]
        assert d["tier"] == "moderate"
        assert d["used_fallback"] is False
        assert "classifier_usage" not in d

    def test_explain(self, router, policy):
        decision = _route(router, policy, "what's today's weather",
                          available_tools={"web_search"}, current_model_id=OPUS)
        text = router.explain(decision)
        assert text.startswith(f"Model selected: {HAIKU}")
        assert "Tools: web_search" in text
        assert "minimum tier for tool use" in text
        assert "saves $" in text

    def test_stats_recorded(self, config, policy):
        stats = RoutingStats()
        router = Router(config.get_pricing(), stats=stats)
        _route(router, policy, "hi")
        _route(router, policy, "fix this segfault in my C program")
        summary = stats.get_stats()
        assert summary["total_requests"] == 2
        assert summary["tier_counts"]["simple"] == 1


# ---------------------------------------------------------------------------
# RoutingService
# ---------------------------------------------------------------------------

class TestRoutingService:

    def test_disabled_by_default(self):
        service = RoutingService(Config())
        assert asyncio.run(service.route("bedrock", RoutingRequest("hi"))) is None

    def test_enabled_endpoint(self):
        service = RoutingService(Config(overrides={"settings": {"enabled": True}}))
        decision = asyncio.run(service.route("bedrock", RoutingRequest("hi")))
        assert decision is not None
        assert decision.model_id == NOVA_LITE

    def test_endpoint_override(self):
        config = Config(overrides={"settings": {
            "enabled": True,
            "per_endpoint_overrides": {"openai": {"enabled": False}},
        }})
        service = RoutingService(config)
        assert asyncio.run(service.route("openai", RoutingRequest("hi"))) is None
        assert service.policy_for("bedrock") is not None

    def test_endpoint_preset_override(self):
        config = Config(overrides={"settings": {
            "enabled": True,
            "per_endpoint_overrides": {"openai": {"preset": "economy"}},
        }})
        service = RoutingService(config)
        assert service.policy_for("openai").preset_name == "economy"

    def test_from_config_wires_gateway(self):
        transport = AsyncMock(return_value="tier: expert\ntools: none")
        stats = RoutingStats()
        service = RoutingService.from_config(
            Config(overrides={"settings": {"enabled": True}}), transport=transport, stats=stats,
        )
        decision = asyncio.run(service.route("bedrock", RoutingRequest(AMBIGUOUS)))
        assert decision.used_fallback is True
        assert decision.tier.name == "expert"
        assert service.router.gateway.timeout == 3.0
        assert stats.get_stats()["fallback_rate"] == 1.0

    def test_reload_drops_cached_policies(self):
        service = RoutingService(Config(overrides={"settings": {"enabled": True}}))
        service.policy_for("bedrock")
        service.reload(Config())
        assert len(service.cache) == 0
        assert service.policy_for("bedrock") is None

    def test_reload_applies_new_pricing(self):
        service = RoutingService(Config(overrides={"settings": {"enabled": True}}))
        before = asyncio.run(service.route("bedrock", RoutingRequest("hi")))

        pricing = {
            model: dict(entry, input=entry["input"] * 100, output=entry["output"] * 100)
            for model, entry in Config().config["pricing"].items()
        }
        service.reload(Config(overrides={"settings": {"enabled": True}, "pricing": pricing}))
        after = asyncio.run(service.route("bedrock", RoutingRequest("hi")))

        assert after.model_id == before.model_id
        assert after.estimated_cost == pytest.approx(before.estimated_cost * 100)

    def test_reload_keeps_transport_and_stats(self):
        transport = AsyncMock(return_value="tier: expert\ntools: none")
        stats = RoutingStats()
        service = RoutingService.from_config(
            Config(overrides={"settings": {"enabled": True}}), transport=transport, stats=stats,
        )
        asyncio.run(service.route("bedrock", RoutingRequest("hi")))

        service.reload(Config(overrides={
            "settings": {"enabled": True},
            "fallback": {"model": "us.amazon.nova-lite-v1:0", "timeout_seconds": 1.5},
        }))
        assert service.router.stats is stats
        assert service.router.gateway.transport is transport
        assert service.router.gateway.timeout == 1.5

        decision = asyncio.run(service.route("bedrock", RoutingRequest(AMBIGUOUS)))
        assert decision.used_fallback is True
        assert stats.get_stats()["total_requests"] == 2

    def test_reload_without_transport_has_no_gateway(self):
        service = RoutingService(Config(overrides={"settings": {"enabled": True}}))
        service.reload(Config(overrides={"settings": {"enabled": True}}))
        assert service.router.gateway is None
