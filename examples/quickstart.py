#!/usr/bin/env python3
"""
Intent Router Quickstart Example

Demonstrates per-turn routing, the fallback classifier, tool loading and
routing statistics.
"""

import asyncio

from intent_router import (
    Config,
    LoadContext,
    ResourceMeta,
    RoutingRequest,
    RoutingService,
    RoutingStats,
    ToolOrchestrator,
)

CURRENT_MODEL = "us.anthropic.claude-sonnet-4-5-20250929-v1:0"


async def fake_transport(prompt, *, temperature, max_tokens):
    """Stand-in for a call to a cheap classification model."""
    return "tier: moderate\ntools: none"


async def main():
    print("=== Intent Router Quickstart ===\n")

    # 1. Service with routing switched on and a fallback classifier wired in
    config = Config(overrides={"settings": {"enabled": True, "preset": "costOptimized"}})
    stats = RoutingStats()
    service = RoutingService.from_config(config, transport=fake_transport, stats=stats)
    print("1. Policy for bedrock:")
    policy = service.policy_for("bedrock")
    for tier, model in policy.tier_to_model.items():
        print(f"   {tier:<9} → {model}")
    print()

    # 2. Route a handful of requests
    requests = [
        RoutingRequest("hi"),
        RoutingRequest("what's today's weather"),
        RoutingRequest("fix this segfault in my C program"),
        RoutingRequest("banana bread"),
        RoutingRequest("summarize these", attachments=(
            ResourceMeta(name="q3.csv"), ResourceMeta(name="board-deck.pdf"),
        )),
    ]
    print("2. Routing decisions:")
    decisions = []
    for request in requests:
        request = RoutingRequest(
            request.text,
            current_model_id=CURRENT_MODEL,
            attachments=request.attachments,
        )
        decision = await service.route("bedrock", request)
        decisions.append((request, decision))
        print(f"\n   Input: {request.text}")
        print("   " + service.router.explain(decision).replace("\n", "\n   "))
    print()

    # 3. Load the tools chosen for the attachment turn
    request, decision = decisions[-1]
    orchestrator = ToolOrchestrator(env={"CODE_API_KEY": "demo-key"})
    result = await orchestrator.load(
        sorted(decision.tools),
        LoadContext(user_id="demo-user", attachments=request.attachments),
    )
    print("3. Tool loading:")
    print(f"   Loaded: {result.tool_names}")
    print(f"   Failed: {result.failed_tools}")
    for tool_id, context in result.tool_context.items():
        print(f"   Context for {tool_id}: {context.splitlines()[0]}")
    print()

    # 4. Statistics
    summary = stats.get_stats()
    print("4. Statistics:")
    print(f"   Requests: {summary['total_requests']}")
    print(f"   Tier mix: {summary['tier_percentages']}")
    print(f"   Fallback rate: {summary['fallback_rate']:.0%}")
    print(f"   Cost delta vs current model: ${summary['total_cost_delta']:.6f}")


if __name__ == "__main__":
    asyncio.run(main())
