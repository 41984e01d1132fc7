"""
Intent Router MCP Server

Exposes intent-router as MCP tools for any MCP-enabled agent.

Tools:
  - route(request, endpoint?, preset?, available_tools?) → tools + model decision
  - explain(request, endpoint?, preset?)                  → human-readable explanation
  - get_policy(endpoint?, preset?)                        → effective routing policy
  - get_stats()                                           → decisions served so far

Usage:
    python -m intent_router.mcp_server --config ./config
    # or
    from intent_router.mcp_server import create_server
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional

# ---------------------------------------------------------------------------
# Graceful MCP availability check
# ---------------------------------------------------------------------------
try:
    from mcp.server.fastmcp import FastMCP
    MCP_AVAILABLE = True
except ImportError:
    MCP_AVAILABLE = False
    FastMCP = None  # type: ignore

from intent_router.config import Config
from intent_router.policy import PolicyCache, PolicyFactory, RouterPolicy
from intent_router.router import Router, RoutingDecision, RoutingRequest
from intent_router.scorer import ComplexityScorer
from intent_router.stats import RoutingStats

DEFAULT_ENDPOINT = "bedrock"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _RouterState:
    """Config, policy cache, router and stats shared by the server's tools."""

    def __init__(self, config_path: Optional[str] = None):
        self.config = Config(config_path)
        self.settings = self.config.get_settings()
        self.cache = PolicyCache(PolicyFactory(self.config))
        self.stats = RoutingStats()
        self.router = Router(
            self.config.get_pricing(),
            scorer=ComplexityScorer(self.config.get_tier_scheme()),
            stats=self.stats,
        )

    def policy(self, endpoint: Optional[str], preset: Optional[str]) -> RouterPolicy:
        endpoint = endpoint or DEFAULT_ENDPOINT
        _, default_preset = self.settings.for_endpoint(endpoint)
        return self.cache.get_policy(endpoint, preset or default_preset)

    async def route(self, request: str, endpoint: Optional[str], preset: Optional[str],
                    available_tools: Optional[List[str]] = None) -> RoutingDecision:
        routing_request = RoutingRequest(
            text=request,
            available_tools=frozenset(available_tools) if available_tools is not None else None,
        )
        return await self.router.route(routing_request, self.policy(endpoint, preset))


def policy_to_dict(policy: RouterPolicy) -> Dict[str, Any]:
    return {
        "endpoint": policy.target_endpoint,
        "preset": policy.preset_name,
        "tiers": policy.tier_scheme.to_config(),
        "tier_to_model": dict(policy.tier_to_model),
        "confidence_threshold": policy.confidence_threshold,
        "tool_catalog": sorted(policy.tool_catalog),
        "min_tier_for_tools": policy.min_tier_for_tools,
    }


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------

def create_server(config_path: Optional[str] = None) -> "FastMCP":
    """Create and return the FastMCP server with intent-router tools.

    Args:
        config_path: Directory holding ``config.json``; packaged defaults
            are used when None.

    Returns:
        A configured ``FastMCP`` instance ready to run.

    Raises:
        ImportError: If the ``mcp`` package is not installed.
    """
    if not MCP_AVAILABLE:
        raise ImportError(
            "The 'mcp' package is required to run the intent-router MCP server. "
            "Install it with: pip install mcp"
        )

    state = _RouterState(config_path)

    mcp = FastMCP(
        name="intent-router",
        instructions=(
            "Intent Router: per-turn tool and model selection. "
            "Use route() to get tools and a model for a request, explain() for "
            "the reasoning, get_policy() to inspect tier→model presets, and "
            "get_stats() for routing totals."
        ),
    )

    # ------------------------------------------------------------------
    # Tool: route
    # ------------------------------------------------------------------
    @mcp.tool()
    async def route(
        request: str,
        endpoint: Optional[str] = None,
        preset: Optional[str] = None,
        available_tools: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Route a request to tools and the most appropriate model.

        Args:
            request: The text of the request to route.
            endpoint: Endpoint whose presets apply (default ``"bedrock"``).
            preset: Preset name, e.g. ``"costOptimized"`` or ``"premium"``.
            available_tools: Tools the caller can provide; defaults to the
                whole catalog.

        Returns:
            Dict with keys: tools, model_id, tier, confidence, reason,
            used_fallback, estimated_cost, estimated_cost_delta, ...
        """
        decision = await state.route(request, endpoint, preset, available_tools)
        return decision.to_dict()

    # ------------------------------------------------------------------
    # Tool: explain
    # ------------------------------------------------------------------
    @mcp.tool()
    async def explain(
        request: str,
        endpoint: Optional[str] = None,
        preset: Optional[str] = None,
    ) -> str:
        """Explain how this request would be routed.

        Args:
            request: The text of the request to analyse.
            endpoint: Endpoint whose presets apply.
            preset: Preset name.

        Returns:
            Multi-line explanation: model, tier, tools, signals and cost.
        """
        decision = await state.route(request, endpoint, preset)
        return state.router.explain(decision)

    # ------------------------------------------------------------------
    # Tool: get_policy
    # ------------------------------------------------------------------
    @mcp.tool()
    def get_policy(
        endpoint: Optional[str] = None,
        preset: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return the effective routing policy for an endpoint and preset."""
        try:
            return policy_to_dict(state.policy(endpoint, preset))
        except ValueError as e:
            return {"error": str(e)}

    # ------------------------------------------------------------------
    # Tool: get_stats
    # ------------------------------------------------------------------
    @mcp.tool()
    def get_stats() -> Dict[str, Any]:
        """Return aggregate statistics for decisions served by this server."""
        return state.stats.get_stats()

    return mcp


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Run the intent-router MCP server (stdio transport by default)."""
    parser = argparse.ArgumentParser(
        description="Intent Router MCP Server: expose tool and model routing over MCP."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Directory containing config.json (default: packaged defaults).",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="MCP transport (default: stdio).",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host for SSE transport (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8766,
        help="Port for SSE transport (default: 8766).",
    )
    args = parser.parse_args()

    if not MCP_AVAILABLE:
        print(
            "ERROR: The 'mcp' package is not installed.\n"
            "Install it with: pip install mcp",
            file=sys.stderr,
        )
        sys.exit(1)

    server = create_server(args.config)

    if args.transport == "stdio":
        server.run(transport="stdio")
    else:
        server.settings.host = args.host
        server.settings.port = args.port
        server.run(transport="sse")


if __name__ == "__main__":
    main()
