"""
In-process routing statistics for Intent Router.

Keeps running counts per model, tier and reason category plus a bounded
log of recent decisions.  Nothing is persisted.
"""

import hashlib
import threading
import time
from typing import Any, Dict, List, Optional

MAX_EVENT_LOG_SIZE = 1000


class RoutingStats:
    """Thread-safe aggregate of routing decisions.

    The recent-event log holds at most ``max_events`` entries; when it
    overflows it is trimmed to the newest half.
    """

    def __init__(self, max_events: int = MAX_EVENT_LOG_SIZE):
        if max_events < 2:
            raise ValueError(f"max_events must be >= 2, got {max_events}")
        self.max_events = max_events
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self.model_counts: Dict[str, int] = {}
        self.tier_counts: Dict[str, int] = {}
        self.reason_counts: Dict[str, int] = {}
        self.total_confidence = 0.0
        self.fallback_count = 0
        self.tool_turns = 0
        self.total_cost_delta = 0.0
        self.events: List[Dict[str, Any]] = []

    def record(self, decision, text: Optional[str] = None) -> None:
        """Record one :class:`~intent_router.router.RoutingDecision`.

        Args:
            decision: The decision to count.
            text: Request text; only a hash of it is kept.
        """
        event = {
            "timestamp": time.time(),
            "model_id": decision.model_id,
            "tier": decision.tier.name,
            "confidence": decision.confidence,
            "reason_category": decision.reason_category,
            "used_fallback": decision.used_fallback,
            "tools": sorted(decision.tools),
            "estimated_cost_delta": decision.estimated_cost_delta,
        }
        if text is not None:
            event["prompt_hash"] = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]

        with self._lock:
            self.model_counts[decision.model_id] = self.model_counts.get(decision.model_id, 0) + 1
            tier = decision.tier.name
            self.tier_counts[tier] = self.tier_counts.get(tier, 0) + 1
            reason = decision.reason_category
            self.reason_counts[reason] = self.reason_counts.get(reason, 0) + 1
            self.total_confidence += decision.confidence
            self.total_cost_delta += decision.estimated_cost_delta
            if decision.used_fallback:
                self.fallback_count += 1
            if decision.tools:
                self.tool_turns += 1

            self.events.append(event)
            if len(self.events) > self.max_events:
                self.events = self.events[-(self.max_events // 2):]

    @property
    def total(self) -> int:
        return sum(self.model_counts.values())

    def get_stats(self) -> Dict[str, Any]:
        """Get routing statistics."""
        with self._lock:
            total = sum(self.model_counts.values())
            return {
                "total_requests": total,
                "model_counts": dict(self.model_counts),
                "tier_counts": dict(self.tier_counts),
                "tier_percentages": {
                    tier: round(count / total * 100, 1)
                    for tier, count in self.tier_counts.items()
                } if total else {},
                "reason_breakdown": dict(self.reason_counts),
                "average_confidence": round(self.total_confidence / total, 3) if total else 0.0,
                "fallback_rate": self.fallback_count / total if total else 0.0,
                "tool_turn_rate": self.tool_turns / total if total else 0.0,
                "total_cost_delta": round(self.total_cost_delta, 6),
                "most_used_model": (
                    max(self.model_counts, key=self.model_counts.get)
                    if self.model_counts else None
                ),
            }

    def get_recent_events(self, count: int = 100) -> List[Dict[str, Any]]:
        """Newest *count* events, oldest first."""
        with self._lock:
            return [dict(e) for e in self.events[-count:]] if count > 0 else []

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()
