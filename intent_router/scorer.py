"""
Complexity scoring for Intent Router.

Maps request text onto a normalized complexity score and a tier by
evaluating an ordered list of weighted pattern groups.  Each matching
group adds its weight; the total is capped at 1.0.  Scores are sums, not
averages, so more matched signals can never produce a lower tier.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from .pricing import estimate_tokens
from .tiers import DEFAULT_TIERS, Tier, TierScheme

_log = logging.getLogger(__name__)

# Confidence reported when non-empty text matched no pattern group at all.
UNMATCHED_CONFIDENCE = 0.4

# History defaults: last N turns, each truncated independently.
DEFAULT_HISTORY_TURNS = 3
DEFAULT_HISTORY_CHAR_BUDGET = 500
DEFAULT_HISTORY_WEIGHT = 0.5

HistoryEntry = Union[str, Mapping[str, Any]]


@dataclass(frozen=True)
class PatternGroup:
    """A category of regex patterns sharing one weight."""
    category: str
    weight: float
    patterns: Tuple[Pattern, ...]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def _group(category: str, weight: float, *patterns: str) -> PatternGroup:
    return PatternGroup(
        category=category,
        weight=weight,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
    )


DEFAULT_PATTERN_GROUPS: Tuple[PatternGroup, ...] = (
    _group(
        "greeting", 0.0,
        r"^\s*(hi|hello|hey|thanks|thank you|ok|okay|yes|no|sure|got it|bye|goodbye)\s*[.!?]*\s*$",
        r"^\s*(how are you|what's up|how's it going)\s*\??\s*$",
        r"^\s*(good morning|good afternoon|good evening|good night)\s*[.!]*\s*$",
    ),
    _group(
        "question", 0.1,
        r"^\s*(what|what's|who|when|where|which|how|is|are|can|does|do)\b",
        r"\?\s*$",
    ),
    _group(
        "code", 0.35,
        r"```",
        r"\b(function|class|def|import|return|async|await|const|var)\b",
        r"\b(implement|code|program|script|algorithm|refactor|compile|compiler)\b",
        r"\b(python|javascript|typescript|java|c\+\+|golang|rust|ruby|sql)\b",
        r"\bin (my )?c\b",
        r"\.(js|ts|py|java|cpp|c|go|rs|rb|php|swift|kt)\b",
        r"\b(write|create|build|develop)\b.*\b(code|function|class|program|component)\b",
    ),
    _group(
        "debugging", 0.6,
        r"\b(segfault|seg fault|segmentation fault|core dump(ed)?)\b",
        r"\b(stack ?trace|traceback|null pointer|nullpointer|exception)\b",
        r"\b(debug|debugging|troubleshoot|diagnose)\b",
        r"\b(race condition|deadlock|memory leak|crash(es|ed|ing)?)\b",
        r"\bfix\b.*\b(bug|error|issue|crash|this|segfault|test|failure)\b",
        r"\b(doesn't|does not|won't|isn't) (work|compile|run)\b",
    ),
    _group(
        "reasoning", 0.2,
        r"\b(explain|analy[sz]e|compare|evaluate|assess|examine)\b",
        r"\b(pros and cons|trade-?offs?|advantages|disadvantages)\b",
        r"\b(step by step|break down|walk through)\b",
        r"\b(difference between|versus|vs\.?)\b",
        r"\bwhy\b",
    ),
    _group(
        "architecture", 0.45,
        r"\b(architecture|architect|system design|design a system)\b",
        r"\b(distributed|microservices?|scalab\w*|fault tolerance|high availability)\b",
        r"\b(event sourcing|cqrs|sharding|load balanc\w*)\b",
    ),
    _group(
        "research", 0.5,
        r"\b(comprehensive|thorough(ly)?|in-?depth|exhaustive)\b",
        r"\b(critical|deep)\b.*\b(analysis|thinking|review)\b",
        r"\b(synthesi[sz]e|consolidate)\b.*\b(information|sources|findings)\b",
    ),
    _group(
        "math", 0.15,
        r"\b(calculate|compute|equation|formula|derivative|integral|probability)\b",
        r"\b(matrix|vector|eigenvalue|theorem|proof|lemma)\b",
        r"\d+\s*[-+*/^]\s*\d+",
    ),
    _group(
        "creative", 0.15,
        r"\b(story|poem|essay|article|blog post|novel|narrative|lyrics)\b",
        r"\b(slogan|tagline|metaphor|character|plot)\b",
    ),
    _group(
        "ui_generation", 0.2,
        r"\b(dashboard|user interface|ui|widget|landing page)\b",
        r"\b(react|vue|angular|svelte|html|css|frontend|front-end)\b",
        r"\b(chart|graph|visuali[sz]ation)\b",
    ),
    _group(
        "multi_step", 0.15,
        r"\b(first|then|next|after that|finally|step \d+)\b.*\b(then|next|finally|after that)\b",
        r"\d+\.\s+.*\n\s*\d+\.\s+",
        r"[-*]\s+.*\n\s*[-*]\s+",
    ),
    _group(
        "technical_domain", 0.1,
        r"\b(api|sdk|rest|graphql|oauth|jwt|websocket)\b",
        r"\b(kubernetes|docker|aws|azure|gcp|terraform)\b",
        r"\b(machine learning|deep learning|neural|transformer|embedding|llm)\b",
    ),
)

# (minimum estimated tokens, weight) pairs, largest first.
LENGTH_BONUSES: Tuple[Tuple[int, float], ...] = (
    (1000, 0.15),
    (500, 0.10),
    (200, 0.05),
)


@dataclass(frozen=True)
class ScoreResult:
    """Result of complexity scoring."""
    tier: Tier
    score: float
    matched_categories: FrozenSet[str] = field(default_factory=frozenset)
    confidence: float = 1.0
    contributions: Tuple[Tuple[str, float], ...] = ()

    @property
    def tier_name(self) -> str:
        return self.tier.name


class ComplexityScorer:
    """Scores request complexity with weighted pattern groups."""

    def __init__(
        self,
        tier_scheme: TierScheme = DEFAULT_TIERS,
        groups: Sequence[PatternGroup] = DEFAULT_PATTERN_GROUPS,
        history_turns: int = DEFAULT_HISTORY_TURNS,
        history_char_budget: int = DEFAULT_HISTORY_CHAR_BUDGET,
        history_weight: float = DEFAULT_HISTORY_WEIGHT,
        debug: bool = False,
    ):
        """Initialize the scorer.

        Args:
            tier_scheme: Bands used to turn a score into a tier.
            groups: Ordered pattern groups; weights must be non-negative.
            history_turns: How many prior turns to consider.
            history_char_budget: Per-turn character budget for history.
            history_weight: Multiplier for groups matched only in history.
            debug: Log every matched group.
        """
        for group in groups:
            if group.weight < 0:
                raise ValueError(
                    f"Pattern group {group.category!r} has negative weight {group.weight}"
                )
        self.tier_scheme = tier_scheme
        self.groups = tuple(groups)
        self.history_turns = history_turns
        self.history_char_budget = history_char_budget
        self.history_weight = history_weight
        self.debug = debug

    @property
    def categories(self) -> List[str]:
        """All category tags this scorer can emit."""
        return [g.category for g in self.groups] + ["long_context"]

    def score(self, text: str, history: Optional[Iterable[HistoryEntry]] = None) -> ScoreResult:
        """Score *text* (and, optionally, recent history).

        Args:
            text: Raw user-turn text.
            history: Prior turns as ``{"role", "content"}`` dicts or strings.

        Returns:
            ScoreResult; never raises.
        """
        if not text or not text.strip():
            return ScoreResult(
                tier=self.tier_scheme.lowest,
                score=0.0,
                matched_categories=frozenset(),
                confidence=1.0,
            )

        turns = self.truncate_history(history)
        contributions: List[Tuple[str, float]] = []

        for group in self.groups:
            if group.matches(text):
                contributions.append((group.category, group.weight))
            elif any(group.matches(turn) for turn in turns):
                contributions.append((group.category, group.weight * self.history_weight))

        tokens = estimate_tokens(text)
        for min_tokens, weight in LENGTH_BONUSES:
            if tokens > min_tokens:
                contributions.append(("long_context", weight))
                break

        raw = sum(weight for _, weight in contributions)
        score = max(0.0, min(1.0, raw))
        tier = self.tier_scheme.tier_for_score(score)
        categories = frozenset(category for category, _ in contributions)

        if self.debug:
            _log.debug(
                "score=%.3f tier=%s contributions=%s", score, tier.name, contributions
            )

        return ScoreResult(
            tier=tier,
            score=score,
            matched_categories=categories,
            confidence=self.confidence_for(score, tier, bool(categories)),
            contributions=tuple(contributions),
        )

    def confidence_for(self, score: float, tier: Tier, matched: bool) -> float:
        """Confidence that *score* belongs in *tier*.

        Scores sitting on an interior band edge get 0.55; scores at least
        half a band away from every interior edge get 1.0.  Text that
        matched nothing is treated as ambiguous.
        """
        if not matched:
            return UNMATCHED_CONFIDENCE
        edges = self.tier_scheme.interior_boundaries(tier)
        if not edges:
            return 1.0
        margin = min(abs(score - edge) for edge in edges)
        half_band = tier.width / 2
        return round(0.55 + 0.45 * min(1.0, margin / half_band), 4)

    def truncate_history(self, history: Optional[Iterable[HistoryEntry]]) -> List[str]:
        """Keep the last N turns, each cut to the character budget."""
        if not history:
            return []
        turns = []
        for entry in list(history)[-self.history_turns:]:
            content = turn_content(entry)
            if not content.strip():
                continue
            turns.append(content[:self.history_char_budget])
        return turns


def turn_content(entry: HistoryEntry) -> str:
    """Text of one history turn.

    Accepts a plain string, a ``{"role": ..., "content": ...}`` dict, or a
    single-key ``{role: content}`` dict.
    """
    if isinstance(entry, Mapping):
        if "content" in entry:
            content = entry.get("content")
        else:
            content = " ".join(
                v for k, v in entry.items() if k != "role" and isinstance(v, str)
            )
    else:
        content = entry
    return content if isinstance(content, str) else ""
