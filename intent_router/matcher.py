"""
Tool intent matching for Intent Router.

Maps request text plus attached-resource metadata onto a set of
candidate tools.  Text evidence comes from weighted phrase groups, each
tied to one tool id; resource evidence comes from deterministic
file-type rules that always win.  The caller's available-tools set is
applied last, so an unavailable tool can never be surfaced.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Sequence, Tuple

_log = logging.getLogger(__name__)

# ── Tool ids ──────────────────────────────────────────────────────────────────
WEB_SEARCH = "web_search"
EXECUTE_CODE = "execute_code"
FILE_SEARCH = "file_search"
IMAGE_GEN = "image_gen"
YOUTUBE_VIDEO = "youtube_video"
ARTIFACTS = "artifacts"
CALCULATOR = "calculator"

# The tool that handles tabular data (CSV, spreadsheets).
STRUCTURED_DATA_TOOL = EXECUTE_CODE

TABULAR_EXTENSIONS = frozenset({".csv", ".tsv", ".xlsx", ".xls", ".parquet", ".json", ".sql"})
DOCUMENT_EXTENSIONS = frozenset({".pdf", ".docx", ".doc", ".txt", ".md", ".pptx", ".rtf"})
IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp"})

TABULAR_MIME_HINTS = ("text/csv", "spreadsheet", "ms-excel", "tab-separated", "parquet")
DOCUMENT_MIME_HINTS = ("pdf", "msword", "wordprocessing", "presentation", "text/plain", "markdown")


@dataclass(frozen=True)
class ResourceMeta:
    """Metadata for a file attached to the request."""
    name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None

    @property
    def extension(self) -> str:
        if not self.name:
            return ""
        return os.path.splitext(self.name)[1].lower()

    def _mime(self) -> str:
        return (self.mime_type or "").lower()

    def is_tabular(self) -> bool:
        return self.extension in TABULAR_EXTENSIONS or any(
            hint in self._mime() for hint in TABULAR_MIME_HINTS
        )

    def is_document(self) -> bool:
        return self.extension in DOCUMENT_EXTENSIONS or any(
            hint in self._mime() for hint in DOCUMENT_MIME_HINTS
        )

    def is_image(self) -> bool:
        return self.extension in IMAGE_EXTENSIONS or self._mime().startswith("image/")


@dataclass(frozen=True)
class ToolPatternGroup:
    """Phrase patterns that suggest one tool, with their weight."""
    tool: str
    weight: float
    patterns: Tuple[Pattern, ...]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def _tool_group(tool: str, weight: float, *patterns: str) -> ToolPatternGroup:
    return ToolPatternGroup(
        tool=tool,
        weight=weight,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
    )


DEFAULT_TOOL_GROUPS: Tuple[ToolPatternGroup, ...] = (
    _tool_group(
        WEB_SEARCH, 0.9,
        r"\b(weather|forecast|headlines|stock price|exchange rate)\b",
        r"\b(search|look ?up|google|browse)\b.*\b(web|internet|online)\b",
        r"\bwhat('s| is) happening\b",
    ),
    _tool_group(
        WEB_SEARCH, 0.6,
        r"\b(latest|recent|current|today'?s?)\b.*\b(news|about|on|regarding|price|score)\b",
        r"\bnews\b",
    ),
    _tool_group(
        EXECUTE_CODE, 0.9,
        r"\b(run|execute|eval)\b.*\b(code|script|python|javascript|snippet)\b",
        r"\b(write|create)\b.*\b(and|then)\b.*\b(run|execute|test)\b",
    ),
    _tool_group(
        EXECUTE_CODE, 0.6,
        r"\b(analy[sz]e|plot|aggregate|pivot)\b.*\b(data|dataset|csv|spreadsheet|excel)\b",
        r"\b(generate|export)\b.*\b(csv|xlsx|excel|spreadsheet) file\b",
    ),
    _tool_group(
        FILE_SEARCH, 0.9,
        r"\b(search|find|look)\b.*\b(in |through |my )?(files?|documents?|uploads?)\b",
    ),
    _tool_group(
        FILE_SEARCH, 0.6,
        r"\b(summari[sz]e|read|review)\b.*\b(document|pdf|attachment|upload)\b",
    ),
    _tool_group(
        IMAGE_GEN, 0.9,
        r"\b(generate|create|draw|make|edit)\b.*\b(image|picture|illustration|logo|photo)\b",
    ),
    _tool_group(
        YOUTUBE_VIDEO, 1.0,
        r"(youtube\.com/(watch|shorts)|youtu\.be/)",
    ),
    _tool_group(
        YOUTUBE_VIDEO, 0.6,
        r"\b(youtube|video transcript)\b",
    ),
    _tool_group(
        ARTIFACTS, 0.9,
        r"\b(using|with)\s+artifacts?\b",
        r"\b(create|build|make|generate)\b.*\b(dashboard|interactive|ui mockup|html page)\b",
    ),
    _tool_group(
        CALCULATOR, 0.6,
        r"\b(calculate|compute)\b.*\d",
    ),
)

# ── Follow-up turns ───────────────────────────────────────────────────────────
# Weight of a tool carried over from recent history.
INHERITED_WEIGHT = 0.7

_GREETING = re.compile(
    r"^\s*(hi|hello|hey|thanks|thank you|ok|okay|bye|goodbye|yes|no|sure|yep|nope|"
    r"cool|nice|great|awesome|perfect|got it|alright|sounds good|understood|noted)[\s!?.]*$",
    re.IGNORECASE,
)
_NEW_TOPIC = re.compile(
    r"^\s*(now|next|let'?s|can you|could you|please|i want|i need|i'?d like|"
    r"how (do|can|to)|what (is|are)|tell me about|explain|help me with|switch to|"
    r"change to|forget|never ?mind|start|begin)\b",
    re.IGNORECASE,
)
_FOLLOW_UP = re.compile(
    r"^\s*(and|also|what about|how about|same for|do the same|continue|more|another|"
    r"again|else|too|plus|tell me more|show me more|any more|anything else|"
    r"it|this|that|these|those)\b",
    re.IGNORECASE,
)


def is_follow_up(text: str) -> bool:
    """True when *text* reads as a continuation of the previous turn."""
    if not text or not text.strip() or _GREETING.match(text):
        return False
    return bool(_FOLLOW_UP.match(text)) or not _NEW_TOPIC.match(text)


@dataclass(frozen=True)
class ToolMatchResult:
    """Result of tool intent matching.

    Attributes:
        tools: Surfaced tool ids (already filtered by availability).
        confidence: Lowest per-tool evidence weight, 1.0 when empty.
        weights: Per-tool accumulated evidence, capped at 1.0.
        authoritative: Tools surfaced by a resource-type rule.
        inherited: Tools carried over from recent history.
    """
    tools: FrozenSet[str] = field(default_factory=frozenset)
    confidence: float = 1.0
    weights: Tuple[Tuple[str, float], ...] = ()
    authoritative: FrozenSet[str] = field(default_factory=frozenset)
    inherited: FrozenSet[str] = field(default_factory=frozenset)


class ToolIntentMatcher:
    """Deterministic tool candidate selection."""

    def __init__(self, groups: Sequence[ToolPatternGroup] = DEFAULT_TOOL_GROUPS,
                 debug: bool = False):
        self.groups = tuple(groups)
        self.debug = debug

    @property
    def vocabulary(self) -> List[str]:
        """Every tool id this matcher can surface, in declaration order."""
        seen: List[str] = []
        for group in self.groups:
            if group.tool not in seen:
                seen.append(group.tool)
        for tool in (STRUCTURED_DATA_TOOL, FILE_SEARCH):
            if tool not in seen:
                seen.append(tool)
        return seen

    def match(
        self,
        text: str,
        attached_resources: Iterable[ResourceMeta] = (),
        available_tools: Optional[Iterable[str]] = None,
        history: Iterable[str] = (),
    ) -> ToolMatchResult:
        """Select candidate tools for *text* and its attachments.

        Args:
            text: Raw user-turn text.
            attached_resources: Metadata of attached files.
            available_tools: Tools the caller can actually provide. When
                None, no tool is considered available.
            history: Recent turns, already truncated. When the turn itself
                surfaces no tool and reads as a follow-up, the tools these
                turns point at are carried over at :data:`INHERITED_WEIGHT`.

        Returns:
            ToolMatchResult; an empty result means no special tool needed.
        """
        weights: Dict[str, float] = {}
        authoritative = set()

        if text and text.strip():
            for group in self.groups:
                if group.matches(text):
                    weights[group.tool] = min(1.0, weights.get(group.tool, 0.0) + group.weight)

        for resource in attached_resources or ():
            for tool in self.resource_tools(resource, text or ""):
                weights[tool] = 1.0
                authoritative.add(tool)

        available = frozenset(available_tools or ())
        surfaced = {tool: w for tool, w in weights.items() if tool in available}

        if self.debug and weights:
            dropped = sorted(set(weights) - set(surfaced))
            _log.debug("tool weights=%s dropped(unavailable)=%s", weights, dropped)

        inherited: FrozenSet[str] = frozenset()
        if not surfaced and is_follow_up(text or ""):
            inherited = frozenset(self.history_tools(history)) & available
            surfaced = {tool: INHERITED_WEIGHT for tool in inherited}
            if self.debug and inherited:
                _log.debug("follow-up turn, inherited tools=%s", sorted(inherited))

        confidence = min(surfaced.values()) if surfaced else 1.0
        return ToolMatchResult(
            tools=frozenset(surfaced),
            confidence=round(confidence, 4),
            weights=tuple(sorted(surfaced.items())),
            authoritative=frozenset(authoritative & set(surfaced)),
            inherited=inherited,
        )

    def history_tools(self, history: Iterable[str]) -> List[str]:
        """Tools recent turns asked for or mention by id."""
        found: List[str] = []
        vocabulary = self.vocabulary
        for turn in history or ():
            if not isinstance(turn, str):
                continue
            candidates = [g.tool for g in self.groups if g.matches(turn)]
            candidates += [
                tool for tool in vocabulary
                if re.search(r"(?<![\w-])" + re.escape(tool) + r"(?![\w-])", turn, re.IGNORECASE)
            ]
            for tool in candidates:
                if tool not in found:
                    found.append(tool)
        return found

    @staticmethod
    def resource_tools(resource: ResourceMeta, text: str) -> List[str]:
        """Tools implied by the type of one attached resource."""
        if resource.is_tabular():
            return [STRUCTURED_DATA_TOOL]
        if resource.is_document():
            return [FILE_SEARCH]
        if resource.is_image() and re.search(r"\b(edit|modify|change|retouch)\b", text, re.IGNORECASE):
            return [IMAGE_GEN]
        return []
