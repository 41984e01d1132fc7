"""
Fallback classification for Intent Router.

When the deterministic matchers are unsure, the router may ask a cheap
external model for a second opinion.  :class:`FallbackClassifierGateway`
wraps exactly one call to an injected async transport, bounds it with a
timeout, pins the sampling temperature, and decodes the free-text reply
into a ``(tier, tools)`` guess using a fixed vocabulary.

The gateway never raises past its boundary: failures come back as a
:class:`ClassificationOutcome` whose ``error`` is set.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Iterable, Optional, Tuple

from .deadline import Deadline
from .errors import ClassificationUnavailable, OperationCancelled
from .pricing import PricingTable, estimate_tokens
from .tiers import DEFAULT_TIERS, Tier, TierScheme

_log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0
CLASSIFIER_TEMPERATURE = 0.0
CLASSIFIER_MAX_TOKENS = 64

Transport = Callable[..., Awaitable[str]]

DEFAULT_PROMPT_TEMPLATE = """\
Classify the user request below for model routing.

Complexity tiers (lowest to highest): {tiers}
Available tools: {tools}

Reply with exactly two lines and nothing else:
tier: <one tier name>
tools: <comma-separated tool names, or none>

User request:
{text}
"""

_NONE_WORDS = frozenset({"none", "no", "n/a", "nothing", "-"})


@dataclass(frozen=True)
class ClassifierUsage:
    """Token usage and estimated cost of one fallback classification."""
    input_tokens: int
    output_tokens: int
    estimated_cost: float


@dataclass(frozen=True)
class ClassificationOutcome:
    """Outcome of :meth:`FallbackClassifierGateway.classify`.

    Exactly one of ``error`` or the guesses is meaningful: when ``error``
    is set, ``tier`` is None and ``tools`` is empty.
    """
    tier: Optional[Tier] = None
    tools: FrozenSet[str] = field(default_factory=frozenset)
    usage: Optional[ClassifierUsage] = None
    error: Optional[ClassificationUnavailable] = None
    raw_response: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_classifier_response(
    response: str,
    tier_scheme: TierScheme,
    tool_vocabulary: Iterable[str],
) -> Tuple[Optional[Tier], FrozenSet[str]]:
    """Decode a free-text classifier reply.

    ``tier:`` and ``tools:`` lines are preferred.  Without them the
    earliest tier keyword anywhere in the text is used, and every known
    tool name mentioned anywhere is collected.  Unknown words are ignored.

    Returns:
        ``(tier or None, tools)``; ``(None, frozenset())`` means no match.
    """
    vocabulary = {t.lower(): t for t in tool_vocabulary}
    lowered = response.lower()

    tier: Optional[Tier] = None
    tier_line = re.search(r"^\s*\**\s*tier\s*\**\s*[:=-]\s*(.+)$", lowered, re.MULTILINE)
    if tier_line:
        tier = _earliest_tier(tier_line.group(1), tier_scheme)
    if tier is None:
        tier = _earliest_tier(lowered, tier_scheme)

    tools = set()
    tools_line = re.search(r"^\s*\**\s*tools?\s*\**\s*[:=-]\s*(.*)$", lowered, re.MULTILINE)
    if tools_line:
        for token in re.split(r"[,;\s]+", tools_line.group(1)):
            token = token.strip(" .`'\"[]()")
            if token in vocabulary:
                tools.add(vocabulary[token])
    else:
        for key, tool in vocabulary.items():
            if re.search(r"(?<![\w-])" + re.escape(key) + r"(?![\w-])", lowered):
                tools.add(tool)

    return tier, frozenset(tools)


def _earliest_tier(text: str, tier_scheme: TierScheme) -> Optional[Tier]:
    best: Optional[Tuple[int, Tier]] = None
    for tier in tier_scheme:
        m = re.search(r"\b" + re.escape(tier.name) + r"\b", text)
        if m and (best is None or m.start() < best[0]):
            best = (m.start(), tier)
    return best[1] if best else None


class FallbackClassifierGateway:
    """Single-call gateway to an external classification model."""

    def __init__(
        self,
        transport: Transport,
        tier_scheme: TierScheme = DEFAULT_TIERS,
        tool_vocabulary: Iterable[str] = (),
        pricing: Optional[PricingTable] = None,
        model_id: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        prompt_template: str = DEFAULT_PROMPT_TEMPLATE,
    ):
        """Initialize the gateway.

        Args:
            transport: ``async (prompt, *, temperature, max_tokens) -> str``.
                Lifecycle, retries and credentials belong to the caller.
            tier_scheme: Tier vocabulary used to decode replies.
            tool_vocabulary: Tool ids the classifier may name.
            pricing: Pricing table used to cost the call.
            model_id: Pricing key of the classification model.
            timeout: Upper bound on one call, in seconds.
            prompt_template: ``str.format`` template with ``{tiers}``,
                ``{tools}`` and ``{text}`` placeholders.
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self.transport = transport
        self.tier_scheme = tier_scheme
        self.tool_vocabulary = tuple(tool_vocabulary)
        self.pricing = pricing
        self.model_id = model_id
        self.timeout = timeout
        self.prompt_template = prompt_template

    def build_prompt(self, text: str, prompt_template: Optional[str] = None) -> str:
        template = prompt_template or self.prompt_template
        return template.format(
            tiers=", ".join(self.tier_scheme.names),
            tools=", ".join(self.tool_vocabulary) or "none",
            text=text,
        )

    async def classify(
        self,
        text: str,
        prompt_template: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> ClassificationOutcome:
        """Ask the external model to classify *text*.

        Args:
            text: Request text.
            prompt_template: Per-call template override.
            deadline: Caller deadline; tightens the gateway timeout.

        Returns:
            ClassificationOutcome. Transport errors, timeouts, cancel
            signals and malformed replies are reported through ``error``.
        """
        deadline = deadline or Deadline.none()
        prompt = self.build_prompt(text, prompt_template)

        try:
            response = await deadline.run(
                self.transport(
                    prompt,
                    temperature=CLASSIFIER_TEMPERATURE,
                    max_tokens=CLASSIFIER_MAX_TOKENS,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            return self._failed(f"timed out after {deadline.bound(self.timeout)}s", e)
        except OperationCancelled as e:
            return self._failed("cancelled by caller", e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._failed(f"transport error: {e}", e)

        if not isinstance(response, str) or not response.strip():
            return self._failed(f"malformed response: {response!r}")

        usage = self._usage(prompt, response)
        tier, tools = parse_classifier_response(
            response, self.tier_scheme, self.tool_vocabulary
        )
        _log.info(
            "Fallback classifier: tier=%s tools=%s tokens=%d/%d cost=$%.6f",
            tier.name if tier else None, sorted(tools),
            usage.input_tokens, usage.output_tokens, usage.estimated_cost,
        )
        return ClassificationOutcome(
            tier=tier, tools=tools, usage=usage, raw_response=response
        )

    def _usage(self, prompt: str, response: str) -> ClassifierUsage:
        input_tokens = estimate_tokens(prompt)
        output_tokens = estimate_tokens(response)
        cost = 0.0
        if self.pricing is not None:
            cost = self.pricing.calculate_cost(self.model_id, input_tokens, output_tokens)
        return ClassifierUsage(input_tokens, output_tokens, cost)

    @staticmethod
    def _failed(message: str, cause: Optional[BaseException] = None) -> ClassificationOutcome:
        _log.warning("Fallback classifier unavailable: %s", message)
        return ClassificationOutcome(error=ClassificationUnavailable(message, cause))
