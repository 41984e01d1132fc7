"""
Tool orchestration for Intent Router.

Turns the tool ids chosen for a turn into usable :class:`Tool` objects
plus per-tool context strings for the downstream model.

Each requested id is resolved, in order, through:

1. bespoke constructors, which see the request context (attachments) and
   may contribute a context string;
2. a registry of simple constructors with declared credentials;
3. the remote-provider convention ``<tool>::<provider>``, queued and
   resolved per provider.

Built-in tools are constructed concurrently.  Providers are resolved one
after another; a provider that fails once is skipped for the rest of the
call.  A failure for one tool never affects the others.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import (
    Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional,
    Sequence, Tuple, Union,
)

from .credentials import AuthField, CredentialResolver, load_auth_values
from .deadline import Deadline
from .errors import OperationCancelled, ProviderUnreachable, ToolUnavailable
from .matcher import (
    EXECUTE_CODE, FILE_SEARCH, IMAGE_GEN, CALCULATOR, ARTIFACTS, WEB_SEARCH, YOUTUBE_VIDEO,
    ResourceMeta,
)

_log = logging.getLogger(__name__)

# Remote-provider naming convention.
PROVIDER_DELIMITER = "::"
PROVIDER_ALL = "sys__all__sys"
PROVIDER_SERVER = "sys__server__sys"

CODE_API_KEY = "CODE_API_KEY"


@dataclass
class Tool:
    """A constructed, not yet invoked, tool."""
    name: str
    description: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None


@dataclass(frozen=True)
class LoadContext:
    """Request-scoped inputs for tool construction.

    Attributes:
        user_id: User the tools are built for.
        attachments: Files attached to the turn.
        configured_providers: Remote providers known to the deployment.
            None means every provider is accepted.
        options: Free-form per-tool options, keyed by tool id.
    """
    user_id: str
    attachments: Tuple[ResourceMeta, ...] = ()
    configured_providers: Optional[FrozenSet[str]] = None
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attachments", tuple(self.attachments or ()))
        if self.configured_providers is not None:
            object.__setattr__(self, "configured_providers", frozenset(self.configured_providers))


@dataclass(frozen=True)
class ProviderRequest:
    """One queued request to a remote provider."""
    kind: str  # "single" | "all"
    tool_key: Optional[str] = None


@dataclass
class LoadResult:
    """Outcome of :meth:`ToolOrchestrator.load`."""
    loaded_tools: List[Tool] = field(default_factory=list)
    tool_context: Dict[str, str] = field(default_factory=dict)
    failed_tools: List[str] = field(default_factory=list)
    failed_providers: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def tool_names(self) -> List[str]:
        return [t.name for t in self.loaded_tools]


BuildResult = Union[Tool, List[Tool], None]
AuthLoader = Callable[[Sequence[AuthField], str], Awaitable[Dict[str, str]]]
# (context, shared tool-context map, credential loader) -> tool(s)
BespokeConstructor = Callable[[LoadContext, Dict[str, str], AuthLoader], Awaitable[BuildResult]]
# (auth values, context) -> tool; may be sync or async
SimpleConstructor = Callable[[Dict[str, str], LoadContext], Union[BuildResult, Awaitable[BuildResult]]]
# (provider, request) -> tools; may be sync or async
ProviderResolver = Callable[[str, ProviderRequest], Union[List[Tool], Awaitable[List[Tool]]]]


@dataclass(frozen=True)
class ToolSpec:
    """Registry entry for a simple, credential-gated tool."""
    tool_id: str
    constructor: SimpleConstructor
    auth_fields: Tuple[AuthField, ...] = ()
    description: str = ""


# ── Bespoke constructors ──────────────────────────────────────────────────────

def _file_list(resources: Iterable[ResourceMeta]) -> str:
    return "\n".join(f"- {r.name or 'unnamed'}" for r in resources)


async def build_execute_code(context: LoadContext, tool_context: Dict[str, str],
                             load_auth: AuthLoader) -> Tool:
    """Code interpreter, primed with tabular attachments."""
    auth = await load_auth((AuthField(CODE_API_KEY),), EXECUTE_CODE)
    files = [r for r in context.attachments if r.is_tabular()]
    if files:
        tool_context[EXECUTE_CODE] = (
            f"# `{EXECUTE_CODE}`:\n"
            "The following data files are available in the code environment. "
            "Read them with code before answering:\n" + _file_list(files)
        )
    return Tool(
        name=EXECUTE_CODE,
        description="Run code in a sandbox",
        config={"api_key": auth[CODE_API_KEY], "files": [r.name for r in files]},
    )


async def build_file_search(context: LoadContext, tool_context: Dict[str, str],
                            load_auth: AuthLoader) -> Tool:
    """Document search over attached documents; citations always on."""
    files = [r for r in context.attachments if r.is_document()]
    if files:
        tool_context[FILE_SEARCH] = (
            f"# `{FILE_SEARCH}`:\n"
            "Search these uploaded documents and cite what you use:\n" + _file_list(files)
        )
    return Tool(
        name=FILE_SEARCH,
        description="Search uploaded documents",
        config={"files": [r.name for r in files], "file_citations": True},
    )


async def build_web_search(context: LoadContext, tool_context: Dict[str, str],
                           load_auth: AuthLoader) -> Tool:
    auth = await load_auth(
        (AuthField("SEARCH_API_KEY||SERPER_API_KEY"),
         AuthField("SEARCH_RERANKER_KEY", default="")),
        WEB_SEARCH,
    )
    # No date/time here so the system prompt stays cacheable.
    tool_context[WEB_SEARCH] = (
        f"# `{WEB_SEARCH}`:\n"
        "Execute immediately without preface. Summarize the answer first, "
        "then give details with Markdown structure. Cite every non-obvious fact."
    )
    return Tool(name=WEB_SEARCH, description="Search the web", config=dict(auth))


async def build_youtube_video(context: LoadContext, tool_context: Dict[str, str],
                              load_auth: AuthLoader) -> Tool:
    """Keyless transcript loader."""
    tool_context[YOUTUBE_VIDEO] = (
        f"# `{YOUTUBE_VIDEO}`:\n"
        "Fetches transcripts and metadata for YouTube videos. Always use it for "
        "youtube.com/watch, youtu.be and youtube.com/shorts links."
    )
    return Tool(name=YOUTUBE_VIDEO, description="Load YouTube transcripts")


DEFAULT_BESPOKE: Dict[str, BespokeConstructor] = {
    EXECUTE_CODE: build_execute_code,
    FILE_SEARCH: build_file_search,
    WEB_SEARCH: build_web_search,
    YOUTUBE_VIDEO: build_youtube_video,
}


def _simple(description: str) -> SimpleConstructor:
    def construct(auth: Dict[str, str], context: LoadContext) -> Tool:
        return Tool(name="", description=description, config=dict(auth))
    return construct


DEFAULT_REGISTRY: Tuple[ToolSpec, ...] = (
    ToolSpec(
        IMAGE_GEN,
        _simple("Generate or edit images"),
        (AuthField("IMAGE_GEN_OAI_API_KEY||OPENAI_API_KEY"),
         AuthField("IMAGE_GEN_OAI_BASEURL", default="")),
    ),
    ToolSpec(CALCULATOR, _simple("Evaluate arithmetic")),
    ToolSpec(ARTIFACTS, _simple("Render interactive artifacts")),
)

MULTI_FILE_INSTRUCTION = f"""\
## Multiple File Types Detected
The user has uploaded different types of files that require different tools:
- **Data/Code files** (Excel, CSV, SQL, JSON, etc.) → Use the "{EXECUTE_CODE}" tool to read and analyze
- **Documents** (Word, PDF, text files) → Use the "{FILE_SEARCH}" tool to search content

When the user asks about "all files" or "these files", use BOTH tools so no file is skipped.

"""


def parse_provider_tool_id(tool_id: str) -> Optional[Tuple[str, str]]:
    """``"tool::provider"`` → ``("tool", "provider")``; None otherwise."""
    if PROVIDER_DELIMITER not in tool_id:
        return None
    tool, _, provider = tool_id.partition(PROVIDER_DELIMITER)
    if not tool or not provider:
        return None
    return tool, provider


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


# ── Orchestrator ──────────────────────────────────────────────────────────────

class ToolOrchestrator:
    """Resolves requested tool ids into tools and context strings."""

    def __init__(
        self,
        credential_resolver: Optional[CredentialResolver] = None,
        provider_resolver: Optional[ProviderResolver] = None,
        bespoke: Optional[Mapping[str, BespokeConstructor]] = None,
        registry: Optional[Iterable[ToolSpec]] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            credential_resolver: ``(user_id, field) -> value | None``.
            provider_resolver: ``(provider, ProviderRequest) -> [Tool]``.
            bespoke: Context-aware constructors keyed by tool id.
            registry: Simple credential-gated constructors.
            env: Operator-wide credentials; defaults to ``os.environ``.
        """
        self.credential_resolver = credential_resolver
        self.provider_resolver = provider_resolver
        self.bespoke: Dict[str, BespokeConstructor] = dict(
            DEFAULT_BESPOKE if bespoke is None else bespoke
        )
        self.registry: Dict[str, ToolSpec] = {
            spec.tool_id: spec
            for spec in (DEFAULT_REGISTRY if registry is None else registry)
        }
        self.env = env

    def register(self, spec: ToolSpec) -> None:
        """Add or replace a simple tool constructor."""
        self.registry[spec.tool_id] = spec

    @property
    def auth_config(self) -> Dict[str, Tuple[AuthField, ...]]:
        """Declared credentials per registry tool, for ``validate_tools``."""
        return {tool_id: spec.auth_fields for tool_id, spec in self.registry.items()}

    async def load(
        self,
        tool_ids: Sequence[str],
        context: LoadContext,
        deadline: Optional[Deadline] = None,
    ) -> LoadResult:
        """Construct the tools for *tool_ids*.

        Args:
            tool_ids: Requested ids, built-in or ``tool::provider``.
            context: Request-scoped construction inputs.
            deadline: Caller time limit / cancel signal.

        Returns:
            LoadResult; tools that failed are absent, never raised.
        """
        deadline = deadline or Deadline.none()
        result = LoadResult()
        builtins: List[str] = []
        provider_queue: Dict[str, List[ProviderRequest]] = {}

        seen = set()
        for tool_id in tool_ids:
            if tool_id in seen:
                continue
            seen.add(tool_id)
            if tool_id in self.bespoke or tool_id in self.registry:
                builtins.append(tool_id)
                continue
            parsed = parse_provider_tool_id(tool_id)
            if parsed is None:
                _log.info("Unknown tool id %r ignored", tool_id)
                continue
            tool, provider = parsed
            if tool == PROVIDER_SERVER:
                continue
            if (context.configured_providers is not None
                    and provider not in context.configured_providers):
                _log.warning("Provider %r for tool %r is not configured; skipping", provider, tool)
                continue
            if tool == PROVIDER_ALL:
                provider_queue.setdefault(provider, []).append(ProviderRequest("all"))
            else:
                provider_queue.setdefault(provider, []).append(ProviderRequest("single", tool))

        await self._load_builtins(builtins, context, deadline, result)
        await self._load_providers(provider_queue, deadline, result)

        code_ctx = result.tool_context.get(EXECUTE_CODE)
        if code_ctx and result.tool_context.get(FILE_SEARCH):
            result.tool_context[EXECUTE_CODE] = MULTI_FILE_INSTRUCTION + code_ctx

        _log.info(
            "Loaded %d tool(s) for user %s: %s",
            len(result.loaded_tools), context.user_id, result.tool_names,
        )
        return result

    # ── Built-ins ─────────────────────────────────────────────────────────

    async def _load_auth(self, context: LoadContext, auth_fields: Sequence[AuthField],
                         tool_key: str) -> Dict[str, str]:
        return await load_auth_values(
            context.user_id, auth_fields, self.credential_resolver,
            tool_key=tool_key, env=self.env,
        )

    async def _build(self, tool_id: str, context: LoadContext,
                     tool_context: Dict[str, str]) -> List[Tool]:
        async def load_auth(fields, key):
            return await self._load_auth(context, fields, key)

        try:
            if tool_id in self.bespoke:
                built = await self.bespoke[tool_id](context, tool_context, load_auth)
            else:
                spec = self.registry[tool_id]
                auth = await load_auth(spec.auth_fields, tool_id)
                built = await _maybe_await(spec.constructor(auth, context))
        except ToolUnavailable as e:
            _log.warning("Tool %s unavailable: %s", tool_id, e)
            return []
        except Exception:
            _log.error("Error constructing tool %s", tool_id, exc_info=True)
            return []

        if built is None:
            return []
        tools = built if isinstance(built, list) else [built]
        for tool in tools:
            if not tool.name:
                tool.name = tool_id
        return tools

    async def _load_builtins(self, tool_ids: List[str], context: LoadContext,
                             deadline: Deadline, result: LoadResult) -> None:
        if not tool_ids:
            return
        if deadline.expired:
            result.cancelled = True
            result.failed_tools.extend(tool_ids)
            return

        tasks = {
            asyncio.ensure_future(self._build(tool_id, context, result.tool_context)): tool_id
            for tool_id in tool_ids
        }
        done, pending = await deadline.wait_all(tasks)
        if pending:
            result.cancelled = True
            _log.warning(
                "Deadline reached; abandoned construction of %s",
                sorted(tasks[t] for t in pending),
            )

        for task, tool_id in tasks.items():
            if task in done and not task.cancelled():
                tools = task.result()
                if tools:
                    result.loaded_tools.extend(tools)
                    continue
            result.failed_tools.append(tool_id)

    # ── Remote providers ──────────────────────────────────────────────────

    async def _load_providers(self, queue: Dict[str, List[ProviderRequest]],
                              deadline: Deadline, result: LoadResult) -> None:
        if not queue:
            return
        if self.provider_resolver is None:
            _log.warning("No provider resolver configured; skipping %s", sorted(queue))
            result.failed_providers.extend(queue)
            return

        failed = set()
        providers = list(queue)
        for index, provider in enumerate(providers):
            requests = queue[provider]
            # An "all" request is one whole-provider bulk fetch covering the singles.
            if any(r.kind == "all" for r in requests):
                requests = [ProviderRequest("all")]
            for request in requests:
                if provider in failed:
                    break
                if deadline.expired:
                    _log.warning("Deadline reached; skipping remaining provider calls")
                    self._abandon(providers[index:], failed, result)
                    return
                try:
                    tools = await self._call_provider(provider, request, deadline)
                except (OperationCancelled, asyncio.TimeoutError):
                    _log.warning("Deadline reached while loading from provider %s", provider)
                    self._abandon(providers[index:], failed, result)
                    return
                except ProviderUnreachable as e:
                    _log.warning("Skipping provider for the rest of this call: %s", e)
                    failed.add(provider)
                    result.failed_providers.append(provider)
                    continue
                for tool in tools:
                    if tool.provider is None:
                        tool.provider = provider
                result.loaded_tools.extend(tools)

    @staticmethod
    def _abandon(providers: List[str], failed: set, result: LoadResult) -> None:
        """Mark the load cancelled and report every provider that did not finish."""
        result.cancelled = True
        result.failed_providers.extend(p for p in providers if p not in failed)

    async def _call_provider(self, provider: str, request: ProviderRequest,
                             deadline: Deadline) -> List[Tool]:
        try:
            tools = await deadline.run(_maybe_await(self.provider_resolver(provider, request)))
        except (OperationCancelled, asyncio.TimeoutError, asyncio.CancelledError):
            raise
        except Exception as e:
            raise ProviderUnreachable(provider, f"{request.kind} request failed: {e}") from e
        if not tools:
            label = request.tool_key or "all tools"
            raise ProviderUnreachable(provider, f"returned nothing for {label}")
        return list(tools)
