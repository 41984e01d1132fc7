"""
Error taxonomy for Intent Router.

Only :class:`ConfigurationError` is meant to reach the caller as a hard
failure.  The others describe recoverable outcomes that the router and
the tool orchestrator handle locally (and log).
"""

from typing import Optional


class IntentRouterError(Exception):
    """Base class for all Intent Router errors."""


class ConfigurationError(IntentRouterError, ValueError):
    """A tier scheme, preset or policy is malformed or incomplete."""


class ClassificationUnavailable(IntentRouterError):
    """The fallback classifier failed, timed out or returned garbage."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ToolUnavailable(IntentRouterError):
    """A single tool could not be constructed (credentials, constructor error)."""

    def __init__(self, tool_id: str, message: str):
        super().__init__(f"{tool_id}: {message}")
        self.tool_id = tool_id


class ProviderUnreachable(IntentRouterError):
    """A remote tool provider could not be reached or returned nothing."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class OperationCancelled(IntentRouterError):
    """The caller's deadline expired or its cancel signal was set."""
