"""
Credential resolution for tool construction.

A tool declares the credentials it needs as :class:`AuthField` entries.
Each entry may list alternates separated by ``"||"``; the first one that
resolves wins.  Process environment variables (operator-wide keys) are
consulted before the per-user resolver.  Entries with a default are
optional: a tool missing them is still available.
"""

import inspect
import logging
import os
from dataclasses import dataclass
from typing import (
    Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union,
)

from .errors import ToolUnavailable

_log = logging.getLogger(__name__)

ALTERNATE_SEPARATOR = "||"

# (user_id, field_name) -> value or None; may be sync or async.
CredentialResolver = Callable[[str, str], Union[Optional[str], Awaitable[Optional[str]]]]


@dataclass(frozen=True)
class AuthField:
    """One credential requirement of a tool.

    Attributes:
        field: Field name, or alternates joined with ``"||"``.
        default: Value used when nothing resolves. A field with a default
            is optional.
    """
    field: str
    default: Optional[str] = None

    @property
    def names(self) -> List[str]:
        return split_alternates(self.field)

    @property
    def optional(self) -> bool:
        return self.default is not None


def split_alternates(field: str) -> List[str]:
    """``"A||B"`` → ``["A", "B"]``."""
    return [name.strip() for name in field.split(ALTERNATE_SEPARATOR) if name.strip()]


def optional_fields(auth_fields: Iterable[AuthField]) -> Set[str]:
    """Every field name (alternates included) that has a default."""
    names: Set[str] = set()
    for auth in auth_fields:
        if auth.optional:
            names.update(auth.names)
    return names


async def _lookup(user_id: str, name: str, resolver: Optional[CredentialResolver],
                  env: Mapping[str, str]) -> Optional[str]:
    value = env.get(name)
    if value:
        return value
    if resolver is None:
        return None
    value = resolver(user_id, name)
    if inspect.isawaitable(value):
        value = await value
    return value or None


async def resolve_field(
    user_id: str,
    auth: AuthField,
    resolver: Optional[CredentialResolver] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[Tuple[str, str]]:
    """Resolve one auth field, trying alternates in order.

    Returns:
        ``(name, value)`` of the first alternate that resolved, or None.

    Raises:
        Exception: The resolver's own error, when it failed on the last
            alternate and nothing earlier resolved.
    """
    env = os.environ if env is None else env
    names = auth.names
    for i, name in enumerate(names):
        try:
            value = await _lookup(user_id, name, resolver, env)
        except Exception:
            if i == len(names) - 1:
                raise
            _log.debug("Credential lookup for %s failed, trying next alternate", name)
            continue
        if value:
            return name, value
    return None


async def load_auth_values(
    user_id: str,
    auth_fields: Sequence[AuthField],
    resolver: Optional[CredentialResolver] = None,
    tool_key: str = "",
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Resolve every credential a tool needs.

    Args:
        user_id: User on whose behalf the tool is built.
        auth_fields: The tool's declared credentials.
        resolver: Per-user credential lookup.
        tool_key: Tool id, used in errors and logs.
        env: Operator-wide values; defaults to ``os.environ``.

    Returns:
        ``{field_name: value}`` keyed by the alternate that resolved.
        Optional fields that did not resolve map their first name to the
        declared default.

    Raises:
        ToolUnavailable: A required field did not resolve.
    """
    values: Dict[str, str] = {}
    for auth in auth_fields:
        try:
            resolved = await resolve_field(user_id, auth, resolver, env)
        except Exception as e:
            if auth.optional:
                resolved = None
            else:
                raise ToolUnavailable(tool_key, f"credential lookup for {auth.field} failed: {e}") from e
        if resolved is not None:
            name, value = resolved
            values[name] = value
        elif auth.optional:
            values[auth.names[0]] = auth.default
        else:
            raise ToolUnavailable(tool_key, f"missing credential {auth.field}")
    return values


async def validate_tools(
    user_id: str,
    tool_ids: Iterable[str],
    auth_config: Mapping[str, Sequence[AuthField]],
    resolver: Optional[CredentialResolver] = None,
    env: Optional[Mapping[str, str]] = None,
) -> List[str]:
    """Subset of *tool_ids* whose required credentials resolve.

    Tools without declared credentials are always valid.  Order of
    *tool_ids* is preserved.
    """
    valid: List[str] = []
    for tool_id in tool_ids:
        required = [a for a in auth_config.get(tool_id, ()) if not a.optional]
        ok = True
        for auth in required:
            try:
                resolved = await resolve_field(user_id, auth, resolver, env)
            except Exception as e:
                _log.warning("Credential check for %s failed: %s", tool_id, e)
                resolved = None
            if resolved is None:
                ok = False
                break
        if ok:
            valid.append(tool_id)
        else:
            _log.info("Tool %s dropped: credentials not configured for user", tool_id)
    return valid
