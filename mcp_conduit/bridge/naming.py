"""Namespaced tool names.

Every provider operation is exposed to the host as
``mcp__<provider>__<operation>``.  Each segment is sanitised on its own so
the separator stays unambiguous.
"""

import re
from typing import Optional, Tuple

from mcp_conduit.constants import TOOL_PREFIX, TOOL_SEPARATOR

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORE_RUN = re.compile(r"_+")


def sanitize_segment(segment: str) -> str:
    """Replace characters outside ``[A-Za-z0-9_]`` and collapse ``_`` runs."""
    return _UNDERSCORE_RUN.sub("_", _UNSAFE_CHARS.sub("_", segment))


def build_tool_name(provider_name: str, operation_name: str) -> str:
    """Return the namespaced tool name for *operation_name* on *provider_name*.

    Total and deterministic.  Two pairs only collide when sanitisation maps
    both to the same strings (e.g. ``a.b`` and ``a-b``).
    """
    return (
        f"{TOOL_PREFIX}{sanitize_segment(provider_name)}"
        f"{TOOL_SEPARATOR}{sanitize_segment(operation_name)}"
    )


def parse_tool_name(tool_name: str) -> Optional[Tuple[str, str]]:
    """Split a namespaced name into its (sanitised) provider and operation parts.

    Returns ``None`` for names that were not built by :func:`build_tool_name`.
    Sanitised segments never contain ``__``, so the first separator after the
    prefix is the boundary.
    """
    if not tool_name.startswith(TOOL_PREFIX):
        return None
    rest = tool_name[len(TOOL_PREFIX):]
    provider, sep, operation = rest.partition(TOOL_SEPARATOR)
    if not sep or not provider or not operation:
        return None
    return provider, operation
