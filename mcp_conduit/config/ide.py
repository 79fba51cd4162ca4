"""Provider definitions supplied at runtime by an IDE session.

An IDE client (ACP ``newSession`` / ``loadSession``) may pass its own MCP
server list.  Those definitions are converted into :class:`ProviderConfig`
records and held in a :class:`DynamicProviderRegistry`, which the bridge
service merges over the static configuration.

ACP server shapes::

    {"name": "fs", "command": "npx", "args": [...], "env": [{"name": "K", "value": "V"}]}
    {"type": "sse", "name": "remote", "url": "https://host/sse"}
    {"type": "http", "name": "remote", "url": "https://host/mcp"}
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

from mcp_conduit.config.schema import TRANSPORT_STDIO, TRANSPORT_STREAM, ProviderConfig

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")


def sanitize_provider_name(name: str) -> str:
    """Replace characters outside ``[A-Za-z0-9_-]`` and collapse underscores."""
    return _UNDERSCORE_RUN_RE.sub("_", _UNSAFE_NAME_RE.sub("_", name))


def _flatten_env(entries: Any) -> Optional[Dict[str, str]]:
    if not isinstance(entries, list):
        return None
    env: Dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        key = entry.get("name")
        value = entry.get("value")
        if key and value is not None:
            env[str(key)] = str(value)
    return env or None


def convert_ide_server(server: Mapping[str, Any]) -> Optional[ProviderConfig]:
    """Convert one ACP MCP server definition, or return ``None`` if unsupported."""
    command = server.get("command")
    if command and isinstance(command, str):
        name = server.get("name") or f"ide-stdio-{int(time.time() * 1000)}"
        args = server.get("args")
        return ProviderConfig(
            name=sanitize_provider_name(str(name)),
            transport=TRANSPORT_STDIO,
            command=command,
            args=[str(a) for a in args] if isinstance(args, list) else [],
            env=_flatten_env(server.get("env")),
        )

    kind = server.get("type")
    if kind in ("sse", "http"):
        url = server.get("url")
        if not url:
            return None
        name = server.get("name") or f"ide-{kind}-{int(time.time() * 1000)}"
        # Both flavours are reached through the streamed-event transport.
        return ProviderConfig(
            name=sanitize_provider_name(str(name)),
            transport=TRANSPORT_STREAM,
            url=str(url),
        )

    return None


class DynamicProviderRegistry:
    """Holds provider configs supplied by the IDE for the current session."""

    def __init__(self) -> None:
        self._providers: List[ProviderConfig] = []

    def apply(self, servers: Optional[Iterable[Mapping[str, Any]]]) -> int:
        """Replace the registered providers with *servers*.

        An empty or missing list leaves the current registrations untouched.
        Returns the number of providers now registered.
        """
        servers = list(servers or [])
        if not servers:
            return len(self._providers)

        # A reconnecting session re-sends its full list.
        self._providers = []
        for server in servers:
            config = convert_ide_server(server) if isinstance(server, Mapping) else None
            if config is None:
                logger.info("Skipped unsupported IDE MCP server: %r", server)
                continue
            self._providers.append(config)
            logger.info(
                "Registered IDE MCP server: %s (%s)",
                config.name,
                config.transport,
            )

        logger.info("Total IDE MCP servers registered: %d", len(self._providers))
        return len(self._providers)

    def configs(self) -> List[ProviderConfig]:
        """Return a copy of the registered provider configs."""
        return list(self._providers)

    def clear(self) -> None:
        """Forget every IDE-supplied provider."""
        self._providers = []

    def __len__(self) -> int:
        return len(self._providers)
