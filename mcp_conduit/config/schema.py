"""Pydantic configuration models for MCP Conduit.

``ProviderConfig`` is the host-supplied provider record.  It accepts both
snake_case keys (YAML files) and the camelCase keys of the JSON-shaped
host record (``timeoutMs``, ``autoReconnect``, ``blockedTools``, ...).
"""

from __future__ import annotations

import re
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from mcp_conduit.constants import (
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_HOST,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_PORT,
)

TRANSPORT_STDIO = "stdio"
TRANSPORT_STREAM = "stream"
TRANSPORT_KINDS = (TRANSPORT_STDIO, TRANSPORT_STREAM)

# Accepted spellings for the streamed-event transport.
_TRANSPORT_ALIASES = {"sse": TRANSPORT_STREAM}


# ── Provider record ──────────────────────────────────────────────────────


class ProviderConfig(BaseModel):
    """Configuration for a single capability provider.

    Transport-specific fields are deliberately optional here: a record that
    lacks ``command`` (stdio) or ``url`` (stream), or names an unknown
    transport, still parses.  The problem surfaces as a configuration error
    from that provider's own connect attempt, so one bad record never stops
    its siblings from connecting.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    name: str = Field(..., min_length=1, description="Unique provider name (tool namespace).")
    transport: str = Field(..., description="Transport kind: 'stdio' or 'stream'.")
    command: Optional[str] = Field(default=None, description="Executable to run (stdio).")
    args: List[str] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = Field(
        default=None,
        description="Environment overrides merged over the current environment (stdio).",
    )
    url: Optional[str] = Field(default=None, description="SSE endpoint URL (stream).")
    headers: Optional[Dict[str, str]] = Field(
        default=None,
        description="Extra HTTP headers (e.g. Authorization). Supports ${ENV_VAR}.",
    )
    timeout_ms: int = Field(
        default=DEFAULT_CONNECT_TIMEOUT_MS,
        gt=0,
        description="Hard deadline for the connect handshake in milliseconds.",
    )
    auto_reconnect: bool = True
    max_reconnect_attempts: int = Field(default=DEFAULT_MAX_RECONNECT_ATTEMPTS, ge=0)
    blocked_tools: Optional[List[str]] = Field(
        default=None,
        description="Operations listed but never forwarded. None falls back to built-in defaults.",
    )
    call_timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Optional deadline for each tool call in milliseconds.",
    )
    ping_interval_ms: int = Field(
        default=DEFAULT_PING_INTERVAL_MS,
        ge=0,
        description="Liveness ping interval in milliseconds (0 disables pings).",
    )

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Provider name must be a non-empty string")
        return v

    @field_validator("transport")
    @classmethod
    def _normalise_transport(cls, v: str) -> str:
        v = v.strip().lower()
        return _TRANSPORT_ALIASES.get(v, v)

    @field_validator("command")
    @classmethod
    def _strip_command(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip()
        return v or None

    @field_validator("url")
    @classmethod
    def _strip_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip()
        return v or None


def validate_provider_config(cfg: ProviderConfig) -> List[str]:
    """Return human-readable problems with *cfg* (empty when it looks usable)."""
    problems: List[str] = []
    if cfg.transport not in TRANSPORT_KINDS:
        problems.append(f"unsupported transport '{cfg.transport}'")
    elif cfg.transport == TRANSPORT_STDIO and not cfg.command:
        problems.append("stdio transport requires 'command'")
    elif cfg.transport == TRANSPORT_STREAM:
        if not cfg.url:
            problems.append("stream transport requires 'url'")
        elif not cfg.url.startswith(("http://", "https://")):
            problems.append(f"URL '{cfg.url}' must start with http:// or https://")
    return problems


# ── Safety gate settings ─────────────────────────────────────────────────


class SafetyRuleConfig(BaseModel):
    """An extra block-list rule for the command safety gate."""

    pattern: str = Field(..., min_length=1, description="Regex matched against lower-cased text.")
    category: str = Field(default="custom", description="Hazard category label.")
    reason: str = Field(
        default="Command BLOCKED: \"{command}\" matches a restricted pattern.",
        description="Block reason; '{command}' is replaced by the (truncated) command.",
    )
    alternative: str = Field(default="", description="Suggested safe alternative.")

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression '{v}': {exc}") from exc
        return v


class SafetyConfig(BaseModel):
    """Command safety gate configuration.

    ``enabled: auto`` activates the built-in browser protection policy only
    when a provider named ``chrome-devtools`` is configured.
    """

    enabled: Union[bool, Literal["auto"]] = "auto"
    guarded_tools: List[str] = Field(
        default_factory=lambda: ["exec", "process"],
        description="Host tool names whose command argument is inspected.",
    )
    allow: List[str] = Field(
        default_factory=list,
        description="Extra allow-list regexes, checked after the built-in ones.",
    )
    block: List[SafetyRuleConfig] = Field(default_factory=list)

    @field_validator("allow")
    @classmethod
    def _allow_compiles(cls, v: List[str]) -> List[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid regular expression '{pattern}': {exc}") from exc
        return v


# ── Server settings ─────────────────────────────────────────────────────


class ServerSettings(BaseModel):
    """Management API settings."""

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    token: Optional[str] = Field(
        default=None,
        description="Bearer token for /manage/ endpoints. Also CONDUIT_MGMT_TOKEN env var.",
    )


# ── Top-level config ────────────────────────────────────────────────────


class ConduitConfig(BaseModel):
    """Top-level validated configuration for MCP Conduit.

    Supports version ``"1"`` format::

        {
            "version": "1",
            "providers": [
                {"name": "my-provider", "transport": "stdio", "command": "..."}
            ],
            "safety": { ... },
            "server": { ... }
        }
    """

    version: str = "1"
    providers: List[ProviderConfig] = Field(default_factory=list)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @field_validator("providers")
    @classmethod
    def _unique_names(cls, v: List[ProviderConfig]) -> List[ProviderConfig]:
        seen = set()
        for provider in v:
            if provider.name in seen:
                raise ValueError(f"Duplicate provider name '{provider.name}'")
            seen.add(provider.name)
        return v
