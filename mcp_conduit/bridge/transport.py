"""Transport construction for provider connections.

:func:`build_transport_target` validates a provider record and resolves
everything the transport needs (it raises :class:`ConfigurationError`
before any I/O happens).  :func:`open_session` then enters the MCP SDK
transport and client session contexts on a caller-owned exit stack.
"""

import asyncio
import logging
import os
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import anyio
import httpx
from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED, Implementation

from mcp_conduit.config.schema import TRANSPORT_STDIO, TRANSPORT_STREAM, ProviderConfig
from mcp_conduit.constants import CLIENT_NAME, SERVER_VERSION
from mcp_conduit.errors import ConfigurationError, ProviderConnectError

logger = logging.getLogger(__name__)

NET_EXCS: tuple = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.NetworkError,
    ConnectionRefusedError,
    BrokenPipeError,
    ConnectionError,
)

# Errors meaning the provider link itself is gone, not just one failed call.
TRANSPORT_EXCS: tuple = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    httpx.TransportError,
    ConnectionError,
    EOFError,
)


@dataclass(frozen=True)
class TransportTarget:
    """Resolved, validated transport parameters for one provider."""

    provider_name: str
    kind: str
    command: Optional[str] = None
    args: Tuple[str, ...] = ()
    env: Optional[Dict[str, str]] = field(default=None, repr=False)
    url: Optional[str] = None
    headers: Optional[Dict[str, str]] = field(default=None, repr=False)


def resolve_command(command: str) -> str:
    """Map a bare ``python`` command onto the running interpreter."""
    if command.lower() == "python":
        return sys.executable or command
    return command


def build_transport_target(config: ProviderConfig) -> TransportTarget:
    """Validate *config* and resolve its transport parameters.

    Raises :class:`ConfigurationError` for a missing command (stdio), a
    missing URL (stream), or an unknown transport kind.
    """
    name = config.name
    if config.transport == TRANSPORT_STDIO:
        if not config.command:
            raise ConfigurationError(f'Server "{name}": stdio transport requires "command"')
        env: Optional[Dict[str, str]] = None
        if config.env:
            env = os.environ.copy()
            env.update(config.env)
        return TransportTarget(
            provider_name=name,
            kind=TRANSPORT_STDIO,
            command=resolve_command(config.command),
            args=tuple(config.args),
            env=env,
        )
    if config.transport == TRANSPORT_STREAM:
        if not config.url:
            raise ConfigurationError(f'Server "{name}": stream transport requires "url"')
        return TransportTarget(
            provider_name=name,
            kind=TRANSPORT_STREAM,
            url=config.url,
            headers=dict(config.headers) if config.headers else None,
        )
    raise ConfigurationError(f'Server "{name}": unsupported transport "{config.transport}"')


async def open_session(stack: AsyncExitStack, target: TransportTarget) -> ClientSession:
    """Open the transport for *target* and return an (uninitialised) client session.

    All contexts are entered on *stack*; closing the stack tears the
    transport down, terminating a stdio provider's process.
    """
    client_info = Implementation(
        name=f"{CLIENT_NAME}/{target.provider_name}", version=SERVER_VERSION
    )

    if target.kind == TRANSPORT_STDIO:
        logger.debug(
            "[%s] Stdio provider, starting '%s' args: %s",
            target.provider_name,
            target.command,
            list(target.args),
        )
        params = StdioServerParameters(
            command=target.command or "", args=list(target.args), env=target.env
        )
        # Provider stderr would interleave with CLI output.
        devnull = stack.enter_context(open(os.devnull, "w"))  # noqa: SIM115
        streams = await stack.enter_async_context(stdio_client(params, errlog=devnull))
    elif target.kind == TRANSPORT_STREAM:
        logger.debug("[%s] Stream provider, url=%s", target.provider_name, target.url)
        streams = await stack.enter_async_context(
            sse_client(url=target.url or "", headers=target.headers)
        )
    else:
        raise ConfigurationError(
            f'Server "{target.provider_name}": unsupported transport "{target.kind}"'
        )
    logger.debug("[%s] (%s) transport streams established.", target.provider_name, target.kind)

    read_stream, write_stream = streams[0], streams[1]
    return await stack.enter_async_context(
        ClientSession(read_stream, write_stream, client_info=client_info)
    )


def unwrap_error(exc: BaseException) -> BaseException:
    """Return the single leaf of nested exception groups raised by task groups."""
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    return exc


def is_transport_error(exc: BaseException) -> bool:
    """Whether *exc* means the provider link is lost (not a tool-level failure)."""
    exc = unwrap_error(exc)
    if isinstance(exc, TRANSPORT_EXCS):
        return True
    if isinstance(exc, McpError):
        return exc.error.code == CONNECTION_CLOSED
    return False


def log_connect_failure(
    provider_name: str,
    transport: Optional[str],
    e: BaseException,
    context: str = "connect",
) -> None:
    """Log a provider connection failure by category."""
    transport_str = transport or "unknown transport"
    if isinstance(e, ProviderConnectError) and e.orig_exc is not None:
        e = e.orig_exc
    e = unwrap_error(e)
    if isinstance(e, asyncio.TimeoutError):
        logger.error("[%s] (%s) %s timed out.", provider_name, transport_str, context)
    elif isinstance(e, ConfigurationError):
        logger.error(
            "[%s] (%s) Configuration error during %s: %s",
            provider_name,
            transport_str,
            context,
            e,
        )
    elif isinstance(e, FileNotFoundError):
        logger.error(
            "[%s] (%s) Command or file not found '%s' during %s.",
            provider_name,
            transport_str,
            e.filename,
            context,
        )
    elif isinstance(e, NET_EXCS):
        logger.error(
            "[%s] (%s) Network/connection error during %s: %s: %s",
            provider_name,
            transport_str,
            context,
            type(e).__name__,
            e,
        )
    elif isinstance(e, McpError):
        logger.error(
            "[%s] (%s) Provider rejected %s: %s",
            provider_name,
            transport_str,
            context,
            e,
        )
    else:
        logger.error(
            "[%s] (%s) Unexpected error during %s.",
            provider_name,
            transport_str,
            context,
            exc_info=(type(e), e, e.__traceback__),
        )


def describe_error(exc: BaseException) -> str:
    """Short human-readable text for an error (never empty)."""
    exc = unwrap_error(exc)
    text = str(exc)
    return text if text else type(exc).__name__

