"""Provider connection manager.

:class:`BridgeManager` owns the name → :class:`ProviderConnection` map.  It
connects providers concurrently and independently, discovers and namespaces
their operations, supervises reconnects with capped exponential backoff,
and tears everything down on :meth:`BridgeManager.dispose`.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from mcp_conduit.bridge.blocking import blocked_message, resolve_blocked_tools
from mcp_conduit.bridge.connection import ProviderConnection, SessionOpener
from mcp_conduit.bridge.results import (
    adapt_result,
    blocked_result,
    cancelled_result,
    disconnected_result,
    error_result,
)
from mcp_conduit.bridge.safety import SafetyPolicy
from mcp_conduit.bridge.tool import BridgedTool, ToolResult, bridge_tool
from mcp_conduit.bridge.transport import (
    describe_error,
    is_transport_error,
    log_connect_failure,
    open_session,
)
from mcp_conduit.config.schema import ProviderConfig
from mcp_conduit.constants import RECONNECT_BASE_DELAY_MS, RECONNECT_MAX_DELAY_MS
from mcp_conduit.errors import BridgeDisposedError, ConfigurationError, ToolCallCancelled
from mcp_conduit.runtime.models import ConnectionPhase, ProviderStatus

logger = logging.getLogger(__name__)


def reconnect_delay_ms(attempt: int) -> int:
    """Backoff before reconnect *attempt* (1-indexed): ``min(1000 * 2**n, 30000)``."""
    return min(RECONNECT_BASE_DELAY_MS * (2**attempt), RECONNECT_MAX_DELAY_MS)


def reconnect_delay_seconds(attempt: int) -> float:
    return reconnect_delay_ms(attempt) / 1000


class BridgeManager:
    """Manages connections, tools and reconnects for all configured providers."""

    def __init__(
        self,
        *,
        safety_policy: Optional[SafetyPolicy] = None,
        session_opener: SessionOpener = open_session,
        reconnect_delay: Callable[[int], float] = reconnect_delay_seconds,
    ) -> None:
        self._connections: Dict[str, ProviderConnection] = {}
        self._lock = asyncio.Lock()
        self._reconnect_timers: Dict[str, asyncio.Task] = {}
        self._safety_policy = safety_policy
        self._session_opener = session_opener
        self._reconnect_delay = reconnect_delay
        self._disposed = False
        logger.debug("BridgeManager initialized.")

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def safety_policy(self) -> Optional[SafetyPolicy]:
        return self._safety_policy

    # ── Connecting ───────────────────────────────────────────────────────

    async def connect(self, configs: Iterable[ProviderConfig]) -> None:
        """Connect every provider concurrently; failures stay per provider."""
        if self._disposed:
            raise BridgeDisposedError()
        configs = list(configs)
        logger.info("Connecting to %d MCP provider(s)...", len(configs))
        if not configs:
            return

        results = await asyncio.gather(
            *(self.connect_server(cfg) for cfg in configs), return_exceptions=True
        )
        for cfg, result in zip(configs, results):
            if isinstance(result, BaseException) and not isinstance(
                result, asyncio.CancelledError
            ):
                log_connect_failure(cfg.name, cfg.transport, result, context="connect")

        connected = sum(1 for conn in self._connections.values() if conn.connected)
        logger.info(
            "Provider connection attempts completed. Connected: %d/%d",
            connected,
            len(configs),
        )

    async def connect_server(self, config: ProviderConfig) -> bool:
        """Connect one provider.  Returns ``False`` if the name is already present.

        A failed attempt leaves the entry in the map as disconnected and
        re-raises the failure.  Initial failures are not retried.
        """
        async with self._lock:
            if self._disposed:
                raise BridgeDisposedError()
            if config.name in self._connections:
                logger.warning("[%s] Server already connected, skipping.", config.name)
                return False
            conn = self._new_connection(config)
            self._connections[config.name] = conn

        logger.info("[%s] Connecting to MCP server (%s)...", config.name, config.transport)
        await self._establish(conn)
        return True

    def _new_connection(self, config: ProviderConfig, attempts: int = 0) -> ProviderConnection:
        return ProviderConnection(
            config,
            opener=self._session_opener,
            on_lost=self._handle_lost,
            reconnect_attempts=attempts,
        )

    async def _establish(self, conn: ProviderConnection) -> None:
        """Handshake, discover, and publish tools for *conn*."""
        await conn.open()
        try:
            operations = await conn.list_operations()
        except BaseException as exc:
            await conn.reset(f"Discovery failed: {describe_error(exc)}")
            raise
        tools = self._bridge_operations(conn.config, operations)
        conn.publish(tools)
        conn.reconnect_attempts = 0
        logger.info("[%s] Connected, discovered %d tool(s).", conn.name, len(tools))

    def _bridge_operations(
        self, config: ProviderConfig, operations: List[Any]
    ) -> List[BridgedTool]:
        blocked = resolve_blocked_tools(config)
        tools: List[BridgedTool] = []
        seen = set()
        for op in operations:
            name = getattr(op, "name", None)
            if not isinstance(name, str) or not name:
                logger.debug("[%s] Skipping unnamed operation: %r", config.name, op)
                continue
            tool = bridge_tool(config.name, op, name in blocked, self._execute_tool)
            if tool.name in seen:
                logger.warning(
                    "[%s] Operation '%s' maps to duplicate tool name '%s', keeping first.",
                    config.name,
                    name,
                    tool.name,
                )
                continue
            seen.add(tool.name)
            tools.append(tool)
        if blocked:
            logger.info("[%s] Blocked operations: %s", config.name, ", ".join(sorted(blocked)))
        return tools

    # ── Reconnect supervision ────────────────────────────────────────────

    def _handle_lost(self, conn: ProviderConnection, exc: BaseException) -> None:
        """Apply the reconnect policy after *conn* lost its provider."""
        name = conn.name
        if self._disposed or self._connections.get(name) is not conn:
            return
        cfg = conn.config
        if isinstance(exc, ConfigurationError):
            logger.error("[%s] Not reconnecting: %s", name, exc)
            return
        if cfg.auto_reconnect and conn.reconnect_attempts < cfg.max_reconnect_attempts:
            conn.reconnect_attempts += 1
            delay = self._reconnect_delay(conn.reconnect_attempts)
            conn.transition(
                ConnectionPhase.RECONNECTING,
                f"Attempt {conn.reconnect_attempts}/{cfg.max_reconnect_attempts}",
            )
            logger.info(
                "[%s] Reconnecting in %dms (attempt %d/%d)",
                name,
                int(delay * 1000),
                conn.reconnect_attempts,
                cfg.max_reconnect_attempts,
            )
            self._schedule_reconnect(name, delay)
        else:
            conn.transition(ConnectionPhase.DISCONNECTED, describe_error(exc))
            if cfg.auto_reconnect:
                logger.error("[%s] Max reconnection attempts reached.", name)
            else:
                logger.warning("[%s] Disconnected (auto-reconnect disabled).", name)

    def _schedule_reconnect(self, name: str, delay: float) -> None:
        previous = self._reconnect_timers.pop(name, None)
        if (
            previous is not None
            and previous is not asyncio.current_task()
            and not previous.done()
        ):
            previous.cancel()
        self._reconnect_timers[name] = asyncio.create_task(
            self._reconnect_after(name, delay), name=f"reconnect_{name}"
        )

    async def _reconnect_after(self, name: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self.reconnect_server(name, reset_attempts=False)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Reconnection failed: %s", name, describe_error(exc))
        finally:
            if self._reconnect_timers.get(name) is asyncio.current_task():
                del self._reconnect_timers[name]

    async def reconnect_server(self, name: str, *, reset_attempts: bool = True) -> bool:
        """Replace *name*'s connection with a fresh attempt using its config.

        A manual call (``reset_attempts=True``) restores the full reconnect
        budget.  Returns ``True`` when the provider is connected afterwards.
        """
        timer = self._reconnect_timers.get(name)
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()
            self._reconnect_timers.pop(name, None)

        async with self._lock:
            if self._disposed:
                return False
            stale = self._connections.get(name)
            if stale is None:
                logger.warning("[%s] Cannot reconnect unknown server.", name)
                return False
            attempts = 0 if reset_attempts else stale.reconnect_attempts
            fresh = self._new_connection(stale.config, attempts)
            self._connections[name] = fresh

        try:
            await stale.close()
        except Exception as exc:
            logger.debug("[%s] Ignoring error while closing stale client: %s", name, exc)

        if not await self._still_current(fresh):
            return False

        logger.info("[%s] Reconnecting to MCP server (%s)...", name, fresh.transport)
        try:
            await self._establish(fresh)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_connect_failure(name, fresh.transport, exc, context="reconnect")
            self._handle_lost(fresh, exc)
            return False
        return await self._still_current(fresh)

    async def _still_current(self, conn: ProviderConnection) -> bool:
        """Close *conn* unless it is still the live entry of a usable manager."""
        async with self._lock:
            current = not self._disposed and self._connections.get(conn.name) is conn
        if not current:
            logger.info("[%s] Dropping superseded reconnect attempt.", conn.name)
            await conn.close()
        return current

    async def disconnect_server(self, name: str) -> bool:
        """Close and forget *name*.  Returns ``False`` if it was not configured."""
        timer = self._reconnect_timers.pop(name, None)
        if timer is not None and not timer.done():
            timer.cancel()
        async with self._lock:
            conn = self._connections.pop(name, None)
        if conn is None:
            return False
        try:
            await conn.close()
        except Exception as exc:
            logger.error("[%s] Error closing: %s", name, exc)
        return True

    # ── Queries ──────────────────────────────────────────────────────────

    def get_all_tools(self) -> List[BridgedTool]:
        tools: List[BridgedTool] = []
        for conn in list(self._connections.values()):
            if conn.connected:
                tools.extend(conn.tools)
        return tools

    def get_server_tools(self, name: str) -> List[BridgedTool]:
        conn = self._connections.get(name)
        if conn is None or not conn.connected:
            return []
        return list(conn.tools)

    def get_status(self) -> List[ProviderStatus]:
        return [conn.status() for conn in list(self._connections.values())]

    def get_connection(self, name: str) -> Optional[ProviderConnection]:
        return self._connections.get(name)

    def server_names(self) -> List[str]:
        return list(self._connections)

    def resolve_tool(self, tool_name: str) -> Optional[BridgedTool]:
        """Find a live tool by its namespaced name."""
        for tool in self.get_all_tools():
            if tool.name == tool_name:
                return tool
        return None

    # ── Calls ────────────────────────────────────────────────────────────

    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        call_id: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ToolResult:
        """Invoke a tool by namespaced name."""
        tool = self.resolve_tool(tool_name)
        if tool is None:
            return error_result(tool_name, f'Unknown or unavailable tool "{tool_name}"')
        return await tool.execute(call_id, arguments or {}, cancel_event)

    async def _execute_tool(
        self,
        tool: BridgedTool,
        call_id: str,
        arguments: Dict[str, Any],
        cancel_event: Optional[asyncio.Event],
    ) -> ToolResult:
        if tool.blocked:
            logger.warning(
                "[%s] BLOCKED tool call: '%s', this tool is restricted for safety.",
                tool.provider_name,
                tool.name,
            )
            message = blocked_message(tool.provider_name, tool.original_name)
            return blocked_result(tool.name, message)

        policy = self._safety_policy
        if policy is not None:
            decision = policy.check_tool_call(tool.name, arguments) or policy.check_tool_call(
                tool.original_name, arguments
            )
            if decision is not None:
                return blocked_result(tool.name, decision.reason)

        conn = self._connections.get(tool.provider_name)
        if conn is None or not conn.connected:
            return disconnected_result(tool.provider_name)

        logger.debug(
            "[%s] Calling '%s' (call %s).", tool.provider_name, tool.original_name, call_id
        )
        try:
            raw = await conn.call_tool(tool.original_name, arguments, cancel_event)
        except ToolCallCancelled:
            logger.info("[%s] Tool call '%s' cancelled.", tool.provider_name, tool.name)
            return cancelled_result(tool.name)
        except Exception as exc:
            message = describe_error(exc)
            logger.error(
                "[%s] Tool '%s' execution failed: %s", tool.provider_name, tool.name, message
            )
            if is_transport_error(exc):
                conn.mark_lost(exc)
            return error_result(tool.name, message)
        return adapt_result(raw)

    # ── Teardown ─────────────────────────────────────────────────────────

    async def dispose(self) -> None:
        """Cancel reconnect timers, close every connection, and clear the map.

        Idempotent.  The manager cannot connect again afterwards.
        """
        self._disposed = True
        timers = list(self._reconnect_timers.values())
        self._reconnect_timers.clear()
        for timer in timers:
            if not timer.done():
                timer.cancel()
        current = asyncio.current_task()
        others = [t for t in timers if t is not current]
        if others:
            await asyncio.gather(*others, return_exceptions=True)

        async with self._lock:
            connections = list(self._connections.items())
            self._connections.clear()
        if not connections:
            return

        for name, _ in connections:
            logger.info("[%s] Disconnecting...", name)
        results = await asyncio.gather(
            *(conn.close() for _, conn in connections), return_exceptions=True
        )
        for (name, _), result in zip(connections, results):
            if isinstance(result, Exception):
                logger.error("[%s] Error closing: %s", name, result)
        logger.info("All MCP servers disconnected.")
