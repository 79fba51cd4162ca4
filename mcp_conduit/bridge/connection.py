"""A single supervised provider connection.

Each :class:`ProviderConnection` owns one runner task.  The runner enters
the transport and session contexts on its own :class:`AsyncExitStack`,
performs the MCP handshake, then stays inside those contexts pinging the
provider until it is told to stop or the link fails.  Keeping every
context enter/exit inside the same task is what lets the SDK's anyio
task groups shut down cleanly.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from mcp_conduit.bridge.tool import BridgedTool
from mcp_conduit.bridge.transport import (
    TransportTarget,
    build_transport_target,
    describe_error,
    open_session,
    unwrap_error,
)
from mcp_conduit.config.schema import ProviderConfig
from mcp_conduit.constants import CLOSE_TIMEOUT, DISCOVERY_TIMEOUT, PING_TIMEOUT
from mcp_conduit.errors import ConfigurationError, ProviderConnectError, ToolCallCancelled
from mcp_conduit.runtime.models import ConnectionPhase, ConnectionRecord, ProviderStatus

logger = logging.getLogger(__name__)

SessionOpener = Callable[[AsyncExitStack, TransportTarget], Awaitable[Any]]
LostCallback = Callable[["ProviderConnection", BaseException], None]


class ProviderConnection:
    """Connection lifecycle for one configured provider."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        opener: SessionOpener = open_session,
        on_lost: Optional[LostCallback] = None,
        reconnect_attempts: int = 0,
    ) -> None:
        self.config = config
        self.record = ConnectionRecord(name=config.name)
        self.reconnect_attempts = reconnect_attempts
        self._opener = opener
        self._on_lost = on_lost
        self._session: Any = None
        self._tools: Tuple[BridgedTool, ...] = ()
        self._runner: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._stop: Optional[asyncio.Event] = None
        self._lost_exc: Optional[BaseException] = None
        self._closing = False

    # ── Read-only view ───────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def transport(self) -> str:
        return self.config.transport

    @property
    def phase(self) -> ConnectionPhase:
        return self.record.phase

    @property
    def connected(self) -> bool:
        return self.record.phase == ConnectionPhase.CONNECTED

    @property
    def tools(self) -> Tuple[BridgedTool, ...]:
        return self._tools

    @property
    def session(self) -> Any:
        return self._session

    @property
    def last_error(self) -> Optional[str]:
        return self.record.error

    def status(self) -> ProviderStatus:
        return ProviderStatus(
            name=self.name,
            transport=self.transport,
            connected=self.connected,
            tool_count=len(self._tools),
            reconnect_attempts=self.reconnect_attempts,
            phase=self.phase,
            readiness=self.record.readiness,
            error=self.record.error,
        )

    def transition(self, phase: ConnectionPhase, message: str = "") -> None:
        """Move to *phase*; invalid transitions are logged and ignored."""
        try:
            self.record.transition(phase, message)
        except ValueError as exc:
            logger.debug("[%s] %s", self.name, exc)

    # ── Connect / discover ───────────────────────────────────────────────

    async def open(self) -> None:
        """Start the runner and wait for the handshake, bounded by ``timeout_ms``.

        Raises :class:`ConfigurationError` for an unusable record and
        :class:`ProviderConnectError` on timeout.  Any other handshake
        failure propagates as raised by the transport.  On failure nothing
        of the attempt is left running.  A closed connection cannot be opened.
        """
        if self._closing:
            raise ProviderConnectError("Connection already closed", self.name)
        self.transition(ConnectionPhase.CONNECTING, f"Connecting ({self.transport})")
        try:
            target = build_transport_target(self.config)
        except ConfigurationError as exc:
            self.transition(ConnectionPhase.DISCONNECTED, str(exc))
            raise

        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._stop = asyncio.Event()
        self._lost_exc = None
        self._runner = asyncio.create_task(self._run(target), name=f"conduit_{self.name}")

        timeout_ms = self.config.timeout_ms
        try:
            self._session = await asyncio.wait_for(
                asyncio.shield(self._ready), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError as exc:
            await self._abort()
            err = ProviderConnectError(f"Connection timeout ({timeout_ms}ms)", self.name, exc)
            self.transition(ConnectionPhase.DISCONNECTED, str(err))
            raise err from exc
        except asyncio.CancelledError:
            await self._abort()
            self.transition(ConnectionPhase.DISCONNECTED, "Connect cancelled")
            task = asyncio.current_task()
            if self._closing and task is not None and not task.cancelling():
                raise ProviderConnectError("Closed during handshake", self.name) from None
            raise
        except Exception as exc:
            await self._abort()
            self.transition(ConnectionPhase.DISCONNECTED, describe_error(exc))
            raise
        logger.info("[%s] MCP handshake completed (%s).", self.name, self.transport)

    async def list_operations(self) -> List[Any]:
        """Ask the provider for its operations (bounded by the discovery timeout)."""
        if self._session is None:
            raise ProviderConnectError("Not connected", self.name)
        response = await asyncio.wait_for(self._session.list_tools(), timeout=DISCOVERY_TIMEOUT)
        tools = getattr(response, "tools", None)
        if not isinstance(tools, list):
            return []
        return tools

    def publish(self, tools: Sequence[BridgedTool]) -> None:
        """Atomically replace the tool snapshot and mark the connection live."""
        self._tools = tuple(tools)
        self.transition(ConnectionPhase.CONNECTED, f"{len(self._tools)} tool(s) discovered")

    # ── Runner ───────────────────────────────────────────────────────────

    async def _run(self, target: TransportTarget) -> None:
        assert self._ready is not None and self._stop is not None
        try:
            async with AsyncExitStack() as stack:
                session = await self._opener(stack, target)
                await session.initialize()
                if self._ready.done():
                    return
                self._ready.set_result(session)
                await self._supervise(session)
        except asyncio.CancelledError:
            if not self._ready.done():
                self._ready.cancel()
            raise
        except Exception as exc:
            exc = unwrap_error(exc)
            if not self._ready.done():
                self._ready.set_exception(exc)
                return
            self._report_lost(exc)
            return

        if self._lost_exc is not None:
            self._report_lost(self._lost_exc)

    async def _supervise(self, session: Any) -> None:
        """Wait for a stop request, pinging the provider in the meantime."""
        assert self._stop is not None
        interval = self.config.ping_interval_ms / 1000
        if interval <= 0:
            await self._stop.wait()
            return
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            await asyncio.wait_for(session.send_ping(), timeout=PING_TIMEOUT)

    def _report_lost(self, exc: BaseException) -> None:
        self._session = None
        if self._closing:
            return
        message = describe_error(exc)
        logger.warning("[%s] Provider connection lost: %s", self.name, message)
        self.transition(ConnectionPhase.DISCONNECTED, message)
        if self._on_lost is not None:
            try:
                self._on_lost(self, exc)
            except Exception:
                logger.exception("[%s] Connection-lost handler failed.", self.name)

    def mark_lost(self, exc: BaseException) -> None:
        """Report a transport failure seen outside the runner (e.g. during a call)."""
        if self._closing or self._stop is None or not self.connected:
            return
        if self._lost_exc is None:
            self._lost_exc = exc
        self._stop.set()

    # ── Calls ────────────────────────────────────────────────────────────

    async def call_tool(
        self,
        operation: str,
        arguments: Dict[str, Any],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        """Forward one call to the provider.

        Raises :class:`ToolCallCancelled` when *cancel_event* fires first.
        """
        session = self._session
        if session is None:
            raise ProviderConnectError("Not connected", self.name)
        if cancel_event is not None and cancel_event.is_set():
            raise ToolCallCancelled(f"Call to '{operation}' cancelled before it was sent")

        call: Awaitable[Any] = session.call_tool(operation, arguments)
        if self.config.call_timeout_ms:
            call = asyncio.wait_for(call, timeout=self.config.call_timeout_ms / 1000)
        if cancel_event is None:
            return await call

        call_task = asyncio.ensure_future(call)
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({call_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (call_task, cancel_task):
                if not task.done():
                    task.cancel()
        if call_task.done() and not call_task.cancelled():
            return call_task.result()
        await asyncio.gather(call_task, return_exceptions=True)
        raise ToolCallCancelled(f"Call to '{operation}' was cancelled")

    # ── Teardown ─────────────────────────────────────────────────────────

    async def _abort(self) -> None:
        runner = self._runner
        self._session = None
        if runner is not None and not runner.done():
            runner.cancel()
            await asyncio.wait({runner})

    async def reset(self, message: str) -> None:
        """Stop the runner after a failed attempt, staying reconnectable."""
        await self._abort()
        self._tools = ()
        self.transition(ConnectionPhase.DISCONNECTED, message)

    async def close(self) -> None:
        """Stop the runner (gracefully, then by cancellation) and drop the session."""
        self._closing = True
        self.transition(ConnectionPhase.CLOSED, "Closed")
        runner = self._runner
        if runner is None:
            return
        if self._stop is not None:
            self._stop.set()
        if self._ready is not None and not self._ready.done():
            runner.cancel()
        if not runner.done():
            _, pending = await asyncio.wait({runner}, timeout=CLOSE_TIMEOUT)
            if pending:
                logger.warning(
                    "[%s] Provider did not shut down within %ss, cancelling.",
                    self.name,
                    CLOSE_TIMEOUT,
                )
                runner.cancel()
                await asyncio.wait({runner})
        if not runner.cancelled() and runner.exception() is not None:
            logger.debug(
                "[%s] Runner finished with error: %s", self.name, describe_error(runner.exception())
            )
        self._session = None
        self._tools = ()
        logger.info("[%s] Connection closed.", self.name)
