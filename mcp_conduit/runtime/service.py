"""Conduit runtime service, the host-facing owner of the bridge.

BridgeService replaces an ambient shared manager with an explicitly
constructed object.  It merges static and IDE-supplied provider configs,
owns the current :class:`BridgeManager`, rebuilds it when the merged
configuration changes, and answers the host's synchronous questions
(which tools exist right now, is each provider ready) without blocking.
"""

import asyncio
import hashlib
import json
import logging
from typing import Any, Callable, Coroutine, Dict, Iterable, List, Optional, Set

from mcp_conduit.bridge.manager import BridgeManager
from mcp_conduit.bridge.results import error_result, text_block
from mcp_conduit.bridge.safety import BlockDecision, SafetyPolicy, build_safety_policy
from mcp_conduit.bridge.tool import BridgedTool, ToolResult
from mcp_conduit.config.ide import DynamicProviderRegistry
from mcp_conduit.config.merge import merge_provider_configs
from mcp_conduit.config.schema import ConduitConfig, ProviderConfig, SafetyConfig
from mcp_conduit.constants import STATUS_TOOL_NAME
from mcp_conduit.display.console import format_status_text
from mcp_conduit.runtime.models import BridgeStatus, Readiness

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[Optional[SafetyPolicy]], BridgeManager]


def config_hash(configs: Iterable[ProviderConfig]) -> str:
    """Stable digest of a merged provider configuration."""
    payload = json.dumps(
        [cfg.model_dump(mode="json") for cfg in configs], sort_keys=True, separators=(",", ":")
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _default_manager_factory(policy: Optional[SafetyPolicy]) -> BridgeManager:
    return BridgeManager(safety_policy=policy)


class BridgeService:
    """Owns the provider bridge for one host.

    Usage::

        service = BridgeService.from_config(load_conduit_config("config.yaml"))
        tools = service.resolve_tools()      # starts connecting in the background
        await service.wait_ready()
        result = await service.call_tool("mcp__fs__read_file", {"path": "README.md"})
        await service.stop()
    """

    def __init__(
        self,
        providers: Iterable[ProviderConfig] = (),
        *,
        dynamic: Optional[DynamicProviderRegistry] = None,
        safety: Optional[SafetyConfig] = None,
        manager_factory: Optional[ManagerFactory] = None,
    ) -> None:
        self._static: List[ProviderConfig] = list(providers)
        self._dynamic = dynamic if dynamic is not None else DynamicProviderRegistry()
        self._safety_settings = safety
        self._manager_factory = manager_factory or _default_manager_factory

        self._manager: Optional[BridgeManager] = None
        self._config_hash = ""
        self._connect_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        self._safety_policy: Optional[SafetyPolicy] = None
        self._policy_hash: Optional[str] = None

        # Prevents concurrent force-reconnects from interleaving.
        self._reload_lock: asyncio.Lock = asyncio.Lock()

        self._status_tool = BridgedTool(
            name=STATUS_TOOL_NAME,
            label="MCP Bridge Status",
            description=(
                "Check the connection status of MCP servers. If MCP tools are not available, "
                "call this first to trigger connection. Pass reconnect=true to force reconnect."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "reconnect": {
                        "type": "boolean",
                        "description": "Force reconnect to all MCP servers",
                    },
                },
                "additionalProperties": False,
            },
            provider_name="bridge",
            original_name="bridge_status",
            executor=self._execute_status_tool,
        )
        logger.info("BridgeService initialized with %d static provider(s).", len(self._static))

    @classmethod
    def from_config(
        cls, config: ConduitConfig, *, dynamic: Optional[DynamicProviderRegistry] = None, **kwargs
    ) -> "BridgeService":
        return cls(config.providers, dynamic=dynamic, safety=config.safety, **kwargs)

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def manager(self) -> Optional[BridgeManager]:
        """The current BridgeManager (``None`` until tools are first resolved)."""
        return self._manager

    @property
    def dynamic(self) -> DynamicProviderRegistry:
        return self._dynamic

    @property
    def static_configs(self) -> List[ProviderConfig]:
        return list(self._static)

    @property
    def safety_policy(self) -> Optional[SafetyPolicy]:
        """Safety policy for the current merged configuration."""
        configs = self.effective_configs()
        digest = config_hash(configs)
        if digest != self._policy_hash:
            self._safety_policy = build_safety_policy(
                self._safety_settings, [cfg.name for cfg in configs]
            )
            self._policy_hash = digest
        return self._safety_policy

    def effective_configs(self) -> List[ProviderConfig]:
        """Static providers merged with IDE-supplied ones (IDE wins by name)."""
        return merge_provider_configs(self._static, self._dynamic.configs())

    def status_tool(self) -> BridgedTool:
        return self._status_tool

    # ------------------------------------------------------------------ #
    #  Background tasks
    # ------------------------------------------------------------------ #

    def _spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"conduit_{label}")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task '%s' failed: %s", task.get_name(), exc)

    def _start_manager(self, configs: List[ProviderConfig], digest: str) -> None:
        old = self._manager
        if old is not None:
            self._spawn(old.dispose(), "dispose")
        self._manager = self._manager_factory(self.safety_policy)
        self._config_hash = digest
        self._connect_task = self._spawn(self._manager.connect(configs), "connect")

    # ------------------------------------------------------------------ #
    #  Host interface
    # ------------------------------------------------------------------ #

    def resolve_tools(self) -> List[BridgedTool]:
        """Return the tools to expose right now.  Must run inside an event loop.

        Starts (or restarts, when the merged configuration changed) the
        bridge in the background.  While nothing is connected yet, the only
        tool is the bridge status tool.
        """
        configs = self.effective_configs()
        if not configs:
            return []

        digest = config_hash(configs)
        if self._manager is not None and digest == self._config_hash:
            tools = self._manager.get_all_tools()
            if tools:
                return tools
        else:
            if self._manager is not None:
                logger.info("Provider configuration changed, rebuilding bridge.")
            self._start_manager(configs, digest)

        assert self._manager is not None
        tools = self._manager.get_all_tools()
        return tools or [self._status_tool]

    def provider_states(self) -> Dict[str, Readiness]:
        """Tri-state readiness per effective provider, answered synchronously."""
        states: Dict[str, Readiness] = {}
        for cfg in self.effective_configs():
            conn = self._manager.get_connection(cfg.name) if self._manager else None
            states[cfg.name] = conn.record.readiness if conn is not None else Readiness.PENDING
        return states

    async def wait_ready(self, timeout: Optional[float] = None) -> Dict[str, Readiness]:
        """Wait for the current connect round to settle, then report readiness."""
        if self._manager is None:
            self.resolve_tools()
        task = self._connect_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Providers still connecting after %ss.", timeout)
            except Exception as exc:
                logger.error("Connect round failed: %s", exc)
        return self.provider_states()

    async def force_reconnect(self) -> BridgeStatus:
        """Tear down every connection and rebuild from the latest merged config."""
        async with self._reload_lock:
            configs = self.effective_configs()
            logger.info("Force reconnect requested (%d provider(s)).", len(configs))
            old = self._manager
            pending = self._connect_task
            if pending is not None and not pending.done():
                pending.cancel()
            if old is not None:
                await old.dispose()
            self._manager = self._manager_factory(self.safety_policy)
            self._config_hash = config_hash(configs)
            self._connect_task = None
            await self._manager.connect(configs)
        return self.status()

    async def reconnect_provider(self, name: str) -> bool:
        """Manually reconnect one provider, restoring its reconnect budget."""
        if self._manager is None:
            return False
        return await self._manager.reconnect_server(name, reset_attempts=True)

    def before_tool_call(self, tool_name: str, params: Any) -> Optional[BlockDecision]:
        """Host hook run before any host tool executes.  ``None`` allows the call."""
        policy = self.safety_policy
        if policy is None:
            return None
        return policy.check_tool_call(tool_name, params)

    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        call_id: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ToolResult:
        """Invoke a bridged tool (or the status tool) by its namespaced name."""
        if tool_name == STATUS_TOOL_NAME:
            return await self._status_tool.execute(call_id, arguments or {}, cancel_event)
        if self._manager is None:
            await self.wait_ready()
        if self._manager is None:
            return error_result(tool_name, "No MCP servers configured")
        return await self._manager.call_tool(
            tool_name, arguments, call_id=call_id, cancel_event=cancel_event
        )

    def status(self) -> BridgeStatus:
        configs = self.effective_configs()
        if self._manager is None:
            return BridgeStatus(configured=len(configs))
        servers = self._manager.get_status()
        tools = self._manager.get_all_tools()
        return BridgeStatus(
            configured=len(configs),
            connected=sum(1 for s in servers if s.connected),
            total_tools=len(tools),
            tool_names=[t.name for t in tools],
            servers=servers,
            disposed=self._manager.is_disposed,
        )

    def status_text(self) -> str:
        if self._manager is None:
            return format_status_text(None)
        return format_status_text(self._manager.get_status())

    async def _execute_status_tool(
        self,
        tool: BridgedTool,
        call_id: str,
        arguments: Dict[str, Any],
        cancel_event: Optional[asyncio.Event],
    ) -> ToolResult:
        await self.wait_ready()
        if arguments.get("reconnect"):
            await self.force_reconnect()

        status = self.status()
        servers = [s.to_dict() for s in status.servers]
        payload = {
            "status": "ok",
            "servers": servers,
            "totalTools": status.total_tools,
            "toolNames": status.tool_names,
        }
        return {
            "content": [text_block(json.dumps(payload, indent=2))],
            "details": {"servers": servers, "toolCount": status.total_tools},
        }

    # ------------------------------------------------------------------ #
    #  Shutdown
    # ------------------------------------------------------------------ #

    async def stop(self) -> None:
        """Dispose the bridge and wait for background work to finish."""
        logger.info("Stopping BridgeService...")
        task = self._connect_task
        if task is not None and not task.done():
            task.cancel()
        manager = self._manager
        self._manager = None
        self._config_hash = ""
        self._connect_task = None
        if manager is not None:
            await manager.dispose()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        logger.info("BridgeService stopped.")
