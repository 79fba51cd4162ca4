"""Host-facing tool wrapping one provider operation."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from mcp_conduit.bridge.blocking import blocked_description
from mcp_conduit.bridge.naming import build_tool_name
from mcp_conduit.bridge.results import error_result
from mcp_conduit.bridge.schema import normalize_parameters

ToolResult = Dict[str, Any]
ToolExecutor = Callable[
    ["BridgedTool", str, Dict[str, Any], Optional[asyncio.Event]], Awaitable[ToolResult]
]


@dataclass(frozen=True)
class BridgedTool:
    """A namespaced, schema-described provider operation.

    ``provider_name``, ``original_name`` and ``blocked`` are fixed when the
    provider's tools are discovered; ``execute`` routes through the executor
    bound at that time.
    """

    name: str
    label: str
    description: str
    parameters: Dict[str, Any]
    provider_name: str
    original_name: str
    blocked: bool = False
    executor: Optional[ToolExecutor] = field(default=None, repr=False, compare=False)

    async def execute(
        self,
        call_id: str,
        args: Any = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ToolResult:
        """Run the operation and return ``{"content": [...], "details": {...}}``."""
        arguments = args if isinstance(args, dict) else {}
        if self.executor is None:
            return error_result(self.name, "Tool is not bound to a provider")
        return await self.executor(self, call_id, arguments, cancel_event)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "parameters": self.parameters,
            "provider": self.provider_name,
            "originalName": self.original_name,
            "blocked": self.blocked,
        }


def bridge_tool(
    provider_name: str,
    operation: Any,
    blocked: bool,
    executor: Optional[ToolExecutor] = None,
) -> BridgedTool:
    """Build a :class:`BridgedTool` from an MCP ``Tool`` definition."""
    original_name = operation.name
    description = operation.description or f"MCP tool from {provider_name}"
    if blocked:
        description = blocked_description(description)
    return BridgedTool(
        name=build_tool_name(provider_name, original_name),
        label=f"MCP: {provider_name}/{original_name}",
        description=description,
        parameters=normalize_parameters(operation.inputSchema),
        provider_name=provider_name,
        original_name=original_name,
        blocked=blocked,
        executor=executor,
    )
