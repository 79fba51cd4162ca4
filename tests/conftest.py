"""Shared fakes: in-memory MCP sessions standing in for real providers."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from mcp.types import CallToolResult, ListToolsResult, TextContent, Tool


def make_tool(name: str, description: Optional[str] = None, schema: Optional[dict] = None) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema=schema if schema is not None else {"type": "object", "properties": {}},
    )


class FakeSession:
    """Minimal stand-in for ``mcp.ClientSession``."""

    def __init__(self, provider: "FakeProvider") -> None:
        self.provider = provider
        self.closed = False

    async def initialize(self) -> None:
        if self.provider.hang_init:
            await asyncio.Event().wait()
        if self.provider.init_error is not None:
            raise self.provider.init_error

    async def list_tools(self) -> ListToolsResult:
        if self.provider.list_error is not None:
            raise self.provider.list_error
        return ListToolsResult(tools=list(self.provider.tools))

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        self.provider.calls.append((name, arguments))
        if self.provider.call_delay:
            await asyncio.sleep(self.provider.call_delay)
        if self.provider.call_error is not None:
            raise self.provider.call_error
        if self.provider.call_result is not None:
            return self.provider.call_result
        return CallToolResult(content=[TextContent(type="text", text=f"{name} ok")])

    async def send_ping(self) -> None:
        self.provider.pings += 1

    async def aclose(self) -> None:
        self.closed = True


class FakeProvider:
    def __init__(self, name: str, tools: List[Tool]) -> None:
        self.name = name
        self.tools = tools
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.sessions: List[FakeSession] = []
        self.pings = 0
        self.hang_init = False
        self.init_error: Optional[BaseException] = None
        self.open_error: Optional[BaseException] = None
        self.list_error: Optional[BaseException] = None
        self.call_error: Optional[BaseException] = None
        self.call_result: Any = None
        self.call_delay = 0.0

    @property
    def opens(self) -> int:
        return len(self.sessions)


class FakeProviders:
    """Registry of fake providers with a session opener for BridgeManager."""

    def __init__(self) -> None:
        self.by_name: Dict[str, FakeProvider] = {}
        self.open_attempts: List[str] = []

    def add(self, name: str, *tool_names: str) -> FakeProvider:
        provider = FakeProvider(name, [make_tool(t) for t in tool_names])
        self.by_name[name] = provider
        return provider

    async def opener(self, stack: AsyncExitStack, target: Any) -> FakeSession:
        self.open_attempts.append(target.provider_name)
        provider = self.by_name[target.provider_name]
        if provider.open_error is not None:
            raise provider.open_error
        session = FakeSession(provider)
        provider.sessions.append(session)
        stack.push_async_callback(session.aclose)
        return session


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll *predicate* on the running loop until it holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def fakes() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def poll() -> Callable[..., Any]:
    return wait_until
