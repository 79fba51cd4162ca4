"""Tests for BridgeService: merged configs, readiness, status tool, safety hook."""

from __future__ import annotations

import asyncio
import json

from mcp_conduit.bridge.manager import BridgeManager
from mcp_conduit.config.schema import ProviderConfig, SafetyConfig
from mcp_conduit.constants import STATUS_TOOL_NAME
from mcp_conduit.runtime.models import Readiness
from mcp_conduit.runtime.service import BridgeService, config_hash


def _cfg(name: str, **overrides) -> ProviderConfig:
    data = {"name": name, "transport": "stdio", "command": "fake-provider", "ping_interval_ms": 0}
    data.update(overrides)
    return ProviderConfig(**data)


def _service(fakes, providers, **kwargs) -> BridgeService:
    def factory(policy):
        return BridgeManager(
            safety_policy=policy,
            session_opener=fakes.opener,
            reconnect_delay=lambda attempt: 0,
        )

    return BridgeService(providers, manager_factory=factory, **kwargs)


class TestConfigHash:
    def test_stable_and_sensitive(self) -> None:
        a = [_cfg("a"), _cfg("b")]
        assert config_hash(a) == config_hash([_cfg("a"), _cfg("b")])
        assert config_hash(a) != config_hash([_cfg("a"), _cfg("b", args=["-v"])])


class TestResolveTools:
    def test_status_tool_shape(self, fakes) -> None:
        service = _service(fakes, [_cfg("fs")])
        tool = service.status_tool()
        assert tool.name == STATUS_TOOL_NAME
        assert tool.parameters["properties"]["reconnect"]["type"] == "boolean"
        assert [c.name for c in service.static_configs] == ["fs"]
        assert service.manager is None

    def test_no_providers(self, fakes) -> None:
        async def scenario():
            service = _service(fakes, [])
            tools = service.resolve_tools()
            result = await service.call_tool("mcp__fs__read_file", {})
            await service.stop()
            return tools, result

        tools, result = asyncio.run(scenario())
        assert tools == []
        assert "No MCP servers configured" in result["details"]["error"]

    def test_status_tool_while_pending(self, fakes) -> None:
        fakes.add("fs", "read_file")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            first = service.resolve_tools()
            pending = service.provider_states()
            states = await service.wait_ready(timeout=2.0)
            second = service.resolve_tools()
            await service.stop()
            return first, pending, states, second

        first, pending, states, second = asyncio.run(scenario())
        assert [t.name for t in first] == [STATUS_TOOL_NAME]
        assert pending == {"fs": Readiness.PENDING}
        assert states == {"fs": Readiness.READY}
        assert [t.name for t in second] == ["mcp__fs__read_file"]

    def test_failed_provider_reported(self, fakes) -> None:
        fakes.add("fs", "read_file")
        fakes.add("broken").open_error = ConnectionRefusedError("refused")

        async def scenario():
            service = _service(fakes, [_cfg("fs"), _cfg("broken")])
            service.resolve_tools()
            states = await service.wait_ready(timeout=2.0)
            await service.stop()
            return states

        assert asyncio.run(scenario()) == {"fs": Readiness.READY, "broken": Readiness.FAILED}

    def test_ide_servers_trigger_rebuild(self, fakes) -> None:
        fakes.add("fs", "read_file")
        fakes.add("web", "search")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            first_manager = service.manager
            service.dynamic.apply([{"name": "web", "command": "fake-provider"}])
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            names = sorted(t.name for t in service.resolve_tools())
            rebuilt = service.manager is not first_manager
            await service.stop()
            return names, rebuilt

        names, rebuilt = asyncio.run(scenario())
        assert rebuilt
        assert names == ["mcp__fs__read_file", "mcp__web__search"]

    def test_same_config_keeps_manager(self, fakes) -> None:
        fakes.add("fs", "read_file")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            manager = service.manager
            service.resolve_tools()
            same = service.manager is manager
            await service.stop()
            return same

        assert asyncio.run(scenario())
        assert fakes.open_attempts == ["fs"]


class TestStatusTool:
    def test_reports_servers(self, fakes) -> None:
        fakes.add("fs", "read_file", "write_file")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            service.resolve_tools()
            result = await service.call_tool(STATUS_TOOL_NAME, {})
            await service.stop()
            return result

        result = asyncio.run(scenario())
        payload = json.loads(result["content"][0]["text"])
        assert payload["status"] == "ok"
        assert payload["totalTools"] == 2
        assert payload["toolNames"] == ["mcp__fs__read_file", "mcp__fs__write_file"]
        assert payload["servers"][0]["name"] == "fs"
        assert payload["servers"][0]["toolCount"] == 2
        assert result["details"]["toolCount"] == 2

    def test_reconnect_flag_rebuilds(self, fakes) -> None:
        provider = fakes.add("fs", "read_file")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            result = await service.call_tool(STATUS_TOOL_NAME, {"reconnect": True})
            await service.stop()
            return result

        result = asyncio.run(scenario())
        assert provider.opens == 2
        assert json.loads(result["content"][0]["text"])["totalTools"] == 1


class TestForceReconnect:
    def test_recovers_failed_provider(self, fakes) -> None:
        provider = fakes.add("fs", "read_file")
        provider.open_error = ConnectionRefusedError("down")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            before = service.status()
            provider.open_error = None
            after = await service.force_reconnect()
            await service.stop()
            return before, after

        before, after = asyncio.run(scenario())
        assert before.connected == 0
        assert after.connected == 1
        assert after.total_tools == 1
        assert after.to_dict()["toolNames"] == ["mcp__fs__read_file"]

    def test_reconnect_single_provider(self, fakes) -> None:
        provider = fakes.add("fs", "read_file")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            missing = await service.reconnect_provider("fs")
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            ok = await service.reconnect_provider("fs")
            await service.stop()
            return missing, ok

        assert asyncio.run(scenario()) == (False, True)
        assert provider.opens == 2


class TestSafetyHook:
    def test_auto_policy_follows_browser_provider(self, fakes) -> None:
        service = _service(fakes, [_cfg("fs")])
        assert service.safety_policy is None
        assert service.before_tool_call("exec", {"command": "pkill chrome"}) is None

        service.dynamic.apply([{"name": "chrome-devtools", "command": "npx"}])
        decision = service.before_tool_call("exec", {"command": "pkill chrome"})
        assert decision is not None and decision.blocked
        assert service.before_tool_call("exec", {"command": "dir"}) is None

    def test_disabled(self, fakes) -> None:
        service = _service(
            fakes, [_cfg("chrome-devtools")], safety=SafetyConfig(enabled=False)
        )
        assert service.before_tool_call("exec", {"command": "pkill chrome"}) is None

    def test_policy_reaches_manager(self, fakes) -> None:
        fakes.add("chrome-devtools", "evaluate_script")
        shell = fakes.add("shell", "exec")

        async def scenario():
            service = _service(fakes, [_cfg("chrome-devtools"), _cfg("shell")])
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            result = await service.call_tool(
                "mcp__shell__exec", {"command": "taskkill /im chrome"}
            )
            await service.stop()
            return result

        result = asyncio.run(scenario())
        assert result["details"]["blocked"] is True
        assert shell.calls == []


class TestStatusText:
    def test_text(self, fakes) -> None:
        fakes.add("fs", "read_file")

        async def scenario():
            service = _service(fakes, [_cfg("fs")])
            before = service.status_text()
            service.resolve_tools()
            await service.wait_ready(timeout=2.0)
            after = service.status_text()
            await service.stop()
            return before, after

        before, after = asyncio.run(scenario())
        assert before == "MCP Bridge: No active connections"
        assert after == "MCP Bridge Status:\n- fs (stdio): connected | 1 tools"
