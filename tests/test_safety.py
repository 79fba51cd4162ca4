"""Tests for the command safety gate and per-provider operation blocking."""

from __future__ import annotations

import pytest

from mcp_conduit.bridge.blocking import (
    DEFAULT_BLOCKED_TOOLS,
    blocked_message,
    resolve_blocked_tools,
)
from mcp_conduit.bridge.safety import (
    BROWSER_PROTECTION_POLICY,
    REASON_COMMAND_CHARS,
    SafetyPolicy,
    SafetyRule,
    build_safety_policy,
    extract_command,
)
from mcp_conduit.config.schema import ProviderConfig, SafetyConfig, SafetyRuleConfig


class TestEvaluate:
    @pytest.mark.parametrize(
        "command",
        [
            "taskkill /F /IM chrome.exe",
            "Stop-Process -Name chrome",
            "pkill -9 chrome",
            "killall Google\\ Chrome",
        ],
    )
    def test_kill_commands_blocked(self, command: str) -> None:
        decision = BROWSER_PROTECTION_POLICY.evaluate(command)
        assert decision.allowed is False
        assert decision.category == "kill-browser"
        assert "ensure-chrome-debug.ps1" in decision.reason

    @pytest.mark.parametrize(
        "command",
        [
            "Start-Process chrome",
            "start chrome https://example.com",
            "chrome.exe --remote-debugging-port=9222",
        ],
    )
    def test_launch_commands_blocked(self, command: str) -> None:
        decision = BROWSER_PROTECTION_POLICY.evaluate(command)
        assert decision.allowed is False
        assert decision.category == "launch-browser"

    def test_allow_list_wins(self) -> None:
        decision = BROWSER_PROTECTION_POLICY.evaluate(
            "powershell .\\scripts\\ensure-chrome-debug.ps1 -kill chrome"
        )
        assert decision.allowed is True
        assert decision.allow_pattern == r"ensure-chrome-debug\.ps1"

    def test_unrelated_command_allowed(self) -> None:
        decision = BROWSER_PROTECTION_POLICY.evaluate("git status")
        assert decision.allowed is True
        assert decision.rule is None

    def test_reason_truncates_command(self) -> None:
        command = "taskkill /im chrome.exe " + "x" * 200
        decision = BROWSER_PROTECTION_POLICY.evaluate(command)
        assert command[:REASON_COMMAND_CHARS] in decision.reason
        assert command[: REASON_COMMAND_CHARS + 1] not in decision.reason

    def test_block_rules_in_order(self) -> None:
        policy = SafetyPolicy(
            version="test",
            block=(
                SafetyRule(r"rm\b", "first", "first"),
                SafetyRule(r"rm\s+-rf", "second", "second"),
            ),
        )
        assert policy.evaluate("rm -rf /").category == "first"


class TestCheckToolCall:
    def test_unguarded_tool_passes(self) -> None:
        params = {"command": "pkill chrome"}
        assert BROWSER_PROTECTION_POLICY.check_tool_call("read", params) is None

    def test_guarded_tool_blocked(self) -> None:
        decision = BROWSER_PROTECTION_POLICY.check_tool_call(
            "exec", {"command": "pkill chrome"}
        )
        assert decision is not None
        assert decision.blocked is True
        assert decision.category == "kill-browser"
        assert decision.to_dict()["blocked"] is True

    def test_cmd_key_and_plain_text(self) -> None:
        assert BROWSER_PROTECTION_POLICY.check_tool_call("process", {"cmd": "pkill chrome"})
        assert BROWSER_PROTECTION_POLICY.check_tool_call("exec", "pkill chrome")

    def test_extract_command(self) -> None:
        assert extract_command("ls") == "ls"
        assert extract_command({"command": "ls"}) == "ls"
        assert extract_command({"cmd": 5}) == "5"
        assert extract_command({"other": "ls"}) == ""
        assert extract_command(None) == ""


class TestBuildSafetyPolicy:
    def test_auto_without_browser_provider(self) -> None:
        assert build_safety_policy(SafetyConfig(), ["fs"]) is None

    def test_auto_with_browser_provider(self) -> None:
        policy = build_safety_policy(SafetyConfig(), ["fs", "chrome-devtools"])
        assert policy is not None
        assert policy.guards("exec")

    def test_explicit_switches(self) -> None:
        assert build_safety_policy(SafetyConfig(enabled=True), []) is not None
        assert build_safety_policy(SafetyConfig(enabled=False), ["chrome-devtools"]) is None

    def test_none_settings_use_defaults(self) -> None:
        assert build_safety_policy(None, ["chrome-devtools"]) is not None

    def test_config_extends_builtin_rules(self) -> None:
        settings = SafetyConfig(
            enabled=True,
            guarded_tools=["shell"],
            allow=[r"^echo\b"],
            block=[
                SafetyRuleConfig(
                    pattern=r"rm\s+-rf\s+/",
                    category="destroys-filesystem",
                    reason='Command BLOCKED: "{command}" deletes everything.',
                )
            ],
        )
        policy = build_safety_policy(settings, [])
        assert policy.guards("shell") and not policy.guards("exec")
        assert policy.evaluate("echo pkill chrome").allowed is True
        blocked = policy.check_tool_call("shell", {"command": "rm -rf /"})
        assert blocked.category == "destroys-filesystem"
        assert blocked.reason == 'Command BLOCKED: "rm -rf /" deletes everything.'
        assert policy.evaluate("pkill chrome").category == "kill-browser"


class TestBlockedTools:
    def _cfg(self, name: str, blocked=None) -> ProviderConfig:
        return ProviderConfig(name=name, transport="stdio", command="x", blocked_tools=blocked)

    def test_defaults_for_known_provider(self) -> None:
        assert resolve_blocked_tools(self._cfg("chrome-devtools")) == frozenset({"close_page"})

    def test_unknown_provider_has_none(self) -> None:
        assert resolve_blocked_tools(self._cfg("fs")) == frozenset()

    def test_explicit_list_overrides(self) -> None:
        assert resolve_blocked_tools(self._cfg("chrome-devtools", [])) == frozenset()
        assert resolve_blocked_tools(self._cfg("fs", ["rm"])) == frozenset({"rm"})

    def test_camel_case_record(self) -> None:
        cfg = ProviderConfig.model_validate(
            {"name": "fs", "transport": "stdio", "command": "x", "blockedTools": ["rm"]}
        )
        assert resolve_blocked_tools(cfg) == frozenset({"rm"})

    def test_messages(self) -> None:
        assert blocked_message("fs", "rm") == 'Tool "rm" is blocked for safety.'
        hint = DEFAULT_BLOCKED_TOOLS["chrome-devtools"]["close_page"]
        assert blocked_message("chrome-devtools", "close_page").endswith(hint)
