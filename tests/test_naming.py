"""Tests for tool naming, parameter schemas and the BridgedTool value."""

from __future__ import annotations

import asyncio

from conftest import make_tool

from mcp_conduit.bridge.naming import build_tool_name, parse_tool_name, sanitize_segment
from mcp_conduit.bridge.schema import empty_object_schema, normalize_parameters
from mcp_conduit.bridge.tool import BridgedTool, bridge_tool


class TestSanitize:
    def test_plain_segment_untouched(self) -> None:
        assert sanitize_segment("read_file") == "read_file"

    def test_unsafe_chars_replaced(self) -> None:
        assert sanitize_segment("web-search.v2") == "web_search_v2"

    def test_underscore_runs_collapse(self) -> None:
        assert sanitize_segment("a--b__c") == "a_b_c"


class TestToolNames:
    def test_build(self) -> None:
        assert build_tool_name("chrome-devtools", "close_page") == (
            "mcp__chrome_devtools__close_page"
        )

    def test_separator_stays_unambiguous(self) -> None:
        name = build_tool_name("a__b", "c")
        assert name == "mcp__a_b__c"
        assert parse_tool_name(name) == ("a_b", "c")

    def test_parse_rejects_foreign_names(self) -> None:
        assert parse_tool_name("read_file") is None
        assert parse_tool_name("mcp__onlyprovider") is None
        assert parse_tool_name("mcp____op") is None

    def test_sanitisation_collisions(self) -> None:
        assert build_tool_name("a.b", "x") == build_tool_name("a-b", "x")


class TestNormalizeParameters:
    def test_missing_schema_is_closed_object(self) -> None:
        assert normalize_parameters(None) == {
            "type": "object",
            "properties": {},
            "additionalProperties": False,
        }

    def test_empty_object_schema_is_fresh(self) -> None:
        first = empty_object_schema()
        first["properties"]["x"] = {}
        assert empty_object_schema()["properties"] == {}

    def test_type_defaults_to_object(self) -> None:
        schema = {"properties": {"path": {"type": "string"}}, "required": ["path"]}
        result = normalize_parameters(schema)
        assert result["type"] == "object"
        assert result["required"] == ["path"]
        assert "type" not in schema

    def test_declared_type_kept(self) -> None:
        assert normalize_parameters({"type": "array"})["type"] == "array"

    def test_empty_mapping_gets_type(self) -> None:
        assert normalize_parameters({}) == {"type": "object"}


class TestBridgedTool:
    def test_bridge_tool_defaults(self) -> None:
        tool = bridge_tool("fs", make_tool("read_file"), False, None)
        assert tool.name == "mcp__fs__read_file"
        assert tool.label == "MCP: fs/read_file"
        assert tool.description == "MCP tool from fs"
        assert tool.blocked is False

    def test_bridge_tool_keeps_description(self) -> None:
        tool = bridge_tool("fs", make_tool("read_file", "Read a file."), False, None)
        assert tool.description == "Read a file."

    def test_blocked_description_suffix(self) -> None:
        tool = bridge_tool("fs", make_tool("rm", "Delete."), True, None)
        assert tool.blocked is True
        assert tool.description.startswith("Delete. [BLOCKED:")

    def test_to_dict(self) -> None:
        tool = bridge_tool("fs", make_tool("read_file"), False, None)
        data = tool.to_dict()
        assert data["name"] == "mcp__fs__read_file"
        assert data["provider"] == "fs"
        assert data["originalName"] == "read_file"
        assert data["blocked"] is False
        assert data["parameters"]["type"] == "object"

    def test_execute_without_executor(self) -> None:
        tool = BridgedTool(
            name="mcp__x__y",
            label="MCP: x/y",
            description="",
            parameters=empty_object_schema(),
            provider_name="x",
            original_name="y",
        )
        result = asyncio.run(tool.execute("call-1", {}))
        assert result["details"]["isError"] is True

    def test_executor_receives_arguments(self) -> None:
        seen = []

        async def executor(tool, call_id, args, cancel_event):
            seen.append((tool.name, call_id, args, cancel_event))
            return {"content": [], "details": {}}

        tool = bridge_tool("fs", make_tool("read_file"), False, executor)
        asyncio.run(tool.execute("c1", {"path": "a"}))
        assert seen == [("mcp__fs__read_file", "c1", {"path": "a"}, None)]
