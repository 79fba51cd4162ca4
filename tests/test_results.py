"""Tests for provider result adaptation and structured error results."""

from __future__ import annotations

import json

from mcp.types import (
    CallToolResult,
    EmbeddedResource,
    ImageContent,
    TextContent,
    TextResourceContents,
)

from mcp_conduit.bridge.results import (
    adapt_result,
    blocked_result,
    cancelled_result,
    disconnected_result,
    error_result,
    is_error_result,
)


class TestAdaptResult:
    def test_text_content(self) -> None:
        raw = CallToolResult(content=[TextContent(type="text", text="hello")])
        result = adapt_result(raw)
        assert result["content"] == [{"type": "text", "text": "hello"}]
        assert result["details"]["isError"] is False
        assert result["details"]["raw"]["content"][0]["text"] == "hello"

    def test_raw_keeps_null_fields(self) -> None:
        raw = CallToolResult(content=[TextContent(type="text", text="hello")])
        item = adapt_result(raw)["details"]["raw"]["content"][0]
        assert "annotations" in item
        assert item["annotations"] is None

    def test_provider_error_flag_carried(self) -> None:
        raw = CallToolResult(content=[TextContent(type="text", text="nope")], isError=True)
        assert adapt_result(raw)["details"]["isError"] is True

    def test_image_keeps_mime(self) -> None:
        raw = CallToolResult(
            content=[ImageContent(type="image", data="aGVsbG8=", mimeType="image/jpeg")]
        )
        assert adapt_result(raw)["content"] == [
            {"type": "image", "data": "aGVsbG8=", "mimeType": "image/jpeg"}
        ]

    def test_image_default_mime(self) -> None:
        result = adapt_result({"content": [{"type": "image", "data": "xyz"}]})
        assert result["content"][0]["mimeType"] == "image/png"

    def test_embedded_resource_flattened(self) -> None:
        raw = CallToolResult(
            content=[
                EmbeddedResource(
                    type="resource",
                    resource=TextResourceContents(uri="file:///a.txt", text="file body"),
                )
            ]
        )
        assert adapt_result(raw)["content"] == [{"type": "text", "text": "file body"}]

    def test_resource_without_text_serialized(self) -> None:
        item = {"type": "resource", "uri": "file:///bin"}
        result = adapt_result({"content": [item]})
        assert json.loads(result["content"][0]["text"]) == item

    def test_unknown_item_serialized(self) -> None:
        result = adapt_result({"content": [{"type": "audio", "data": "..."}]})
        assert json.loads(result["content"][0]["text"])["type"] == "audio"

    def test_empty_content_falls_back_to_whole_result(self) -> None:
        result = adapt_result({"content": []})
        assert json.loads(result["content"][0]["text"]) == {"content": []}

    def test_missing_content(self) -> None:
        result = adapt_result({"value": 3, "isError": True})
        assert json.loads(result["content"][0]["text"]) == {"value": 3, "isError": True}
        assert result["details"]["isError"] is True

    def test_plain_string(self) -> None:
        result = adapt_result("just text")
        assert result["content"] == [{"type": "text", "text": "just text"}]
        assert result["details"] == {"raw": "just text", "isError": False}

    def test_none(self) -> None:
        result = adapt_result(None)
        assert result["content"] == [{"type": "text", "text": "null"}]
        assert result["details"]["isError"] is False


class TestStructuredResults:
    def test_error_result(self) -> None:
        result = error_result("mcp__fs__read_file", "boom")
        assert json.loads(result["content"][0]["text"]) == {
            "status": "error",
            "tool": "mcp__fs__read_file",
            "error": "boom",
        }
        assert result["details"] == {"error": "boom", "isError": True}

    def test_blocked_result(self) -> None:
        result = blocked_result("mcp__x__y", "no")
        assert json.loads(result["content"][0]["text"])["blocked"] is True
        assert result["details"] == {"error": "tool_blocked", "blocked": True}

    def test_disconnected_result(self) -> None:
        result = disconnected_result("fs")
        assert json.loads(result["content"][0]["text"])["error"] == (
            'MCP server "fs" is not connected'
        )
        assert result["details"] == {"error": "server_disconnected"}

    def test_cancelled_result(self) -> None:
        assert cancelled_result("t")["details"] == {"error": "cancelled", "cancelled": True}

    def test_is_error_result(self) -> None:
        assert is_error_result(error_result("t", "x")) is True
        assert is_error_result(blocked_result("t", "x")) is True
        assert is_error_result(adapt_result("fine")) is False
        assert is_error_result(None) is True
