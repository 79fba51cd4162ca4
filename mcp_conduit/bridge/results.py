"""Conversion of provider call results into host tool results.

A host result is a plain dict ``{"content": [...], "details": {...}}`` whose
content blocks are either ``{"type": "text", "text": ...}`` or
``{"type": "image", "data": ..., "mimeType": ...}``.  :func:`adapt_result`
never raises: malformed provider output degrades to readable text.
"""

import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"

BLOCKED_NOTICE = "[BLOCKED: This tool is disabled for safety. Do NOT attempt to call it.]"


def _to_plain(raw: Any) -> Any:
    """Turn pydantic result objects (``CallToolResult`` etc.) into plain data."""
    model_dump = getattr(raw, "model_dump", None)
    if callable(model_dump):
        try:
            return model_dump(mode="json", by_alias=True)
        except Exception:
            logger.debug("model_dump() failed for %s", type(raw).__name__, exc_info=True)
            return repr(raw)
    return raw


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def _adapt_item(item: Any) -> Dict[str, Any]:
    if not isinstance(item, dict):
        return text_block(_serialize(item))
    item_type = item.get("type")
    if item_type == "text" and isinstance(item.get("text"), str):
        return text_block(item["text"])
    if item_type == "image" and isinstance(item.get("data"), str):
        return {
            "type": "image",
            "data": item["data"],
            "mimeType": item.get("mimeType") or DEFAULT_IMAGE_MIME,
        }
    if item_type == "resource":
        if isinstance(item.get("text"), str):
            return text_block(item["text"])
        # MCP embedded resources carry their text one level down.
        resource = item.get("resource")
        if isinstance(resource, dict) and isinstance(resource.get("text"), str):
            return text_block(resource["text"])
        return text_block(_serialize(item))
    return text_block(_serialize(item))


def adapt_result(raw: Any) -> Dict[str, Any]:
    """Map a raw provider result onto the host result shape.

    ``details`` always carries the untouched result under ``raw`` and an
    ``isError`` flag taken from the provider's own ``isError``.
    """
    try:
        plain = _to_plain(raw)
        if not isinstance(plain, dict):
            return {
                "content": [text_block(_serialize(plain))],
                "details": {"raw": plain, "isError": False},
            }

        is_error = plain.get("isError") is True
        items = plain.get("content")
        if not isinstance(items, list):
            return {
                "content": [text_block(_serialize(plain))],
                "details": {"raw": plain, "isError": is_error},
            }

        content: List[Dict[str, Any]] = [_adapt_item(item) for item in items]
        if not content:
            content.append(text_block(_serialize(plain)))

        return {
            "content": content,
            "details": {"raw": plain, "isError": is_error},
        }
    except Exception as exc:
        logger.warning("Could not adapt provider result: %s", exc, exc_info=True)
        return {"content": [text_block(repr(raw))], "details": {"raw": None, "isError": False}}


# ── Structured error results ──────────────────────────────────────────────


def _json_text_result(payload: Dict[str, Any], details: Dict[str, Any]) -> Dict[str, Any]:
    return {"content": [text_block(json.dumps(payload, ensure_ascii=False))], "details": details}


def error_result(tool_name: str, error: str) -> Dict[str, Any]:
    """Result for a provider call that raised."""
    return _json_text_result(
        {"status": "error", "tool": tool_name, "error": error},
        {"error": error, "isError": True},
    )


def blocked_result(tool_name: str, error: str) -> Dict[str, Any]:
    """Result for a call refused by per-tool blocking or the safety gate."""
    return _json_text_result(
        {"status": "error", "tool": tool_name, "error": error, "blocked": True},
        {"error": "tool_blocked", "blocked": True},
    )


def disconnected_result(provider_name: str) -> Dict[str, Any]:
    return _json_text_result(
        {"status": "error", "error": f'MCP server "{provider_name}" is not connected'},
        {"error": "server_disconnected"},
    )


def cancelled_result(tool_name: str) -> Dict[str, Any]:
    return _json_text_result(
        {"status": "error", "tool": tool_name, "error": "Tool call was cancelled"},
        {"error": "cancelled", "cancelled": True},
    )


def is_error_result(result: Optional[Dict[str, Any]]) -> bool:
    """Whether a host result represents a failed or refused call."""
    if not result:
        return True
    details = result.get("details")
    if not isinstance(details, dict):
        return False
    return bool(details.get("isError") or details.get("blocked") or details.get("error"))
