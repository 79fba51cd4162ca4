"""Provider bridge: connections, tool namespacing, safety, and result adaptation."""

from mcp_conduit.bridge.connection import ProviderConnection
from mcp_conduit.bridge.manager import BridgeManager, reconnect_delay_ms
from mcp_conduit.bridge.naming import build_tool_name, parse_tool_name, sanitize_segment
from mcp_conduit.bridge.results import adapt_result
from mcp_conduit.bridge.safety import (
    BROWSER_PROTECTION_POLICY,
    BlockDecision,
    SafetyDecision,
    SafetyPolicy,
    SafetyRule,
    build_safety_policy,
)
from mcp_conduit.bridge.schema import normalize_parameters
from mcp_conduit.bridge.tool import BridgedTool

__all__ = [
    "BROWSER_PROTECTION_POLICY",
    "BlockDecision",
    "BridgeManager",
    "BridgedTool",
    "ProviderConnection",
    "SafetyDecision",
    "SafetyPolicy",
    "SafetyRule",
    "adapt_result",
    "build_safety_policy",
    "build_tool_name",
    "normalize_parameters",
    "parse_tool_name",
    "reconnect_delay_ms",
    "sanitize_segment",
]
