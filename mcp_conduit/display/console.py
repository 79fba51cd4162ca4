"""Plain-text status rendering."""

from typing import List, Optional

from mcp_conduit.runtime.models import ProviderStatus


def format_status_line(status: ProviderStatus) -> str:
    state = "connected" if status.connected else "disconnected"
    line = f"- {status.name} ({status.transport}): {state} | {status.tool_count} tools"
    if status.reconnect_attempts:
        line += f" | reconnect attempts: {status.reconnect_attempts}"
    return line


def format_status_text(statuses: Optional[List[ProviderStatus]]) -> str:
    """Render the bridge status the way the ``status`` command prints it.

    ``None`` means no bridge has been started yet.
    """
    if statuses is None:
        return "MCP Bridge: No active connections"
    if not statuses:
        return "MCP Bridge: No servers configured"
    lines = [format_status_line(s) for s in statuses]
    return "MCP Bridge Status:\n" + "\n".join(lines)
