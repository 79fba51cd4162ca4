"""Per-provider operation blocking, applied when tools are discovered."""

from typing import Dict, FrozenSet

from mcp_conduit.bridge.results import BLOCKED_NOTICE
from mcp_conduit.config.schema import ProviderConfig

# Known provider name -> {operation: what to do instead}.
DEFAULT_BLOCKED_TOOLS: Dict[str, Dict[str, str]] = {
    "chrome-devtools": {
        "close_page": (
            "You must NOT close browser tabs/pages. Use \"new_page\" to create new tabs instead."
        ),
    },
}


def resolve_blocked_tools(config: ProviderConfig) -> FrozenSet[str]:
    """Operations that *config*'s provider lists but must never run.

    An explicit ``blocked_tools`` list wins, even when empty.
    """
    if config.blocked_tools is not None:
        return frozenset(config.blocked_tools)
    return frozenset(DEFAULT_BLOCKED_TOOLS.get(config.name, {}))


def blocked_description(description: str) -> str:
    return f"{description} {BLOCKED_NOTICE}"


def blocked_message(provider_name: str, operation: str) -> str:
    """Explain to the caller why *operation* was refused."""
    message = f'Tool "{operation}" is blocked for safety.'
    hint = DEFAULT_BLOCKED_TOOLS.get(provider_name, {}).get(operation)
    if hint:
        message += f" {hint}"
    return message
