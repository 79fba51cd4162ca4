"""Runtime state and the host-facing service layer for MCP Conduit.

Re-exports the state models so callers can write::

    from mcp_conduit.runtime import ConnectionPhase, ProviderStatus

The service itself lives in :mod:`mcp_conduit.runtime.service`.
"""

from mcp_conduit.runtime.models import (
    BridgeStatus,
    ConnectionPhase,
    ConnectionRecord,
    ProviderStatus,
    Readiness,
)

__all__ = [
    "BridgeStatus",
    "ConnectionPhase",
    "ConnectionRecord",
    "ProviderStatus",
    "Readiness",
]
