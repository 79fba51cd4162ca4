"""
MCP Conduit - bridges external MCP capability providers into a host's tool interface.

MCP Conduit connects to any number of MCP providers (stdio subprocesses or
streamed SSE endpoints), discovers their operations, and re-exposes them as
namespaced, schema-described tools that a host application can invoke by name.
"""

from mcp_conduit.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
