"""Shared constants for MCP Conduit."""

SERVER_NAME = "MCP Conduit"
SERVER_VERSION = "0.1.0"
CLIENT_NAME = "mcp-conduit"

# Network defaults (management API)
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9100
MANAGEMENT_API_PREFIX = "/manage/v1"

# Logging defaults
LOG_DIR = "logs"

# Tool naming
TOOL_PREFIX = "mcp__"
TOOL_SEPARATOR = "__"
STATUS_TOOL_NAME = "mcp__bridge_status"

# Provider connection defaults
DEFAULT_CONNECT_TIMEOUT_MS = 30_000
DEFAULT_MAX_RECONNECT_ATTEMPTS = 3
DEFAULT_PING_INTERVAL_MS = 15_000
RECONNECT_BASE_DELAY_MS = 1_000
RECONNECT_MAX_DELAY_MS = 30_000

DISCOVERY_TIMEOUT = 10.0  # seconds for the tools/list round-trip
PING_TIMEOUT = 10.0  # seconds for a liveness ping
CLOSE_TIMEOUT = 5.0  # seconds to wait for a connection to shut down
