"""HTTP surface for MCP Conduit."""
