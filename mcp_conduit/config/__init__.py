"""Configuration loading, validation, and merging for MCP Conduit."""

from mcp_conduit.config.expand import expand_env_vars
from mcp_conduit.config.ide import DynamicProviderRegistry, convert_ide_server
from mcp_conduit.config.loader import load_conduit_config, parse_provider_records
from mcp_conduit.config.merge import merge_provider_configs
from mcp_conduit.config.schema import (
    TRANSPORT_KINDS,
    TRANSPORT_STDIO,
    TRANSPORT_STREAM,
    ConduitConfig,
    ProviderConfig,
    SafetyConfig,
    SafetyRuleConfig,
    ServerSettings,
    validate_provider_config,
)

__all__ = [
    "TRANSPORT_KINDS",
    "TRANSPORT_STDIO",
    "TRANSPORT_STREAM",
    "ConduitConfig",
    "DynamicProviderRegistry",
    "ProviderConfig",
    "SafetyConfig",
    "SafetyRuleConfig",
    "ServerSettings",
    "convert_ide_server",
    "expand_env_vars",
    "load_conduit_config",
    "merge_provider_configs",
    "parse_provider_records",
    "validate_provider_config",
]
