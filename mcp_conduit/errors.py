"""Custom exception classes for MCP Conduit."""

from typing import Optional


class ConduitBaseError(Exception):
    """Base class for all custom exceptions in MCP Conduit."""

    pass


class ConfigurationError(ConduitBaseError):
    """Raised when a configuration file or a provider record is invalid."""

    pass


class ProviderConnectError(ConduitBaseError):
    """
    Raised when connecting to a provider fails,
    or when the provider rejects the handshake.
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        orig_exc: Optional[BaseException] = None,
    ):
        self.provider_name = provider_name
        self.orig_exc = orig_exc

        full_msg = "Provider connection error"
        if provider_name:
            full_msg += f" (provider: {provider_name})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)


class BridgeDisposedError(ConduitBaseError):
    """Raised when a disposed BridgeManager is asked to connect again."""

    def __init__(self) -> None:
        super().__init__("BridgeManager has been disposed")


class ToolCallCancelled(ConduitBaseError):
    """Raised when a tool call is cancelled through its cancellation event."""

    pass
