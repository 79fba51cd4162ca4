"""Bearer token guard for the bridge management routes.

The token comes from ``CONDUIT_MGMT_TOKEN`` or, failing that, ``server.token``
in the config file.  Without a token every route is open.  ``/health`` stays
public so a supervisor can probe provider readiness without credentials.
Refused requests are logged with the bridge operation they tried to reach
(a provider reconnect, a tool call, a status read).
"""

import hmac
import logging
import os
from typing import Optional

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

MGMT_TOKEN_ENV_VAR = "CONDUIT_MGMT_TOKEN"

PUBLIC_PATHS = frozenset({"/health"})

_BEARER_PREFIX = "Bearer "


def resolve_token(config_token: Optional[str] = None) -> Optional[str]:
    """Return the management token, or ``None`` when auth is disabled."""
    env_token = os.environ.get(MGMT_TOKEN_ENV_VAR, "").strip()
    if env_token:
        logger.debug("Management API token resolved from %s env var.", MGMT_TOKEN_ENV_VAR)
        return env_token
    if config_token and config_token.strip():
        logger.debug("Management API token resolved from config file.")
        return config_token.strip()
    return None


def describe_operation(method: str, path: str) -> str:
    """Name the bridge operation a management request targets."""
    parts = [p for p in path.split("/") if p]
    if parts[:1] == ["reconnect"]:
        if len(parts) > 1:
            return f"reconnect of provider '{parts[1]}'"
        return "reconnect of all providers"
    if parts == ["tools", "call"]:
        return "tool call"
    if method == "GET" and len(parts) == 1:
        return f"{parts[0]} read"
    return f"{method} {path}"


def _relative_path(scope: Scope) -> str:
    path = scope.get("path", "/")
    root_path = scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        path = path[len(root_path):] or "/"
    return path


def _bearer_token(scope: Scope) -> Optional[str]:
    for key, value in scope.get("headers", []):
        if key == b"authorization":
            header = value.decode("latin-1")
            if header.startswith(_BEARER_PREFIX):
                return header[len(_BEARER_PREFIX):]
            return None
    return None


class BearerAuthMiddleware:
    """ASGI middleware requiring ``Authorization: Bearer <token>`` on management routes."""

    def __init__(self, app: ASGIApp, token: Optional[str] = None) -> None:
        self.app = app
        self._token = token
        if token:
            logger.info("Management API authentication ENABLED.")
        else:
            logger.warning(
                "Management API authentication DISABLED, provider reconnects and tool "
                "calls are open. Set %s to secure them.",
                MGMT_TOKEN_ENV_VAR,
            )

    @property
    def auth_enabled(self) -> bool:
        return self._token is not None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.auth_enabled:
            await self.app(scope, receive, send)
            return

        path = _relative_path(scope)
        if path.rstrip("/") in PUBLIC_PATHS:
            await self.app(scope, receive, send)
            return

        provided = _bearer_token(scope)
        if provided is not None and hmac.compare_digest(
            provided.encode("utf-8"), self._token.encode("utf-8")  # type: ignore[union-attr]
        ):
            await self.app(scope, receive, send)
            return

        operation = describe_operation(scope.get("method", "GET"), path)
        client = scope.get("client")
        client_host = client[0] if client else "unknown"
        if provided is None:
            reason = "missing or malformed Authorization header"
            message = "Missing or malformed Authorization header. Expected: Bearer <token>"
        else:
            reason = "invalid bearer token"
            message = "Invalid bearer token."
        logger.warning("Refused %s from %s: %s.", operation, client_host, reason)
        response = _unauthorized(message, operation)
        await response(scope, receive, send)


def _unauthorized(message: str, operation: str) -> JSONResponse:
    return JSONResponse(
        {"error": "unauthorized", "message": message, "operation": operation},
        status_code=401,
        headers={"WWW-Authenticate": "Bearer"},
    )
