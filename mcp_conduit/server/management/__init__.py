"""Management API package.

Exposes ``create_management_app`` to build the management ASGI sub-app with auth.
"""

from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware

from mcp_conduit.runtime.service import BridgeService
from mcp_conduit.server.management.auth import BearerAuthMiddleware, resolve_token
from mcp_conduit.server.management.router import management_routes


def create_management_app(
    service: BridgeService, config_token: Optional[str] = None
) -> Starlette:
    """Build the management sub-application with auth middleware.

    The token is resolved from the env var or *config_token* at
    construction time.
    """
    token = resolve_token(config_token)
    mgmt_app = Starlette(
        routes=management_routes.routes,
        middleware=[Middleware(BearerAuthMiddleware, token=token)],
    )
    mgmt_app.state.conduit_service = service
    return mgmt_app


__all__ = ["create_management_app", "management_routes"]
