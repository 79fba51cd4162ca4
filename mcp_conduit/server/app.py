"""Starlette ASGI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from starlette.applications import Starlette
from starlette.routing import Mount

from mcp_conduit.constants import MANAGEMENT_API_PREFIX, SERVER_NAME, SERVER_VERSION
from mcp_conduit.runtime.service import BridgeService
from mcp_conduit.server.management import create_management_app

logger = logging.getLogger(__name__)


def create_app(service: BridgeService, *, token: Optional[str] = None) -> Starlette:
    """Create the ASGI app serving the management API for *service*.

    Startup begins connecting providers in the background; shutdown
    disposes every connection.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info("%s v%s starting.", SERVER_NAME, SERVER_VERSION)
        tools = service.resolve_tools()
        logger.info("Bridge started, %d tool(s) currently exposed.", len(tools))
        try:
            yield
        finally:
            await service.stop()
            logger.info("%s stopped.", SERVER_NAME)

    mgmt_app = create_management_app(service, token)
    application = Starlette(
        lifespan=lifespan,
        routes=[Mount(MANAGEMENT_API_PREFIX, app=mgmt_app)],
    )
    application.state.conduit_service = service
    logger.info(
        "Starlette ASGI app '%s' created. Manage on %s", SERVER_NAME, MANAGEMENT_API_PREFIX
    )
    return application
