"""FastAPI application factory for the deposit protocol."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import Response

from plnstage import __version__
from plnstage.api import documents
from plnstage.api.deps import get_settings
from plnstage.api.handler import IngestProtocolHandler
from plnstage.api.routes import router
from plnstage.config import Settings
from plnstage.domain.errors import SwordError
from plnstage.domain.services import utcnow
from plnstage.domain.types import Clock
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    state: StateManager | None = None,
    clock: Clock = utcnow,
) -> FastAPI:
    """Build the protocol application.

    Args:
        settings: Override settings (useful for testing). When None the cached
            settings from ``get_settings`` are used.
        state: State repository. Defaults to one on ``settings.state_file``.
        clock: Time source for contact timestamps and documents
    """
    settings = settings or get_settings()
    state = state if state is not None else StateManager(settings.state_file)

    app = FastAPI(title="PLN staging server", version=__version__)
    app.state.settings = settings
    app.state.handler = IngestProtocolHandler(settings, state, clock=clock)
    app.dependency_overrides[get_settings] = lambda: settings

    async def sword_error_handler(request: Request, exc: SwordError) -> Response:
        logger.warning(f"{request.method} {request.url.path} - {exc.status_code} - {exc.message}")
        return Response(
            content=documents.error_document(exc.status_code, exc.message, clock()),
            status_code=exc.status_code,
            media_type="text/xml",
        )

    app.add_exception_handler(SwordError, sword_error_handler)
    app.include_router(router, prefix=settings.sword_prefix, tags=["sword"])
    return app
