"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from profiling_sessions.api.errors import register_error_handlers
from profiling_sessions.api.sessions import router as sessions_router
from profiling_sessions.app_logging import configure_logging
from profiling_sessions.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await asyncio.to_thread(state_container.controller.recover)
        except Exception:
            logger.exception("Failed to recover sessions from the session store")
        state_container.sweeper.start()
        yield
        await state_container.sweeper.stop()
        drained = await asyncio.to_thread(state_container.controller.drain)
        if drained:
            logger.info("Stopped %s running sessions on shutdown", drained)
        await state_container.close_resources()

    app = FastAPI(title="Profiling Sessions", lifespan=lifespan)
    app.state.container = container
    register_error_handlers(app)
    app.include_router(sessions_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
