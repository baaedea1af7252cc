from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from supplydesk.api.routes import router
from supplydesk.config.settings import Settings, settings
from supplydesk.context import AppContext, build_context
from supplydesk.logging_config import configure_logging


def create_app(app_settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(app_settings.log_level)
        app_context = context or build_context(app_settings)
        app.state.context = app_context
        await app_context.start()
        try:
            yield
        finally:
            await app_context.stop()

    app = FastAPI(title="Crypto Supply Data API", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
