"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from prospector.config import Settings, load_config
from prospector.websets import WebsetCache, WebsetsClient
from prospector.web.state import AppState

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[WebsetsClient] = None,
    cache: Optional[WebsetCache] = None,
    session_factory: Optional[sessionmaker] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator can be injected; anything omitted is built from settings.
    """
    from prospector import __version__

    settings = settings or load_config()
    state = AppState(settings, cache=cache, client=client, session_factory=session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Prospector API starting (exa configured=%s)", bool(settings.exa_api_key))
        yield
        await state.close()

    app = FastAPI(
        title="Prospector",
        description="Prospect discovery on top of Exa Websets",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.prospector = state

    # CORS middleware for production
    origins = settings.allowed_origins
    if origins != "*":
        origins = [o.strip() for o in origins.split(",")]
    else:
        origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API v1 routes
    from prospector.web.api.v1 import router as api_router
    app.include_router(api_router)

    return app
