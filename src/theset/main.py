"""FastAPI application factory."""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from theset import __version__
from theset.api.exception_handlers import register_exception_handlers
from theset.api.routers import api_router, health
from theset.config import Settings, get_settings
from theset.infrastructure.lifecycle import ExternalClients, lifespan
from theset.infrastructure.observability import RequestLoggingMiddleware


def create_app(
    settings: Settings | None = None,
    clients: ExternalClients | None = None,
) -> FastAPI:
    """Build the app. ``settings``/``clients`` override the env-driven defaults (tests)."""
    app = FastAPI(
        title="TheSet",
        description="Concerts, setlists and fan voting",
        version=__version__,
        lifespan=lifespan,
    )
    if settings is not None:
        app.state.settings = settings
    if clients is not None:
        app.state.clients = clients

    cors_origins = (settings or get_settings()).api.cors_origins
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)
    app.include_router(health.router, tags=["Health"])
    app.include_router(api_router, prefix="/api")
    return app


def run() -> None:
    """Serve with uvicorn using the configured host/port."""
    settings = get_settings()
    uvicorn.run(
        "theset.main:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
    )
