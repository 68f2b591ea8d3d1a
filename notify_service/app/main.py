"""FastAPI application factory.

Run with:
    uvicorn notify_service.app.main:app
"""

from __future__ import annotations

from fastapi import FastAPI

from notify_service.app.exception_handlers import configure_exception_handlers
from notify_service.app.lifespan import lifespan
from notify_service.app.router import setup_routers
from notify_service.core.settings import get_app_settings


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app_settings = get_app_settings()

    app = FastAPI(
        title=app_settings.title,
        version=app_settings.version,
        docs_url=app_settings.docs_url,
        openapi_url=app_settings.openapi_url,
        root_path=app_settings.root_path,
        debug=app_settings.debug,
        lifespan=lifespan,
    )

    configure_exception_handlers(app)
    setup_routers(app, app_settings)
    return app


app = create_app()
