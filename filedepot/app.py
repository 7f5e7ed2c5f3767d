"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from filedepot.config import get_settings
from filedepot.dependencies import (
    get_session_context,
    get_upload_registry,
    reset_dependencies,
)
from filedepot.pages import RedirectRequired, handle_redirect_required
from filedepot.pages import router as pages_router
from filedepot.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    context = get_session_context()
    context.start()
    # Registers the per-user upload queues for sign-out cleanup.
    get_upload_registry()
    try:
        yield
    finally:
        reset_dependencies()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title=settings.app_title, version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(pages_router)
    app.add_exception_handler(RedirectRequired, handle_redirect_required)
    return app


app = create_app()
