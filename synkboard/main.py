"""
Entry point for the SynkBoard backend.

This script creates the FastAPI application and includes all API routers.
Run with:

    uvicorn synkboard.main:app --reload

"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from . import __version__
from .core.db import engine
from .models import Base

from .api import api_router
from .core.config import settings, get_app_env
from .core.errors import log_exception
from .core.logging_config import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="SynkBoard Backend", version=__version__)
    # Include API routers
    app.include_router(api_router)

    # Ensure tables exist for local use
    @app.on_event("startup")
    def _init_db() -> None:
        logger = logging.getLogger("startup")
        env = get_app_env()
        if settings.auto_create_db:
            try:
                Base.metadata.create_all(bind=engine)
            except Exception as exc:
                log_exception(logger, "DB create_all failed", exc=exc)
                if env == "prod":
                    raise
        logger.info("SynkBoard backend started env=%s", env)

    return app


app = create_app()
