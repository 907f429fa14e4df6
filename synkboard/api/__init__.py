"""
API package for the SynkBoard backend.

This package aggregates all API routers to be included in the FastAPI
application. The API is versioned under ``/api/v1``.
"""

from fastapi import APIRouter
from .v1.health import router as health_router
from .v1.records import router as records_router
from .v1.rules import router as rules_router
from .v1.widgets import router as widgets_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(records_router)
api_router.include_router(rules_router)
api_router.include_router(widgets_router)
