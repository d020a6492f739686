"""
Route registration: includes all API routers into the FastAPI app.
"""

from fastapi import FastAPI

from routes.health import router as health_router
from routes.oauth import router as oauth_router
from routes.workflows import router as workflows_router


def register_routes(app: FastAPI):
    """Mount all API routers onto the app."""
    app.include_router(health_router)
    app.include_router(workflows_router)
    app.include_router(oauth_router)
