"""
FastAPI application entry point for the household API.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from homebase.config import get_settings
from homebase.dependencies import Resources, build_resources
from homebase.hooks import router as hooks_router
from homebase.routes import router


def create_app(resources: Optional[Resources] = None) -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Homebase API (FastAPI)", version="0.1.0")
    app.state.resources = resources or build_resources(settings)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(hooks_router, prefix=settings.api_prefix)
    return app


app = create_app()
