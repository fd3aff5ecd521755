"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from mediscan.backend import BackendClient, create_backend_client
from mediscan.config import Settings, get_settings
from mediscan.routes import router
from mediscan.workflow import AnalysisRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None, backend: Optional[BackendClient] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    backend = backend or create_backend_client(settings)
    registry = AnalysisRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup")
        yield
        logger.info("Application shutdown, cancelling %d running analyses", len(registry))
        await registry.shutdown()

    app = FastAPI(title="MediScan API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.backend = backend
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o) for o in settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "ok",
            "running_analyses": len(request.app.state.registry),
        }

    return app


app = create_app()
