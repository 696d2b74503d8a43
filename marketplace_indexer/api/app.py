#!/usr/bin/env python3
"""
FastAPI application exposing the indexer's read and maintenance operations.
"""

import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings, get_settings
from ..errors import IndexerError
from ..services import Services
from .routes.auctions import router as auctions_router
from .routes.chain import router as chain_router
from .routes.maintenance import router as maintenance_router
from .routes.users import router as users_router

logger = logging.getLogger(__name__)


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: error encountered: {exc}")
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.debug(trace)
    return JSONResponse(status_code=500, content={"error": str(exc), "trace": trace})


def create_app(services: Services, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await services.startup()
        yield
        await services.shutdown()

    app = FastAPI(
        title="NFT Marketplace Indexer API",
        description="Auction state indexed from marketplace contract events",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(IndexerError, _error_response)
    app.add_exception_handler(Exception, _error_response)

    app.include_router(auctions_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(maintenance_router, prefix="/api")
    app.include_router(chain_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint with API status"""
        return {
            "name": "NFT Marketplace Indexer API",
            "version": __version__,
            "mode": settings.app_mode.value,
            "status": "running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        store_ok = await services.store.check_connection()
        content = {
            "status": "healthy" if store_ok else "unhealthy",
            "database": "healthy" if store_ok else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return JSONResponse(status_code=200 if store_ok else 503, content=content)

    return app
