"""
FastAPI application entry point for the AURA backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aura.config import get_settings
from aura.dependencies import wire_push_trigger
from aura.errors import AuraError
from aura.routes import router

logger = logging.getLogger(__name__)


async def handle_aura_error(request: Request, exc: AuraError) -> JSONResponse:
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="AURA Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(AuraError, handle_aura_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router, prefix=settings.api_prefix)
    wire_push_trigger()
    return app


app = create_app()
