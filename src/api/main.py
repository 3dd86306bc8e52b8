"""
FastAPI application entry point.

Builds the pipeline services once in the lifespan, maps pipeline errors
to HTTP status codes and mounts the competitor and monitoring routes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes.competitors import router as competitors_router
from api.routes.monitoring import router as monitoring_router
from core.config import settings
from core.errors import (
    InvalidRequestError,
    PipelineError,
    TaskNotFoundError,
)
from workers.services import PipelineServices, configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup/shutdown events."""
    # Tests install their own services before startup
    owned = getattr(app.state, "services", None) is None
    if owned:
        configure_logging(settings)
        app.state.services = await PipelineServices.from_settings(settings)
    yield
    if owned:
        await app.state.services.aclose()


app = FastAPI(
    title="Competitor Discovery & Price Monitoring",
    description="Competitor discovery, offering matching and price monitoring",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Error mapping ─────────────────────────────────────────────────────

def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return _error(400, exc)


@app.exception_handler(TaskNotFoundError)
async def task_not_found_handler(request: Request, exc: TaskNotFoundError) -> JSONResponse:
    return _error(404, exc)


# AllBranchesFailedError, CapabilityUnavailableError and root-page FetchError
@app.exception_handler(PipelineError)
async def upstream_failure_handler(request: Request, exc: PipelineError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error(502, exc)


# ── Routes ────────────────────────────────────────────────────────────
app.include_router(competitors_router)
app.include_router(monitoring_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "competitor-discovery"}
