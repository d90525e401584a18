"""
Shelfnet API entrypoint.

Wires the routers, CORS, request metrics and the domain-error handler onto
one FastAPI app, and exposes the health / readiness / liveness probes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shelfnet.config import get_settings
from shelfnet.database import create_tables, ping
from shelfnet.errors import ShelfnetError
from shelfnet.logging_config import setup_logging
from shelfnet.middleware.metrics import metrics_response, track_requests
from shelfnet.routers import admin, auth, books, bookshelves, feed, reading, reviews, users
from shelfnet.services.catalog_client import close_client

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("shelfnet_starting", environment=settings.environment)
    # deployed environments migrate with alembic
    if settings.environment == "development":
        await create_tables()
        logger.info("database_tables_created")

    yield

    await close_client()
    logger.info("shelfnet_stopped")


app = FastAPI(
    title="Shelfnet",
    description="Social reading platform: shared catalog, bookshelves, reviews and activity feeds",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.enable_metrics:
    app.middleware("http")(track_requests)


@app.exception_handler(ShelfnetError)
async def shelfnet_error_handler(request: Request, exc: ShelfnetError):
    logger.info(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        status=exc.status_code,
        error=type(exc).__name__,
        detail=exc.detail,
    )
    body = {"detail": exc.detail}
    existing_id = getattr(exc, "existing_id", None)
    if existing_id is not None:
        body["existing_id"] = existing_id
    return JSONResponse(status_code=exc.status_code, content=body)


for module in (auth, books, users, bookshelves, reviews, reading, feed, admin):
    app.include_router(module.router)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "healthy", "service": "shelfnet"}


@app.get("/ready", tags=["Health"])
async def readiness():
    """Ready once the database answers."""
    try:
        await ping()
    except Exception as e:
        logger.warning("readiness_check_failed", check="database", error=str(e))
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": {"database": "error"}})
    return {"status": "ready", "checks": {"database": "ok"}}


@app.get("/live", tags=["Health"])
async def liveness():
    return {"status": "alive"}


@app.get("/metrics", tags=["Monitoring"], include_in_schema=False)
async def metrics():
    return metrics_response()
