"""
FastAPI Application - codemap API.

Stores payloads under their SHA-256 content key and serves them back,
backed by HybridStorage (Redis primary, PostgreSQL replica).
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from codemap import __version__
from codemap.api.models import error_body
from codemap.api.routers import admin, codes, system
from codemap.exceptions import InvalidPayload, StorageUnavailable
from codemap.storage import HybridStorage, open_storage
from codemap.utils.config import AppConfig
from codemap.utils.logging import get_logger, setup_logging
from codemap.utils.metrics import record_error


logger = get_logger(__name__)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Answer 429 in the service's response envelope."""
    response = JSONResponse(
        status_code=429,
        content=error_body(f"Rate limit exceeded: {exc.detail}"),
    )
    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    if view_rate_limit is not None:
        response = request.app.state.limiter._inject_headers(response, view_rate_limit)
    return response


async def storage_unavailable_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: {exc}")
    record_error("api", "storage_unavailable", "critical")
    return JSONResponse(status_code=500, content=error_body("storage unavailable"))


async def invalid_payload_handler(request: Request, exc: InvalidPayload) -> JSONResponse:
    return JSONResponse(status_code=400, content=error_body(str(exc)))


def create_app(
    config: Optional[AppConfig] = None,
    storage: Optional[HybridStorage] = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Application config; read from the environment if omitted
        storage: Pre-built storage; built from ``config`` at startup if
            omitted. A storage passed in is still connected and closed by
            the application lifespan.
    """
    config = config or AppConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        setup_logging(level=config.log_level, json_output=config.log_json)
        app.state.start_time = time.time()
        if storage is None:
            app.state.storage = await open_storage(config)
        else:
            await storage.connect()
            app.state.storage = storage
        logger.info(f"codemap API {__version__} started with backend={config.backend}")
        yield
        await app.state.storage.close()
        logger.info("codemap API stopped")

    app = FastAPI(
        title="codemap API",
        description="""
Content-addressed payload storage.

## Features

* **Compress** - Store a payload and get back its SHA-256 content key
* **Decompress** - Resolve a content key back to the payload
* **Admin** - List replica records and remove keys
* **System Monitoring** - Health checks and Prometheus metrics

## Storage

Reads try Redis first and fall back to PostgreSQL; writes go to Redis and
are copied to PostgreSQL in the background.
""",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "codes", "description": "Compress and decompress endpoints"},
            {"name": "admin", "description": "Record listing and removal"},
            {"name": "system", "description": "System health and status endpoints"},
        ],
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.config = config

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[config.api.rate_limit],
        enabled=config.api.rate_limit_enabled,
        headers_enabled=True,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StorageUnavailable, storage_unavailable_handler)
    app.add_exception_handler(InvalidPayload, invalid_payload_handler)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "codemap API", "version": __version__}

    app.include_router(codes.router, prefix="/api", tags=["codes"])
    if config.api.admin_enabled:
        app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])
        logger.warning("Admin routes enabled at /api/v1/admin; keep them off public networks")
    app.include_router(system.router, prefix="/api/v1/system", tags=["system"])

    # Exposes /metrics for Prometheus scraping
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    return app
