"""
vip Image Variant Service - Main Application

FastAPI application with:
- API versioning (/api/v1/)
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
- Storage abstraction (local + S3)
- Read-through variant cache with optional Redis tier
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import redis.asyncio as redis

from vip.core.background import WriteBackPool
from vip.core.cache import ImageCache
from vip.core.config import settings
from vip.core.exceptions import register_exception_handlers
from vip.core.logging import LogContext, setup_logging, get_logger
from vip.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from vip.core.storage import IImageStore, StorageFactory
from vip.pipeline.orchestrator import ImageFetcher
from vip.api.dependencies import get_image_store
from vip.api.v1 import api_v1_router


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - startup and shutdown."""
    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    app.state.storage = StorageFactory.get_storage()

    # Shared Redis tier is optional; payloads are raw bytes so no decoding
    app.state.redis = None
    if settings.REDIS_URL:
        app.state.redis = redis.from_url(settings.REDIS_URL, decode_responses=False)
        logger.info("redis_configured", url=settings.REDIS_URL)

    app.state.image_cache = ImageCache(
        max_bytes=settings.CACHE_MAX_BYTES,
        redis_client=app.state.redis,
        ttl_seconds=settings.REDIS_CACHE_TTL_SECONDS,
        prefix=settings.REDIS_KEY_PREFIX,
    )
    app.state.write_back = WriteBackPool(
        max_pending=settings.WRITE_BACK_MAX_PENDING,
        max_concurrency=settings.WRITE_BACK_CONCURRENCY,
    )
    app.state.fetcher = ImageFetcher(
        storage=app.state.storage,
        writer=app.state.write_back,
        jpeg_quality=settings.JPEG_QUALITY,
    )

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )
    logger.info("application_ready", max_width=settings.MAX_WIDTH)

    yield

    # Shutdown
    logger.info("application_shutting_down", write_back_pending=app.state.write_back.pending)
    await app.state.write_back.drain(timeout=30.0)
    if app.state.redis is not None:
        await app.state.redis.aclose()
    logger.info("application_shutdown_complete")


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Read-through image variant service.

    - **Resize**: `?s=<width>` scales proportionally (clamped to the configured maximum)
    - **Crop**: `?c=true` center-crops to a square after resizing
    - **Orientation**: EXIF orientation is applied before resizing
    - **GIFs**: served exactly as stored

    Each variant is computed once, cached in memory (and Redis when configured)
    and persisted back to the object store in the background.
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

# CORS
cors_origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Label by route template so image ids do not explode cardinality
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)

    return response


# Request ID middleware (registered last so it wraps timing)
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Bind a request id to every log line of the request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    with LogContext(request_id=request_id):
        response = await call_next(request)

    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "images": "/api/v1/images/{bucket_id}/{image_id}?s=<width>&c=<crop>",
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/ready", tags=["health"])
async def ready(request: Request, storage: IImageStore = Depends(get_image_store)):
    """Readiness check - verifies dependencies are available."""
    checks = {
        "storage": False,
    }

    try:
        checks["storage"] = await storage.ping()
    except Exception as e:
        logger.warning("storage_not_ready", error=str(e))

    if request.app.state.redis is not None:
        checks["redis"] = False
        try:
            await request.app.state.redis.ping()
            checks["redis"] = True
        except Exception as e:
            logger.warning("redis_not_ready", error=str(e))

    all_ready = all(checks.values())

    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "ready": all_ready,
            "checks": checks,
        }
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "vip.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
