"""
Gatehouse API - Main Application Entry Point

Amenity bookings and visitor passes for residential buildings:
- Slot admission that never oversubscribes a slot's daily capacity
- Visitor pass verification with at-most-one effective verification
- Structured logging with request correlation
- PostgreSQL (or SQLite for local runs) behind one injected Database handle
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gatehouse.core.config import get_settings
from gatehouse.core.exceptions import GatehouseError, TransientError
from gatehouse.core.logging import setup_logging, get_logger
from gatehouse.core.metrics import metrics_endpoint
from gatehouse.api.router import api_router
from gatehouse.api.middleware import RequestLoggingMiddleware
from gatehouse.db.session import Database
from gatehouse.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: build the store handle, tear it down on exit."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    app.state.database = Database(settings.DATABASE_URL, settings, echo=settings.DEBUG)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    try:
        yield
    finally:
        await close_redis()
        await app.state.database.dispose()
        logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Amenity slot bookings and visitor pass verification for residential buildings",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(GatehouseError)
async def gatehouse_error_handler(request: Request, exc: GatehouseError):
    """Business failures become typed JSON errors, never 500s."""
    headers = None
    if isinstance(exc, TransientError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
        logger.error("request_transient_failure", error=exc.code, detail=exc.detail)
    else:
        logger.info("request_rejected", error=exc.code, detail=exc.detail)

    body = {"error": exc.code, "detail": exc.detail}
    alternatives = getattr(exc, "alternatives", None)
    if alternatives:
        body["available_slots"] = alternatives
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
