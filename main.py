"""
Comment moderation and search service
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
import uvicorn

from api.v1 import v1_router
from middleware.rate_limiting import RateLimitingMiddleware
from services.field_encryption import FieldEncryptionAdapter
from services.rate_limiter import build_rate_limiter
from services.result_cache import build_result_cache
from services.similarity import build_similarity_scorer
from services.suggestions import EditDistanceSuggester
from utils.config import get_config
from utils.config_bootstrap import validate_config_on_startup
from utils.database import create_engine_and_session_factory, init_db
from utils.error_handler import GlobalExceptionHandler, register_exception_handlers
from utils.middleware import RequestContextMiddleware
from utils.monitoring import init_sentry
from utils.response_envelope import format_success_response
from utils.structured_logging import setup_structured_logging, get_structured_logger

logger = get_structured_logger(__name__)

SERVICE_NAME = "comment-moderation-service"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan with fail-fast validation and proper setup"""

    # Fail-fast config validation
    try:
        validate_config_on_startup()
    except SystemExit:
        logger.error("Configuration validation failed - aborting startup")
        raise
    config = get_config()

    setup_structured_logging(config.log_level)
    init_sentry(config)
    logger.info("Starting comment service", environment=config.environment)

    # Process-wide handles, injected into request handlers through app.state
    engine, session_factory = create_engine_and_session_factory(
        config.database_url, echo=config.environment == "development"
    )
    await init_db(engine)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.encryption = FieldEncryptionAdapter(config.comments_encryption_key)
    app.state.rate_limiter = build_rate_limiter(config)
    app.state.result_cache = build_result_cache(config)
    app.state.similarity_scorer = build_similarity_scorer(config)
    app.state.suggester = EditDistanceSuggester()
    logger.info("Database schema validated")

    yield

    # Shutdown
    logger.info("Application shutting down")
    await app.state.rate_limiter.close()
    await app.state.result_cache.close()
    await app.state.similarity_scorer.close()
    await engine.dispose()


app = FastAPI(
    title="Comment Moderation API",
    description="Multi-platform comment listing, search, faceting and bulk moderation",
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Comments", "description": "Listing, search and moderation of platform comments"},
        {"name": "Health", "description": "System health and monitoring"}
    ]
)

# Last added runs first: request context wraps error capture, which wraps rate limiting
app.add_middleware(RateLimitingMiddleware)
app.add_middleware(GlobalExceptionHandler)
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After", "X-Request-ID"],
)

register_exception_handlers(app)
app.include_router(v1_router, prefix="/api")


@app.get("/metrics", include_in_schema=False)
async def get_metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """
    Health check endpoint with dependency status

    Returns service status plus database and Redis connectivity.
    """
    config = get_config()
    dependencies = {}

    try:
        async with app.state.session_factory() as db:
            await db.execute(text("SELECT 1"))
        dependencies["database"] = "healthy"
    except Exception as e:
        dependencies["database"] = "unhealthy"
        logger.error("Database health check failed", error=str(e))

    limiter_backend = getattr(app.state.rate_limiter, "backend", None)
    redis_client = getattr(limiter_backend, "redis_client", None)
    if redis_client is None:
        dependencies["redis"] = "not_configured"
    else:
        try:
            await redis_client.ping()
            dependencies["redis"] = "healthy"
        except Exception as e:
            dependencies["redis"] = "unhealthy"
            logger.error("Redis health check failed", error=str(e))

    healthy = dependencies["database"] == "healthy" and dependencies["redis"] != "unhealthy"
    return format_success_response({
        "status": "healthy" if healthy else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc),
        "dependencies": dependencies,
        "environment": config.environment,
    })


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with API information"""
    return format_success_response({
        "message": "Comment Moderation API",
        "version": SERVICE_VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
        "api_base": "/api/v1"
    })


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=get_config().port,
        reload=get_config().environment == "development"
    )
