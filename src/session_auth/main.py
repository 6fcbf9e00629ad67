"""Session Auth Service

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from session_auth.api.routes import session
from session_auth.config.settings import get_settings
from session_auth.core.auth.factory import build_adapters, get_identity_backend, get_identity_cache
from session_auth.core.session.coordinator import AuthCoordinator
from session_auth.infrastructure.redis.client import (
    close_redis_client,
    current_redis_client,
    get_redis_client,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings = get_settings()

    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    # Initialize Redis
    if settings.identity_backend == "local" or settings.session_cache == "redis":
        try:
            await get_redis_client()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    # Initialize coordinator
    backend = await get_identity_backend(settings)
    cache = await get_identity_cache(settings)
    coordinator = AuthCoordinator.from_settings(settings, backend, build_adapters(backend), cache)
    await coordinator.start()
    app.state.coordinator = coordinator
    logger.info(f"Session coordinator ready (status: {coordinator.session.status.value})")

    yield

    # Shutdown
    logger.info("Shutting down Session Auth Service")
    await coordinator.close()
    await close_redis_client()
    logger.info("Redis connection closed")


# Create FastAPI application
app = FastAPI(
    title="Session Auth Service",
    version=settings.service_version,
    description="Authentication session manager over password and federated providers",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Health check endpoint
@app.get("/health")
async def root_health_check():
    """Root health check endpoint

    Redis is only checked once the lifespan has connected it.
    """
    redis_client = current_redis_client()
    if redis_client is None:
        redis_status = "not_connected"
    elif await redis_client.health_check():
        redis_status = "healthy"
    else:
        redis_status = "unhealthy"

    return {
        "status": "degraded" if redis_status == "unhealthy" else "healthy",
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
        "services": {"redis": redis_status},
    }


# Include routers (session.router already has /api/v1/session prefix)
app.include_router(session.router, tags=["session"])


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "session_auth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
