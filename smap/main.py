"""
SMAP API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import get_settings
from .database import engine, Base
from .exceptions import SmapError
from .logging_config import api_logger
from .middleware import SecurityHeadersMiddleware, RequestLoggingMiddleware
from .limiter import limiter
from .responses import ApiException, api_exception_handler
from .routes import (
    auth_router,
    scheduled_posts_router,
    facebook_router,
    analytics_router,
    connections_router,
    ai_router,
    health_router,
)

settings = get_settings()

# Create tables (in production, use Alembic migrations instead)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    api_logger.info("SMAP API starting", environment=settings.environment, version=__version__)
    yield
    api_logger.info("SMAP API stopped")


app = FastAPI(
    title="SMAP API",
    description="Social media analytics, scheduling and publishing API",
    version=__version__,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Domain and API errors share one JSON error shape
app.add_exception_handler(ApiException, api_exception_handler)
app.add_exception_handler(SmapError, api_exception_handler)

# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware (only in debug mode)
if settings.debug:
    app.add_middleware(RequestLoggingMiddleware)

# CORS - Properly configured with specific methods
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    max_age=3600,  # Cache preflight requests for 1 hour
)

# Routes
app.include_router(auth_router)
app.include_router(scheduled_posts_router)
app.include_router(facebook_router)
app.include_router(analytics_router)
app.include_router(connections_router)
app.include_router(ai_router)
app.include_router(health_router)


@app.get("/")
def root():
    """Root endpoint points at the API docs."""
    return {
        "message": "SMAP API",
        "docs": "/api/docs" if settings.debug else "Disabled in production",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="debug" if settings.debug else "info")
