"""
FastAPI application initialization
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.middleware import RequestContextMiddleware
from api.routes import fetch, health, metrics
from core.config import settings
from core.database import async_session_maker
from core.exceptions import MetricsHubError, ProviderNotFoundError
from core.logging import setup_logging
from orchestration.scheduler import MetricsScheduler
from orchestration.store import MetricsStore
from schemas.api import ErrorResponse

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Metrics Hub API",
    description="Aggregates CRM, web analytics and manually tracked metrics into one store",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Initialize Scheduler
scheduler = MetricsScheduler(MetricsStore(async_session_maker))


# Include routers
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(fetch.router)


@app.exception_handler(MetricsHubError)
async def metrics_hub_error_handler(request: Request, exc: MetricsHubError):
    """Render pipeline errors as ErrorResponse"""
    status_code = 404 if isinstance(exc, ProviderNotFoundError) else 500
    logger.error(f"Request failed: {exc.describe()}")
    body = ErrorResponse(error=exc.__class__.__name__, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Metrics Hub API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Metrics Hub API")
    scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Metrics Hub API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "metrics": "/api/metrics",
            "fetch": "/api/fetch",
            "fetch_stale": "/api/fetch/stale"
        }
    }
