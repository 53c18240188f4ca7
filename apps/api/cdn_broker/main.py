"""CDN broker API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from cdn_broker.errors import BrokerError
from cdn_broker.middleware.api_version import APIVersionMiddleware
from cdn_broker.middleware.auth import BasicAuthMiddleware
from cdn_broker.middleware.correlation import CorrelationIDMiddleware
from cdn_broker.routes import broker, health
from cdn_broker.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting CDN broker...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down CDN broker...")


app = FastAPI(
    title="CDN Broker",
    description="Open Service Broker for CloudFront routes with managed certificates",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters - last added is first executed)
app.add_middleware(APIVersionMiddleware)
app.add_middleware(BasicAuthMiddleware)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(health.router)
app.include_router(broker.router)


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError):
    """Render broker errors in the service-broker error format."""
    log_extra = {
        "path": request.url.path,
        "correlation_id": getattr(request.state, "correlation_id", None),
    }
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}", extra=log_extra)
    else:
        logger.info(f"{type(exc).__name__}: {exc.message}", extra=log_extra)

    content = {"description": exc.message}
    if exc.error_code:
        content["error"] = exc.error_code
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400 in the service-broker API."""
    problems = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "BadRequest", "description": "; ".join(problems)},
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "CDN Broker",
        "version": "0.1.0",
        "catalog": "/v2/catalog",
        "health": "/health",
    }
