"""Health check routes."""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from cdn_broker.healthchecks import CHECKS, run_all, run_check
from cdn_broker.settings import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "cdn-broker",
        "version": "0.1.0",
    }


@router.get("/healthcheck")
def healthcheck_all():
    """Run every dependency probe."""
    results = run_all(get_settings())
    errors = {name: error for name, error in results.items() if error}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if errors else status.HTTP_200_OK,
        content={
            "status": "unhealthy" if errors else "healthy",
            "checks": {name: error or "ok" for name, error in results.items()},
        },
    )


@router.get("/healthcheck/http")
async def healthcheck_http():
    """The HTTP server is answering."""
    return {"status": "healthy"}


@router.get("/healthcheck/{name}")
def healthcheck_one(name: str):
    """Run a single dependency probe."""
    if name not in CHECKS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown health check {name}")
    error = run_check(name, get_settings())
    if error:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "error": error},
        )
    return {"status": "healthy"}
