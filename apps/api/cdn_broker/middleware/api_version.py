"""Enforce the minimum Open Service Broker API version."""

import logging
from typing import Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from cdn_broker.settings import get_settings

logger = logging.getLogger(__name__)

VERSION_HEADER = "x-broker-api-version"


def parse_version(value: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse "major.minor"; None when malformed."""
    if not value:
        return None
    parts = value.strip().split(".")
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


class APIVersionMiddleware(BaseHTTPMiddleware):
    """Reply 412 to /v2 requests from platforms older than the minimum API version."""

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith("/v2/"):
            return await call_next(request)

        minimum = get_settings().min_broker_api_version
        header = request.headers.get(VERSION_HEADER)
        version = parse_version(header)
        if version is None or version < parse_version(minimum):
            logger.warning(
                f"Rejected request with broker API version {header!r}",
                extra={"path": request.url.path},
            )
            return JSONResponse(
                status_code=status.HTTP_412_PRECONDITION_FAILED,
                content={
                    "description": f"X-Broker-API-Version must be at least {minimum}; got {header!r}"
                },
            )

        return await call_next(request)
