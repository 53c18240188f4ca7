"""Correlation ID middleware."""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

# Header Cloud Foundry sends with every broker request
REQUEST_IDENTITY_HEADER = "x-broker-api-request-identity"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag requests and responses with a correlation ID."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = (
            request.headers.get("x-correlation-id")
            or request.headers.get(REQUEST_IDENTITY_HEADER)
            or str(uuid.uuid4())
        )
        request.state.correlation_id = correlation_id

        response: Response = await call_next(request)

        response.headers["x-correlation-id"] = correlation_id
        return response
