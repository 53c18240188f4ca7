"""HTTP basic authentication for the service broker API."""

import base64
import binascii
import logging
import secrets
from typing import Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from cdn_broker.settings import get_settings

logger = logging.getLogger(__name__)

PUBLIC_PATH_PREFIXES = ("/health", "/metrics")
PUBLIC_PATHS = {"/", "/docs", "/openapi.json"}


def parse_basic_auth(header: Optional[str]) -> Optional[tuple[str, str]]:
    """Username and password from an Authorization header, or None."""
    if not header:
        return None
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Reject broker requests without the configured credentials."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in PUBLIC_PATHS or path.startswith(PUBLIC_PATH_PREFIXES):
            return await call_next(request)

        settings = get_settings()
        credentials = parse_basic_auth(request.headers.get("authorization"))
        if credentials is None or not self._matches(credentials, settings.broker_username, settings.broker_password):
            logger.warning(
                "Rejected unauthenticated broker request",
                extra={
                    "path": path,
                    "correlation_id": getattr(request.state, "correlation_id", None),
                },
            )
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"description": "Unauthorized"},
                headers={"WWW-Authenticate": 'Basic realm="cdn-broker"'},
            )

        return await call_next(request)

    @staticmethod
    def _matches(credentials: tuple[str, str], username: str, password: str) -> bool:
        given_username, given_password = credentials
        username_ok = secrets.compare_digest(given_username.encode(), username.encode())
        password_ok = secrets.compare_digest(given_password.encode(), password.encode())
        return username_ok and password_ok
