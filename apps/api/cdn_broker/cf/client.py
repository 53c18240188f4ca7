"""Cloud Foundry API client used to check domain ownership."""

import logging
import time
from typing import Optional

import httpx

from cdn_broker.errors import CloudFoundryAPIError
from cdn_broker.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Refresh the token this long before the UAA says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class CloudFoundryClient:
    """Minimal Cloud Foundry v3 client authenticated with client credentials."""

    def __init__(
        self,
        api_address: str,
        client_id: str,
        client_secret: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize Cloud Foundry client."""
        self.api_address = api_address.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = httpx.Client(base_url=self.api_address, timeout=timeout, transport=transport)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def info(self) -> dict:
        """Unauthenticated API root document."""
        return self._request("GET", "/", authenticated=False)

    def list_domains(self, name: str) -> list[dict]:
        """Domains registered under exactly this name."""
        body = self._request("GET", "/v3/domains", params={"names": name})
        return body.get("resources", [])

    def get_organization_name(self, guid: str) -> str:
        """Name of an organization."""
        return self._request("GET", f"/v3/organizations/{guid}")["name"]

    def close(self) -> None:
        self._http.close()

    def _request(
        self, method: str, path: str, params: Optional[dict] = None, authenticated: bool = True
    ) -> dict:
        headers = {"Accept": "application/json"}
        if authenticated:
            headers["Authorization"] = f"Bearer {self._access_token()}"
        try:
            response = self._http.request(method, path, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Cloud Foundry API request failed: {e}", extra={"path": path})
            raise CloudFoundryAPIError(f"Cloud Foundry API request to {path} failed: {e}") from e

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        links = self.info().get("links", {})
        uaa = (links.get("uaa") or links.get("login") or {}).get("href")
        if not uaa:
            raise CloudFoundryAPIError("Cloud Foundry API root does not advertise a UAA")

        try:
            response = self._http.post(
                f"{uaa.rstrip('/')}/oauth/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Cloud Foundry token request failed: {e}")
            raise CloudFoundryAPIError(f"failed to obtain Cloud Foundry token: {e}") from e

        body = response.json()
        self._token = body["access_token"]
        expires_in = int(body.get("expires_in", 0))
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return self._token


# Global instance
_cf_client: Optional[CloudFoundryClient] = None


def get_cf_client() -> Optional[CloudFoundryClient]:
    """Get or create the Cloud Foundry client; None when no API address is configured."""
    global _cf_client
    if not settings.cf_api_address:
        return None
    if _cf_client is None:
        _cf_client = CloudFoundryClient(
            settings.cf_api_address,
            settings.cf_client_id or "",
            settings.cf_client_secret or "",
            timeout=settings.aws_request_timeout_seconds,
        )
    return _cf_client
