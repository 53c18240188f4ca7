"""CDN abstraction used by the route manager."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

from cdn_broker.utils.headers import Headers

DEPLOYED = "Deployed"


class Distribution(BaseModel):
    """A CDN distribution as reported by the provider."""

    id: str
    domain_name: str
    status: str
    arn: Optional[str] = None
    etag: Optional[str] = None
    distribution_config: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, distribution: dict, etag: Optional[str] = None) -> "Distribution":
        return cls(
            id=distribution["Id"],
            arn=distribution.get("ARN"),
            domain_name=distribution["DomainName"],
            status=distribution["Status"],
            etag=etag,
            distribution_config=distribution.get("DistributionConfig", {}),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.distribution_config.get("Enabled", False))

    @property
    def is_deployed(self) -> bool:
        return self.status == DEPLOYED

    @property
    def _forwarded_values(self) -> dict:
        return self.distribution_config.get("DefaultCacheBehavior", {}).get("ForwardedValues", {})

    @property
    def forwarded_headers(self) -> list[str]:
        return list(self._forwarded_values.get("Headers", {}).get("Items", []) or [])

    @property
    def forward_cookies(self) -> bool:
        return self._forwarded_values.get("Cookies", {}).get("Forward", "all") != "none"

    @property
    def default_ttl(self) -> Optional[int]:
        return self.distribution_config.get("DefaultCacheBehavior", {}).get("DefaultTTL")


class DistributionManager(ABC):
    """Operations the route manager needs from a CDN provider."""

    @abstractmethod
    def create(
        self,
        caller_reference: str,
        aliases: list[str],
        origin: str,
        default_ttl: int,
        forwarded_headers: Headers,
        forward_cookies: bool,
        tags: dict[str, str],
    ) -> Distribution:
        """Create a distribution. Aliases are attached later with the certificate."""
        pass

    @abstractmethod
    def get(self, dist_id: str) -> Distribution:
        """Get a distribution."""
        pass

    @abstractmethod
    def update(
        self,
        dist_id: str,
        aliases: Optional[list[str]],
        origin: str,
        default_ttl: Optional[int] = None,
        forwarded_headers: Optional[Headers] = None,
        forward_cookies: Optional[bool] = None,
    ) -> Distribution:
        """Overwrite the supplied fields of a distribution's configuration."""
        pass

    @abstractmethod
    def set_certificate_and_aliases(self, dist_id: str, certificate_arn: str, aliases: list[str]) -> None:
        """Attach a viewer certificate and the aliases it covers in one write."""
        pass

    @abstractmethod
    def disable(self, dist_id: str) -> None:
        """Disable a distribution so it can later be deleted."""
        pass

    @abstractmethod
    def delete(self, dist_id: str) -> bool:
        """Delete a disabled distribution.

        Returns False while the distribution is still propagating.
        """
        pass
