"""CloudFront implementation of the CDN abstraction."""

import copy
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from cdn_broker.cdn.base import Distribution, DistributionManager
from cdn_broker.errors import AliasConflict
from cdn_broker.models.route import DEFAULT_TTL_SECONDS
from cdn_broker.settings import get_settings
from cdn_broker.utils.aws import aws_client_config, error_code
from cdn_broker.utils.headers import Headers

settings = get_settings()
logger = logging.getLogger(__name__)

COMMENT = "cdn route service"
PRICE_CLASS = "PriceClass_100"
ALLOWED_METHODS = ["HEAD", "GET", "OPTIONS", "PUT", "POST", "PATCH", "DELETE"]
CACHED_METHODS = ["HEAD", "GET"]
MIN_TTL = 0
MAX_TTL = 31622400
ORIGIN_READ_TIMEOUT = 60
ORIGIN_KEEPALIVE_TIMEOUT = 5


def _items(values: list) -> dict:
    return {"Quantity": len(values), "Items": list(values)}


class CloudFrontDistributionManager(DistributionManager):
    """Manage distributions through the CloudFront API."""

    def __init__(self, client=None, extra_request_headers: Optional[dict[str, str]] = None):
        """Initialize CloudFront manager."""
        self._client = client or boto3.client(
            "cloudfront",
            region_name=settings.aws_region,
            config=aws_client_config(),
        )
        if extra_request_headers is None:
            extra_request_headers = settings.extra_request_headers
        self.extra_request_headers = dict(extra_request_headers)

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
        """Create a distribution tagged with the given tags."""
        config = self._apply_config(
            {
                "CallerReference": caller_reference,
                "ViewerCertificate": {"CloudFrontDefaultCertificate": True},
            },
            aliases=aliases,
            origin=origin,
            default_ttl=default_ttl,
            forwarded_headers=forwarded_headers,
            forward_cookies=forward_cookies,
        )
        response = self._client.create_distribution_with_tags(
            DistributionConfigWithTags={
                "DistributionConfig": config,
                "Tags": {"Items": [{"Key": k, "Value": v} for k, v in tags.items()]},
            }
        )
        distribution = Distribution.from_api(response["Distribution"], response.get("ETag"))
        logger.info(
            f"Created distribution {distribution.id}",
            extra={"caller_reference": caller_reference, "dist_id": distribution.id},
        )
        return distribution

    def get(self, dist_id: str) -> Distribution:
        """Get a distribution and its current configuration."""
        response = self._client.get_distribution(Id=dist_id)
        return Distribution.from_api(response["Distribution"], response.get("ETag"))

    def update(
        self,
        dist_id: str,
        aliases: Optional[list[str]],
        origin: str,
        default_ttl: Optional[int] = None,
        forwarded_headers: Optional[Headers] = None,
        forward_cookies: Optional[bool] = None,
    ) -> Distribution:
        """Overwrite the supplied fields, re-applying the enforced configuration."""
        response = self._client.get_distribution_config(Id=dist_id)
        config = self._apply_config(
            response["DistributionConfig"],
            aliases=aliases,
            origin=origin,
            default_ttl=default_ttl,
            forwarded_headers=forwarded_headers,
            forward_cookies=forward_cookies,
        )
        updated = self._update_distribution(dist_id, config, response["ETag"])
        return Distribution.from_api(updated["Distribution"], updated.get("ETag"))

    def set_certificate_and_aliases(self, dist_id: str, certificate_arn: str, aliases: list[str]) -> None:
        """Attach an ACM certificate and the aliases it covers."""
        response = self._client.get_distribution_config(Id=dist_id)
        config = copy.deepcopy(response["DistributionConfig"])
        config["ViewerCertificate"] = {
            "ACMCertificateArn": certificate_arn,
            "SSLSupportMethod": "sni-only",
            "MinimumProtocolVersion": "TLSv1.2_2021",
            "CloudFrontDefaultCertificate": False,
        }
        config["Aliases"] = _items(aliases)
        self._update_distribution(dist_id, config, response["ETag"])
        logger.info(
            f"Attached certificate to distribution {dist_id}",
            extra={"dist_id": dist_id, "certificate_arn": certificate_arn, "aliases": aliases},
        )

    def disable(self, dist_id: str) -> None:
        """Disable a distribution."""
        response = self._client.get_distribution_config(Id=dist_id)
        config = copy.deepcopy(response["DistributionConfig"])
        config["Enabled"] = False
        self._update_distribution(dist_id, config, response["ETag"])
        logger.info(f"Disabled distribution {dist_id}", extra={"dist_id": dist_id})

    def delete(self, dist_id: str) -> bool:
        """Delete a distribution once it is disabled and fully deployed."""
        try:
            response = self._client.get_distribution(Id=dist_id)
        except ClientError as e:
            if error_code(e) == "NoSuchDistribution":
                logger.info(f"Distribution {dist_id} already deleted", extra={"dist_id": dist_id})
                return True
            raise

        distribution = Distribution.from_api(response["Distribution"], response.get("ETag"))
        if not distribution.is_deployed or distribution.enabled:
            logger.info(
                f"Distribution {dist_id} not ready for deletion",
                extra={"dist_id": dist_id, "status": distribution.status, "enabled": distribution.enabled},
            )
            return False

        self._client.delete_distribution(Id=dist_id, IfMatch=response["ETag"])
        logger.info(f"Deleted distribution {dist_id}", extra={"dist_id": dist_id})
        return True

    def _update_distribution(self, dist_id: str, config: dict, etag: str) -> dict:
        try:
            return self._client.update_distribution(
                Id=dist_id,
                IfMatch=etag,
                DistributionConfig=config,
            )
        except ClientError as e:
            if error_code(e) == AliasConflict.provider_code:
                raise AliasConflict(str(e)) from e
            raise

    def _apply_config(
        self,
        config: dict,
        aliases: Optional[list[str]],
        origin: str,
        default_ttl: Optional[int],
        forwarded_headers: Optional[Headers],
        forward_cookies: Optional[bool],
    ) -> dict:
        """Return a copy of ``config`` with the supplied fields and the enforced settings applied."""
        config = copy.deepcopy(config)
        origin_id = config["CallerReference"]

        config["Comment"] = COMMENT
        config["Enabled"] = True
        config["IsIPV6Enabled"] = True
        config["PriceClass"] = PRICE_CLASS

        if aliases is not None:
            config["Aliases"] = _items(aliases)
        config.setdefault("Aliases", _items([]))

        custom_headers = [
            {"HeaderName": name, "HeaderValue": value}
            for name, value in sorted(self.extra_request_headers.items())
        ]
        config["Origins"] = _items(
            [
                {
                    "Id": origin_id,
                    "DomainName": origin,
                    "OriginPath": "",
                    "CustomHeaders": _items(custom_headers),
                    "CustomOriginConfig": {
                        "HTTPPort": 80,
                        "HTTPSPort": 443,
                        "OriginProtocolPolicy": "https-only",
                        "OriginSslProtocols": _items(["TLSv1.2"]),
                        "OriginReadTimeout": ORIGIN_READ_TIMEOUT,
                        "OriginKeepaliveTimeout": ORIGIN_KEEPALIVE_TIMEOUT,
                    },
                }
            ]
        )

        behavior = config.get("DefaultCacheBehavior") or {}
        forwarded = behavior.get("ForwardedValues") or {}
        if forwarded_headers is not None:
            forwarded["Headers"] = _items(forwarded_headers.sorted())
        forwarded.setdefault("Headers", _items([]))
        if forward_cookies is not None:
            forwarded["Cookies"] = {"Forward": "all" if forward_cookies else "none"}
        forwarded.setdefault("Cookies", {"Forward": "all"})
        forwarded["QueryString"] = True
        forwarded["QueryStringCacheKeys"] = _items([])

        behavior.update(
            {
                "TargetOriginId": origin_id,
                "ForwardedValues": forwarded,
                "ViewerProtocolPolicy": "redirect-to-https",
                "AllowedMethods": {
                    **_items(ALLOWED_METHODS),
                    "CachedMethods": _items(CACHED_METHODS),
                },
                "TrustedSigners": {"Enabled": False, "Quantity": 0},
                "MinTTL": MIN_TTL,
                "MaxTTL": MAX_TTL,
            }
        )
        if default_ttl is not None:
            behavior["DefaultTTL"] = default_ttl
        behavior.setdefault("DefaultTTL", DEFAULT_TTL_SECONDS)
        config["DefaultCacheBehavior"] = behavior
        config["CacheBehaviors"] = {"Quantity": 0}

        return config


# Global instance
_distribution_manager: Optional[DistributionManager] = None


def get_distribution_manager() -> DistributionManager:
    """Get or create the CloudFront distribution manager."""
    global _distribution_manager
    if _distribution_manager is None:
        _distribution_manager = CloudFrontDistributionManager()
    return _distribution_manager
