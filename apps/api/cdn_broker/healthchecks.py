"""Dependency probes behind the /healthcheck endpoints."""

import logging
from typing import Callable, Optional

import boto3
from sqlalchemy import text

from cdn_broker.cf.client import CloudFoundryClient
from cdn_broker.db.session import SessionLocal
from cdn_broker.settings import Settings
from cdn_broker.utils.aws import aws_client_config

logger = logging.getLogger(__name__)

# ACM certificates used by CloudFront must live in this region
ACM_REGION = "us-east-1"


def check_postgresql(settings: Settings) -> None:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()


def check_cloudfront(settings: Settings) -> None:
    client = boto3.client(
        "cloudfront",
        region_name=settings.aws_region,
        config=aws_client_config(settings.health_check_timeout_seconds),
    )
    client.list_distributions(MaxItems="1")


def check_acm(settings: Settings) -> None:
    client = boto3.client(
        "acm",
        region_name=ACM_REGION,
        config=aws_client_config(settings.health_check_timeout_seconds),
    )
    client.list_certificates(MaxItems=1)


def check_cloudfoundry(settings: Settings) -> None:
    # Only reachability is probed; authentication is exercised by provisioning
    if not settings.cf_api_address:
        return
    client = CloudFoundryClient(
        settings.cf_api_address,
        settings.cf_client_id or "",
        settings.cf_client_secret or "",
        timeout=settings.health_check_timeout_seconds,
    )
    try:
        client.info()
    finally:
        client.close()


CHECKS: dict[str, Callable[[Settings], None]] = {
    "postgresql": check_postgresql,
    "cloudfront": check_cloudfront,
    "acm": check_acm,
    "cloudfoundry": check_cloudfoundry,
}


def run_check(name: str, settings: Settings) -> Optional[str]:
    """Run one probe; returns an error description or None when healthy."""
    try:
        CHECKS[name](settings)
    except Exception as e:
        logger.error(f"Health check {name} failed: {e}", extra={"check": name})
        return f"{name} error: {e}"
    return None


def run_all(settings: Settings) -> dict[str, Optional[str]]:
    """Run every probe, keyed by name."""
    return {name: run_check(name, settings) for name in CHECKS}
