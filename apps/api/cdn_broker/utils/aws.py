"""Shared boto3 client configuration."""

from typing import Optional

from botocore.config import Config
from botocore.exceptions import ClientError

from cdn_broker.settings import get_settings


def aws_client_config(timeout_seconds: Optional[int] = None) -> Config:
    """botocore client config with the adapter-level timeouts."""
    settings = get_settings()
    timeout = timeout_seconds or settings.aws_request_timeout_seconds
    return Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": settings.aws_max_attempts, "mode": "standard"},
    )


def error_code(error: ClientError) -> str:
    """Provider error code carried by a botocore ClientError."""
    return error.response.get("Error", {}).get("Code", "")
