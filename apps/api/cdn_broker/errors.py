"""Error taxonomy shared by the route manager, adapters and broker API."""

from typing import Optional

from fastapi import status


class BrokerError(Exception):
    """Base class for errors surfaced to service-broker callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: Optional[str] = None

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = str(self)


class InstanceDoesNotExist(BrokerError):
    """Instance does not exist."""

    status_code = status.HTTP_410_GONE


class RouteNotFound(InstanceDoesNotExist):
    """No route matched the query."""


class InstanceAlreadyExists(BrokerError):
    """Instance already exists."""

    status_code = status.HTTP_409_CONFLICT


class AsyncRequired(BrokerError):
    """This service plan requires client support for asynchronous service operations."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "AsyncRequired"


class InvalidParameters(BrokerError):
    """Invalid parameters."""

    status_code = status.HTTP_400_BAD_REQUEST


class DomainOwnershipError(InvalidParameters):
    """Domain is not registered to the requesting organization."""


class BindingNotSupported(BrokerError):
    """service does not support bind"""


class ProvisionFailed(BrokerError):
    """Failed to provision the CDN distribution."""


class CertificateRequestFailed(BrokerError):
    """Failed to request a certificate."""


class PersistenceError(BrokerError):
    """Failed to persist the route."""


class ValidationTimedOut(BrokerError):
    """Certificate validation timed out."""


class AliasConflict(BrokerError):
    """One or more aliases are already associated with a different distribution."""

    # Code the CloudFront API returns for this condition
    provider_code = "CNAMEAlreadyExists"


class CertificateTerminalFailure(BrokerError):
    """Certificate reached a terminal failure state."""

    def __init__(self, status_name: str, reason: Optional[str] = None):
        message = f"certificate status is {status_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.status_name = status_name
        self.reason = reason


class InternalInconsistency(BrokerError):
    """Route state is internally inconsistent."""


class CertificateNotFound(BrokerError):
    """Certificate not found."""

    status_code = status.HTTP_404_NOT_FOUND


class CloudFoundryAPIError(BrokerError):
    """Cloud Foundry API request failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class ConcurrencyError(BrokerError):
    """Another operation for this service instance is in progress."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "ConcurrencyError"
