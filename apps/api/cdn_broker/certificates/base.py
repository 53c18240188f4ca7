"""Managed certificate abstraction used by the route manager."""

import enum
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cdn_broker.errors import CertificateTerminalFailure, InternalInconsistency, ValidationTimedOut

SERVICE_INSTANCE_TAG = "ServiceInstance"
MANAGED_BY_TAG = "ManagedBy"
MANAGED_BY_VALUE = "cdn-broker"


class IssuanceStatus(str, enum.Enum):
    """Provider certificate statuses."""

    ISSUED = "ISSUED"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    VALIDATION_TIMED_OUT = "VALIDATION_TIMED_OUT"
    FAILED = "FAILED"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "IssuanceStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


TERMINAL_FAILURE_STATUSES = frozenset(
    {
        IssuanceStatus.FAILED,
        IssuanceStatus.INACTIVE,
        IssuanceStatus.EXPIRED,
        IssuanceStatus.REVOKED,
    }
)


class DomainValidationChallenge(BaseModel):
    """DNS record a tenant must publish to validate one domain."""

    model_config = ConfigDict(populate_by_name=True)

    domain_name: str = Field(alias="validating_domain_name")
    record_name: str = Field(default="", alias="challenge_dns_record")
    record_type: str = Field(default="", alias="challenges_dns_record_type")
    record_value: str = Field(default="", alias="challenges_dns_record_value")
    validation_status: str = Field(default="", alias="status")


class CertificateDetails(BaseModel):
    """Provider view of one certificate."""

    certificate_arn: str
    status: IssuanceStatus
    domain_name: Optional[str] = None
    failure_reason: Optional[str] = None
    in_use_by: list[str] = Field(default_factory=list)
    issued_at: Optional[datetime] = None
    tags: dict[str, str] = Field(default_factory=dict)
    challenges: list[DomainValidationChallenge] = Field(default_factory=list)

    @property
    def is_managed_by_broker(self) -> bool:
        return self.tags.get(MANAGED_BY_TAG) == MANAGED_BY_VALUE


def create_idempotency_token(domains: list[str]) -> str:
    """Token that is identical for any ordering of the same domains."""
    return "-".join(sorted(domains))


class CertificateManager(ABC):
    """Operations the route manager needs from a certificate service."""

    @abstractmethod
    def request_certificate(self, domains: list[str], instance_id: str) -> str:
        """Request a DNS-validated certificate and return its ARN.

        The first domain is the common name, the rest are alternative names.
        """
        pass

    @abstractmethod
    def describe_certificate(self, arn: str) -> CertificateDetails:
        """Describe one certificate."""
        pass

    @abstractmethod
    def get_domain_validation_challenges(self, arn: str) -> list[DomainValidationChallenge]:
        """DNS challenges for every domain on the certificate."""
        pass

    @abstractmethod
    def list_certificates(self) -> list[CertificateDetails]:
        """Every certificate in the account with its tags and usage."""
        pass

    @abstractmethod
    def delete_certificate(self, arn: str) -> None:
        """Delete a certificate."""
        pass

    def is_certificate_issued(self, arn: str) -> bool:
        """Check whether a certificate has been issued.

        Returns False while validation is pending. Raises
        :class:`ValidationTimedOut` when the provider gave up waiting for DNS
        validation and :class:`CertificateTerminalFailure` for the other
        terminal statuses.
        """
        details = self.describe_certificate(arn)
        status = details.status
        if status == IssuanceStatus.ISSUED:
            return True
        if status == IssuanceStatus.PENDING_VALIDATION:
            return False
        if status == IssuanceStatus.VALIDATION_TIMED_OUT:
            raise ValidationTimedOut(f"validation timed out for certificate {arn}")
        if status in TERMINAL_FAILURE_STATUSES:
            raise CertificateTerminalFailure(status.value, details.failure_reason)
        raise InternalInconsistency(f"unknown status for certificate {arn}")
