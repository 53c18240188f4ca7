"""AWS Certificate Manager implementation of the certificate abstraction."""

import hashlib
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from cdn_broker.certificates.base import (
    MANAGED_BY_TAG,
    MANAGED_BY_VALUE,
    SERVICE_INSTANCE_TAG,
    CertificateDetails,
    CertificateManager,
    DomainValidationChallenge,
    IssuanceStatus,
    create_idempotency_token,
)
from cdn_broker.errors import CertificateNotFound
from cdn_broker.utils.aws import aws_client_config, error_code

logger = logging.getLogger(__name__)

# CloudFront only accepts ACM certificates from this region
ACM_REGION = "us-east-1"


def acm_idempotency_token(domains: list[str]) -> str:
    """Wire form of the idempotency token; ACM accepts at most 32 word characters."""
    return hashlib.sha1(create_idempotency_token(domains).encode()).hexdigest()[:32]


class ACMCertificateManager(CertificateManager):
    """Request, inspect and delete certificates in ACM."""

    def __init__(self, client=None):
        """Initialize ACM manager."""
        self._client = client or boto3.client(
            "acm",
            region_name=ACM_REGION,
            config=aws_client_config(),
        )

    def request_certificate(self, domains: list[str], instance_id: str) -> str:
        """Request a DNS-validated certificate tagged with the owning instance."""
        if not domains:
            raise ValueError("the domain can't be empty")

        params = {
            "DomainName": domains[0],
            "ValidationMethod": "DNS",
            "IdempotencyToken": acm_idempotency_token(domains),
            "Tags": [
                {"Key": SERVICE_INSTANCE_TAG, "Value": instance_id},
                {"Key": MANAGED_BY_TAG, "Value": MANAGED_BY_VALUE},
            ],
        }
        if len(domains) > 1:
            params["SubjectAlternativeNames"] = domains[1:]

        response = self._client.request_certificate(**params)
        arn = response["CertificateArn"]
        logger.info(
            f"Requested certificate for {domains[0]}",
            extra={"instance_id": instance_id, "certificate_arn": arn, "domains": domains},
        )
        return arn

    def describe_certificate(self, arn: str) -> CertificateDetails:
        """Describe one certificate."""
        try:
            response = self._client.describe_certificate(CertificateArn=arn)
        except ClientError as e:
            self._raise_not_found(e, arn)
            raise
        return self._details(response["Certificate"])

    def get_domain_validation_challenges(self, arn: str) -> list[DomainValidationChallenge]:
        """DNS challenges for every domain on the certificate."""
        return self.describe_certificate(arn).challenges

    def list_certificates(self) -> list[CertificateDetails]:
        """Every certificate in the account, described and with its tags."""
        certificates = []
        paginator = self._client.get_paginator("list_certificates")
        for page in paginator.paginate():
            for summary in page.get("CertificateSummaryList", []):
                arn = summary["CertificateArn"]
                try:
                    details = self.describe_certificate(arn)
                    tags = self._client.list_tags_for_certificate(CertificateArn=arn)
                except CertificateNotFound:
                    # Deleted between listing and describing
                    continue
                details.tags = {t["Key"]: t.get("Value", "") for t in tags.get("Tags", [])}
                certificates.append(details)
        return certificates

    def delete_certificate(self, arn: str) -> None:
        """Delete a certificate."""
        try:
            self._client.delete_certificate(CertificateArn=arn)
        except ClientError as e:
            self._raise_not_found(e, arn)
            raise
        logger.info(f"Deleted certificate {arn}", extra={"certificate_arn": arn})

    @staticmethod
    def _raise_not_found(error: ClientError, arn: str) -> None:
        if error_code(error) == "ResourceNotFoundException":
            raise CertificateNotFound(f"certificate {arn} not found") from error

    @staticmethod
    def _details(certificate: dict) -> CertificateDetails:
        challenges = []
        for option in certificate.get("DomainValidationOptions", []) or []:
            record: Optional[dict] = option.get("ResourceRecord")
            challenges.append(
                DomainValidationChallenge(
                    domain_name=option["DomainName"],
                    validation_status=option.get("ValidationStatus", ""),
                    record_name=record["Name"] if record else "",
                    record_type=record["Type"] if record else "",
                    record_value=record["Value"] if record else "",
                )
            )
        return CertificateDetails(
            certificate_arn=certificate["CertificateArn"],
            status=IssuanceStatus.parse(certificate.get("Status")),
            domain_name=certificate.get("DomainName"),
            failure_reason=certificate.get("FailureReason"),
            in_use_by=certificate.get("InUseBy", []) or [],
            issued_at=certificate.get("IssuedAt"),
            challenges=challenges,
        )


# Global instance
_certificate_manager: Optional[CertificateManager] = None


def get_certificate_manager() -> CertificateManager:
    """Get or create the ACM certificate manager."""
    global _certificate_manager
    if _certificate_manager is None:
        _certificate_manager = ACMCertificateManager()
    return _certificate_manager
