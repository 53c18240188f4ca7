"""Database models - import all models here for Alembic discovery."""

from cdn_broker.models.certificate import Certificate, CertificateStatus
from cdn_broker.models.route import (
    ACTIVELY_CHANGING_STATES,
    PROVISIONING_EXPIRATION_PERIOD,
    Route,
    RouteState,
    is_actively_changing,
)

__all__ = [
    "Route",
    "RouteState",
    "Certificate",
    "CertificateStatus",
    "ACTIVELY_CHANGING_STATES",
    "PROVISIONING_EXPIRATION_PERIOD",
    "is_actively_changing",
]
