"""Certificate model: one issuance attempt owned by a route."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, LargeBinary, String
from sqlalchemy.orm import relationship

from cdn_broker.db.base import Base
from cdn_broker.utils.clock import utcnow

LEGACY_CERTIFICATE_ARN = "managedbyletsencrypt"


class CertificateStatus(str, enum.Enum):
    """Lifecycle of a certificate attached to a route."""

    VALIDATING = "validating"
    ATTACHED = "attached"
    DELETED = "deleted"
    FAILED = "failed"
    # Rows written before certificates were managed by ACM
    LETSENCRYPT = "letsencrypt"


class Certificate(Base):
    """Certificate issued by the managed certificate service for a route."""

    __tablename__ = "certificates"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(
        Integer, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    certificate_arn = Column(String(2048), nullable=False, default=LEGACY_CERTIFICATE_ARN)
    certificate_status = Column(
        Enum(
            CertificateStatus,
            name="certificate_status",
            native_enum=False,
            length=50,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=CertificateStatus.LETSENCRYPT,
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Legacy columns kept for historical rows; new code never writes them
    domain = Column(String(1024), nullable=True)
    cert_url = Column(String(2048), nullable=True)
    certificate = Column(LargeBinary, nullable=True)
    expires = Column(DateTime, nullable=True, index=True)

    route = relationship("Route", back_populates="certificates")

    def __repr__(self) -> str:
        return (
            f"<Certificate id={self.id} arn={self.certificate_arn!r} "
            f"status={self.certificate_status}>"
        )
