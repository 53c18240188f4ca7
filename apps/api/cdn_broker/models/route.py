"""Route model: one tenant's CDN instance."""

import enum
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, event, inspect, select
from sqlalchemy.orm import column_property, relationship

from cdn_broker.db.base import Base
from cdn_broker.models.certificate import Certificate, CertificateStatus
from cdn_broker.utils.clock import utcnow

logger = logging.getLogger(__name__)

# ACM caps DNS validation at 72 hours; 12 hours of slack on top of that
PROVISIONING_EXPIRATION_PERIOD = timedelta(hours=84)

DEFAULT_TTL_SECONDS = 86400


class RouteState(str, enum.Enum):
    """States a route moves through."""

    PROVISIONING = "provisioning"
    PROVISIONED = "provisioned"
    DEPROVISIONING = "deprovisioning"
    DEPROVISIONED = "deprovisioned"
    CONFLICT = "conflict"
    FAILED = "failed"
    TIMEDOUT = "timedout"


ACTIVELY_CHANGING_STATES = frozenset({RouteState.PROVISIONING, RouteState.DEPROVISIONING})


def is_actively_changing(state: Optional[RouteState]) -> bool:
    """Check whether a state is one the reconciliation sweep still has to advance."""
    return state in ACTIVELY_CHANGING_STATES


def split_domains(domain_csv: Optional[str]) -> list[str]:
    """Split a comma-joined domain list, dropping blanks and duplicates but keeping order."""
    domains: list[str] = []
    for domain in (domain_csv or "").split(","):
        domain = domain.strip()
        if domain and domain not in domains:
            domains.append(domain)
    return domains


class Route(Base):
    """A CDN distribution fronting a tenant application."""

    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(String(255), nullable=False, unique=True, index=True)
    state = column_property(
        Column(
            Enum(
                RouteState,
                name="route_state",
                native_enum=False,
                length=50,
                values_callable=lambda states: [s.value for s in states],
            ),
            nullable=False,
            index=True,
        ),
        active_history=True,
    )
    domain_external = Column(String(4096), nullable=False, default="")
    domain_internal = Column(String(255), nullable=True)
    dist_id = Column(String(255), nullable=True)
    origin = Column(String(1024), nullable=False, default="")
    path = Column(String(1024), nullable=False, default="")  # legacy, always empty
    insecure_origin = Column(Boolean, nullable=False, default=False)  # legacy, always false
    default_ttl = Column(Integer, nullable=False, default=DEFAULT_TTL_SECONDS)
    forwarded_headers = Column(String(4096), nullable=False, default="")
    forward_cookies = Column(Boolean, nullable=False, default=True)
    provisioning_since = Column(DateTime, nullable=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    certificates = relationship(
        Certificate,
        back_populates="route",
        cascade="all, delete-orphan",
        order_by=(Certificate.created_at, Certificate.id),
        lazy="selectin",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def domains(self) -> list[str]:
        """Tenant-facing domains; the first one is the certificate common name."""
        return split_domains(self.domain_external)

    def is_provisioning_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether provisioning has run past the certificate validation window."""
        if self.state != RouteState.PROVISIONING or self.provisioning_since is None:
            return False
        now = now or utcnow()
        return self.provisioning_since < now - PROVISIONING_EXPIRATION_PERIOD

    def find_validating_and_attached(self) -> tuple[Optional[Certificate], Optional[Certificate]]:
        """Return the most recent validating certificate and the attached one.

        The most recent validating certificate is the one with the greatest
        ``created_at``; ties go to the certificate appended later. Certificates
        not yet flushed count as the newest.
        """
        validating: Optional[Certificate] = None
        attached: Optional[Certificate] = None
        for cert in self.certificates:
            if cert.certificate_status == CertificateStatus.VALIDATING:
                if validating is None or _created_key(cert) >= _created_key(validating):
                    validating = cert
            elif cert.certificate_status == CertificateStatus.ATTACHED:
                attached = cert
        return validating, attached

    def __repr__(self) -> str:
        return f"<Route instance_id={self.instance_id!r} state={self.state}>"


def _created_key(cert: Certificate) -> datetime:
    return cert.created_at or datetime.max


def apply_provisioning_since(
    route: Route, previous_state: Optional[RouteState], now: Optional[datetime] = None
) -> None:
    """Keep provisioning_since in step with a state transition."""
    now = now or utcnow()
    was_changing = is_actively_changing(previous_state)
    is_changing = is_actively_changing(route.state)
    if is_changing and not was_changing:
        route.provisioning_since = now
    elif was_changing and not is_changing:
        route.provisioning_since = None


@event.listens_for(Route, "before_insert")
def _route_before_insert(mapper, connection, target: Route):
    if is_actively_changing(target.state):
        target.provisioning_since = utcnow()
    else:
        target.provisioning_since = None


@event.listens_for(Route, "before_update")
def _route_before_update(mapper, connection, target: Route):
    history = inspect(target).attrs.state.history
    if not history.has_changes():
        return

    if history.deleted:
        previous_state = history.deleted[0]
    else:
        previous_state = connection.execute(
            select(Route.__table__.c.state).where(Route.__table__.c.id == target.id)
        ).scalar()

    apply_provisioning_since(target, previous_state)
    logger.debug(
        f"Route {target.instance_id} state {previous_state} -> {target.state}",
        extra={"instance_id": target.instance_id},
    )
