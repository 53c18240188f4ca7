"""Route manager: creates routes and drives them to a terminal state.

Two callers share this class. The broker API calls ``create``, ``update``,
``get`` and ``disable`` inline while serving a request. The worker calls
``check_routes_to_update`` and ``delete_orphaned_certs`` periodically; the
first polls every route in an actively changing state and advances it one
step at a time. Every step is safe to repeat, so a sweep interrupted
half-way is simply finished by the next one.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from cdn_broker.cdn.base import Distribution, DistributionManager
from cdn_broker.certificates.base import (
    CertificateManager,
    DomainValidationChallenge,
    IssuanceStatus,
)
from cdn_broker.errors import (
    AliasConflict,
    BrokerError,
    CertificateNotFound,
    CertificateRequestFailed,
    InternalInconsistency,
    ProvisionFailed,
    ValidationTimedOut,
)
from cdn_broker.models import (
    ACTIVELY_CHANGING_STATES,
    Certificate,
    CertificateStatus,
    Route,
    RouteState,
)
from cdn_broker.models.route import split_domains
from cdn_broker.store.route_store import RouteStore
from cdn_broker.utils.clock import as_naive_utc, utcnow
from cdn_broker.utils.headers import Headers
from cdn_broker.utils.metrics import (
    orphaned_certificates_deleted,
    record_transition,
    routes_in_flight,
    sweep_duration,
    sweep_errors,
)

logger = logging.getLogger(__name__)

ORPHANED_CERTIFICATE_MIN_AGE = timedelta(hours=24)


@dataclass
class SweepResult:
    """Outcome of one reconciliation sweep."""

    checked: int = 0
    provisioned: list[str] = field(default_factory=list)
    deprovisioned: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    timed_out: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def is_alias_conflict(error: Exception) -> bool:
    """Check whether an error means the aliases belong to another distribution."""
    return isinstance(error, AliasConflict) or AliasConflict.provider_code in str(error)


class RouteManager:
    """Coordinates the route store, the CDN and the certificate service."""

    def __init__(
        self,
        store: RouteStore,
        distributions: DistributionManager,
        certificates: CertificateManager,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize route manager."""
        self.store = store
        self.distributions = distributions
        self.certificates = certificates
        self.clock = clock

    def create(
        self,
        instance_id: str,
        domain_csv: str,
        origin: str,
        default_ttl: int,
        forwarded_headers: Headers,
        forward_cookies: bool,
        tags: dict[str, str],
    ) -> Route:
        """Create the distribution, request a certificate and persist the route."""
        log_extra = {"instance_id": instance_id}
        route = Route(
            instance_id=instance_id,
            state=RouteState.PROVISIONING,
            domain_external=domain_csv,
            origin=origin,
            path="",
            insecure_origin=False,
            default_ttl=default_ttl,
            forwarded_headers=forwarded_headers.to_csv(),
            forward_cookies=forward_cookies,
            certificates=[],
        )

        logger.info(f"Creating distribution for {instance_id}", extra=log_extra)
        try:
            distribution = self.distributions.create(
                instance_id,
                [],
                origin,
                default_ttl,
                forwarded_headers,
                forward_cookies,
                tags,
            )
        except (ClientError, BotoCoreError, BrokerError) as e:
            logger.error(f"Failed to create distribution: {e}", exc_info=True, extra=log_extra)
            raise ProvisionFailed(f"failed to create distribution: {e}") from e

        route.domain_internal = distribution.domain_name
        route.dist_id = distribution.id

        arn = self._request_certificate(route)
        route.certificates.append(self._validating_certificate(arn))

        self.store.create(route)
        logger.info(
            f"Created route {instance_id}",
            extra={**log_extra, "dist_id": route.dist_id, "certificate_arn": arn},
        )
        return route

    def get(self, instance_id: str) -> Route:
        """Load a route with its certificates."""
        return self.store.find_one_matching(instance_id=instance_id)

    def update(
        self,
        instance_id: str,
        domain_csv: Optional[str] = None,
        default_ttl: Optional[int] = None,
        forwarded_headers: Optional[Headers] = None,
        forward_cookies: Optional[bool] = None,
        origin: Optional[str] = None,
    ) -> bool:
        """Apply configuration changes; return True when the update continues asynchronously.

        Cache settings are pushed to the distribution straight away. A new
        domain list only takes effect once its certificate is issued, so the
        distribution keeps its current aliases and the route goes back to
        provisioning until the sweep attaches the new certificate.
        """
        route = self.get(instance_id)
        log_extra = {"instance_id": instance_id, "dist_id": route.dist_id}

        if default_ttl is not None:
            route.default_ttl = default_ttl
        if forwarded_headers is not None:
            route.forwarded_headers = forwarded_headers.to_csv()
        if forward_cookies is not None:
            route.forward_cookies = forward_cookies
        if origin:
            route.origin = origin

        logger.info(f"Updating distribution for {instance_id}", extra=log_extra)
        try:
            self.distributions.update(
                route.dist_id,
                None,
                route.origin,
                default_ttl,
                forwarded_headers,
                forward_cookies,
            )
        except (ClientError, BotoCoreError, BrokerError) as e:
            logger.error(f"Failed to update distribution: {e}", exc_info=True, extra=log_extra)
            raise ProvisionFailed(f"failed to update distribution: {e}") from e

        previous_state = route.state
        if not split_domains(domain_csv):
            route.state = RouteState.PROVISIONED
        else:
            route.domain_external = domain_csv
            route.state = RouteState.PROVISIONING
            arn = self._request_certificate(route)
            route.certificates.append(self._validating_certificate(arn))

        self.store.save(route)
        record_transition(previous_state, route.state)
        return route.state == RouteState.PROVISIONING

    def poll(self, route: Route) -> None:
        """Advance a route one step if it is actively changing."""
        if route.state == RouteState.PROVISIONING:
            self._advance_provisioning(route)
        elif route.state == RouteState.DEPROVISIONING:
            self._advance_deprovisioning(route)
        else:
            logger.debug(
                f"Route {route.instance_id} is {route.state.value}; nothing to do",
                extra={"instance_id": route.instance_id},
            )

    def disable(self, route: Route) -> None:
        """Disable the distribution and move the route to deprovisioning."""
        self.distributions.disable(route.dist_id)
        previous_state = route.state
        route.state = RouteState.DEPROVISIONING
        self.store.save(route)
        record_transition(previous_state, route.state)
        logger.info(
            f"Route {route.instance_id} deprovisioning",
            extra={"instance_id": route.instance_id, "dist_id": route.dist_id},
        )

    def check_routes_to_update(self) -> SweepResult:
        """Poll every actively changing route, classifying per-route failures."""
        result = SweepResult()
        with sweep_duration.labels(sweep="routes").time():
            routes = self.store.find_in_states(ACTIVELY_CHANGING_STATES)
            routes_in_flight.set(len(routes))
            for route in routes:
                result.checked += 1
                self._check_route(route, result)

        logger.info(
            f"Checked {result.checked} routes",
            extra={
                "provisioned": len(result.provisioned),
                "deprovisioned": len(result.deprovisioned),
                "conflicts": len(result.conflicts),
                "failed": len(result.failed),
                "timed_out": len(result.timed_out),
                "errors": len(result.errors),
            },
        )
        return result

    def delete_orphaned_certs(self) -> list[str]:
        """Delete issued, unused, broker-managed certificates older than a day."""
        deleted = []
        with sweep_duration.labels(sweep="orphaned_certificates").time():
            cutoff = self.clock() - ORPHANED_CERTIFICATE_MIN_AGE
            for details in self.certificates.list_certificates():
                if details.status != IssuanceStatus.ISSUED:
                    continue
                if details.in_use_by or not details.is_managed_by_broker:
                    continue
                if details.issued_at is None or as_naive_utc(details.issued_at) >= cutoff:
                    continue

                arn = details.certificate_arn
                try:
                    self.certificates.delete_certificate(arn)
                except (ClientError, BotoCoreError, BrokerError) as e:
                    sweep_errors.labels(sweep="orphaned_certificates").inc()
                    logger.error(
                        f"Failed to delete orphaned certificate: {e}",
                        extra={"certificate_arn": arn},
                    )
                    continue
                orphaned_certificates_deleted.inc()
                deleted.append(arn)
                logger.info(f"Deleted orphaned certificate {arn}", extra={"certificate_arn": arn})
        return deleted

    def get_dns_challenges(
        self, route: Route, only_validating: bool = False
    ) -> list[DomainValidationChallenge]:
        """DNS challenges for the route's validating and, optionally, attached certificates."""
        validating, attached = route.find_validating_and_attached()
        if only_validating:
            if validating is None:
                raise InternalInconsistency(
                    f"route {route.instance_id} has no validating certificate"
                )
            targets = [validating]
        else:
            targets = [cert for cert in (validating, attached) if cert is not None]

        challenges = []
        for cert in targets:
            try:
                challenges.extend(
                    self.certificates.get_domain_validation_challenges(cert.certificate_arn)
                )
            except CertificateNotFound:
                logger.warning(
                    f"Certificate {cert.certificate_arn} no longer exists",
                    extra={"instance_id": route.instance_id, "certificate_arn": cert.certificate_arn},
                )
        return challenges

    def get_cdn_configuration(self, route: Route) -> Distribution:
        """Current distribution for a route."""
        return self.distributions.get(route.dist_id)

    def routes_with_expiring_certs(self) -> list[Route]:
        """Provisioned routes whose legacy certificates expire within 30 days."""
        return self.store.find_with_expiring_certs()

    def _check_route(self, route: Route, result: SweepResult) -> None:
        instance_id = route.instance_id
        log_extra = {"instance_id": instance_id, "dist_id": route.dist_id}
        previous_state = route.state

        try:
            self.poll(route)
        except Exception as e:
            if is_alias_conflict(e):
                logger.warning(f"Alias conflict for route {instance_id}: {e}", extra=log_extra)
                self._settle(route, RouteState.CONFLICT, result.conflicts, result)
                return
            if isinstance(e, ValidationTimedOut):
                logger.warning(f"Certificate validation timed out for {instance_id}", extra=log_extra)
                self._settle(route, RouteState.FAILED, result.failed, result)
                return
            sweep_errors.labels(sweep="routes").inc()
            result.errors.append(instance_id)
            logger.error(f"Failed to poll route {instance_id}: {e}", exc_info=True, extra=log_extra)

        if route.state == RouteState.PROVISIONED and previous_state != route.state:
            result.provisioned.append(instance_id)
        elif route.state == RouteState.DEPROVISIONED and previous_state != route.state:
            result.deprovisioned.append(instance_id)

        if route.is_provisioning_expired(self.clock()):
            logger.warning(
                f"Route {instance_id} has been provisioning since {route.provisioning_since}",
                extra=log_extra,
            )
            self._settle(route, RouteState.TIMEDOUT, result.timed_out, result)

    def _settle(self, route: Route, state: RouteState, bucket: list, result: SweepResult) -> None:
        previous_state = route.state
        route.state = state
        try:
            self.store.save(route)
        except BrokerError as e:
            sweep_errors.labels(sweep="routes").inc()
            result.errors.append(route.instance_id)
            logger.error(
                f"Failed to save route {route.instance_id} as {state.value}: {e}",
                extra={"instance_id": route.instance_id},
            )
            return
        record_transition(previous_state, state)
        bucket.append(route.instance_id)

    def _advance_provisioning(self, route: Route) -> None:
        log_extra = {"instance_id": route.instance_id, "dist_id": route.dist_id}
        distribution = self.distributions.get(route.dist_id)
        if not distribution.is_deployed or not distribution.enabled:
            logger.info(
                f"Distribution {route.dist_id} still deploying",
                extra={**log_extra, "status": distribution.status},
            )
            return

        validating, attached = route.find_validating_and_attached()
        if validating is None:
            raise InternalInconsistency(
                f"route {route.instance_id} is provisioning without a validating certificate"
            )

        arn = validating.certificate_arn
        try:
            issued = self.certificates.is_certificate_issued(arn)
        except ValidationTimedOut:
            validating.certificate_status = CertificateStatus.FAILED
            raise
        if not issued:
            logger.info(f"Certificate {arn} pending validation", extra=log_extra)
            return

        self.distributions.set_certificate_and_aliases(route.dist_id, arn, route.domains)

        if attached is not None:
            attached.certificate_status = CertificateStatus.DELETED
        validating.certificate_status = CertificateStatus.ATTACHED
        previous_state = route.state
        route.state = RouteState.PROVISIONED
        self.store.save(route)
        record_transition(previous_state, route.state)
        logger.info(
            f"Route {route.instance_id} provisioned",
            extra={**log_extra, "certificate_arn": arn},
        )

    def _advance_deprovisioning(self, route: Route) -> None:
        if not self.distributions.delete(route.dist_id):
            logger.info(
                f"Distribution {route.dist_id} still disabling",
                extra={"instance_id": route.instance_id, "dist_id": route.dist_id},
            )
            return
        previous_state = route.state
        route.state = RouteState.DEPROVISIONED
        self.store.save(route)
        record_transition(previous_state, route.state)
        logger.info(
            f"Route {route.instance_id} deprovisioned",
            extra={"instance_id": route.instance_id, "dist_id": route.dist_id},
        )

    def _request_certificate(self, route: Route) -> str:
        try:
            return self.certificates.request_certificate(route.domains, route.instance_id)
        except (ClientError, BotoCoreError, BrokerError, ValueError) as e:
            logger.error(
                f"Failed to request certificate: {e}",
                exc_info=True,
                extra={"instance_id": route.instance_id, "domains": route.domains},
            )
            raise CertificateRequestFailed(f"failed to request certificate: {e}") from e

    def _validating_certificate(self, arn: str) -> Certificate:
        return Certificate(
            certificate_arn=arn,
            certificate_status=CertificateStatus.VALIDATING,
            created_at=self.clock(),
        )
