"""Service broker facade over the route manager."""

import logging
from typing import Optional

from pydantic import ValidationError

from cdn_broker.broker.catalog import Catalog
from cdn_broker.broker.schemas import (
    InstanceResponse,
    LastOperationResponse,
    ProvisionParameters,
    ProvisionRequest,
    UpdateParameters,
    UpdateRequest,
)
from cdn_broker.cf.domains import DomainOwnershipChecker
from cdn_broker.certificates.base import DomainValidationChallenge
from cdn_broker.errors import (
    AsyncRequired,
    BindingNotSupported,
    ConcurrencyError,
    InstanceAlreadyExists,
    InstanceDoesNotExist,
    InvalidParameters,
)
from cdn_broker.models import ACTIVELY_CHANGING_STATES, PROVISIONING_EXPIRATION_PERIOD, Route, RouteState
from cdn_broker.models.route import split_domains
from cdn_broker.services.route_manager import RouteManager
from cdn_broker.settings import Settings
from cdn_broker.utils.headers import parse_headers

logger = logging.getLogger(__name__)

IN_PROGRESS = "in progress"
SUCCEEDED = "succeeded"
FAILED = "failed"

CONFLICT_DESCRIPTION = (
    "One or more of the CNAMEs you provided are already associated with a different CDN"
)
UNMANAGEABLE_DESCRIPTION = "Service instance stuck in unmanageable state."
TIMED_OUT_DESCRIPTION = (
    "Create/update operation has timed out. Operations have {hours} hours to complete "
    "before expiring\n\n"
    "Create/update operations usually expire because the domain validation DNS records "
    "have not been set."
)

CHALLENGE_TEMPLATE = """

For domain {domain}, set DNS record
    Name:  {name}
    Type:  {type}
    Value: {value}
    TTL:   {ttl}

Current validation status of {domain}: {status}

"""


def format_challenges(challenges: list[DomainValidationChallenge], ttl: int) -> list[str]:
    """Human-readable DNS instructions for each challenge."""
    instructions = []
    for challenge in challenges:
        if not challenge.record_name:
            instructions.append(f"Awaiting challenges for {challenge.domain_name}")
            continue
        instructions.append(
            CHALLENGE_TEMPLATE.format(
                domain=challenge.domain_name,
                name=challenge.record_name,
                type=challenge.record_type,
                value=challenge.record_value.strip(),
                ttl=ttl,
                status=challenge.validation_status,
            )
        )
    return instructions


def _validation_message(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        problems.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return "; ".join(problems)


class CdnServiceBroker:
    """Translate service-broker operations into route manager calls."""

    def __init__(
        self,
        manager: RouteManager,
        settings: Settings,
        catalog: Catalog,
        domain_checker: Optional[DomainOwnershipChecker] = None,
    ):
        """Initialize broker."""
        self.manager = manager
        self.settings = settings
        self.catalog = catalog
        self.domain_checker = domain_checker

    def services(self) -> Catalog:
        """Catalog advertised to the platform."""
        return self.catalog

    def provision(self, instance_id: str, request: ProvisionRequest, accepts_incomplete: bool) -> None:
        """Create a route; always completes asynchronously."""
        log_extra = {"instance_id": instance_id}
        if not accepts_incomplete:
            raise AsyncRequired()

        if request.parameters is None:
            raise InvalidParameters("must be invoked with configuration parameters")
        try:
            params = ProvisionParameters.model_validate(request.parameters)
        except ValidationError as e:
            raise InvalidParameters(_validation_message(e)) from e

        try:
            self.manager.get(instance_id)
        except InstanceDoesNotExist:
            pass
        else:
            raise InstanceAlreadyExists()

        domains = split_domains(params.domain)
        self._check_domains(domains, request.org_guid)
        headers = self._parse_headers(params.headers)

        tags = {
            "Organization": request.org_guid,
            "Space": request.space,
            "Service": request.service_id,
            "ServiceInstance": instance_id,
            "Plan": request.plan_id,
            "chargeable_entity": instance_id,
        }

        logger.info(f"Provisioning {instance_id}", extra={**log_extra, "domains": domains})
        self.manager.create(
            instance_id,
            ",".join(domains),
            params.origin or self.settings.default_origin,
            params.default_ttl if params.default_ttl is not None else self.settings.default_default_ttl,
            headers,
            params.forward_cookies,
            tags,
        )

    def update(self, instance_id: str, request: UpdateRequest, accepts_incomplete: bool) -> bool:
        """Update a route; returns True when the update continues asynchronously."""
        if not accepts_incomplete:
            raise AsyncRequired()

        if request.parameters is None:
            raise InvalidParameters("must be invoked with configuration parameters")
        try:
            params = UpdateParameters.model_validate(request.parameters)
        except ValidationError as e:
            raise InvalidParameters(_validation_message(e)) from e

        route = self.manager.get(instance_id)
        if route.state in ACTIVELY_CHANGING_STATES:
            raise ConcurrencyError(
                f"Service instance is {route.state.value}; wait for it to finish before updating"
            )

        domain_csv = None
        if params.domain is not None:
            domains = split_domains(params.domain)
            if domains:
                self._check_domains(domains, request.org_guid)
                domain_csv = ",".join(domains)

        headers = self._parse_headers(params.headers) if params.headers is not None else None

        logger.info(f"Updating {instance_id}", extra={"instance_id": instance_id})
        return self.manager.update(
            instance_id,
            domain_csv=domain_csv,
            default_ttl=params.default_ttl,
            forwarded_headers=headers,
            forward_cookies=params.forward_cookies,
            origin=params.origin,
        )

    def deprovision(self, instance_id: str, accepts_incomplete: bool) -> None:
        """Disable the distribution; deletion completes asynchronously."""
        if not accepts_incomplete:
            raise AsyncRequired()

        route = self.manager.get(instance_id)
        if route.state == RouteState.DEPROVISIONED:
            raise InstanceDoesNotExist(f"instance {instance_id} is already deprovisioned")

        logger.info(f"Deprovisioning {instance_id}", extra={"instance_id": instance_id})
        self.manager.disable(route)

    def last_operation(self, instance_id: str) -> LastOperationResponse:
        """Report the progress of the last operation from the route state."""
        route = self.manager.get(instance_id)
        state = route.state

        if state == RouteState.PROVISIONING:
            return LastOperationResponse(
                state=IN_PROGRESS, description=self._provisioning_description(route)
            )
        if state == RouteState.DEPROVISIONING:
            return LastOperationResponse(
                state=IN_PROGRESS, description=self._route_summary("Deprovisioning in progress", route)
            )
        if state == RouteState.PROVISIONED:
            return LastOperationResponse(
                state=SUCCEEDED, description=self._route_summary("Service instance provisioned", route)
            )
        if state == RouteState.DEPROVISIONED:
            return LastOperationResponse(
                state=SUCCEEDED, description=self._route_summary("Service instance deprovisioned", route)
            )
        if state == RouteState.CONFLICT:
            return LastOperationResponse(state=FAILED, description=CONFLICT_DESCRIPTION)
        if state == RouteState.TIMEDOUT:
            hours = int(PROVISIONING_EXPIRATION_PERIOD.total_seconds() // 3600)
            return LastOperationResponse(
                state=FAILED, description=TIMED_OUT_DESCRIPTION.format(hours=hours)
            )
        return LastOperationResponse(state=FAILED, description=UNMANAGEABLE_DESCRIPTION)

    def get_instance(self, instance_id: str) -> InstanceResponse:
        """Instance parameters including the DNS records tenants must publish."""
        route = self.manager.get(instance_id)
        challenges = self.manager.get_dns_challenges(route, only_validating=False)
        distribution = self.manager.get_cdn_configuration(route)

        parameters = {
            "cloudfront_distribution_id": distribution.id,
            "cloudfront_domain": route.domain_internal,
            "dns_records": [c.model_dump(by_alias=True) for c in challenges],
            "forwarded_headers": distribution.forwarded_headers,
            "forward_cookies": distribution.forward_cookies,
            "cache_ttl": distribution.default_ttl,
        }
        return InstanceResponse(parameters=parameters)

    def bind(self, instance_id: str, binding_id: str) -> None:
        logger.info("bind", extra={"instance_id": instance_id, "binding_id": binding_id})
        raise BindingNotSupported()

    def unbind(self, instance_id: str, binding_id: str) -> None:
        logger.info("unbind", extra={"instance_id": instance_id, "binding_id": binding_id})
        raise BindingNotSupported()

    def _provisioning_description(self, route: Route) -> str:
        challenges = self.manager.get_dns_challenges(route, only_validating=True)
        instructions = format_challenges(challenges, route.default_ttl)
        if not instructions:
            instructions = [f"Awaiting challenges for {route.domain_external}"]
        cnames = [f"{domain} => {route.domain_internal}" for domain in route.domains]
        return (
            "\nProvisioning in progress.\n\n"
            "Create the following CNAME records to direct traffic from your domains "
            "to your CDN route\n\n"
            + "\n".join(cnames)
            + "\n\nTo validate ownership of the domain, set the following DNS records\n\n"
            + "\n".join(instructions)
            + "\n"
        )

    @staticmethod
    def _route_summary(prefix: str, route: Route) -> str:
        return (
            f"{prefix} [{route.domain_external} => {route.origin}]; "
            f"CDN domain {route.domain_internal}"
        )

    def _check_domains(self, domains: list[str], org_guid: str) -> None:
        if self.domain_checker is None:
            logger.warning(
                "Skipping domain ownership check; CF_API_ADDRESS is not configured",
                extra={"domains": domains},
            )
            return
        self.domain_checker.check(domains, org_guid)

    @staticmethod
    def _parse_headers(names: list[str]):
        try:
            return parse_headers(names)
        except ValueError as e:
            raise InvalidParameters(str(e)) from e
