"""Domain ownership checks against the Cloud Foundry API."""

import logging
import re
from typing import Optional

from cdn_broker.cf.client import CloudFoundryClient
from cdn_broker.errors import CloudFoundryAPIError, DomainOwnershipError, InvalidParameters

logger = logging.getLogger(__name__)

VALID_DOMAIN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.-]*[A-Za-z0-9]$")


def is_valid_domain(domain: str) -> bool:
    return bool(VALID_DOMAIN.match(domain))


class DomainOwnershipChecker:
    """Check that requested domains are registered to the requesting organization."""

    def __init__(self, client: CloudFoundryClient):
        self.client = client

    def check(self, domains: list[str], org_guid: str) -> None:
        """Raise if any domain is invalid, unregistered or owned by another organization."""
        missing = []
        not_owned = []

        for domain in domains:
            if not is_valid_domain(domain):
                raise InvalidParameters(f"Domain {domain} doesn't look like a valid domain")

            cf_domain = self._find_domain_or_parent(domain)
            if cf_domain is None:
                logger.info(f"Domain {domain} not found in Cloud Foundry", extra={"domain": domain})
                missing.append(domain)
                continue

            if org_guid not in _owning_org_guids(cf_domain):
                logger.info(
                    f"Domain {domain} owned by a different organization",
                    extra={"domain": domain, "organization_guid": org_guid},
                )
                not_owned.append(domain)

        if missing:
            org_name = self._org_name(org_guid)
            commands = [f"cf create-domain {org_name} {d}" for d in missing]
            if len(commands) == 1:
                raise DomainOwnershipError(
                    f"Domain {missing[0]} does not exist in CloudFoundry; "
                    f"create it with: {commands[0]}"
                )
            raise DomainOwnershipError(
                "Multiple domains do not exist in CloudFoundry; create them with:\n"
                + "\n".join(commands)
            )

        if not_owned:
            if len(not_owned) == 1:
                raise DomainOwnershipError(
                    f"Domain {not_owned[0]} is owned by a different organization in CloudFoundry"
                )
            raise DomainOwnershipError(
                "Multiple domains are owned by a different organization in CloudFoundry: "
                + ", ".join(not_owned)
            )

    def _find_domain_or_parent(self, domain: str) -> Optional[dict]:
        """Find the domain, walking up to parents that are still multi-label domains."""
        while True:
            found = self.client.list_domains(domain)
            if len(found) == 1:
                return found[0]
            if len(found) > 1:
                raise DomainOwnershipError(f"Domain {domain} matches multiple CloudFoundry domains")

            _, _, parent = domain.partition(".")
            if "." not in parent:
                return None
            domain = parent

    def _org_name(self, org_guid: str) -> str:
        try:
            return self.client.get_organization_name(org_guid)
        except CloudFoundryAPIError as e:
            logger.warning(f"Could not look up organization {org_guid}: {e}")
            return "<organization>"


def _owning_org_guids(cf_domain: dict) -> set[str]:
    relationships = cf_domain.get("relationships", {})
    owner = ((relationships.get("organization") or {}).get("data") or {}).get("guid")
    shared = (relationships.get("shared_organizations") or {}).get("data") or []
    guids = {org.get("guid") for org in shared}
    if owner:
        guids.add(owner)
    return guids
