"""FastAPI dependency providers for the broker."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from cdn_broker.broker.catalog import Catalog, load_catalog
from cdn_broker.broker.service import CdnServiceBroker
from cdn_broker.cdn.cloudfront import get_distribution_manager
from cdn_broker.certificates.acm import get_certificate_manager
from cdn_broker.cf.client import get_cf_client
from cdn_broker.cf.domains import DomainOwnershipChecker
from cdn_broker.db.session import get_db
from cdn_broker.services.route_manager import RouteManager
from cdn_broker.settings import get_settings
from cdn_broker.store.route_store import RouteStore


@lru_cache()
def get_catalog() -> Catalog:
    """Catalog loaded once per process."""
    return load_catalog(get_settings().catalog_path)


def get_route_manager(db: Session = Depends(get_db)) -> RouteManager:
    """Route manager bound to the request's database session."""
    return RouteManager(RouteStore(db), get_distribution_manager(), get_certificate_manager())


def get_domain_checker():
    """Domain ownership checker, or None when no Cloud Foundry API is configured."""
    client = get_cf_client()
    if client is None:
        return None
    return DomainOwnershipChecker(client)


def get_broker(
    manager: RouteManager = Depends(get_route_manager),
    catalog: Catalog = Depends(get_catalog),
    domain_checker=Depends(get_domain_checker),
) -> CdnServiceBroker:
    """Service broker for one request."""
    return CdnServiceBroker(manager, get_settings(), catalog, domain_checker=domain_checker)
