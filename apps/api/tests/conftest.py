"""Pytest configuration and fixtures."""

import os

# Settings and the module-level engine are created on first import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cdn_broker.cdn.base import Distribution, DistributionManager
from cdn_broker.certificates.base import CertificateManager
from cdn_broker.db.base import Base
from cdn_broker.models import Certificate, CertificateStatus, Route, RouteState
from cdn_broker.services.route_manager import RouteManager
from cdn_broker.store.route_store import RouteStore
from cdn_broker.utils.clock import utcnow

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

NOW = utcnow().replace(microsecond=0)


@pytest.fixture(scope="function")
def engine():
    """
    Create a test database engine.

    Set TEST_DATABASE_URL to point the suite at a real PostgreSQL instance.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db: Session) -> RouteStore:
    return RouteStore(db)


@pytest.fixture
def distributions():
    """CDN adapter double."""
    fake = MagicMock(spec=DistributionManager)
    fake.create.return_value = make_distribution()
    fake.get.return_value = make_distribution(status="Deployed", enabled=True)
    fake.update.return_value = make_distribution()
    fake.delete.return_value = True
    return fake


@pytest.fixture
def certificates():
    """Certificate adapter double."""
    fake = MagicMock(spec=CertificateManager)
    fake.request_certificate.return_value = "ARN1"
    fake.is_certificate_issued.return_value = False
    fake.get_domain_validation_challenges.return_value = []
    fake.list_certificates.return_value = []
    return fake


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def manager(store, distributions, certificates, clock) -> RouteManager:
    return RouteManager(store, distributions, certificates, clock=clock)


def make_distribution(
    dist_id: str = "dist-1",
    domain_name: str = "abc.cloudfront.net",
    status: str = "InProgress",
    enabled: bool = True,
    aliases: list[str] = (),
    headers: list[str] = ("Host",),
    cookies: str = "all",
    default_ttl: int = 86400,
    origin: str = "origin.example.com",
) -> Distribution:
    """A Distribution shaped like the CloudFront API response."""
    return Distribution(
        id=dist_id,
        domain_name=domain_name,
        status=status,
        etag="ETAG1",
        distribution_config={
            "Enabled": enabled,
            "Aliases": {"Quantity": len(aliases), "Items": list(aliases)},
            "Origins": {"Quantity": 1, "Items": [{"Id": "inst-1", "DomainName": origin}]},
            "DefaultCacheBehavior": {
                "ForwardedValues": {
                    "Headers": {"Quantity": len(headers), "Items": list(headers)},
                    "Cookies": {"Forward": cookies},
                },
                "DefaultTTL": default_ttl,
            },
        },
    )


def make_route(
    db: Session,
    instance_id: str = "inst-1",
    state: RouteState = RouteState.PROVISIONING,
    domains: str = "a.example.com",
    certificates=(("ARN1", CertificateStatus.VALIDATING),),
    **fields,
) -> Route:
    """Persist a route with certificates created one minute apart."""
    route = Route(
        instance_id=instance_id,
        state=state,
        domain_external=domains,
        domain_internal=fields.pop("domain_internal", "abc.cloudfront.net"),
        dist_id=fields.pop("dist_id", "dist-1"),
        origin=fields.pop("origin", "origin.example.com"),
        default_ttl=fields.pop("default_ttl", 0),
        forwarded_headers=fields.pop("forwarded_headers", "Host"),
        **fields,
    )
    for index, (arn, status) in enumerate(certificates):
        route.certificates.append(
            Certificate(
                certificate_arn=arn,
                certificate_status=status,
                created_at=NOW - timedelta(days=1) + timedelta(minutes=index),
            )
        )
    db.add(route)
    db.commit()
    db.refresh(route)
    return route
