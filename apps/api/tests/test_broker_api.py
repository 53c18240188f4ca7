"""Tests for the service broker HTTP surface."""

import base64
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cdn_broker.broker.catalog import load_catalog
from cdn_broker.broker.service import CdnServiceBroker
from cdn_broker.certificates.base import DomainValidationChallenge
from cdn_broker.dependencies import get_broker
from cdn_broker.main import app
from cdn_broker.models import CertificateStatus, Route, RouteState
from cdn_broker.settings import get_settings

from conftest import NOW, make_distribution, make_route

CATALOG_PATH = Path(__file__).resolve().parents[3] / "catalog.json"
SERVICE_ID = "a8f3c9a4-2c5f-4b6e-9a1d-6e3b1c0d7f21"
PLAN_ID = "d0a91f6e-5b2e-4c1a-8f7d-3e9b2a6c4d10"


def _auth_headers(version="2.14"):
    settings = get_settings()
    token = base64.b64encode(
        f"{settings.broker_username}:{settings.broker_password}".encode()
    ).decode()
    headers = {"Authorization": f"Basic {token}"}
    if version:
        headers["X-Broker-API-Version"] = version
    return headers


def _provision_body(**parameters):
    return {
        "service_id": SERVICE_ID,
        "plan_id": PLAN_ID,
        "organization_guid": "org-1",
        "space_guid": "space-1",
        "parameters": parameters,
    }


def _update_body(**parameters):
    return {
        "service_id": SERVICE_ID,
        "plan_id": PLAN_ID,
        "parameters": parameters,
        "context": {"organization_guid": "org-1"},
    }


@pytest.fixture
def client(manager):
    broker = CdnServiceBroker(manager, get_settings(), load_catalog(str(CATALOG_PATH)))
    app.dependency_overrides[get_broker] = lambda: broker
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestAuthAndVersion:
    def test_missing_credentials(self, client):
        response = client.get("/v2/catalog", headers={"X-Broker-API-Version": "2.14"})

        assert response.status_code == 401

    def test_wrong_password(self, client):
        token = base64.b64encode(b"broker:wrong").decode()
        response = client.get(
            "/v2/catalog",
            headers={"Authorization": f"Basic {token}", "X-Broker-API-Version": "2.14"},
        )

        assert response.status_code == 401

    def test_missing_version_header(self, client):
        response = client.get("/v2/catalog", headers=_auth_headers(version=None))

        assert response.status_code == 412

    def test_old_version(self, client):
        response = client.get("/v2/catalog", headers=_auth_headers(version="2.12"))

        assert response.status_code == 412

    def test_correlation_id_is_echoed(self, client):
        headers = {**_auth_headers(), "X-Broker-API-Request-Identity": "req-123"}

        response = client.get("/v2/catalog", headers=headers)

        assert response.headers["x-correlation-id"] == "req-123"


def test_catalog(client):
    response = client.get("/v2/catalog", headers=_auth_headers())

    assert response.status_code == 200
    services = response.json()["services"]
    assert services[0]["id"] == SERVICE_ID
    assert services[0]["plans"][0]["id"] == PLAN_ID


class TestProvision:
    def test_requires_accepts_incomplete(self, client):
        response = client.put(
            "/v2/service_instances/inst-1",
            json=_provision_body(domain="a.example.com"),
            headers=_auth_headers(),
        )

        assert response.status_code == 422
        assert response.json()["error"] == "AsyncRequired"

    def test_provision(self, client, distributions, certificates, store):
        response = client.put(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=_provision_body(
                domain="a.example.com, b.example.com",
                origin="origin.example.com",
                headers=["x-one"],
                forward_cookies=False,
            ),
            headers=_auth_headers(),
        )

        assert response.status_code == 202
        assert response.json() == {"operation": "provision"}

        args = distributions.create.call_args.args
        assert args[2] == "origin.example.com"
        assert args[4].sorted() == ["Host", "X-One"]
        assert args[5] is False
        assert args[6] == {
            "Organization": "org-1",
            "Space": "space-1",
            "Service": SERVICE_ID,
            "ServiceInstance": "inst-1",
            "Plan": PLAN_ID,
            "chargeable_entity": "inst-1",
        }
        certificates.request_certificate.assert_called_once_with(
            ["a.example.com", "b.example.com"], "inst-1"
        )
        route = store.find_one_matching(instance_id="inst-1")
        assert route.domain_external == "a.example.com,b.example.com"
        assert route.default_ttl == get_settings().default_default_ttl

    def test_existing_instance(self, client, db):
        make_route(db)

        response = client.put(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=_provision_body(domain="a.example.com"),
            headers=_auth_headers(),
        )

        assert response.status_code == 409

    @pytest.mark.parametrize(
        "parameters",
        [
            {},
            {"domain": ""},
            {"domain": ","},
            {"domain": " , "},
            {"domain": "a.example.com", "unknown": 1},
            {"domain": "a.example.com", "insecure_origin": True},
            {"domain": "a.example.com", "headers": ["*", "x-one"]},
            {"domain": "a.example.com", "headers": ["x-one", "X-One"]},
            {"domain": "a.example.com", "default_ttl": -1},
        ],
    )
    def test_invalid_parameters(self, client, distributions, parameters):
        response = client.put(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=_provision_body(**parameters),
            headers=_auth_headers(),
        )

        assert response.status_code == 400
        distributions.create.assert_not_called()

    def test_missing_parameters(self, client):
        body = _provision_body()
        body.pop("parameters")

        response = client.put(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=body,
            headers=_auth_headers(),
        )

        assert response.status_code == 400


class TestLastOperation:
    def test_unknown_instance(self, client):
        response = client.get("/v2/service_instances/missing/last_operation", headers=_auth_headers())

        assert response.status_code == 410

    def test_provisioning_lists_cnames_and_challenges(self, client, db, certificates):
        make_route(db, domains="a.example.com,b.example.com")
        certificates.get_domain_validation_challenges.return_value = [
            DomainValidationChallenge(
                domain_name="a.example.com",
                record_name="_x1.a.example.com.",
                record_type="CNAME",
                record_value="_y1.acm-validations.aws.",
                validation_status="PENDING_VALIDATION",
            ),
            DomainValidationChallenge(domain_name="b.example.com"),
        ]

        response = client.get("/v2/service_instances/inst-1/last_operation", headers=_auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "in progress"
        description = body["description"]
        assert "a.example.com => abc.cloudfront.net" in description
        assert "b.example.com => abc.cloudfront.net" in description
        assert "For domain a.example.com, set DNS record" in description
        assert "Name:  _x1.a.example.com." in description
        assert "Awaiting challenges for b.example.com" in description
        certificates.get_domain_validation_challenges.assert_called_once_with("ARN1")

    def test_provisioned(self, client, db):
        make_route(db, state=RouteState.PROVISIONED, certificates=(("ARN1", CertificateStatus.ATTACHED),))

        response = client.get("/v2/service_instances/inst-1/last_operation", headers=_auth_headers())

        assert response.json() == {
            "state": "succeeded",
            "description": "Service instance provisioned [a.example.com => origin.example.com]; "
            "CDN domain abc.cloudfront.net",
        }

    def test_deprovisioning(self, client, db):
        make_route(db, state=RouteState.DEPROVISIONING)

        response = client.get("/v2/service_instances/inst-1/last_operation", headers=_auth_headers())

        assert response.json() == {
            "state": "in progress",
            "description": "Deprovisioning in progress [a.example.com => origin.example.com]; "
            "CDN domain abc.cloudfront.net",
        }

    @pytest.mark.parametrize(
        "state,fragment",
        [
            (RouteState.CONFLICT, "already associated with a different CDN"),
            (RouteState.TIMEDOUT, "84 hours"),
            (RouteState.FAILED, "stuck in unmanageable state"),
        ],
    )
    def test_failed_states(self, client, db, state, fragment):
        make_route(db, state=state)

        response = client.get("/v2/service_instances/inst-1/last_operation", headers=_auth_headers())

        body = response.json()
        assert body["state"] == "failed"
        assert fragment in body["description"]


class TestUpdate:
    def test_update_while_provisioning_is_rejected(self, client, db):
        make_route(db)

        response = client.patch(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=_update_body(default_ttl=60),
            headers=_auth_headers(),
        )

        assert response.status_code == 422
        assert response.json()["error"] == "ConcurrencyError"

    def test_cache_update_completes_synchronously(self, client, db, distributions):
        make_route(db, state=RouteState.PROVISIONED, certificates=(("ARN1", CertificateStatus.ATTACHED),))

        response = client.patch(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=_update_body(default_ttl=60, cookies=False),
            headers=_auth_headers(),
        )

        assert response.status_code == 200
        distributions.update.assert_called_once_with(
            "dist-1", None, "origin.example.com", 60, None, False
        )

    def test_domain_update_is_async(self, client, db, certificates):
        make_route(db, state=RouteState.PROVISIONED, certificates=(("ARN1", CertificateStatus.ATTACHED),))
        certificates.request_certificate.return_value = "ARN2"

        response = client.patch(
            "/v2/service_instances/inst-1?accepts_incomplete=true",
            json=_update_body(domain="c.example.com"),
            headers=_auth_headers(),
        )

        assert response.status_code == 202
        assert response.json() == {"operation": "update"}

    def test_update_unknown_instance(self, client):
        response = client.patch(
            "/v2/service_instances/missing?accepts_incomplete=true",
            json=_update_body(default_ttl=60),
            headers=_auth_headers(),
        )

        assert response.status_code == 410


class TestDeprovision:
    def test_deprovision(self, client, db, distributions):
        make_route(db, state=RouteState.PROVISIONED, certificates=(("ARN1", CertificateStatus.ATTACHED),))

        response = client.delete(
            "/v2/service_instances/inst-1?accepts_incomplete=true&service_id=s&plan_id=p",
            headers=_auth_headers(),
        )

        assert response.status_code == 202
        assert response.json() == {"operation": "deprovision"}
        distributions.disable.assert_called_once_with("dist-1")
        db.expire_all()
        assert db.query(Route).one().state == RouteState.DEPROVISIONING

    def test_unknown_instance(self, client):
        response = client.delete(
            "/v2/service_instances/missing?accepts_incomplete=true", headers=_auth_headers()
        )

        assert response.status_code == 410

    def test_already_deprovisioned(self, client, db):
        make_route(db, state=RouteState.DEPROVISIONED)

        response = client.delete(
            "/v2/service_instances/inst-1?accepts_incomplete=true", headers=_auth_headers()
        )

        assert response.status_code == 410


def test_get_instance(client, db, distributions, certificates):
    make_route(db, state=RouteState.PROVISIONED, certificates=(("ARN1", CertificateStatus.ATTACHED),))
    distributions.get.return_value = make_distribution(
        status="Deployed", headers=["Host", "X-One"], cookies="none", default_ttl=120
    )
    certificates.get_domain_validation_challenges.return_value = [
        DomainValidationChallenge(
            domain_name="a.example.com",
            record_name="_x1.a.example.com.",
            record_type="CNAME",
            record_value="_y1.acm-validations.aws.",
            validation_status="SUCCESS",
        )
    ]

    response = client.get("/v2/service_instances/inst-1", headers=_auth_headers())

    assert response.status_code == 200
    parameters = response.json()["parameters"]
    assert parameters == {
        "cloudfront_distribution_id": "dist-1",
        "cloudfront_domain": "abc.cloudfront.net",
        "dns_records": [
            {
                "validating_domain_name": "a.example.com",
                "challenge_dns_record": "_x1.a.example.com.",
                "challenges_dns_record_type": "CNAME",
                "challenges_dns_record_value": "_y1.acm-validations.aws.",
                "status": "SUCCESS",
            }
        ],
        "forwarded_headers": ["Host", "X-One"],
        "forward_cookies": False,
        "cache_ttl": 120,
    }


def test_bind_is_not_supported(client):
    response = client.put(
        "/v2/service_instances/inst-1/service_bindings/bind-1",
        json={"service_id": SERVICE_ID, "plan_id": PLAN_ID},
        headers=_auth_headers(),
    )

    assert response.status_code == 500
    assert response.json()["description"] == "service does not support bind"


def test_expired_route_is_reported_after_sweep(client, db, manager):
    route = make_route(db)
    route.provisioning_since = NOW - timedelta(hours=85)
    db.commit()

    manager.check_routes_to_update()
    response = client.get("/v2/service_instances/inst-1/last_operation", headers=_auth_headers())

    assert response.json()["state"] == "failed"
