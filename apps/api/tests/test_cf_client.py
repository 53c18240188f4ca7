"""Tests for the Cloud Foundry client and the domain ownership checks."""

from unittest.mock import MagicMock

import httpx
import pytest

from cdn_broker.cf.client import CloudFoundryClient
from cdn_broker.cf.domains import DomainOwnershipChecker
from cdn_broker.errors import CloudFoundryAPIError, DomainOwnershipError, InvalidParameters

API = "https://api.cf.example.com"
UAA = "https://uaa.cf.example.com"


def _domain(name, owner=None, shared=()):
    return {
        "name": name,
        "relationships": {
            "organization": {"data": {"guid": owner} if owner else None},
            "shared_organizations": {"data": [{"guid": g} for g in shared]},
        },
    }


class FakeCloudFoundry:
    """Serves just enough of the v3 API and UAA for the client."""

    def __init__(self, domains=None):
        self.domains = domains or {}
        self.token_requests = 0
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == f"{API}/":
            return httpx.Response(200, json={"links": {"uaa": {"href": UAA}}})
        if url == f"{UAA}/oauth/token":
            self.token_requests += 1
            assert request.headers["authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": "token-1", "expires_in": 3600})

        assert request.headers["authorization"] == "Bearer token-1"
        if request.url.path == "/v3/domains":
            name = request.url.params["names"]
            found = self.domains.get(name)
            return httpx.Response(200, json={"resources": [found] if found else []})
        if request.url.path.startswith("/v3/organizations/"):
            return httpx.Response(200, json={"name": "my-org"})
        return httpx.Response(404, json={"errors": []})


def _client(fake):
    return CloudFoundryClient(
        API, "broker-client", "broker-secret", transport=httpx.MockTransport(fake)
    )


def test_list_domains_authenticates_once():
    fake = FakeCloudFoundry({"a.example.com": _domain("a.example.com", owner="org-1")})
    client = _client(fake)

    first = client.list_domains("a.example.com")
    second = client.list_domains("b.example.com")

    assert first[0]["name"] == "a.example.com"
    assert second == []
    assert fake.token_requests == 1


def test_http_errors_become_cloud_foundry_api_errors():
    fake = FakeCloudFoundry()
    client = _client(fake)

    with pytest.raises(CloudFoundryAPIError):
        client._request("GET", "/v3/unknown")


def test_root_without_uaa_link():
    def handler(request):
        return httpx.Response(200, json={"links": {}})

    client = CloudFoundryClient(API, "id", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(CloudFoundryAPIError, match="UAA"):
        client.list_domains("a.example.com")


def test_owned_domain_passes():
    fake = FakeCloudFoundry({"a.example.com": _domain("a.example.com", owner="org-1")})

    DomainOwnershipChecker(_client(fake)).check(["a.example.com"], "org-1")


def test_shared_domain_passes():
    fake = FakeCloudFoundry(
        {"a.example.com": _domain("a.example.com", owner="org-2", shared=["org-1"])}
    )

    DomainOwnershipChecker(_client(fake)).check(["a.example.com"], "org-1")


def test_parent_domain_covers_subdomain():
    fake = FakeCloudFoundry({"example.com": _domain("example.com", owner="org-1")})

    DomainOwnershipChecker(_client(fake)).check(["www.shop.example.com"], "org-1")


def test_missing_domain_suggests_create_domain():
    fake = FakeCloudFoundry()

    with pytest.raises(DomainOwnershipError) as excinfo:
        DomainOwnershipChecker(_client(fake)).check(["a.example.com"], "org-1")

    assert "cf create-domain my-org a.example.com" in str(excinfo.value)


def test_multiple_missing_domains():
    fake = FakeCloudFoundry()

    with pytest.raises(DomainOwnershipError, match="Multiple domains do not exist"):
        DomainOwnershipChecker(_client(fake)).check(["a.example.com", "b.example.com"], "org-1")


def test_domain_owned_by_another_organization():
    fake = FakeCloudFoundry({"a.example.com": _domain("a.example.com", owner="org-2")})

    with pytest.raises(DomainOwnershipError, match="owned by a different organization"):
        DomainOwnershipChecker(_client(fake)).check(["a.example.com"], "org-1")


def test_invalid_domain_is_rejected_before_lookup():
    client = MagicMock()

    with pytest.raises(InvalidParameters):
        DomainOwnershipChecker(client).check(["-bad-.example.com"], "org-1")

    client.list_domains.assert_not_called()
