"""Tests for settings validation and request header parsing helpers."""

import base64

import pytest

from cdn_broker.middleware.api_version import parse_version
from cdn_broker.middleware.auth import parse_basic_auth
from cdn_broker.settings import Settings


def _settings(**overrides):
    values = {"environment": "production", "broker_password": "s3cr3t", "default_origin": "origin.example.com"}
    values.update(overrides)
    return Settings(**values)


def test_production_settings_are_valid():
    _settings().validate_production_settings()


def test_default_password_is_rejected_in_production():
    settings = _settings(broker_password=Settings.model_fields["broker_password"].default)

    with pytest.raises(ValueError, match="development default"):
        settings.validate_production_settings()


def test_default_origin_is_required_in_production():
    with pytest.raises(ValueError, match="DEFAULT_ORIGIN"):
        _settings(default_origin="").validate_production_settings()


def test_tls_paths_must_be_set_together():
    with pytest.raises(ValueError, match="TLS"):
        _settings(tls_certificate_path="/etc/tls/cert.pem").validate_production_settings()


def test_aws_credentials_are_left_to_boto3(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIAEXAMPLE")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")

    settings = _settings()

    assert "aws_access_key_id" not in settings.model_dump()
    assert "aws_secret_access_key" not in settings.model_dump()
    assert settings.aws_region


def test_empty_schedule_is_rejected():
    with pytest.raises(ValueError, match="SCHEDULE"):
        _settings(schedule="").validate_production_settings()


def test_development_allows_defaults():
    Settings(environment="development", default_origin="").validate_production_settings()


def test_database_url_is_computed_from_parts():
    settings = Settings(
        database_url=None,
        postgres_user="u",
        postgres_password="p",
        postgres_host="db",
        postgres_port=5433,
        postgres_db="cdn",
    )

    assert settings.database_url_computed == "postgresql://u:p@db:5433/cdn"


@pytest.mark.parametrize(
    "value,expected",
    [("2.13", (2, 13)), ("2.16", (2, 16)), ("3", None), ("two.13", None), (None, None)],
)
def test_parse_version(value, expected):
    assert parse_version(value) == expected


def test_parse_basic_auth():
    token = base64.b64encode(b"broker:pa:ss").decode()

    assert parse_basic_auth(f"Basic {token}") == ("broker", "pa:ss")
    assert parse_basic_auth("Bearer abc") is None
    assert parse_basic_auth("Basic not-base64!") is None
    assert parse_basic_auth(None) is None
