"""Tests for the Celery tasks and beat schedule."""

from unittest.mock import MagicMock, patch

import pytest
from celery.schedules import crontab

from cdn_broker.services.route_manager import SweepResult
from cdn_broker_worker.celery_app import celery_app
from cdn_broker_worker import tasks


def test_beat_schedule_uses_configured_schedules():
    schedule = celery_app.conf.beat_schedule

    assert schedule["check-routes-to-update"]["task"] == "cdn_broker_worker.tasks.check_routes_to_update"
    assert schedule["check-routes-to-update"]["schedule"] == crontab(minute="0")
    assert schedule["delete-orphaned-certs"]["task"] == "cdn_broker_worker.tasks.delete_orphaned_certs"
    assert schedule["delete-orphaned-certs"]["schedule"] == crontab(minute="0", hour="0")


@pytest.fixture
def route_manager():
    manager = MagicMock()
    with patch.object(tasks, "RouteManager", return_value=manager), patch.object(
        tasks, "get_distribution_manager"
    ), patch.object(tasks, "get_certificate_manager"):
        yield manager


def test_check_routes_to_update_task(route_manager):
    route_manager.check_routes_to_update.return_value = SweepResult(
        checked=2, provisioned=["inst-1"], errors=["inst-2"]
    )

    result = tasks.check_routes_to_update.apply().get()

    assert result["checked"] == 2
    assert result["provisioned"] == ["inst-1"]
    assert result["errors"] == ["inst-2"]


def test_delete_orphaned_certs_task(route_manager):
    route_manager.delete_orphaned_certs.return_value = ["arn-1"]

    assert tasks.delete_orphaned_certs.apply().get() == ["arn-1"]


def test_task_failures_are_raised(route_manager):
    route_manager.check_routes_to_update.side_effect = RuntimeError("database unavailable")

    result = tasks.check_routes_to_update.apply()

    assert result.failed()
    assert isinstance(result.result, RuntimeError)
