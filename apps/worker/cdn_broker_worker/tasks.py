"""Periodic reconciliation tasks."""

import logging
from dataclasses import asdict
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from cdn_broker.cdn.cloudfront import get_distribution_manager
from cdn_broker.certificates.acm import get_certificate_manager
from cdn_broker.db.session import get_db
from cdn_broker.services.route_manager import RouteManager
from cdn_broker.store.route_store import RouteStore
from cdn_broker_worker.celery_app import celery_app

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    @property
    def route_manager(self) -> RouteManager:
        """Route manager bound to this task's session."""
        return RouteManager(RouteStore(self.db), get_distribution_manager(), get_certificate_manager())

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(base=DatabaseTask, bind=True)
def check_routes_to_update(self) -> dict:
    """Poll every route in an actively changing state."""
    log_extra = {"task": "check_routes_to_update"}
    logger.info("Running route check", extra=log_extra)
    try:
        result = self.route_manager.check_routes_to_update()
    except Exception as e:
        logger.error(f"Route check failed: {e}", exc_info=True, extra=log_extra)
        raise
    return asdict(result)


@celery_app.task(base=DatabaseTask, bind=True)
def delete_orphaned_certs(self) -> list[str]:
    """Delete issued certificates no route uses any more."""
    log_extra = {"task": "delete_orphaned_certs"}
    logger.info("Running orphaned certificate cleanup", extra=log_extra)
    try:
        deleted = self.route_manager.delete_orphaned_certs()
    except Exception as e:
        logger.error(f"Orphaned certificate cleanup failed: {e}", exc_info=True, extra=log_extra)
        raise
    logger.info(f"Deleted {len(deleted)} orphaned certificates", extra=log_extra)
    return deleted
