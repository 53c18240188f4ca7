"""Durable persistence for routes and their certificates."""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cdn_broker.errors import PersistenceError, RouteNotFound
from cdn_broker.models import Certificate, Route, RouteState
from cdn_broker.utils.clock import utcnow

logger = logging.getLogger(__name__)

CERTIFICATE_RENEWAL_WINDOW = timedelta(days=30)


class RouteStore:
    """Route repository backed by a SQLAlchemy session.

    ``provisioning_since`` is maintained by mapper events on :class:`Route`,
    so every write made through this store (or any other session) applies
    the same transition rules.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, route: Route) -> Route:
        """Insert a new route together with its certificates."""
        self.db.add(route)
        self._commit(route, "create")
        return route

    def save(self, route: Route) -> Route:
        """Write back a modified route.

        Writes are optimistic: if another session updated the row since it
        was loaded the save fails with :class:`PersistenceError`.
        """
        self.db.add(route)
        self._commit(route, "save")
        return route

    def find_one_matching(self, **criteria: Any) -> Route:
        """Return the single route matching every non-empty criterion."""
        route = self._matching(criteria).first()
        if route is None:
            raise RouteNotFound(f"no route matching {_describe(criteria)}")
        return route

    def find_all_matching(self, **criteria: Any) -> list[Route]:
        """Return every route matching every non-empty criterion."""
        return self._matching(criteria).all()

    def find_in_states(self, states) -> list[Route]:
        """Return routes in any of the given states."""
        return (
            self.db.query(Route)
            .filter(Route.state.in_(list(states)))
            .order_by(Route.id)
            .all()
        )

    def find_with_expiring_certs(self) -> list[Route]:
        """Provisioned routes whose legacy certificate expires within 30 days."""
        cutoff = utcnow() + CERTIFICATE_RENEWAL_WINDOW
        latest_expiry = (
            self.db.query(Certificate.route_id, func.max(Certificate.expires).label("expires"))
            .filter(Certificate.expires.is_not(None))
            .group_by(Certificate.route_id)
            .subquery()
        )
        return (
            self.db.query(Route)
            .join(latest_expiry, latest_expiry.c.route_id == Route.id)
            .filter(Route.state == RouteState.PROVISIONED)
            .filter(latest_expiry.c.expires < cutoff)
            .order_by(Route.id)
            .all()
        )

    def _matching(self, criteria: dict):
        query = self.db.query(Route).order_by(Route.id)
        for name, value in criteria.items():
            if value is None or value == "":
                continue
            if not hasattr(Route, name):
                raise ValueError(f"Route has no attribute {name!r}")
            query = query.filter(getattr(Route, name) == value)
        return query

    def _commit(self, route: Route, operation: str) -> None:
        instance_id = route.instance_id
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(
                f"Concurrent modification of route {instance_id} during {operation}",
                extra={"instance_id": instance_id},
            )
            raise PersistenceError(
                f"route {instance_id} was modified concurrently"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to {operation} route {instance_id}: {e}",
                exc_info=True,
                extra={"instance_id": instance_id},
            )
            raise PersistenceError(f"failed to {operation} route {instance_id}") from e
        self.db.refresh(route)


def _describe(criteria: dict) -> str:
    parts = [f"{k}={v!r}" for k, v in criteria.items() if v not in (None, "")]
    return ", ".join(parts) or "empty criteria"
