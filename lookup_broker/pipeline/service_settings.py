"""
Operator-editable service settings: per-service cost table and signup grant.

Stored in the single app_settings row and read fresh on every lookup so a
pricing change applies to the very next request.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from lookup_broker.broker_logging import get_logger
from lookup_broker.database.models import AppSettings
from lookup_broker.pipeline.normalize import Service

logger = get_logger(__name__)

DEFAULT_SERVICE_COSTS: dict[str, int] = {service.value: 1 for service in Service}
DEFAULT_SIGNUP_CREDITS = 10
# Cost for a service missing from the table
FALLBACK_COST = 1


class ServiceSettings:
    """Read and update the app_settings row."""

    def get(self, session: Session) -> AppSettings:
        """Return the settings row, creating it with defaults on first use."""
        row = session.query(AppSettings).order_by(AppSettings.id).first()
        if row is None:
            row = AppSettings(
                service_costs=dict(DEFAULT_SERVICE_COSTS),
                free_credits_on_signup=DEFAULT_SIGNUP_CREDITS,
            )
            session.add(row)
            session.flush()
            logger.info("service_settings_created", service_costs=row.service_costs)
        return row

    def service_cost(self, session: Session, service: Service | str) -> int:
        costs = self.get(session).service_costs or {}
        cost = costs.get(Service(service).value, FALLBACK_COST)
        return int(cost)

    def signup_credits(self, session: Session) -> int:
        return int(self.get(session).free_credits_on_signup)

    def update(
        self,
        session: Session,
        *,
        service_costs: Mapping[str, Any] | None = None,
        free_credits_on_signup: int | None = None,
    ) -> AppSettings:
        """
        Merge new costs into the table and/or change the signup grant.
        Unknown services and negative values raise ValueError.
        """
        row = self.get(session)
        if service_costs is not None:
            merged = dict(row.service_costs or {})
            for name, cost in service_costs.items():
                service = Service(name)
                cost = int(cost)
                if cost < 0:
                    raise ValueError(f"cost for {service.value} must be >= 0")
                merged[service.value] = cost
            # reassign so the JSON column is marked dirty
            row.service_costs = merged
        if free_credits_on_signup is not None:
            if free_credits_on_signup < 0:
                raise ValueError("free_credits_on_signup must be >= 0")
            row.free_credits_on_signup = free_credits_on_signup
        session.flush()
        logger.info(
            "service_settings_updated",
            service_costs=row.service_costs,
            free_credits_on_signup=row.free_credits_on_signup,
        )
        return row
