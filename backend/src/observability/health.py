"""Component checks behind /health and /ready.

The database is required: if it does not answer, the service is unhealthy.
The Celery broker only carries scheduled sync jobs, so losing it degrades
the service while resolution and synchronous imports keep working.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

import redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from .logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None

    def as_dict(self) -> dict:
        return {"status": self.status.value, "message": self.message, "latency_ms": self.latency_ms}


@dataclass
class HealthReport:
    components: Dict[str, ComponentHealth] = field(default_factory=dict)

    @property
    def status(self) -> HealthStatus:
        statuses = {c.status for c in self.components.values()}
        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY
        if HealthStatus.DEGRADED in statuses:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "components": {name: c.as_dict() for name, c in self.components.items()},
        }


def _timed(check: Callable[[], object]) -> float:
    started = time.perf_counter()
    check()
    return round((time.perf_counter() - started) * 1000, 2)


def check_database_health(db: Session) -> ComponentHealth:
    try:
        latency = _timed(lambda: db.execute(text("SELECT 1")))
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e, exc_info=True)
        return ComponentHealth(HealthStatus.UNHEALTHY, f"Database error: {e}")
    return ComponentHealth(HealthStatus.HEALTHY, "Database connection OK", latency)


def check_broker_health(broker_url: Optional[str] = None) -> ComponentHealth:
    try:
        client = redis.from_url(broker_url or settings.CELERY_BROKER_URL, socket_connect_timeout=1)
        latency = _timed(client.ping)
    except (RedisError, ValueError) as e:
        # ValueError: broker URL is not a redis URL
        logger.warning("Broker health check failed: %s", e)
        return ComponentHealth(HealthStatus.DEGRADED, f"Broker error: {e}")
    return ComponentHealth(HealthStatus.HEALTHY, "Broker connection OK", latency)


def collect_health(db: Session) -> HealthReport:
    return HealthReport(components={
        "database": check_database_health(db),
        "broker": check_broker_health(),
    })
