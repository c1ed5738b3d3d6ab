"""Observability module for the pricing engine.

Provides structured logging, metrics, and health checks.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    price_resolutions_total,
    price_resolution_duration_seconds,
    bulk_upsert_items_total,
    sync_jobs_total,
    sync_items_total,
    sync_duration_seconds,
)
from .request_id import request_id_var, get_request_id, bind_request_id
from .health import HealthStatus, ComponentHealth
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "price_resolutions_total",
    "price_resolution_duration_seconds",
    "bulk_upsert_items_total",
    "sync_jobs_total",
    "sync_items_total",
    "sync_duration_seconds",
    # Request ID
    "request_id_var",
    "get_request_id",
    "bind_request_id",
    # Health
    "HealthStatus",
    "ComponentHealth",
    # Middleware
    "RequestIDMiddleware",
]
