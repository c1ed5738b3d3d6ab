"""Background workers module for async task processing.

Holds the Celery application and the multi-tenant task utilities.

All background tasks MUST:
1. Accept org_id as explicit parameter (UUID string)
2. Validate org_id exists before processing
3. Use org_scoped_session for database access
4. Filter all queries by org_id
"""

from celery import Celery
from celery.signals import setup_logging

from config import settings
from observability.logging_config import configure_logging

celery_app = Celery(
    "pricing",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["workers.price_sync_worker"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
)


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Workers log JSON lines like the API instead of Celery's default format."""
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

from .base import (  # noqa: E402
    validate_org_id,
    get_scoped_session,
    BaseTask,
)

__all__ = [
    "celery_app",
    "validate_org_id",
    "get_scoped_session",
    "BaseTask",
]
