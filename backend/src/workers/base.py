"""Tenant plumbing shared by the Celery tasks.

Tasks take ``org_id`` as a keyword argument (a UUID string taken from the
tenant header of the request that enqueued them). ``BaseTask`` rejects a
call whose org does not exist before the task body runs:

    run_price_sync_job.delay(job_id=str(job.id), org_id=str(org_id))
"""

from uuid import UUID

from celery import Task
from sqlalchemy.orm import Session

from database import org_scoped_session, SessionLocal
from models.org import Org


def validate_org_id(org_id: str) -> UUID:
    """Parse ``org_id`` and check the organization exists.

    Raises:
        ValueError: malformed UUID or unknown organization
    """
    try:
        org_uuid = UUID(str(org_id))
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid org_id '{org_id}': {e}") from e

    with SessionLocal() as session:
        exists = session.query(Org.id).filter(Org.id == org_uuid).first() is not None
    if not exists:
        raise ValueError(f"Organization {org_id} does not exist")
    return org_uuid


def get_scoped_session(org_id: UUID) -> Session:
    # org_id rides in session.info; queries still filter on it explicitly
    return org_scoped_session(org_id)


class BaseTask(Task):

    def __call__(self, *args, **kwargs):
        org_id = kwargs.get("org_id")
        if not org_id:
            raise ValueError("org_id keyword argument is required for pricing tasks")
        validate_org_id(org_id)
        return super().__call__(*args, **kwargs)
