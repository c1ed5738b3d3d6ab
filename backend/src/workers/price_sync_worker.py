"""Price Sync Worker - runs PENDING price list sync jobs.

Jobs are created by ``PriceListSyncService.start_sync_job`` or
``schedule_batch_sync``. The worker pulls the ERP payload through the job's
connector and imports it into the same job, so progress and cancellation
are visible through the job row.
"""

import logging
from typing import Any, Dict, Iterable
from uuid import UUID

from celery import shared_task

from .base import BaseTask, validate_org_id, get_scoped_session
from connectors import ConnectorError, ConnectorRegistry, register_default_connectors
from pricing.store import PriceListStore
from sync.service import PriceListSyncService
from sync.status import SyncJobStatus, SyncJobType

logger = logging.getLogger(__name__)

register_default_connectors()


@shared_task(name="pricing.run_sync_job", base=BaseTask, bind=True)
def run_price_sync_job(self, job_id: str, org_id: str) -> Dict[str, Any]:
    """Fetch and import the payload of one PENDING sync job.

    The connector is the job's ``connector_id`` (default MOCK) configured by
    ``metadata_json["connector_config"]`` of the target price list. Delta
    jobs pass their seeded delta token to the connector.

    Args:
        job_id: UUID string of the PriceListSyncJob
        org_id: UUID string of organization (REQUIRED for tenant isolation)

    Returns:
        Dict with status, job_id and item counters. A job that was cancelled
        before pickup returns status 'skipped'; a connector failure marks the
        job FAILED and returns status 'FAILED' with the error.
    """
    org_uuid = validate_org_id(org_id)
    job_uuid = UUID(job_id)
    session = get_scoped_session(org_uuid)

    try:
        service = PriceListSyncService(session)
        job = service.get_sync_job_status(org_uuid, job_uuid)

        if job.status != SyncJobStatus.PENDING.value:
            logger.info(
                f"Sync job not pending ({job.status}), skipping",
                extra={"org_id": org_id, "job_id": job_id},
            )
            return {"status": "skipped", "job_id": job_id, "job_status": job.status}

        price_list = PriceListStore(session).get_price_list(org_uuid, job.price_list_id)
        config = (price_list.metadata_json or {}).get("connector_config", {})
        delta_token = job.delta_token if job.job_type == SyncJobType.DELTA_SYNC.value else None

        try:
            connector = ConnectorRegistry.get(job.connector_id)
            payload = connector.fetch_price_list(price_list.code, delta_token, config)
        except (ConnectorError, ValueError) as e:
            service.fail_sync_job(org_uuid, job_uuid, str(e), error_code="CONNECTOR_ERROR")
            return {"status": SyncJobStatus.FAILED.value, "job_id": job_id, "error": str(e)}

        result = service.run_sync_job(org_uuid, job_uuid, payload)
        return {
            "status": result.status,
            "job_id": job_id,
            "success_count": result.success_count,
            "error_count": result.error_count,
            "delta_token": result.delta_token,
        }
    finally:
        session.close()


def enqueue_sync_jobs(job_ids: Iterable[UUID], org_id: UUID) -> int:
    """Dispatch PENDING jobs to the broker. Returns the number enqueued."""
    count = 0
    for job_id in job_ids:
        run_price_sync_job.delay(job_id=str(job_id), org_id=str(org_id))
        count += 1
    logger.info(f"Enqueued {count} sync jobs", extra={"org_id": str(org_id)})
    return count
