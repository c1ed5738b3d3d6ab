"""ERP price list synchronization API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from database import get_db
from dependencies import get_org_id
from .schemas import (
    DeltaTokenResponse,
    DeltaUpdateRequest,
    DeltaUpdateResult,
    PriceListImportRequest,
    PriceListSyncResult,
    ScheduleSyncRequest,
    ScheduleSyncResponse,
    StartSyncJobRequest,
    SyncJobResponse,
)
from .service import PriceListSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/price-sync", tags=["price-sync"])


# ============================================================================
# Import
# ============================================================================

@router.post("/import", response_model=PriceListSyncResult)
async def import_price_list(
    request: PriceListImportRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """
    Import an ERP price list payload synchronously.

    The price list is matched by code and created when missing. Per-item
    failures are reported in ``errors``; check ``error_count`` even when the
    status is COMPLETED.
    """
    return PriceListSyncService(db).import_price_list(
        org_id,
        request,
        full_sync=request.full_sync,
        delta_token=request.delta_token,
    )


# ============================================================================
# Jobs
# ============================================================================

@router.post("/jobs", response_model=SyncJobResponse, status_code=status.HTTP_201_CREATED)
async def start_sync_job(
    request: StartSyncJobRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Create a PENDING sync job for an existing price list."""
    job = PriceListSyncService(db).start_sync_job(
        org_id,
        request.price_list_code,
        full_sync=request.full_sync,
        delta_token=request.delta_token,
        connector_id=request.connector_id,
    )
    return SyncJobResponse.model_validate(job)


@router.get("/jobs", response_model=list[SyncJobResponse])
async def list_pending_jobs(
    limit: int = Query(10, ge=1, le=100),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """PENDING and RUNNING jobs, oldest first."""
    jobs = PriceListSyncService(db).get_pending_sync_jobs(org_id, limit=limit)
    return [SyncJobResponse.model_validate(j) for j in jobs]


@router.get("/jobs/{job_id}", response_model=SyncJobResponse)
async def get_sync_job(
    job_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    job = PriceListSyncService(db).get_sync_job_status(org_id, job_id)
    return SyncJobResponse.model_validate(job)


@router.post("/jobs/{job_id}/cancel", response_model=SyncJobResponse)
async def cancel_sync_job(
    job_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Cancel a PENDING or RUNNING job (409 once it has finished)."""
    job = PriceListSyncService(db).cancel_sync_job(org_id, job_id)
    return SyncJobResponse.model_validate(job)


@router.post("/schedule", response_model=ScheduleSyncResponse)
async def schedule_batch_sync(
    request: ScheduleSyncRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """
    Create one PENDING delta job per active, ERP-linked price list.

    With ``dispatch`` set, the jobs are also enqueued on the Celery broker.
    """
    job_ids = PriceListSyncService(db).schedule_batch_sync(org_id, connector_id=request.connector_id)

    if request.dispatch and job_ids:
        from workers.price_sync_worker import enqueue_sync_jobs
        enqueue_sync_jobs(job_ids, org_id)

    return ScheduleSyncResponse(job_ids=job_ids)


# ============================================================================
# Per price list
# ============================================================================

@router.get("/price-lists/{price_list_id}/history", response_model=list[SyncJobResponse])
async def get_sync_history(
    price_list_id: UUID,
    limit: int = Query(10, ge=1, le=100),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    jobs = PriceListSyncService(db).get_sync_history(org_id, price_list_id, limit=limit)
    return [SyncJobResponse.model_validate(j) for j in jobs]


@router.get("/price-lists/{price_list_id}/delta-token", response_model=DeltaTokenResponse)
async def get_delta_token(
    price_list_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Token to continue from; null before the first completed delta."""
    token = PriceListSyncService(db).get_last_delta_token(org_id, price_list_id)
    return DeltaTokenResponse(price_list_id=price_list_id, delta_token=token)


@router.post("/price-lists/{price_list_id}/delta", response_model=DeltaUpdateResult)
async def process_delta_updates(
    price_list_id: UUID,
    request: DeltaUpdateRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Apply create/update/delete changes keyed by SKU."""
    return PriceListSyncService(db).process_delta_updates(
        org_id,
        price_list_id,
        request.updates,
        delta_token=request.delta_token,
    )
