"""Price list synchronization orchestrator.

Drives ERP imports into price lists through the bulk upsert engine and
tracks each run as a PriceListSyncJob:

- items are processed in batches; job counters and errors are checkpointed after
  every batch so progress is visible while a job runs
- a job found CANCELLED before a batch stops without further writes, and
  finalization only moves a job that is still RUNNING, so a late cancel wins
- a job ends FAILED only when nothing succeeded and something failed;
  partial success is COMPLETED with a non-empty error list
- a database fault propagates and leaves the job RUNNING with its last
  checkpoint, for an operator to reconcile or cancel
"""

import logging
import time
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from config import settings
from errors import InvalidStateError, NotFoundError, PricingValidationError
from models.base import utcnow
from models.price_list import PriceList, PriceListItem, PriceListStatus, PriceListType
from models.price_list_sync_job import PriceListSyncJob
from observability.metrics import sync_duration_seconds, sync_items_total, sync_jobs_total
from pricing.bulk_upsert import ITEM_ERRORS, BulkUpsertService
from pricing.schemas import BulkItemError, PriceListCreate, PriceListItemUpsert
from pricing.store import PriceListStore
from sync.delta_token import mint_delta_token
from sync.schemas import (
    DeltaAction,
    DeltaUpdate,
    DeltaUpdateResult,
    ERP_SYSTEM,
    ERPPriceListHeader,
    ERPPriceListImport,
    ERPPriceListItemImport,
    PriceChange,
    PriceListSyncResult,
    SyncError,
)
from sync.status import ACTIVE_STATUSES, SyncJobStatus, SyncJobType, validate_transition
from sync.summary import calculate_sync_summary, price_change

logger = logging.getLogger(__name__)

ERP_TYPE_MAP = {
    "standard": PriceListType.STANDARD,
    "contract": PriceListType.CONTRACT,
    "promotional": PriceListType.PROMOTIONAL,
    "volume": PriceListType.VOLUME,
    "customer": PriceListType.CUSTOMER_SPECIFIC,
    "customer_specific": PriceListType.CUSTOMER_SPECIFIC,
    "channel": PriceListType.CHANNEL,
    "regional": PriceListType.REGIONAL,
}


def map_erp_type(erp_type: Optional[str]) -> PriceListType:
    """ERP price list type to ours; unknown or missing types are STANDARD."""
    if not erp_type:
        return PriceListType.STANDARD
    return ERP_TYPE_MAP.get(erp_type.strip().lower(), PriceListType.STANDARD)


def _error_rows(errors: Sequence[SyncError]) -> Optional[list[dict]]:
    return [e.model_dump(mode="json") for e in errors] or None


class PriceListSyncService:
    """Import, delta and job management for ERP price list synchronization."""

    def __init__(self, db: Session, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or settings.SYNC_BATCH_SIZE
        self.store = PriceListStore(db)

    # ========================================================================
    # Import
    # ========================================================================

    def import_price_list(
        self,
        org_id: UUID,
        payload: ERPPriceListImport,
        full_sync: bool = False,
        delta_token: Optional[str] = None,
        connector_id: Optional[str] = None,
    ) -> PriceListSyncResult:
        """Import an ERP payload into the price list with the payload's code.

        The list is created (ACTIVE, default rounding) when it does not exist.
        The run is recorded as a new RUNNING job.

        Returns:
            PriceListSyncResult of the finished (or cancelled) job
        """
        logger.info(
            f"Starting price list import for code {payload.price_list.code}",
            extra={"org_id": str(org_id)},
        )
        price_list = self._resolve_price_list(org_id, payload.price_list)

        job = PriceListSyncJob(
            org_id=org_id,
            price_list_id=price_list.id,
            job_type=(SyncJobType.FULL_SYNC if full_sync else SyncJobType.DELTA_SYNC).value,
            status=SyncJobStatus.RUNNING.value,
            total_items=len(payload.items),
            delta_token=delta_token,
            connector_id=connector_id,
            started_at=utcnow(),
        )
        self.db.add(job)
        self.db.commit()

        return self._execute(org_id, job, price_list, payload.items)

    def run_sync_job(self, org_id: UUID, job_id: UUID, payload: ERPPriceListImport) -> PriceListSyncResult:
        """Execute a PENDING job with a payload fetched for it.

        Raises:
            NotFoundError: job does not exist
            InvalidStateError: job is not PENDING
            PricingValidationError: payload is for a different price list
        """
        job = self.get_sync_job_status(org_id, job_id)
        validate_transition(job.status, SyncJobStatus.RUNNING)

        price_list = self.store.get_price_list(org_id, job.price_list_id)
        if payload.price_list.code != price_list.code:
            raise PricingValidationError(
                f"Payload is for price list {payload.price_list.code}, job targets {price_list.code}"
            )

        job.status = SyncJobStatus.RUNNING.value
        job.total_items = len(payload.items)
        job.started_at = utcnow()
        self.db.commit()

        return self._execute(org_id, job, price_list, payload.items)

    def _execute(
        self,
        org_id: UUID,
        job: PriceListSyncJob,
        price_list: PriceList,
        items: Sequence[ERPPriceListItemImport],
    ) -> PriceListSyncResult:
        start = time.perf_counter()
        log_extra = {"org_id": str(org_id), "job_id": str(job.id), "price_list_id": str(price_list.id)}

        existing_prices = self.store.get_item_prices(price_list.id)
        upserter = BulkUpsertService(self.db, batch_size=self.batch_size)

        errors: list[SyncError] = []
        changes: list[PriceChange] = []
        success_count = 0
        skipped_count = 0

        for offset in range(0, len(items), self.batch_size):
            if self._is_cancelled(job):
                logger.info(f"Sync job cancelled before item {offset}, stopping", extra=log_extra)
                return self._result(job, price_list, start, errors=errors)

            batch = items[offset:offset + self.batch_size]
            outcome = upserter.upsert(org_id, price_list.id, [item.to_upsert() for item in batch])

            success_count += outcome.created + outcome.updated
            failed_positions = set()
            for item_error in outcome.errors:
                failed_positions.add(item_error.index)
                errors.append(SyncError(
                    sku=item_error.sku,
                    item_index=offset + item_error.index if item_error.index is not None else None,
                    error_code="UPSERT_ERROR",
                    error_message=item_error.error,
                ))

            for position, item in enumerate(batch):
                if position in failed_positions or item.sku not in existing_prices:
                    continue
                change = price_change(item.sku, existing_prices[item.sku], item.effective_list_price)
                if change is not None:
                    changes.append(change)

            sync_items_total.labels(outcome="success").inc(outcome.created + outcome.updated)
            sync_items_total.labels(outcome="error").inc(len(outcome.errors))

            # Progress checkpoint
            job.processed_items = offset + len(batch)
            job.success_count = success_count
            job.error_count = len(errors)
            job.errors = _error_rows(errors)
            self.db.commit()

        if self._is_cancelled(job):
            logger.info("Sync job cancelled during its last batch", extra=log_extra)
            return self._result(job, price_list, start, errors=errors)

        summary = calculate_sync_summary(len(existing_prices), success_count, skipped_count, changes)
        final_status = SyncJobStatus.FAILED if success_count == 0 and errors else SyncJobStatus.COMPLETED
        validate_transition(job.status, final_status)

        if job.job_type == SyncJobType.DELTA_SYNC.value and final_status == SyncJobStatus.COMPLETED:
            previous = job.delta_token or self.get_last_delta_token(org_id, price_list.id)
            job.delta_token = mint_delta_token(previous)

        now = utcnow()
        job.processed_items = len(items)
        job.success_count = success_count
        job.error_count = len(errors)
        job.skipped_count = skipped_count
        job.errors = _error_rows(errors)
        job.summary = summary.model_dump(mode="json")

        if not self._finish_job(job, final_status, now):
            logger.info("Sync job cancelled before it could be finalized", extra=log_extra)
            return self._result(job, price_list, start, errors=errors)

        price_list.last_sync_at = now
        price_list.sync_status = final_status.value
        self.db.commit()

        sync_jobs_total.labels(job_type=job.job_type, status=job.status).inc()
        sync_duration_seconds.labels(job_type=job.job_type).observe(time.perf_counter() - start)
        logger.info(
            f"Price list import finished: {price_list.code} status={job.status} "
            f"success={success_count} errors={len(errors)}",
            extra=log_extra,
        )
        return self._result(job, price_list, start, errors=errors, summary=summary)

    def _is_cancelled(self, job: PriceListSyncJob) -> bool:
        """Re-read the job row; an operator may have cancelled it meanwhile."""
        self.db.refresh(job)
        return job.status == SyncJobStatus.CANCELLED.value

    def _finish_job(self, job: PriceListSyncJob, final_status: SyncJobStatus, now) -> bool:
        """Move a RUNNING job to its terminal status, unless it was cancelled meanwhile.

        The status change is a conditional UPDATE, so a cancel committed by
        another session after the last re-read is never overwritten. On
        False, pending changes are rolled back and ``job`` is reloaded.
        """
        claimed = self.db.query(PriceListSyncJob).filter(
            PriceListSyncJob.id == job.id,
            PriceListSyncJob.status == SyncJobStatus.RUNNING.value,
        ).update(
            {"status": final_status.value, "completed_at": now},
            synchronize_session="evaluate",
        )
        if claimed:
            return True
        self.db.rollback()
        self.db.refresh(job)
        return False

    @staticmethod
    def _result(job, price_list, start, errors=None, summary=None) -> PriceListSyncResult:
        if errors is None:
            errors = [SyncError(**e) for e in job.errors or []]
        return PriceListSyncResult(
            job_id=job.id,
            price_list_id=price_list.id,
            price_list_code=price_list.code,
            status=job.status,
            total_items=job.total_items,
            processed_items=job.processed_items,
            success_count=job.success_count,
            error_count=job.error_count,
            skipped_count=job.skipped_count,
            delta_token=job.delta_token,
            started_at=job.started_at,
            completed_at=job.completed_at,
            duration_ms=int((time.perf_counter() - start) * 1000),
            errors=errors,
            summary=summary,
        )

    def _resolve_price_list(self, org_id: UUID, header: ERPPriceListHeader) -> PriceList:
        price_list = self.store.find_price_list_by_code(org_id, header.code)
        if price_list:
            return price_list

        logger.info(f"Creating price list {header.code} from ERP import", extra={"org_id": str(org_id)})
        return self.store.create_price_list(org_id, PriceListCreate(
            code=header.code,
            name=header.name,
            description=header.description,
            type=map_erp_type(header.type),
            status=PriceListStatus.ACTIVE,
            currency=header.currency,
            priority=0,
            effective_from=header.effective_from,
            effective_to=header.effective_to,
            rounding_rule=settings.DEFAULT_ROUNDING_RULE,
            rounding_precision=settings.DEFAULT_ROUNDING_PRECISION,
            is_default=False,
            is_customer_specific=False,
            external_id=header.external_id,
            external_system=ERP_SYSTEM,
        ))

    # ========================================================================
    # Job management
    # ========================================================================

    def start_sync_job(
        self,
        org_id: UUID,
        price_list_code: str,
        full_sync: bool = False,
        delta_token: Optional[str] = None,
        connector_id: Optional[str] = None,
    ) -> PriceListSyncJob:
        """Create a PENDING job for an existing list, to be run by a worker.

        A delta job without an explicit token continues from the list's last
        completed delta.
        """
        if not price_list_code:
            raise PricingValidationError("Price list code is required")
        price_list = self.store.find_price_list_by_code(org_id, price_list_code)
        if not price_list:
            raise NotFoundError(f"Price list not found: {price_list_code}")

        if not full_sync and delta_token is None:
            delta_token = self.get_last_delta_token(org_id, price_list.id)

        return self._create_pending_job(
            org_id, price_list.id,
            SyncJobType.FULL_SYNC if full_sync else SyncJobType.DELTA_SYNC,
            delta_token=delta_token,
            connector_id=connector_id,
        )

    def get_sync_job_status(self, org_id: UUID, job_id: UUID) -> PriceListSyncJob:
        job = self.db.query(PriceListSyncJob).filter(
            PriceListSyncJob.id == job_id,
            PriceListSyncJob.org_id == org_id,
        ).first()
        if not job:
            raise NotFoundError(f"Sync job not found: {job_id}")
        return job

    def get_sync_history(self, org_id: UUID, price_list_id: UUID, limit: int = 10) -> list[PriceListSyncJob]:
        """Most recent jobs of a list, newest first."""
        return self.db.query(PriceListSyncJob).filter(
            PriceListSyncJob.org_id == org_id,
            PriceListSyncJob.price_list_id == price_list_id,
        ).order_by(PriceListSyncJob.created_at.desc()).limit(limit).all()

    def get_pending_sync_jobs(self, org_id: UUID, limit: int = 10) -> list[PriceListSyncJob]:
        """PENDING and RUNNING jobs, oldest first."""
        return self.db.query(PriceListSyncJob).filter(
            PriceListSyncJob.org_id == org_id,
            PriceListSyncJob.status.in_([s.value for s in ACTIVE_STATUSES]),
        ).order_by(PriceListSyncJob.created_at.asc()).limit(limit).all()

    def cancel_sync_job(self, org_id: UUID, job_id: UUID) -> PriceListSyncJob:
        """Cancel a PENDING or RUNNING job.

        A running import notices the cancellation before its next batch.

        Raises:
            NotFoundError: job does not exist
            InvalidStateError: job already finished
        """
        job = self.get_sync_job_status(org_id, job_id)
        if job.status not in [s.value for s in ACTIVE_STATUSES]:
            raise InvalidStateError(f"Cannot cancel job in status: {job.status}")
        validate_transition(job.status, SyncJobStatus.CANCELLED)

        job.status = SyncJobStatus.CANCELLED.value
        job.completed_at = utcnow()
        self.db.commit()
        self.db.refresh(job)

        sync_jobs_total.labels(job_type=job.job_type, status=job.status).inc()
        logger.info("Sync job cancelled", extra={"org_id": str(org_id), "job_id": str(job_id)})
        return job

    def fail_sync_job(self, org_id: UUID, job_id: UUID, message: str, error_code: str = "JOB_ERROR") -> PriceListSyncJob:
        """Mark a job that could not run (e.g. connector failure) as FAILED."""
        job = self.get_sync_job_status(org_id, job_id)
        if job.status == SyncJobStatus.PENDING.value:
            validate_transition(job.status, SyncJobStatus.RUNNING)
            job.status = SyncJobStatus.RUNNING.value
            job.started_at = utcnow()
        validate_transition(job.status, SyncJobStatus.FAILED)

        job.status = SyncJobStatus.FAILED.value
        job.completed_at = utcnow()
        job.errors = (job.errors or []) + [SyncError(error_code=error_code, error_message=message).model_dump(mode="json")]
        self.db.commit()
        self.db.refresh(job)

        sync_jobs_total.labels(job_type=job.job_type, status=job.status).inc()
        logger.error(f"Sync job failed: {message}", extra={"org_id": str(org_id), "job_id": str(job_id)})
        return job

    def _create_pending_job(
        self,
        org_id: UUID,
        price_list_id: UUID,
        job_type: SyncJobType,
        delta_token: Optional[str] = None,
        connector_id: Optional[str] = None,
    ) -> PriceListSyncJob:
        job = PriceListSyncJob(
            org_id=org_id,
            price_list_id=price_list_id,
            job_type=job_type.value,
            status=SyncJobStatus.PENDING.value,
            delta_token=delta_token,
            connector_id=connector_id,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    # ========================================================================
    # Delta continuation
    # ========================================================================

    def get_last_delta_token(self, org_id: UUID, price_list_id: UUID) -> Optional[str]:
        """Token of the most recent COMPLETED delta job of a list, or None."""
        row = self.db.query(PriceListSyncJob.delta_token).filter(
            PriceListSyncJob.org_id == org_id,
            PriceListSyncJob.price_list_id == price_list_id,
            PriceListSyncJob.status == SyncJobStatus.COMPLETED.value,
            PriceListSyncJob.job_type == SyncJobType.DELTA_SYNC.value,
            PriceListSyncJob.delta_token.isnot(None),
        ).order_by(
            PriceListSyncJob.completed_at.desc(),
            PriceListSyncJob.delta_token.desc(),
        ).first()
        return row[0] if row else None

    def process_delta_updates(
        self,
        org_id: UUID,
        price_list_id: UUID,
        updates: Sequence[DeltaUpdate],
        delta_token: Optional[str] = None,
    ) -> DeltaUpdateResult:
        """Apply create/update/delete changes keyed by SKU, in order.

        Create and update go through the bulk upsert engine; an update only
        replaces the fields it carries. Delete deactivates the item; deleting
        an unknown SKU is a no-op that still counts as processed. The run is
        recorded as a DELTA_SYNC job. When it completes, a new token is minted
        and stored on that job; when every change failed the caller's token
        is returned unchanged.
        """
        price_list = self.store.get_price_list(org_id, price_list_id)
        log_extra = {"org_id": str(org_id), "price_list_id": str(price_list_id)}

        last_token = self.get_last_delta_token(org_id, price_list_id)
        if delta_token and last_token and delta_token != last_token:
            logger.warning(f"Delta token {delta_token} is not the latest ({last_token})", extra=log_extra)

        job = PriceListSyncJob(
            org_id=org_id,
            price_list_id=price_list.id,
            job_type=SyncJobType.DELTA_SYNC.value,
            status=SyncJobStatus.RUNNING.value,
            total_items=len(updates),
            delta_token=delta_token,
            started_at=utcnow(),
        )
        self.db.add(job)
        self.db.commit()

        upserter = BulkUpsertService(self.db)
        processed = 0
        errors: list[BulkItemError] = []

        for index, update in enumerate(updates):
            try:
                if update.action == DeltaAction.DELETE:
                    self._deactivate_item(price_list.id, update.sku)
                else:
                    item = self._delta_upsert_item(price_list.id, update)
                    outcome = upserter.upsert(org_id, price_list.id, [item])
                    if outcome.errors:
                        raise PricingValidationError(outcome.errors[0].error)
            except ITEM_ERRORS as e:
                self.db.rollback()
                errors.append(BulkItemError(sku=update.sku, error=str(e), index=index))
                continue
            processed += 1

        final_status = SyncJobStatus.FAILED if processed == 0 and errors else SyncJobStatus.COMPLETED
        validate_transition(job.status, final_status)

        if final_status == SyncJobStatus.COMPLETED:
            new_token = mint_delta_token(delta_token or last_token)
            job.delta_token = new_token
        else:
            new_token = delta_token

        now = utcnow()
        job.processed_items = len(updates)
        job.success_count = processed
        job.error_count = len(errors)
        job.errors = _error_rows([
            SyncError(sku=e.sku, item_index=e.index, error_code="DELTA_ERROR", error_message=e.error)
            for e in errors
        ])

        if not self._finish_job(job, final_status, now):
            logger.info("Delta job cancelled before it could be finalized", extra=log_extra)
            return DeltaUpdateResult(job_id=job.id, processed=processed, errors=errors, new_delta_token=delta_token)

        price_list.last_sync_at = now
        price_list.sync_status = final_status.value
        self.db.commit()

        sync_jobs_total.labels(job_type=job.job_type, status=job.status).inc()
        logger.info(f"Delta applied: processed={processed} errors={len(errors)}", extra=log_extra)
        return DeltaUpdateResult(job_id=job.id, processed=processed, errors=errors, new_delta_token=new_token)

    def _deactivate_item(self, price_list_id: UUID, sku: str) -> None:
        item = self.db.query(PriceListItem).filter(
            PriceListItem.price_list_id == price_list_id,
            PriceListItem.sku == sku,
        ).first()
        if item is not None:
            item.is_active = False
            item.last_sync_at = utcnow()
            self.db.commit()

    def _delta_upsert_item(self, price_list_id: UUID, update: DeltaUpdate) -> PriceListItemUpsert:
        if update.data is None:
            raise PricingValidationError("Data required for create/update")
        changes = update.data.model_dump(exclude_unset=True)
        # null clears the quantity breaks; a null base price keeps the stored one
        if "quantity_breaks" in changes and changes["quantity_breaks"] is None:
            changes["quantity_breaks"] = []
        if "base_price" in changes and changes["base_price"] is None:
            del changes["base_price"]

        existing = self.db.query(PriceListItem).filter(
            PriceListItem.price_list_id == price_list_id,
            PriceListItem.sku == update.sku,
        ).first()

        if existing is None:
            if changes.get("base_price") is None:
                raise PricingValidationError("base_price is required to create an item")
            return PriceListItemUpsert(
                sku=update.sku,
                external_system=ERP_SYSTEM,
                **changes,
            )

        current = {
            "sku": existing.sku,
            "master_product_id": existing.master_product_id,
            "base_price": existing.base_price,
            "list_price": existing.list_price,
            "min_price": existing.min_price,
            "max_price": existing.max_price,
            "cost": existing.cost,
            "currency": existing.currency,
            "quantity_breaks": existing.quantity_breaks or [],
            "max_discount_percent": existing.max_discount_percent,
            "is_discountable": existing.is_discountable,
            "effective_from": existing.effective_from,
            "effective_to": existing.effective_to,
            "uom": existing.uom,
            "external_id": existing.external_id,
            "external_system": existing.external_system or ERP_SYSTEM,
            "metadata_json": existing.metadata_json or {},
        }
        # A base price change without a list price moves the list price along
        if "base_price" in changes and "list_price" not in changes:
            changes["list_price"] = changes["base_price"]
        current.update(changes)
        current["is_active"] = True
        return PriceListItemUpsert.model_validate(current)

    # ========================================================================
    # Scheduling
    # ========================================================================

    def schedule_batch_sync(self, org_id: UUID, connector_id: Optional[str] = None) -> list[UUID]:
        """Create one PENDING delta job per ACTIVE, externally linked list.

        Each job is seeded with its list's last delta token. Nothing runs
        here; callers dispatch or poll the returned jobs.
        """
        price_lists = self.db.query(PriceList).filter(
            PriceList.org_id == org_id,
            PriceList.status == PriceListStatus.ACTIVE.value,
            PriceList.deleted_at.is_(None),
            PriceList.external_id.isnot(None),
        ).order_by(PriceList.code).all()

        job_ids = []
        for price_list in price_lists:
            job = self._create_pending_job(
                org_id, price_list.id, SyncJobType.DELTA_SYNC,
                delta_token=self.get_last_delta_token(org_id, price_list.id),
                connector_id=connector_id,
            )
            job_ids.append(job.id)

        logger.info(f"Scheduled {len(job_ids)} batch sync jobs", extra={"org_id": str(org_id)})
        return job_ids
