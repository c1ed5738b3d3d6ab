"""Integration tests for the price sync Celery worker.

Tasks are called directly (synchronously); the worker opens its own
sessions, so the test session commits before each call.
"""

import pytest
import uuid
from sqlalchemy.orm import Session

from models.org import Org
from models.price_list import PriceListItem
from models.price_list_sync_job import PriceListSyncJob
from sync.service import PriceListSyncService
from sync.status import SyncJobStatus
from workers import price_sync_worker
from workers.price_sync_worker import enqueue_sync_jobs, run_price_sync_job


@pytest.fixture
def erp_list(db_session: Session, make_price_list):
    return make_price_list("ERP-STD", external_id="E-1", metadata_json={
        "connector_config": {
            "items": [{"sku": "A", "base_price": "10"}, {"sku": "B", "base_price": "20"}],
        },
    })


def _run(job: PriceListSyncJob, org: Org, db_session: Session) -> dict:
    job_id, org_id = str(job.id), str(org.id)
    db_session.commit()
    result = run_price_sync_job(job_id=job_id, org_id=org_id)
    db_session.expire_all()
    return result


class TestRunPriceSyncJob:

    def test_runs_pending_job(self, db_session: Session, test_org: Org, erp_list):
        job = PriceListSyncService(db_session).start_sync_job(test_org.id, "ERP-STD", full_sync=True)

        result = _run(job, test_org, db_session)

        assert result["status"] == SyncJobStatus.COMPLETED.value
        assert result["success_count"] == 2
        assert db_session.get(PriceListSyncJob, job.id).status == SyncJobStatus.COMPLETED.value
        assert db_session.query(PriceListItem).count() == 2

    def test_delta_job_returns_new_token(self, db_session: Session, test_org: Org, erp_list):
        job = PriceListSyncService(db_session).start_sync_job(test_org.id, "ERP-STD")

        result = _run(job, test_org, db_session)

        assert result["delta_token"].startswith("dt_")

    def test_connector_failure_fails_job(self, db_session: Session, test_org: Org, erp_list):
        erp_list.metadata_json = {"connector_config": {"mode": "failure", "error_message": "ERP down"}}
        db_session.commit()
        job = PriceListSyncService(db_session).start_sync_job(test_org.id, "ERP-STD")

        result = _run(job, test_org, db_session)

        assert result["status"] == SyncJobStatus.FAILED.value
        assert "ERP down" in result["error"]
        stored = db_session.get(PriceListSyncJob, job.id)
        assert stored.status == SyncJobStatus.FAILED.value
        assert stored.errors[0]["error_code"] == "CONNECTOR_ERROR"

    def test_unknown_connector_fails_job(self, db_session: Session, test_org: Org, erp_list):
        job = PriceListSyncService(db_session).start_sync_job(test_org.id, "ERP-STD", connector_id="SAP")

        result = _run(job, test_org, db_session)

        assert result["status"] == SyncJobStatus.FAILED.value

    def test_cancelled_job_skipped(self, db_session: Session, test_org: Org, erp_list):
        service = PriceListSyncService(db_session)
        job = service.start_sync_job(test_org.id, "ERP-STD")
        service.cancel_sync_job(test_org.id, job.id)

        result = _run(job, test_org, db_session)

        assert result["status"] == "skipped"
        assert result["job_status"] == SyncJobStatus.CANCELLED.value

    def test_org_id_required(self, db_session: Session, test_org: Org):
        with pytest.raises(ValueError, match="org_id"):
            run_price_sync_job(job_id=str(uuid.uuid4()), org_id=None)

    def test_unknown_org_rejected(self, db_session: Session):
        with pytest.raises(ValueError, match="does not exist"):
            run_price_sync_job(job_id=str(uuid.uuid4()), org_id=str(uuid.uuid4()))


def test_enqueue_sync_jobs(monkeypatch):
    sent = []

    class FakeTask:
        @staticmethod
        def delay(**kwargs):
            sent.append(kwargs)

    monkeypatch.setattr(price_sync_worker, "run_price_sync_job", FakeTask)
    org_id = uuid.uuid4()
    job_ids = [uuid.uuid4(), uuid.uuid4()]

    assert enqueue_sync_jobs(job_ids, org_id) == 2
    assert sent == [{"job_id": str(j), "org_id": str(org_id)} for j in job_ids]
