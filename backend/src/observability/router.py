"""Operational endpoints: Prometheus scrape target, health and readiness."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from database import get_db
from .health import HealthStatus, check_database_health, collect_health

router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health", summary="Database and job broker status")
def health_check(db: Session = Depends(get_db)):
    """200 while healthy or degraded (broker down), 503 when the database is unreachable."""
    report = collect_health(db)
    status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(content=report.as_dict(), status_code=status_code)


@router.get("/ready", summary="Readiness probe")
def readiness_check(db: Session = Depends(get_db)):
    database = check_database_health(db)
    if database.status != HealthStatus.HEALTHY:
        return JSONResponse(content={"status": "not_ready", "message": database.message}, status_code=503)
    return {"status": "ready", "message": "Accepting pricing requests"}
