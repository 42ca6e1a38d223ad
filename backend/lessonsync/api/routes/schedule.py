from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lessonsync.api.deps import get_db
from lessonsync.core.config import get_settings
from lessonsync.schemas.schedule import ConsistencyReportResponse
from lessonsync.services.schedule_store import ScheduleStore
from lessonsync.services.verifier import ConsistencyVerifier

router = APIRouter()


@router.get("/schedule/consistency-report", response_model=ConsistencyReportResponse)
def consistency_report(
    tenant_id: str | None = Query(default=None, min_length=1, max_length=100),
    db: Session = Depends(get_db),
) -> ConsistencyReportResponse:
    store = ScheduleStore(db, tenant_id=tenant_id or get_settings().tenant_id)
    report = ConsistencyVerifier(store).verify()
    return ConsistencyReportResponse.from_report(report)
