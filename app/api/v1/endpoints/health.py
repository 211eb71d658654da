"""
Health monitoring admin API
Manual probe runs, user-facing error feed, dashboard figures and monthly SLA reports.
"""
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.config import settings
from app.models.health import CheckSource, SlaReport
from app.schemas.health import (
    CheckResultOut,
    CleanupResponse,
    HealthDashboard,
    HealthRunSummary,
    SlaOverview,
    SlaRegenerateRequest,
    SlaRegenerateResponse,
    SlaReportOut,
    UserErrorsResponse,
)
from app.services import health_checks, sla
from app.services.health_checks import HealthAggregator, summarize, utcnow

router = APIRouter(dependencies=[Depends(deps.require_admin)])


def _report_out(report: Union[SlaReport, sla.SlaReportData]) -> SlaReportOut:
    if isinstance(report, sla.SlaReportData):
        return SlaReportOut(**report.to_dict())
    return SlaReportOut(
        year=report.year,
        month=report.month,
        status=sla.STATUS_INSUFFICIENT_DATA if report.uptime_percent is None else sla.STATUS_OK,
        uptime_percent=report.uptime_percent,
        total_checks=report.total_checks,
        ok_checks=report.ok_checks,
        warning_checks=report.warning_checks,
        critical_checks=report.critical_checks,
        downtime_minutes=report.downtime_minutes,
        avg_latency_ms=report.avg_latency_ms,
        incidents_by_category=report.incidents_by_category or {},
        generated_at=report.generated_at,
    )


# ═══════════════════════════════════════════
#  Probe runs
# ═══════════════════════════════════════════

@router.post("/run", response_model=HealthRunSummary)
async def run_health_checks(
    db: Session = Depends(deps.get_db),
    aggregator: HealthAggregator = Depends(deps.get_health_aggregator),
) -> Any:
    """Run every registered probe now and store the results as a manual run."""
    results = await aggregator.run_all()
    aggregator.persist(db, results, source=CheckSource.MANUAL)
    return HealthRunSummary(
        **summarize(results),
        results=[CheckResultOut(**r.to_dict()) for r in results],
    )


@router.get("/errors", response_model=UserErrorsResponse)
def recent_user_errors(db: Session = Depends(deps.get_db)) -> Any:
    """Unexpected errors hit by real requests in the last 24 hours."""
    return health_checks.get_recent_user_errors(db, hours=24, limit=50)


@router.get("/status", response_model=HealthDashboard)
def health_status(db: Session = Depends(deps.get_db)) -> Any:
    return health_checks.get_health_status(db)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_health_logs(
    retention_days: int = Query(default=settings.HEALTH_LOG_RETENTION_DAYS, ge=1, le=3650),
    db: Session = Depends(deps.get_db),
) -> Any:
    deleted = health_checks.cleanup_old_logs(db, retention_days=retention_days)
    return CleanupResponse(deleted=deleted, retention_days=retention_days)


# ═══════════════════════════════════════════
#  SLA
# ═══════════════════════════════════════════

@router.get("/sla", response_model=SlaOverview)
def sla_overview(
    limit: int = Query(default=settings.SLA_REPORT_LIMIT, ge=1, le=120),
    db: Session = Depends(deps.get_db),
) -> Any:
    reports = sla.get_sla_reports(db, limit=limit)
    current = sla.get_current_month_sla(db)
    return SlaOverview(
        reports=[_report_out(r) for r in reports],
        current_month=_report_out(current),
    )


@router.post("/sla", response_model=SlaRegenerateResponse)
def regenerate_sla_report(
    body: Optional[SlaRegenerateRequest] = None,
    db: Session = Depends(deps.get_db),
) -> Any:
    """(Re)generate the stored report for ``{year, month}``; defaults to the current month."""
    now = utcnow()
    year = body.year if body and body.year is not None else now.year
    month = body.month if body and body.month is not None else now.month

    try:
        year, month = sla.validate_period(year, month)
    except sla.InvalidPeriodError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    report = sla.upsert_sla_report(db, year, month)
    return SlaRegenerateResponse(report=_report_out(report))
