"""
Monthly SLA reports.

Uptime for a calendar month is the share of non-CRITICAL rows in
``health_logs`` whose ``tested_at`` falls in ``[month start, next month
start)`` (UTC). WARNING counts as up. A month without any rows has no uptime
figure at all: ``uptime_percent`` is ``None`` and the status is
``insufficient_data``.

Stored reports are projections of the log and can always be rebuilt.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.health import HealthCategory, HealthCheckResult, HealthStatus, SlaReport
from app.services.health_checks import uptime_percent, utcnow

logger = logging.getLogger("marketplace.sla")

STATUS_OK = "ok"
STATUS_INSUFFICIENT_DATA = "insufficient_data"


class InvalidPeriodError(ValueError):
    pass


@dataclass(frozen=True)
class SlaReportData:
    year: int
    month: int
    uptime_percent: Optional[float]
    total_checks: int
    ok_checks: int
    warning_checks: int
    critical_checks: int
    downtime_minutes: int
    avg_latency_ms: int
    incidents_by_category: Dict[str, int]

    @property
    def status(self) -> str:
        return STATUS_INSUFFICIENT_DATA if self.uptime_percent is None else STATUS_OK

    def figures(self) -> Dict[str, Any]:
        """Column values stored on ``SlaReport`` (everything except the period)."""
        data = asdict(self)
        data.pop("year")
        data.pop("month")
        return data

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status
        return data


def validate_period(year: Any, month: Any) -> Tuple[int, int]:
    """Reject anything that is not a sane calendar month. Touches no storage."""
    if isinstance(year, bool) or isinstance(month, bool):
        raise InvalidPeriodError("Invalid year/month")
    if any(isinstance(v, float) and not v.is_integer() for v in (year, month)):
        raise InvalidPeriodError("Invalid year/month")
    try:
        year, month = int(year), int(month)
    except (TypeError, ValueError):
        raise InvalidPeriodError("Invalid year/month")
    if not 1 <= month <= 12:
        raise InvalidPeriodError(f"Invalid month: {month}")
    if not settings.SLA_MIN_YEAR <= year <= settings.SLA_MAX_YEAR:
        raise InvalidPeriodError(f"Invalid year: {year}")
    return year, month


def month_window(year: int, month: int) -> Tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def previous_month(now: Optional[datetime] = None) -> Tuple[int, int]:
    now = now or utcnow()
    if now.month == 1:
        return now.year - 1, 12
    return now.year, now.month - 1


def generate_sla_report(db: Session, year: int, month: int) -> SlaReportData:
    """Compute (but do not store) the report for one month."""
    year, month = validate_period(year, month)
    start, end = month_window(year, month)
    in_window = (
        HealthCheckResult.tested_at >= start,
        HealthCheckResult.tested_at < end,
    )

    by_status = dict(
        db.query(HealthCheckResult.status, func.count(HealthCheckResult.id))
        .filter(*in_window)
        .group_by(HealthCheckResult.status)
        .all()
    )
    ok = by_status.get(HealthStatus.OK, 0)
    warning = by_status.get(HealthStatus.WARNING, 0)
    critical = by_status.get(HealthStatus.CRITICAL, 0)
    total = ok + warning + critical

    avg_latency = (
        db.query(func.avg(HealthCheckResult.latency_ms))
        .filter(*in_window, HealthCheckResult.latency_ms.isnot(None))
        .scalar()
    )

    incidents = dict(
        db.query(HealthCheckResult.category, func.count(HealthCheckResult.id))
        .filter(*in_window, HealthCheckResult.status != HealthStatus.OK)
        .group_by(HealthCheckResult.category)
        .all()
    )
    incidents_by_category = {cat.value: incidents.get(cat, 0) for cat in HealthCategory}

    return SlaReportData(
        year=year,
        month=month,
        uptime_percent=uptime_percent(total, critical),
        total_checks=total,
        ok_checks=ok,
        warning_checks=warning,
        critical_checks=critical,
        # Each CRITICAL row stands for one scheduler interval of downtime
        downtime_minutes=critical * settings.SLA_CHECK_INTERVAL_MINUTES,
        avg_latency_ms=round(avg_latency) if avg_latency is not None else 0,
        incidents_by_category=incidents_by_category,
    )


def _stored_figures(report: SlaReport) -> Dict[str, Any]:
    return {
        "uptime_percent": report.uptime_percent,
        "total_checks": report.total_checks,
        "ok_checks": report.ok_checks,
        "warning_checks": report.warning_checks,
        "critical_checks": report.critical_checks,
        "downtime_minutes": report.downtime_minutes,
        "avg_latency_ms": report.avg_latency_ms,
        "incidents_by_category": report.incidents_by_category,
    }


def upsert_sla_report(db: Session, year: int, month: int, now: Optional[datetime] = None) -> SlaReport:
    """Compute and store the report for one month, overwriting any previous row.

    Re-running over an unchanged log leaves the stored row untouched,
    ``generated_at`` included.
    """
    year, month = validate_period(year, month)
    data = generate_sla_report(db, year, month)
    figures = data.figures()

    report = (
        db.query(SlaReport)
        .filter(SlaReport.year == year, SlaReport.month == month)
        .first()
    )
    if report is not None:
        if _stored_figures(report) == figures:
            logger.debug("SLA report %d/%02d unchanged", year, month)
            return report
        for attr, value in figures.items():
            setattr(report, attr, value)
        report.generated_at = now or utcnow()
        db.commit()
        db.refresh(report)
        logger.info("SLA report %d/%02d regenerated: %s", year, month, data.uptime_percent)
        return report

    report = SlaReport(year=year, month=month, generated_at=now or utcnow(), **figures)
    db.add(report)
    try:
        db.commit()
    except IntegrityError:
        # Another caller created the row first; last writer wins.
        db.rollback()
        report = (
            db.query(SlaReport)
            .filter(SlaReport.year == year, SlaReport.month == month)
            .one()
        )
        for attr, value in figures.items():
            setattr(report, attr, value)
        report.generated_at = now or utcnow()
        db.commit()
    db.refresh(report)
    logger.info("SLA report %d/%02d generated: %s", year, month, data.uptime_percent)
    return report


def get_sla_reports(db: Session, limit: int = 24) -> List[SlaReport]:
    """Stored reports, newest month first."""
    return (
        db.query(SlaReport)
        .order_by(SlaReport.year.desc(), SlaReport.month.desc())
        .limit(limit)
        .all()
    )


def get_current_month_sla(db: Session, now: Optional[datetime] = None) -> SlaReportData:
    """Live figures for the month in progress. Never stored."""
    now = now or utcnow()
    return generate_sla_report(db, now.year, now.month)
