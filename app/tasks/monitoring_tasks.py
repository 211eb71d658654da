import asyncio
import logging
from typing import List, Optional

from tenacity import Retrying, RetryError, retry_if_result, stop_after_attempt, wait_fixed

from app.celery_app import celery_app
from app.config import settings
from app.db.session import SessionLocal
from app.logging_config import check_source_ctx
from app.models.health import CheckSource, HealthStatus
from app.services import health_checks, sla
from app.services.health_checks import CheckResult, HealthAggregator
from app.services.health_probes import build_default_registry

logger = logging.getLogger(__name__)


def _has_failures(results: List[CheckResult]) -> bool:
    return any(r.status != HealthStatus.OK for r in results)


def run_with_retry(aggregator: HealthAggregator, attempts: int, delay: float) -> List[CheckResult]:
    """
    Re-run the whole probe set while anything is not OK, so a single blip does
    not count against the SLA. Returns the last attempt's results either way.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_fixed(delay),
        retry=retry_if_result(_has_failures),
        before_sleep=lambda rs: logger.info(
            "Health run attempt %d/%d had failures, retrying", rs.attempt_number, attempts
        ),
    )
    try:
        return retrying(lambda: asyncio.run(aggregator.run_all()))
    except RetryError as exc:
        return exc.last_attempt.result()


@celery_app.task(name="app.tasks.monitoring_tasks.run_scheduled_health_checks")
def run_scheduled_health_checks() -> dict:
    """Background task: scheduled probe run, triggered by an external celery beat."""
    token = check_source_ctx.set(CheckSource.SCHEDULED.value)
    try:
        aggregator = HealthAggregator(build_default_registry())
        results = run_with_retry(
            aggregator,
            attempts=settings.HEALTH_CHECK_MAX_RETRIES,
            delay=settings.HEALTH_CHECK_RETRY_DELAY,
        )

        db = SessionLocal()
        try:
            aggregator.persist(db, results, source=CheckSource.SCHEDULED)
        finally:
            db.close()

        summary = health_checks.summarize(results)
        logger.info(
            "Scheduled health run: OK: %d, Warnings: %d, Critical: %d",
            summary["ok"], summary["warnings"], summary["critical"],
        )
        return summary
    finally:
        check_source_ctx.reset(token)


@celery_app.task(name="app.tasks.monitoring_tasks.cleanup_health_logs")
def cleanup_health_logs(retention_days: Optional[int] = None) -> int:
    db = SessionLocal()
    try:
        return health_checks.cleanup_old_logs(
            db, retention_days=retention_days or settings.HEALTH_LOG_RETENTION_DAYS
        )
    finally:
        db.close()


@celery_app.task(name="app.tasks.monitoring_tasks.generate_previous_month_sla")
def generate_previous_month_sla() -> dict:
    """Runs on the 1st of the month: close out the month that just ended."""
    year, month = sla.previous_month()
    logger.info("Generating SLA report for %d/%02d", year, month)
    db = SessionLocal()
    try:
        report = sla.upsert_sla_report(db, year, month)
        return {"year": report.year, "month": report.month, "uptime_percent": report.uptime_percent}
    except Exception:
        logger.exception("SLA report generation failed for %d/%02d", year, month)
        raise
    finally:
        db.close()
