"""
Health check runner and health log queries.

A ``ProbeRegistry`` holds named probes in registration order. Each probe is a
sync or async callable returning one ``CheckResult``. ``HealthAggregator``
runs every probe concurrently and turns a probe that raises into a CRITICAL
result, so a run over N probes always yields N results.

Results are appended to ``health_logs`` with a ``source`` tag:
  - manual     admin-triggered run
  - scheduled  run started by an external scheduler
  - user       unexpected error raised while serving a real request
"""
import asyncio
import inspect
import logging
import re
import traceback
from collections import Counter as TallyCounter
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Union

from prometheus_client import Counter
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.health import CheckSource, HealthCategory, HealthCheckResult, HealthStatus

logger = logging.getLogger("marketplace.health")

CHECK_RESULTS = Counter(
    "health_check_results_total",
    "Health probe outcomes",
    ["service", "status"],
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckResult:
    service: str
    category: HealthCategory
    status: HealthStatus
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    url: Optional[str] = None
    error_message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["status"] = self.status.value
        return data


ProbeFunc = Callable[[], Union[CheckResult, Awaitable[CheckResult]]]


@dataclass(frozen=True)
class RegisteredProbe:
    name: str
    category: HealthCategory
    func: ProbeFunc


class ProbeRegistry:
    """Ordered collection of named probes."""

    def __init__(self) -> None:
        self._probes: Dict[str, RegisteredProbe] = {}

    def add(self, name: str, category: HealthCategory, func: ProbeFunc) -> None:
        if name in self._probes:
            raise ValueError(f"Probe '{name}' is already registered")
        self._probes[name] = RegisteredProbe(name=name, category=category, func=func)

    def register(self, name: str, category: HealthCategory) -> Callable[[ProbeFunc], ProbeFunc]:
        """Decorator form of :meth:`add`."""
        def decorator(func: ProbeFunc) -> ProbeFunc:
            self.add(name, category, func)
            return func
        return decorator

    def remove(self, name: str) -> None:
        self._probes.pop(name, None)

    @property
    def names(self) -> List[str]:
        return list(self._probes)

    def __iter__(self) -> Iterator[RegisteredProbe]:
        return iter(list(self._probes.values()))

    def __len__(self) -> int:
        return len(self._probes)


class HealthAggregator:
    """Runs registered probes and appends their results to the health log."""

    def __init__(self, registry: ProbeRegistry, clock: Callable[[], datetime] = utcnow):
        self.registry = registry
        self._clock = clock

    async def _run_probe(self, probe: RegisteredProbe) -> CheckResult:
        try:
            if inspect.iscoroutinefunction(probe.func):
                result = await probe.func()
            else:
                result = await asyncio.to_thread(probe.func)
                if inspect.isawaitable(result):
                    result = await result
            if not isinstance(result, CheckResult):
                raise TypeError(f"probe returned {type(result).__name__}, expected CheckResult")
        except Exception as exc:
            logger.warning("Probe %s failed: %s", probe.name, exc)
            result = CheckResult(
                service=probe.name,
                category=probe.category,
                status=HealthStatus.CRITICAL,
                error_message=(str(exc) or exc.__class__.__name__)[:500],
            )
        CHECK_RESULTS.labels(service=result.service, status=result.status.value).inc()
        return result

    async def run_all(self) -> List[CheckResult]:
        probes = list(self.registry)
        results = await asyncio.gather(*(self._run_probe(p) for p in probes))
        summary = summarize(results)
        logger.info(
            "Health run done: OK=%d WARNING=%d CRITICAL=%d",
            summary["ok"], summary["warnings"], summary["critical"],
        )
        return list(results)

    def persist(
        self,
        db: Session,
        results: Sequence[CheckResult],
        source: Union[CheckSource, str] = CheckSource.MANUAL,
    ) -> List[HealthCheckResult]:
        source = CheckSource(source)
        tested_at = self._clock()
        rows = [
            HealthCheckResult(
                service=r.service,
                category=HealthCategory(r.category),
                status=HealthStatus(r.status),
                latency_ms=r.latency_ms,
                status_code=r.status_code,
                url=r.url,
                error_message=r.error_message[:500] if r.error_message else None,
                details=r.details or {},
                source=source.value,
                tested_at=tested_at,
            )
            for r in results
        ]
        db.add_all(rows)
        db.commit()
        logger.debug("Persisted %d health results (source=%s)", len(rows), source.value)
        return rows


def summarize(results: Sequence[CheckResult]) -> Dict[str, int]:
    tally = TallyCounter(r.status for r in results)
    return {
        "total": len(results),
        "ok": tally[HealthStatus.OK],
        "warnings": tally[HealthStatus.WARNING],
        "critical": tally[HealthStatus.CRITICAL],
    }


# ═══════════════════════════════════════════
#  User-facing error capture
# ═══════════════════════════════════════════

_PATH_CATEGORY_MAP = [
    (re.compile(r"/api/(v\d+/)?auth/"), HealthCategory.AUTH),
    (re.compile(r"/api/(v\d+/)?requests"), HealthCategory.REQUESTS),
    (re.compile(r"/api/(v\d+/)?messages"), HealthCategory.MESSAGING),
    (re.compile(r"/api/(v\d+/)?notifications"), HealthCategory.MESSAGING),
    (re.compile(r"/api/(v\d+/)?upload"), HealthCategory.UPLOADS),
]


def infer_category(url_path: Optional[str]) -> HealthCategory:
    if url_path:
        for pattern, category in _PATH_CATEGORY_MAP:
            if pattern.search(url_path):
                return category
    return HealthCategory.API


_SERVICE_MAX = HealthCheckResult.__table__.c.service.type.length


def record_api_error(
    db: Session,
    error: Union[BaseException, str],
    *,
    service: str,
    url_path: Optional[str] = None,
    method: Optional[str] = None,
    category: Optional[HealthCategory] = None,
    context: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Optional[HealthCheckResult]:
    """Append a CRITICAL ``source=user`` row for an unexpected request failure.

    Only for 500-class failures; validation and permission errors are not
    health events. Never raises: a logging failure must not reach the caller.
    """
    try:
        if isinstance(error, BaseException):
            message = str(error) or error.__class__.__name__
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message = error
            stack = None

        details: Dict[str, Any] = {}
        if method:
            details["method"] = method
        if url_path:
            details["path"] = url_path
        if stack:
            details["stack"] = stack[-2000:]
        if context:
            details["context"] = context[:1000]

        row = HealthCheckResult(
            service=service[:_SERVICE_MAX],
            category=category or infer_category(url_path),
            status=HealthStatus.CRITICAL,
            error_message=message[:500],
            details=details,
            source=CheckSource.USER.value,
            tested_at=clock(),
        )
        db.add(row)
        db.commit()
        return row
    except Exception:
        logger.exception("Could not record API error for %s", service)
        try:
            db.rollback()
        except Exception:
            logger.debug("Rollback after failed error capture also failed", exc_info=True)
        return None


# ═══════════════════════════════════════════
#  Log queries
# ═══════════════════════════════════════════

def get_recent_user_errors(
    db: Session,
    *,
    hours: int = 24,
    limit: int = 50,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    since = (now or utcnow()) - timedelta(hours=hours)
    errors = (
        db.query(HealthCheckResult)
        .filter(
            HealthCheckResult.source == CheckSource.USER.value,
            HealthCheckResult.tested_at >= since,
        )
        .order_by(HealthCheckResult.tested_at.desc())
        .limit(limit)
        .all()
    )

    category_groups: Dict[str, int] = {}
    for e in errors:
        key = e.category.value
        category_groups[key] = category_groups.get(key, 0) + 1

    return {"errors": errors, "category_groups": category_groups, "total": len(errors)}


def uptime_percent(total: int, critical: int) -> Optional[float]:
    """Share of non-CRITICAL checks, rounded to 2 decimals; ``None`` without data."""
    if total <= 0:
        return None
    return round((total - critical) / total * 100, 2)


def get_health_status(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Aggregated figures for the admin health dashboard."""
    now = now or utcnow()
    since_24h = now - timedelta(hours=24)
    since_12h = now - timedelta(hours=12)

    window = db.query(HealthCheckResult).filter(HealthCheckResult.tested_at >= since_24h)
    total = window.count()
    failed = window.filter(HealthCheckResult.status != HealthStatus.OK).count()
    critical = window.filter(HealthCheckResult.status == HealthStatus.CRITICAL).count()

    avg_latency = (
        db.query(func.avg(HealthCheckResult.latency_ms))
        .filter(
            HealthCheckResult.tested_at >= since_24h,
            HealthCheckResult.latency_ms.isnot(None),
        )
        .scalar()
    )

    # Latest result per category
    category_status: Dict[str, Dict[str, Any]] = {}
    for category in HealthCategory:
        latest = (
            db.query(HealthCheckResult)
            .filter(HealthCheckResult.category == category)
            .order_by(HealthCheckResult.tested_at.desc())
            .first()
        )
        category_status[category.value] = {
            "status": latest.status.value if latest else None,
            "latency_ms": latest.latency_ms if latest else None,
        }

    recent_logs = (
        db.query(HealthCheckResult)
        .order_by(HealthCheckResult.tested_at.desc())
        .limit(50)
        .all()
    )

    errors_by_category = (
        db.query(HealthCheckResult.category, func.count(HealthCheckResult.id))
        .filter(
            HealthCheckResult.tested_at >= since_24h,
            HealthCheckResult.status != HealthStatus.OK,
        )
        .group_by(HealthCheckResult.category)
        .all()
    )

    # Hourly latency trend, bucketed in Python so it works on any backend
    buckets: Dict[datetime, List[int]] = {}
    trend_rows = (
        db.query(HealthCheckResult.tested_at, HealthCheckResult.latency_ms)
        .filter(
            HealthCheckResult.tested_at >= since_12h,
            HealthCheckResult.latency_ms.isnot(None),
        )
        .all()
    )
    for tested_at, latency in trend_rows:
        hour = tested_at.replace(minute=0, second=0, microsecond=0)
        buckets.setdefault(hour, []).append(latency)

    return {
        "uptime_percent": uptime_percent(total, critical),
        "total_checks": total,
        "failed_checks": failed,
        "avg_latency_ms": round(avg_latency) if avg_latency is not None else 0,
        "category_status": category_status,
        "recent_logs": recent_logs,
        "latency_trend": [
            {"time": hour.isoformat(), "avg_ms": round(sum(vals) / len(vals))}
            for hour, vals in sorted(buckets.items())
        ],
        "errors_by_category": [
            {"category": cat.value, "count": count} for cat, count in errors_by_category
        ],
    }


def cleanup_old_logs(
    db: Session,
    retention_days: int = 30,
    now: Optional[datetime] = None,
) -> int:
    """Delete health rows older than the retention window. Returns the row count."""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = (
        db.query(HealthCheckResult)
        .filter(HealthCheckResult.tested_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Health log cleanup removed %d rows older than %s", deleted, cutoff.date())
    return deleted
