"""Unit tests for monthly SLA aggregation."""
from datetime import datetime, timedelta, timezone

import pytest

from app.models.health import HealthCategory, HealthCheckResult, HealthStatus, SlaReport
from app.services import sla


def _checks(db, year, month, statuses, day=10, category=HealthCategory.API, latency_ms=100):
    base = datetime(year, month, day, 8, 0, tzinfo=timezone.utc)
    for i, status in enumerate(statuses):
        db.add(HealthCheckResult(
            service=f"svc-{i}",
            category=category,
            status=status,
            latency_ms=latency_ms,
            source="scheduled",
            tested_at=base + timedelta(minutes=5 * i),
        ))
    db.commit()


def test_march_uptime_counts_warning_as_up(db):
    _checks(db, 2026, 3, [HealthStatus.OK] * 8 + [HealthStatus.WARNING, HealthStatus.CRITICAL])

    report = sla.generate_sla_report(db, 2026, 3)

    assert report.uptime_percent == 90.0
    assert report.status == sla.STATUS_OK
    assert (report.total_checks, report.ok_checks, report.warning_checks, report.critical_checks) == (10, 8, 1, 1)
    assert report.downtime_minutes == 5
    assert report.avg_latency_ms == 100
    assert report.incidents_by_category["API"] == 2
    assert report.incidents_by_category["SECURITY"] == 0


def test_month_without_checks_is_insufficient_data(db):
    _checks(db, 2026, 3, [HealthStatus.OK])

    report = sla.generate_sla_report(db, 2026, 4)

    assert report.uptime_percent is None
    assert report.status == sla.STATUS_INSUFFICIENT_DATA
    assert report.total_checks == 0


def test_window_is_half_open(db):
    db.add_all([
        HealthCheckResult(service="first", category=HealthCategory.API, status=HealthStatus.OK,
                          source="scheduled", tested_at=datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)),
        HealthCheckResult(service="next", category=HealthCategory.API, status=HealthStatus.CRITICAL,
                          source="scheduled", tested_at=datetime(2026, 4, 1, 0, 0, tzinfo=timezone.utc)),
        HealthCheckResult(service="before", category=HealthCategory.API, status=HealthStatus.CRITICAL,
                          source="scheduled",
                          tested_at=datetime(2026, 2, 28, 23, 59, 59, tzinfo=timezone.utc)),
    ])
    db.commit()

    report = sla.generate_sla_report(db, 2026, 3)
    assert report.total_checks == 1
    assert report.uptime_percent == 100.0


def test_december_window_rolls_into_next_year():
    start, end = sla.month_window(2025, 12)
    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("now,expected", [
    (datetime(2026, 1, 1, 1, 0, tzinfo=timezone.utc), (2025, 12)),
    (datetime(2026, 7, 1, 1, 0, tzinfo=timezone.utc), (2026, 6)),
])
def test_previous_month(now, expected):
    assert sla.previous_month(now) == expected


@pytest.mark.parametrize("year,month", [
    (2026, 0), (2026, 13), (2019, 5), (2101, 5), ("abc", 1), (2026, None), (True, 1),
    (2026, 3.9), (2026.5, 3),
])
def test_invalid_period_rejected_without_touching_storage(year, month):
    class _NoStorage:
        def __getattr__(self, name):
            raise AssertionError(f"storage touched: {name}")

    with pytest.raises(sla.InvalidPeriodError):
        sla.upsert_sla_report(_NoStorage(), year, month)
    with pytest.raises(sla.InvalidPeriodError):
        sla.generate_sla_report(_NoStorage(), year, month)


def test_upsert_is_idempotent(db):
    _checks(db, 2026, 3, [HealthStatus.OK] * 3 + [HealthStatus.CRITICAL])
    first_time = datetime(2026, 4, 1, 1, 0, tzinfo=timezone.utc)

    first = sla.upsert_sla_report(db, 2026, 3, now=first_time)
    snapshot = {c.name: getattr(first, c.name) for c in SlaReport.__table__.columns}

    second = sla.upsert_sla_report(db, 2026, 3, now=first_time + timedelta(days=3))
    again = {c.name: getattr(second, c.name) for c in SlaReport.__table__.columns}

    assert again == snapshot
    assert db.query(SlaReport).count() == 1
    assert second.uptime_percent == 75.0


def test_upsert_overwrites_when_log_changes(db):
    _checks(db, 2026, 3, [HealthStatus.OK] * 4)
    report = sla.upsert_sla_report(db, 2026, 3)
    assert report.uptime_percent == 100.0

    _checks(db, 2026, 3, [HealthStatus.CRITICAL] * 4, day=20)
    report = sla.upsert_sla_report(db, 2026, 3)

    assert report.uptime_percent == 50.0
    assert report.critical_checks == 4
    assert db.query(SlaReport).count() == 1


def test_empty_month_is_stored_without_percentage(db):
    report = sla.upsert_sla_report(db, 2026, 2)
    assert report.uptime_percent is None
    assert report.total_checks == 0


def test_reports_listed_newest_first(db):
    for year, month in [(2025, 11), (2026, 2), (2025, 12), (2026, 1)]:
        sla.upsert_sla_report(db, year, month)

    reports = sla.get_sla_reports(db, limit=3)
    assert [(r.year, r.month) for r in reports] == [(2026, 2), (2026, 1), (2025, 12)]


def test_current_month_is_live_and_not_stored(db):
    now = datetime(2026, 3, 20, tzinfo=timezone.utc)
    _checks(db, 2026, 3, [HealthStatus.OK, HealthStatus.CRITICAL])

    current = sla.get_current_month_sla(db, now=now)

    assert (current.year, current.month) == (2026, 3)
    assert current.uptime_percent == 50.0
    assert db.query(SlaReport).count() == 0


def test_whole_number_floats_are_accepted():
    assert sla.validate_period(2026.0, 3.0) == (2026, 3)
