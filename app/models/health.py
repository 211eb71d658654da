"""Health monitoring tables.

- ``health_logs``: append-only log of probe results and user-facing errors
- ``sla_reports``: one derived row per calendar month, rebuilt on demand
"""

import enum
import uuid
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, JSON, Enum, Uuid,
    UniqueConstraint, Index, func,
)
from app.db.base_class import Base


class HealthStatus(str, enum.Enum):
    OK = "OK"
    WARNING = "WARNING"    # degraded but functional
    CRITICAL = "CRITICAL"  # dependency unusable


class HealthCategory(str, enum.Enum):
    DATABASE = "DATABASE"
    CACHE = "CACHE"
    API = "API"
    AUTH = "AUTH"
    REQUESTS = "REQUESTS"
    UPLOADS = "UPLOADS"
    MESSAGING = "MESSAGING"
    SECURITY = "SECURITY"


class CheckSource(str, enum.Enum):
    MANUAL = "manual"        # admin pressed "run now"
    SCHEDULED = "scheduled"  # external cron / celery beat
    USER = "user"            # unexpected error hit by a real request


class HealthCheckResult(Base):
    """One immutable probe outcome."""
    __tablename__ = "health_logs"
    __table_args__ = (
        Index("ix_health_logs_source_tested_at", "source", "tested_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service = Column(String(100), nullable=False, index=True)          # e.g. "db-connection"
    category = Column(Enum(HealthCategory, native_enum=False, length=20), nullable=False, index=True)
    status = Column(Enum(HealthStatus, native_enum=False, length=10), nullable=False, index=True)
    latency_ms = Column(Integer, nullable=True)
    status_code = Column(Integer, nullable=True)
    url = Column(String, nullable=True)
    error_message = Column(String(500), nullable=True)
    details = Column(JSON, default=dict)
    source = Column(String(20), nullable=False, default=CheckSource.MANUAL.value)
    tested_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


class SlaReport(Base):
    """Monthly uptime projection of ``health_logs``.

    ``uptime_percent`` is NULL when the month has no checks at all.
    """
    __tablename__ = "sla_reports"
    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_sla_reports_year_month"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    uptime_percent = Column(Float, nullable=True)
    total_checks = Column(Integer, nullable=False, default=0)
    ok_checks = Column(Integer, nullable=False, default=0)
    warning_checks = Column(Integer, nullable=False, default=0)
    critical_checks = Column(Integer, nullable=False, default=0)
    downtime_minutes = Column(Integer, nullable=False, default=0)
    avg_latency_ms = Column(Integer, nullable=False, default=0)
    incidents_by_category = Column(JSON, default=dict)
    generated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
