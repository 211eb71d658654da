"""Health monitoring and SLA schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel

from app.models.health import HealthCategory, HealthStatus


class CheckResultOut(BaseModel):
    service: str
    category: HealthCategory
    status: HealthStatus
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    url: Optional[str] = None
    error_message: Optional[str] = None
    details: Dict[str, Any] = {}

    class Config:
        from_attributes = True


class HealthRunSummary(BaseModel):
    total: int
    ok: int
    warnings: int
    critical: int
    results: List[CheckResultOut]


class HealthLogEntry(BaseModel):
    id: UUID
    service: str
    category: HealthCategory
    status: HealthStatus
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    url: Optional[str] = None
    error_message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    source: str
    tested_at: datetime

    class Config:
        from_attributes = True


class UserErrorsResponse(BaseModel):
    errors: List[HealthLogEntry]
    category_groups: Dict[str, int]
    total: int


class CategoryStatus(BaseModel):
    status: Optional[HealthStatus] = None
    latency_ms: Optional[int] = None


class HealthDashboard(BaseModel):
    uptime_percent: Optional[float]
    total_checks: int
    failed_checks: int
    avg_latency_ms: int
    category_status: Dict[str, CategoryStatus]
    recent_logs: List[HealthLogEntry]
    latency_trend: List[Dict[str, Any]]
    errors_by_category: List[Dict[str, Any]]


class SlaReportOut(BaseModel):
    year: int
    month: int
    status: str
    uptime_percent: Optional[float]
    total_checks: int
    ok_checks: int
    warning_checks: int
    critical_checks: int
    downtime_minutes: int
    avg_latency_ms: int
    incidents_by_category: Dict[str, int]
    generated_at: Optional[datetime] = None


class SlaOverview(BaseModel):
    reports: List[SlaReportOut]
    current_month: SlaReportOut


class SlaRegenerateRequest(BaseModel):
    # Defaults to the current month; range checks happen in the service
    year: Optional[int] = None
    month: Optional[int] = None


class SlaRegenerateResponse(BaseModel):
    report: SlaReportOut


class CleanupResponse(BaseModel):
    deleted: int
    retention_days: int
