from celery import Celery
from celery.schedules import crontab
from app.config import settings

celery_app = Celery(
    "marketplace",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.broker_connection_retry_on_startup = True

celery_app.conf.task_routes = {
    "app.tasks.*": {"queue": "celery"}
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Consumed by a separate `celery beat` process; the web app never schedules.
celery_app.conf.beat_schedule = {
    "health-checks-every-5-minutes": {
        "task": "app.tasks.monitoring_tasks.run_scheduled_health_checks",
        "schedule": crontab(minute=f"*/{settings.SLA_CHECK_INTERVAL_MINUTES}"),
    },
    "health-log-cleanup-daily": {
        "task": "app.tasks.monitoring_tasks.cleanup_health_logs",
        "schedule": crontab(minute=0, hour=0),
    },
    "sla-report-monthly": {
        "task": "app.tasks.monitoring_tasks.generate_previous_month_sla",
        "schedule": crontab(minute=0, hour=1, day_of_month=1),
    },
}

celery_app.autodiscover_tasks(['app.tasks'])

# Explicitly import tasks to ensure they are registered
import app.tasks.monitoring_tasks  # noqa: F401, E402
