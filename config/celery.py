import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("booking_fulfillment")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Replay of failed automation events - every 5 minutes
    "retry-failed-automation-events": {
        "task": "automation.retry_failed_events",
        "schedule": crontab(minute="*/5"),
        "options": {"expires": 240},
    },
    # Report supplier locks stuck in "pending" - every 30 minutes
    "report-stale-supplier-locks": {
        "task": "suppliers.report_stale_locks",
        "schedule": crontab(minute="*/30"),
    },
}

app.conf.timezone = "UTC"
