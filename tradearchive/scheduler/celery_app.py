from celery import Celery
from celery.schedules import crontab

from tradearchive.core.config import settings

app = Celery("tradearchive")
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.CELERY_TIMEZONE
app.conf.enable_utc = False

app.autodiscover_tasks(["tradearchive.tasks"], related_name="trading_history")

app.conf.beat_schedule = {
    "ingest-trading-history": {
        "task": "tradearchive.tasks.trading_history.ingest_trading_history",
        "schedule": crontab(
            hour=settings.INGEST_REFRESH_HOUR,
            minute=settings.INGEST_REFRESH_MINUTE,
        ),
    },
}
