from celery import Celery
from expense_sync.core.config import settings

celery_app = Celery(
    "worker",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

# Eager mode runs tasks inline (development, tests)
celery_app.conf.task_always_eager = settings.CELERY_TASK_ALWAYS_EAGER

# Force import so Celery registers tasks
import expense_sync.tasks.staging_processing
