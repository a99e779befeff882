from expense_sync.worker_app import celery_app
from expense_sync.core.database import SessionLocal
from expense_sync.schemas.sync import HistoryEntry
from expense_sync.services.extraction_service import process_pending
import logging

# Configure a logger for the worker
logger = logging.getLogger("staging_processing")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)


@celery_app.task(bind=True, max_retries=3, name="expense_sync.tasks.staging_processing.process_staging")
def process_staging(self, account_key: str, categories: list | None = None, context: list | None = None):
    db = SessionLocal()
    try:
        history = [HistoryEntry.model_validate(entry) for entry in context or []]
        result = process_pending(db, account_key, categories or [], history)

        if not result.success:
            logger.warning(f"[{account_key}] Processing warning: {result.message}")
        else:
            logger.info(f"[{account_key}] {result.message}")
        return result.model_dump()

    except Exception as e:
        logger.error(f"[{account_key}] Unexpected error while processing staging: {e}")
        raise self.retry(exc=e, countdown=5)

    finally:
        db.close()
