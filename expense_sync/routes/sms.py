from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from expense_sync.core.database import get_db
from expense_sync.core.exceptions import ValidationError
from expense_sync.schemas.sms import SmsWebhookPayload, SmsWebhookResponse
from expense_sync.services.sms_service import ingest_sms
import logging

logger = logging.getLogger(__name__)

sms_router = APIRouter(prefix="/api/sync", tags=["SMS"])


@sms_router.post("/sms", response_model=SmsWebhookResponse)
def receive_sms(payload: SmsWebhookPayload, db: Session = Depends(get_db)):
    """
    Mobile forwarder webhook. Unauthenticated; everything lands under the shared SMS account.
    """
    try:
        return ingest_sms(db, payload)
    except ValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": str(e)},
        )
    except Exception as e:
        logger.error(f"SMS Hook Error: {e}", exc_info=True)
        db.rollback()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": str(e) or "Unknown Server Error"},
        )
