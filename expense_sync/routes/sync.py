from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from expense_sync.core.database import get_db
from expense_sync.core.exceptions import AuthExchangeError, GmailConfigError
from expense_sync.schemas.sync import (
    ActionResult,
    AuthorizeRequest,
    AuthorizeUrlResponse,
    AutoSyncStatus,
    ExtractionContext,
    ManualSyncRequest,
    TriggerResult,
)
from expense_sync.services.credential_service import CredentialService
from expense_sync.services import trigger_service
import logging

logger = logging.getLogger(__name__)

sync_router = APIRouter(prefix="/sync", tags=["Sync"])


@sync_router.get("/{account_id}/authorize", response_model=AuthorizeUrlResponse)
def get_authorization_url(account_id: str):
    try:
        return {"url": CredentialService.get_authorization_url(state=account_id)}
    except GmailConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )


@sync_router.post("/{account_id}/authorize", response_model=ActionResult)
def exchange_authorization_code(
    account_id: str,
    payload: AuthorizeRequest,
    db: Session = Depends(get_db)
):
    """
    Exchange the consent code and enable unattended sync
    """
    try:
        CredentialService.exchange_authorization_code(db, payload.code, account_id)
    except (AuthExchangeError, GmailConfigError) as e:
        return {"success": False, "message": str(e) or "Failed to exchange token"}

    return {"success": True, "message": "Auto-Sync Enabled!"}


@sync_router.get("/{account_id}/status", response_model=AutoSyncStatus)
def get_status(account_id: str, db: Session = Depends(get_db)):
    return CredentialService.get_auto_sync_status(db, account_id)


@sync_router.post("/{account_id}/run", response_model=TriggerResult)
def run_manual_sync(
    account_id: str,
    payload: ManualSyncRequest,
    db: Session = Depends(get_db)
):
    return trigger_service.manual_sync(
        db,
        account_id,
        ctx=ExtractionContext(categories=payload.categories, context=payload.context),
        access_token=payload.access_token,
    )


@sync_router.post("/{account_id}/auto", response_model=TriggerResult)
def run_auto_sync(
    account_id: str,
    payload: ExtractionContext,
    db: Session = Depends(get_db)
):
    return trigger_service.auto_sync(db, account_id, ctx=payload)


@sync_router.post("/{account_id}/process", response_model=TriggerResult)
def run_auto_process(
    account_id: str,
    payload: ExtractionContext,
    db: Session = Depends(get_db)
):
    return trigger_service.auto_process(db, account_id, ctx=payload)
