from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from expense_sync.core.database import get_db
from expense_sync.core.exceptions import InvalidStatusTransition, LedgerError, StagingItemNotFound
from expense_sync.schemas.staging import PromoteRequest, PromoteResponse, StagingItemListResponse
from expense_sync.schemas.sync import ExtractionContext, ProcessResult
from expense_sync.services import review_service, staging_service
from expense_sync.services.ledger_client import get_ledger_client

staging_router = APIRouter(prefix="/staging", tags=["Staging"])


@staging_router.get("/{account_id}", response_model=StagingItemListResponse)
def read_staging_items(account_id: str, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    items, total = staging_service.list_for_account(db, account_id, skip=skip, limit=limit)
    return {'items': [staging_service.to_response(item) for item in items], 'total': total}


@staging_router.post("/items/{item_id}/promote", response_model=PromoteResponse)
def promote_item(
    item_id: str,
    payload: PromoteRequest,
    db: Session = Depends(get_db),
    ledger=Depends(get_ledger_client),
):
    try:
        reference = review_service.promote(db, item_id, ledger, overrides=payload.overrides)
    except StagingItemNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except LedgerError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return {"success": True, "message": "Expense created", "ledger_reference": reference}


@staging_router.post("/items/{item_id}/retry", response_model=ProcessResult)
def retry_item(item_id: str, payload: ExtractionContext, db: Session = Depends(get_db)):
    try:
        return review_service.retry(db, item_id, payload)
    except StagingItemNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@staging_router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(item_id: str, db: Session = Depends(get_db)):
    try:
        review_service.discard(db, item_id)
    except StagingItemNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
