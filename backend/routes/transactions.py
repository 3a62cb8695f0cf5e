# backend/routes/transactions.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.transaction import TransactionStatus, TransactionType
from services.errors import NotFound, ReversalDegraded
from services.ledger import StockLedger
from utils.audit import write_log
from utils.deps import get_ledger, get_owner_id
import schemas.transaction as txn_schemas

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.get("", response_model=txn_schemas.TransactionPage)
def list_transactions(
    type: Optional[TransactionType] = Query(None),
    status: Optional[TransactionStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    ledger: StockLedger = Depends(get_ledger),
    owner_id: str = Depends(get_owner_id),
):
    records = ledger.records.list_for_owner(owner_id, type=type, status=status)
    start = (page - 1) * page_size
    return {"items": records[start:start + page_size], "total": len(records)}


@router.get("/{transaction_id}", response_model=txn_schemas.TransactionDetail)
def get_transaction(
    transaction_id: str,
    ledger: StockLedger = Depends(get_ledger),
    owner_id: str = Depends(get_owner_id),
):
    record = ledger.records.get(transaction_id)
    if not record or record["owner_id"] != owner_id:
        raise NotFound("Transaction", transaction_id)
    return {**record, "items": ledger.records.items_for(transaction_id)}


@router.post("/{transaction_id}/revert", response_model=txn_schemas.RevertResult)
def revert_transaction(
    transaction_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ledger: StockLedger = Depends(get_ledger),
    owner_id: str = Depends(get_owner_id),
):
    mode = "atomic"
    message = "Transaction reverted, stock adjusted"
    try:
        ledger.revert_transaction(owner_id, transaction_id)
    except ReversalDegraded as e:
        mode = "degraded"
        message = e.message

    write_log(
        db, owner_id=owner_id, action="TRANSACTION_REVERT", resource="transactions", status="SUCCESS",
        ip=request.client.host if request.client else None, meta={"id": transaction_id, "mode": mode},
    )
    return {"transaction_id": transaction_id, "mode": mode, "message": message}
