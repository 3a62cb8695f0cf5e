# backend/routes/stock.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from models.transaction import TransactionStatus
from services.ledger import PurchaseLine, SaleLine, StockLedger
from utils.audit import write_log
from utils.deps import get_ledger, get_owner_id
import schemas.transaction as txn_schemas

router = APIRouter(tags=["Stock"])


@router.post("/sales", response_model=txn_schemas.LedgerResult, status_code=201)
def record_sale(
    payload: txn_schemas.SaleCreate,
    request: Request,
    db: Session = Depends(get_db),
    ledger: StockLedger = Depends(get_ledger),
    owner_id: str = Depends(get_owner_id),
):
    lines = [SaleLine(i.product_id, i.quantity, i.unit_price) for i in payload.items]
    transaction_id = ledger.record_sale(
        owner_id, lines,
        discount=payload.discount,
        client_id=payload.client_id,
        client_name=payload.client_name,
        date=payload.date,
        payment_status=TransactionStatus(payload.payment_status),
        notes=payload.notes,
    )
    write_log(db, owner_id=owner_id, action="SALE_CREATE", resource="transactions", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": transaction_id, "lines": len(lines)})
    return {"transaction_id": transaction_id, "message": "Sale recorded, stock updated"}


@router.post("/purchases", response_model=txn_schemas.LedgerResult, status_code=201)
def record_purchase(
    payload: txn_schemas.PurchaseCreate,
    request: Request,
    db: Session = Depends(get_db),
    ledger: StockLedger = Depends(get_ledger),
    owner_id: str = Depends(get_owner_id),
):
    lines = [PurchaseLine(i.product_id, i.quantity, i.unit_cost) for i in payload.items]
    transaction_id = ledger.record_purchase(
        owner_id, lines,
        discount=payload.discount,
        supplier_id=payload.supplier_id,
        date=payload.date,
        invoice_number=payload.invoice_number,
        notes=payload.notes,
    )
    write_log(db, owner_id=owner_id, action="PURCHASE_CREATE", resource="transactions", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": transaction_id, "lines": len(lines)})
    return {"transaction_id": transaction_id, "message": "Purchase recorded, stock updated"}


@router.post("/assemblies", response_model=txn_schemas.LedgerResult, status_code=201)
def process_assembly(
    payload: txn_schemas.AssemblyCreate,
    request: Request,
    db: Session = Depends(get_db),
    ledger: StockLedger = Depends(get_ledger),
    owner_id: str = Depends(get_owner_id),
):
    transaction_id = ledger.process_assembly(owner_id, payload.product_id, payload.quantity)
    write_log(db, owner_id=owner_id, action="ASSEMBLY_CREATE", resource="transactions", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": transaction_id, "product_id": payload.product_id, "quantity": payload.quantity})
    return {"transaction_id": transaction_id, "message": f"Assembled {payload.quantity} unit(s)"}
