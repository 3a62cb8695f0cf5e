# backend/utils/deps.py
from typing import Optional

from fastapi import Depends, Header, HTTPException

from config import settings
from database import SessionLocal
from services.ledger import StockLedger
from store.sql import SqlDocumentStore


# The caller identifies the business it acts for; authentication happens upstream
def get_owner_id(x_owner_id: Optional[str] = Header(None)) -> str:
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return owner_id


def get_store() -> SqlDocumentStore:
    return SqlDocumentStore(SessionLocal, max_retries=settings.LEDGER_MAX_RETRIES)


def get_ledger(store: SqlDocumentStore = Depends(get_store)) -> StockLedger:
    return StockLedger(store)
