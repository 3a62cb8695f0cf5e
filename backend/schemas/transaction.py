# backend/schemas/transaction.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional, Literal
from datetime import datetime

from models.transaction import ItemRole, TransactionStatus, TransactionType


# Input schema for a single sold line
class SaleItemCreate(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)

# Input schema for recording a sale
class SaleCreate(BaseModel):
    items: List[SaleItemCreate] = Field(min_length=1)
    discount: float = Field(default=0, ge=0)
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    date: Optional[datetime] = None
    payment_status: Literal["COMPLETED", "PENDING_PAYMENT"] = "COMPLETED"
    notes: Optional[str] = None

# Input schema for a single purchased line
class PurchaseItemCreate(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    unit_cost: float = Field(ge=0)

# Input schema for recording a purchase (goods received)
class PurchaseCreate(BaseModel):
    items: List[PurchaseItemCreate] = Field(min_length=1)
    discount: float = Field(default=0, ge=0)
    supplier_id: Optional[str] = None
    date: Optional[datetime] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

# Input schema for assembling finished goods into stock
class AssemblyCreate(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)


# Output schema for a transaction line item
class TransactionItemOut(BaseModel):
    id: str
    product_id: str
    product_name: str
    sku: Optional[str] = None
    role: ItemRole
    quantity: int
    price: float
    cost_price: float
    stock_delta: int

    model_config = ConfigDict(from_attributes=True)

# Output schema for the transaction header
class TransactionOut(BaseModel):
    id: str
    type: TransactionType
    status: TransactionStatus
    date: datetime
    total_value: float
    discount_value: float
    net_total: float
    supplier_id: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class TransactionDetail(TransactionOut):
    items: List[TransactionItemOut]

class TransactionPage(BaseModel):
    items: List[TransactionOut]
    total: int

# Result of a ledger operation
class LedgerResult(BaseModel):
    transaction_id: str
    message: str

class RevertResult(BaseModel):
    transaction_id: str
    mode: Literal["atomic", "degraded"]
    message: str
