# backend/models/transaction.py
import enum

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, func
from sqlalchemy.orm import relationship
from database import Base
from models.product import new_id


# Transaction kinds. The stored values keep the external contract used by
# reporting: a sale is "IN" (money in) and a purchase is "OUT" (money out),
# which is the opposite of the stock direction.
class TransactionType(str, enum.Enum):
    SALE = "IN"
    PURCHASE = "OUT"
    ASSEMBLY = "ASSEMBLY"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CANCELLED = "CANCELLED"


# What a line item did to stock
class ItemRole(str, enum.Enum):
    LINE = "LINE"                # sold or purchased line
    CONSUMPTION = "CONSUMPTION"  # component consumed by an assembly or on-demand sale
    OUTPUT = "OUTPUT"            # assembled product credited to stock


# Ledger header for a sale, purchase or assembly
class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False, index=True)
    # Persist the contract values ("IN", "OUT") rather than member names
    type = Column(
        Enum(TransactionType, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False, index=True,
    )
    status = Column(Enum(TransactionStatus), nullable=False, default=TransactionStatus.COMPLETED, index=True)
    date = Column(DateTime(timezone=True), nullable=False, index=True)

    total_value = Column(Float, nullable=False, default=0)
    discount_value = Column(Float, nullable=False, default=0)
    net_total = Column(Float, nullable=False, default=0)

    supplier_id = Column(String(36), nullable=True)
    client_id = Column(String(36), nullable=True)
    client_name = Column(String, nullable=True)
    invoice_number = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    items = relationship("TransactionItem", back_populates="transaction", cascade="all, delete-orphan")


# Line item of a transaction. Product name and sku are snapshots taken at
# commit time; `stock_delta` is the signed change applied to the product.
class TransactionItem(Base):
    __tablename__ = "transaction_items"

    id = Column(String(36), primary_key=True, default=new_id)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    product_id = Column(String(36), nullable=False, index=True)
    product_name = Column(String, nullable=False)
    sku = Column(String, nullable=True)

    role = Column(Enum(ItemRole), nullable=False, default=ItemRole.LINE)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False, default=0)
    cost_price = Column(Float, nullable=False, default=0)
    stock_delta = Column(Integer, nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0) # order within the transaction

    version = Column(Integer, nullable=False, default=1)

    transaction = relationship("Transaction", back_populates="items")
