# backend/models/product.py
import enum
import uuid

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON, CheckConstraint, func
from database import Base


def new_id() -> str:
    return str(uuid.uuid4())


# Product kind: FINAL goods are sold (and may be assembled), INSUMO are raw components
class ProductType(str, enum.Enum):
    FINAL = "FINAL"
    INSUMO = "INSUMO"


# Model Product
# Represents a single catalogue item owned by one business.
# `bom` holds the ordered bill of materials as a JSON list of
# {"component_id": str, "quantity_per_unit": int}; empty for directly stocked items.
# `current_stock` is written only by the stock ledger (services/ledger.py).
class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    sku = Column(String, nullable=True, index=True)

    type = Column(Enum(ProductType), nullable=False, default=ProductType.INSUMO)
    category = Column(String, nullable=True)
    observations = Column(String, nullable=True)
    supplier_id = Column(String(36), nullable=True)

    # Prices, guarded by constraints
    cost_price = Column(Float, CheckConstraint("cost_price >= 0"), nullable=False, default=0)
    sale_price = Column(Float, CheckConstraint("sale_price >= 0"), nullable=False, default=0)

    # Stock levels.
    current_stock = Column(Integer, CheckConstraint("current_stock >= 0"), nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    max_stock = Column(Integer, nullable=False, default=0)

    bom = Column(JSON, nullable=False, default=list)

    # Optimistic concurrency counter, bumped on every write.
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
