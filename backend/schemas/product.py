# backend/schemas/product.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

from models.product import ProductType
from services.virtual_stock import StockStatus


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# One bill-of-materials entry
class BomEntry(ORMBase):
    component_id: str
    quantity_per_unit: int = Field(gt=0)


# Shared base attributes for product entities
class ProductBase(ORMBase):
    name: str
    sku: Optional[str] = None
    type: ProductType = ProductType.INSUMO
    category: Optional[str] = None
    observations: Optional[str] = None
    supplier_id: Optional[str] = None
    cost_price: float = Field(default=0, ge=0)
    sale_price: float = Field(default=0, ge=0)
    min_stock: int = Field(default=0, ge=0)
    max_stock: int = Field(default=0, ge=0)
    bom: List[BomEntry] = []


# Schema for creating a new product; stock can only be set here (opening balance)
class ProductCreate(ProductBase):
    current_stock: int = Field(default=0, ge=0)


# Schema for partial product updates
class ProductEditRequest(ORMBase):
    """Schema for PATCH requests - all fields optional, stock is not editable."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, description="Product name")
    sku: Optional[str] = None
    type: Optional[ProductType] = None
    category: Optional[str] = None
    observations: Optional[str] = None
    supplier_id: Optional[str] = None
    cost_price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    bom: Optional[List[BomEntry]] = None


# Full product representation including computed stock figures
class ProductOut(ProductBase):
    id: str
    owner_id: str
    current_stock: int
    virtual_stock: int = 0
    status: StockStatus = StockStatus.OK
    updated_at: Optional[datetime] = None


class ProductListPage(ORMBase):
    items: List[ProductOut]
    total: int
