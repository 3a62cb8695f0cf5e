# backend/routes/products.py
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.product import Product, ProductType
from services import catalog
from services.virtual_stock import virtual_stock, stock_status
from utils.audit import write_log
from utils.deps import get_owner_id
import schemas.product as product_schemas

router = APIRouter(tags=["Products"])


# ---- HELPERS ----
def _serialize(product: Product, owned: List[Product]) -> product_schemas.ProductOut:
    fields = list(product_schemas.ProductOut.model_fields.keys())
    data = {f: getattr(product, f) for f in fields if hasattr(product, f)}
    data["bom"] = list(product.bom or [])
    # Virtual stock is derived from live component stock on every read
    data["virtual_stock"] = virtual_stock(product, owned)
    data["status"] = stock_status(product)
    return product_schemas.ProductOut.model_validate(data)


def _owned(db: Session, owner_id: str) -> List[Product]:
    return db.query(Product).filter(Product.owner_id == owner_id).all()


# =========================
# PRODUCT LIST
# =========================
@router.get("/products", response_model=product_schemas.ProductListPage)
def list_products(
    name: Optional[str] = Query(None),
    type: Optional[ProductType] = Query(None),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    items = catalog.list_products(db, owner_id, name=name, type=type)
    owned = _owned(db, owner_id)
    return {"items": [_serialize(p, owned) for p in items], "total": len(items)}


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/products/{product_id}", response_model=product_schemas.ProductOut)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    product = catalog.get_product(db, owner_id, product_id)
    return _serialize(product, _owned(db, owner_id))


# =========================
# CREATE PRODUCT
# =========================
@router.post("/products", response_model=product_schemas.ProductOut, status_code=201)
def add_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    product = catalog.create_product(db, owner_id, payload.model_dump())
    write_log(
        db, owner_id=owner_id, action="PRODUCT_CREATE", resource="products",
        status="SUCCESS", ip=request.client.host if request.client else None,
        meta={"id": product.id, "name": product.name, "opening_stock": product.current_stock},
    )
    return _serialize(product, _owned(db, owner_id))


# =========================
# PARTIAL EDIT (PATCH)
# =========================
@router.patch("/products/{product_id}", response_model=product_schemas.ProductOut)
def edit_product(
    product_id: str,
    payload: product_schemas.ProductEditRequest,
    request: Request,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    changes = payload.model_dump(exclude_unset=True)
    product = catalog.update_product(db, owner_id, product_id, changes)
    write_log(
        db, owner_id=owner_id, action="PRODUCT_EDIT", resource="products",
        status="SUCCESS", ip=request.client.host if request.client else None,
        meta={"product_id": product.id, "fields": sorted(changes)},
    )
    return _serialize(product, _owned(db, owner_id))


# =========================
# DELETE
# =========================
@router.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    request: Request,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    catalog.delete_product(db, owner_id, product_id)
    write_log(
        db, owner_id=owner_id, action="PRODUCT_DELETE", resource="products",
        status="SUCCESS", ip=request.client.host if request.client else None,
        meta={"id": product_id},
    )
    return {"message": "Product deleted"}
