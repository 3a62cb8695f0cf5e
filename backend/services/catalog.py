# backend/services/catalog.py
"""Product catalogue: descriptive data and bill-of-materials structure.

Stock is never changed here after creation; every later movement goes
through services/ledger.py.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from models.product import Product, ProductType, new_id
from services.errors import InvalidRequest, NotFound

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name", "sku", "type", "category", "observations", "supplier_id",
    "cost_price", "sale_price", "min_stock", "max_stock", "bom",
}
# Columns that cannot be cleared with null on edit
REQUIRED_FIELDS = {"name", "type", "cost_price", "sale_price", "min_stock", "max_stock"}


def _normalize_bom(bom: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    entries = []
    for entry in bom or []:
        if not isinstance(entry, dict):
            entry = entry.model_dump()
        entries.append({
            "component_id": entry["component_id"],
            "quantity_per_unit": entry["quantity_per_unit"],
        })
    return entries


def _find_cycle(graph: Dict[str, List[str]], start: str) -> Optional[str]:
    """Return the id of a product through which `start` reaches itself, if any."""
    stack = list(graph.get(start, []))
    seen = set()
    while stack:
        node = stack.pop()
        if node == start:
            return node
        if node in seen:
            continue
        seen.add(node)
        stack.extend(graph.get(node, []))
    return None


def validate_bom(db: Session, owner_id: str, product_id: str, product_type: ProductType,
                 bom: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    entries = _normalize_bom(bom)
    if not entries:
        return []
    if ProductType(product_type) != ProductType.FINAL:
        raise InvalidRequest("Only FINAL products can have a bill of materials")

    owned = {p.id: p for p in db.query(Product).filter(Product.owner_id == owner_id).all()}
    seen = set()
    for entry in entries:
        component_id = entry["component_id"]
        if not isinstance(entry["quantity_per_unit"], int) or entry["quantity_per_unit"] <= 0:
            raise InvalidRequest(f"BOM quantity for component {component_id} must be a positive integer")
        if component_id == product_id:
            raise InvalidRequest("A product cannot be a component of itself")
        if component_id in seen:
            raise InvalidRequest(f"Component {component_id} is listed more than once")
        if component_id not in owned:
            raise NotFound("Component", component_id)
        seen.add(component_id)

    # Nested BOMs are allowed (sub-assemblies) as long as no path leads back here
    graph = {pid: [e["component_id"] for e in (p.bom or [])] for pid, p in owned.items()}
    graph[product_id] = [e["component_id"] for e in entries]
    if _find_cycle(graph, product_id) is not None:
        raise InvalidRequest("Bill of materials would make the product a component of itself")
    return entries


def get_product(db: Session, owner_id: str, product_id: str) -> Product:
    product = db.query(Product).filter(Product.id == product_id, Product.owner_id == owner_id).first()
    if not product:
        raise NotFound("Product", product_id)
    return product


def list_products(db: Session, owner_id: str, name: Optional[str] = None,
                  type: Optional[ProductType] = None) -> List[Product]:
    query = db.query(Product).filter(Product.owner_id == owner_id)
    if name:
        query = query.filter(Product.name.ilike(f"%{name}%"))
    if type:
        query = query.filter(Product.type == type)
    return query.order_by(Product.name.asc()).all()


def create_product(db: Session, owner_id: str, data: Dict[str, Any]) -> Product:
    product_id = new_id()
    product_type = ProductType(data.get("type") or ProductType.INSUMO)
    bom = validate_bom(db, owner_id, product_id, product_type, data.get("bom"))

    fields = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and k != "bom"}
    product = Product(
        id=product_id,
        owner_id=owner_id,
        current_stock=data.get("current_stock") or 0,
        bom=bom,
        **{**fields, "type": product_type},
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Product %s (%s) created for owner %s", product.id, product.name, owner_id)
    return product


def update_product(db: Session, owner_id: str, product_id: str, changes: Dict[str, Any]) -> Product:
    if "current_stock" in changes:
        raise InvalidRequest("Stock cannot be edited directly; record a sale, purchase or assembly")
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise InvalidRequest(f"Unknown product fields: {', '.join(sorted(unknown))}")
    cleared = sorted(k for k in REQUIRED_FIELDS if k in changes and changes[k] is None)
    if cleared:
        raise InvalidRequest(f"Fields cannot be null: {', '.join(cleared)}")

    product = get_product(db, owner_id, product_id)
    product_type = ProductType(changes.get("type") or product.type)
    bom = changes["bom"] if "bom" in changes else product.bom
    changes = dict(changes)
    changes["bom"] = validate_bom(db, owner_id, product.id, product_type, bom)

    for key, value in changes.items():
        setattr(product, key, value)
    # Bump in SQL so a ledger operation that read the old row retries
    product.version = Product.version + 1

    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, owner_id: str, product_id: str) -> None:
    product = get_product(db, owner_id, product_id)
    for other in db.query(Product).filter(Product.owner_id == owner_id, Product.id != product_id).all():
        if any(e.get("component_id") == product_id for e in (other.bom or [])):
            raise InvalidRequest(f'"{product.name}" is a component of "{other.name}" and cannot be deleted')
    # Historical transaction items keep their name snapshot; the row itself goes
    db.delete(product)
    db.commit()
    logger.info("Product %s deleted for owner %s", product_id, owner_id)
