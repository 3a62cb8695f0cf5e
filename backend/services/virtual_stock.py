# backend/services/virtual_stock.py
import enum
from typing import Any, Iterable, Mapping, Optional


# Stock level bands shown next to every product
class StockStatus(str, enum.Enum):
    CRITICAL = "CRITICAL"  # nothing on hand
    ALERT = "ALERT"        # at or below the minimum, reorder
    OK = "OK"
    EXCESS = "EXCESS"      # at or above the maximum


def _field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def bom_entries(product: Any) -> list:
    return list(_field(product, "bom") or [])


def virtual_stock(final_product: Optional[Any], all_products: Optional[Iterable[Any]]) -> int:
    """Units of `final_product` that current component stock could assemble.

    Accepts ORM objects or plain dicts. A missing component counts as zero
    stock; a non-positive per-unit quantity blocks production entirely.
    Always computed from the stock passed in, never cached.
    """
    if final_product is None or all_products is None:
        return 0
    bom = bom_entries(final_product)
    if not bom:
        return 0

    stock_by_id = {_field(p, "id"): _field(p, "current_stock", 0) or 0 for p in all_products}
    producible = None
    for entry in bom:
        per_unit = entry.get("quantity_per_unit") or 0
        if per_unit <= 0:
            return 0
        units = stock_by_id.get(entry.get("component_id"), 0) // per_unit
        producible = units if producible is None else min(producible, units)
    return max(producible or 0, 0)


def stock_status(product: Any) -> StockStatus:
    current = _field(product, "current_stock", 0) or 0
    min_stock = _field(product, "min_stock", 0) or 0
    max_stock = _field(product, "max_stock", 0) or 0

    if current <= 0:
        return StockStatus.CRITICAL
    if current <= min_stock:
        return StockStatus.ALERT
    # max_stock of 0 means the ceiling is not controlled
    if max_stock > 0 and current >= max_stock:
        return StockStatus.EXCESS
    return StockStatus.OK
