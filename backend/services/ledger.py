# backend/services/ledger.py
"""Stock ledger: the only code path that changes product stock.

Each operation reads the products it needs through an atomic transaction
handle, validates sufficiency against those same reads, then queues every
stock change and history record for a single commit. Validation errors are
raised before anything is queued, so a failed operation writes nothing.
"""
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from config import settings
from models.transaction import ItemRole, TransactionStatus, TransactionType
from services.errors import (
    AlreadyCancelled,
    InsufficientComponentStock,
    InsufficientStock,
    InvalidRequest,
    NoBomDefined,
    NotFound,
    ReversalDegraded,
    StorageFailure,
)
from services.records import TransactionRecords
from services.virtual_stock import bom_entries
from store import operations as refs
from store.operations import DeleteOp, Increment, UpdateOp
from store.sql import AtomicTransaction, SqlDocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleLine:
    product_id: str
    quantity: int
    unit_price: float


@dataclass(frozen=True)
class PurchaseLine:
    product_id: str
    quantity: int
    unit_cost: float


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_lines(lines: Sequence[Any], price_field: str) -> None:
    if not lines:
        raise InvalidRequest("At least one item is required")
    for line in lines:
        if not isinstance(line.quantity, int) or line.quantity <= 0:
            raise InvalidRequest(f"Quantity for product {line.product_id} must be a positive integer")
        if getattr(line, price_field) < 0:
            raise InvalidRequest(f"Price for product {line.product_id} cannot be negative")


def _check_discount(discount: Optional[float], total: float) -> float:
    discount = discount or 0.0
    if discount < 0 or discount > total:
        raise InvalidRequest(f"Discount must be between 0 and the order total ({total:.2f})")
    return discount


class _StockPlan:
    """Products read in one atomic attempt and their running availability."""

    def __init__(self, tx: AtomicTransaction, owner_id: str):
        self.tx = tx
        self.owner_id = owner_id
        self.products: Dict[str, Dict[str, Any]] = {}
        self.available: Dict[str, int] = {}

    def read(self, product_id: str, kind: str = "Product") -> Dict[str, Any]:
        if product_id not in self.products:
            data = self.tx.get(refs.products(product_id))
            if data is None or data["owner_id"] != self.owner_id:
                raise NotFound(kind, product_id)
            self.products[product_id] = data
            self.available[product_id] = data["current_stock"] or 0
        return self.products[product_id]

    def consume_components(self, product: Dict[str, Any], units: int) -> List[tuple]:
        """Reserve components for `units` assemblies of `product`.

        Returns (component, required, unit_cost) tuples; raises before
        reserving anything the stock cannot cover.
        """
        consumed = []
        for entry in bom_entries(product):
            component = self.read(entry["component_id"], kind="Component")
            per_unit = entry.get("quantity_per_unit") or 0
            if per_unit <= 0:
                raise InvalidRequest(f'Bill of materials of "{product["name"]}" has a non-positive quantity')
            required = units * per_unit
            available = self.available[component["id"]]
            if required > available:
                raise InsufficientComponentStock(
                    component["id"], component["name"], required, available, for_product=product["name"]
                )
            self.available[component["id"]] -= required
            consumed.append((component, required, per_unit))
        return consumed

    def changed(self) -> Iterable[tuple]:
        for product_id, data in self.products.items():
            if self.available[product_id] != data["current_stock"]:
                yield product_id, self.available[product_id]


class _IndependentWrites:
    """Write handle for the degraded reversal path: each call commits on its own."""

    def __init__(self, store: SqlDocumentStore):
        self.store = store

    def update(self, ref, data):
        self.store.apply(UpdateOp(ref, dict(data)))
        return self

    def delete(self, ref):
        self.store.apply(DeleteOp(ref))
        return self


def _item(owner_id: str, product: Dict[str, Any], role: ItemRole, quantity: int, price: float,
          cost_price: float, stock_delta: int, position: int) -> Dict[str, Any]:
    return {
        "owner_id": owner_id,
        "product_id": product["id"],
        "product_name": product["name"],
        "sku": product.get("sku"),
        "role": role,
        "quantity": quantity,
        "price": price,
        "cost_price": cost_price,
        "stock_delta": stock_delta,
        "position": position,
    }


class StockLedger:
    def __init__(self, store: SqlDocumentStore, records: Optional[TransactionRecords] = None,
                 hard_delete_on_revert: Optional[bool] = None):
        self.store = store
        self.records = records or TransactionRecords(store)
        if hard_delete_on_revert is None:
            hard_delete_on_revert = settings.LEDGER_HARD_DELETE_ON_REVERT
        self.hard_delete_on_revert = hard_delete_on_revert

    def _partner(self, collection: str, kind: str, owner_id: str, ident: str) -> Dict[str, Any]:
        data = self.store.get(collection, ident)
        if data is None or data["owner_id"] != owner_id:
            raise NotFound(kind, ident)
        return data

    # =========================
    # SALE
    # =========================
    def record_sale(self, owner_id: str, lines: Sequence[SaleLine], *, discount: float = 0.0,
                    client_id: Optional[str] = None, client_name: Optional[str] = None,
                    date: Optional[datetime] = None,
                    payment_status: TransactionStatus = TransactionStatus.COMPLETED,
                    notes: Optional[str] = None) -> str:
        """Sell `lines`, taking finished stock first and assembling the rest on demand.

        For a product with a bill of materials, the part of the quantity
        not covered by its own stock consumes components directly; the
        product's own stock never goes below zero. Returns the id of the
        new IN transaction.
        """
        lines = list(lines)
        _check_lines(lines, "unit_price")
        status = TransactionStatus(payment_status)
        if status == TransactionStatus.CANCELLED:
            raise InvalidRequest("A sale cannot be recorded as cancelled")
        total = round(sum(line.quantity * line.unit_price for line in lines), 2)
        discount = _check_discount(discount, total)
        if client_id:
            client = self._partner("clients", "Client", owner_id, client_id)
            client_name = client_name or client["name"]
        when = date or _now()

        def apply(tx: AtomicTransaction) -> str:
            plan = _StockPlan(tx, owner_id)
            planned = []
            for line in lines:
                product = plan.read(line.product_id)
                on_hand = plan.available[product["id"]]
                from_stock = min(on_hand, line.quantity)
                shortfall = line.quantity - from_stock
                plan.available[product["id"]] -= from_stock

                consumed = []
                if shortfall > 0:
                    if not bom_entries(product):
                        raise InsufficientStock(product["id"], product["name"], line.quantity, on_hand)
                    consumed = plan.consume_components(product, shortfall)

                # Blended cost: ready stock at its own cost, the rest at component cost
                assembled_cost = sum((c["cost_price"] or 0) * per_unit for c, _, per_unit in consumed)
                ready_cost = product["cost_price"] or 0
                unit_cost = (from_stock * ready_cost + shortfall * assembled_cost) / line.quantity
                planned.append((line, product, from_stock, unit_cost, consumed))

            transaction_id = self.records.insert_transaction(tx, {
                "owner_id": owner_id,
                "type": TransactionType.SALE,
                "status": status,
                "date": when,
                "total_value": total,
                "discount_value": discount,
                "net_total": round(total - discount, 2),
                "client_id": client_id,
                "client_name": client_name,
                "notes": notes,
            })
            position = itertools.count()
            for line, product, from_stock, unit_cost, consumed in planned:
                self.records.insert_item(tx, transaction_id, _item(
                    owner_id, product, ItemRole.LINE, line.quantity, line.unit_price,
                    unit_cost, -from_stock, next(position),
                ))
                for component, required, _ in consumed:
                    cost = component["cost_price"] or 0
                    self.records.insert_item(tx, transaction_id, _item(
                        owner_id, component, ItemRole.CONSUMPTION, required, cost, cost,
                        -required, next(position),
                    ))
            for product_id, stock in plan.changed():
                tx.update(refs.products(product_id), {"current_stock": stock})
            return transaction_id

        transaction_id = self.store.run_atomic(apply)
        logger.info("Sale %s recorded for owner %s: %d line(s), net %.2f",
                    transaction_id, owner_id, len(lines), total - discount)
        return transaction_id

    # =========================
    # PURCHASE
    # =========================
    def record_purchase(self, owner_id: str, lines: Sequence[PurchaseLine], *, discount: float = 0.0,
                        supplier_id: Optional[str] = None, date: Optional[datetime] = None,
                        invoice_number: Optional[str] = None, notes: Optional[str] = None) -> str:
        """Receive goods: add stock, and remember the last unit cost and supplier."""
        lines = list(lines)
        _check_lines(lines, "unit_cost")
        total = round(sum(line.quantity * line.unit_cost for line in lines), 2)
        discount = _check_discount(discount, total)
        if supplier_id:
            self._partner("suppliers", "Supplier", owner_id, supplier_id)

        # Purchases only add, so names and skus are read outside the atomic unit
        products = {}
        for line in lines:
            if line.product_id not in products:
                products[line.product_id] = self._partner("products", "Product", owner_id, line.product_id)
        when = date or _now()

        def apply(tx: AtomicTransaction) -> str:
            transaction_id = self.records.insert_transaction(tx, {
                "owner_id": owner_id,
                "type": TransactionType.PURCHASE,
                "status": TransactionStatus.COMPLETED,
                "date": when,
                "total_value": total,
                "discount_value": discount,
                "net_total": round(total - discount, 2),
                "supplier_id": supplier_id,
                "invoice_number": invoice_number or "",
                "notes": notes or "",
            })
            for position, line in enumerate(lines):
                product = products[line.product_id]
                self.records.insert_item(tx, transaction_id, _item(
                    owner_id, product, ItemRole.LINE, line.quantity, line.unit_cost,
                    line.unit_cost, line.quantity, position,
                ))
                changes = {"current_stock": Increment(line.quantity), "cost_price": line.unit_cost}
                if supplier_id:
                    changes["supplier_id"] = supplier_id
                tx.update(refs.products(line.product_id), changes)
            return transaction_id

        transaction_id = self.store.run_atomic(apply)
        logger.info("Purchase %s recorded for owner %s: %d line(s), net %.2f",
                    transaction_id, owner_id, len(lines), total - discount)
        return transaction_id

    # =========================
    # ASSEMBLY
    # =========================
    def process_assembly(self, owner_id: str, final_product_id: str, quantity: int) -> str:
        """Build `quantity` units of a FINAL product from its components into stock."""
        if not isinstance(quantity, int) or quantity <= 0:
            raise InvalidRequest("Quantity to assemble must be a positive integer")

        def apply(tx: AtomicTransaction) -> str:
            plan = _StockPlan(tx, owner_id)
            final = plan.read(final_product_id)
            if not bom_entries(final):
                raise NoBomDefined(final["id"], final["name"])
            consumed = plan.consume_components(final, quantity)
            plan.available[final["id"]] += quantity
            unit_cost = sum((c["cost_price"] or 0) * per_unit for c, _, per_unit in consumed)

            transaction_id = self.records.insert_transaction(tx, {
                "owner_id": owner_id,
                "type": TransactionType.ASSEMBLY,
                "status": TransactionStatus.COMPLETED,
                "date": _now(),
                "total_value": 0,
                "discount_value": 0,
                "net_total": 0,
                "notes": f"Assembly of {quantity} x {final['name']}",
            })
            position = itertools.count()
            for component, required, _ in consumed:
                cost = component["cost_price"] or 0
                self.records.insert_item(tx, transaction_id, _item(
                    owner_id, component, ItemRole.CONSUMPTION, required, cost, cost,
                    -required, next(position),
                ))
            self.records.insert_item(tx, transaction_id, _item(
                owner_id, final, ItemRole.OUTPUT, quantity, 0, unit_cost, quantity, next(position),
            ))
            for product_id, stock in plan.changed():
                tx.update(refs.products(product_id), {"current_stock": stock})
            return transaction_id

        transaction_id = self.store.run_atomic(apply)
        logger.info("Assembly %s: %d unit(s) of %s for owner %s",
                    transaction_id, quantity, final_product_id, owner_id)
        return transaction_id

    # =========================
    # REVERSAL
    # =========================
    def revert_transaction(self, owner_id: str, transaction_id: str) -> None:
        """Undo every stock change of a transaction and close it.

        Products deleted since the transaction are skipped. If the atomic
        commit fails, the same adjustments are retried as independent
        writes and ReversalDegraded is raised once they are applied.
        """
        record = self.records.get(transaction_id)
        if record is None or record["owner_id"] != owner_id:
            raise NotFound("Transaction", transaction_id)
        if record["status"] == TransactionStatus.CANCELLED:
            raise AlreadyCancelled(transaction_id)

        items = self.records.items_for(transaction_id)
        deltas: Dict[str, int] = {}
        for item in items:
            deltas[item["product_id"]] = deltas.get(item["product_id"], 0) + (item["stock_delta"] or 0)
        deltas = {pid: delta for pid, delta in deltas.items() if delta}

        try:
            self.store.run_atomic(lambda tx: self._revert_atomically(tx, transaction_id, items, deltas))
        except StorageFailure as e:
            logger.warning("Atomic reversal of %s failed (%s), falling back to independent writes",
                           transaction_id, e)
            try:
                self._revert_best_effort(transaction_id, items, deltas)
            except StorageFailure:
                logger.error("Fallback reversal of %s failed, transaction left as it was", transaction_id)
                raise
            raise ReversalDegraded(transaction_id, e) from e
        logger.info("Transaction %s reverted for owner %s", transaction_id, owner_id)

    def _close(self, writer, transaction_id: str, items: List[Dict[str, Any]]) -> None:
        if self.hard_delete_on_revert:
            self.records.delete(writer, transaction_id, [item["id"] for item in items])
        else:
            self.records.cancel(writer, transaction_id, _now())

    def _revert_atomically(self, tx: AtomicTransaction, transaction_id: str,
                           items: List[Dict[str, Any]], deltas: Dict[str, int]) -> None:
        record = tx.get(refs.transactions(transaction_id))
        if record is None:
            raise NotFound("Transaction", transaction_id)
        if record["status"] == TransactionStatus.CANCELLED:
            raise AlreadyCancelled(transaction_id)

        restored = {}
        for product_id, delta in deltas.items():
            product = tx.get(refs.products(product_id))
            if product is None:
                logger.info("Product %s no longer exists, skipping its reversal", product_id)
                continue
            stock = product["current_stock"] - delta
            if stock < 0:
                # The stock this would take back has already left
                raise InsufficientStock(product_id, product["name"], delta, product["current_stock"])
            restored[product_id] = stock

        for product_id, stock in restored.items():
            tx.update(refs.products(product_id), {"current_stock": stock})
        self._close(tx, transaction_id, items)

    def _revert_best_effort(self, transaction_id: str, items: List[Dict[str, Any]],
                            deltas: Dict[str, int]) -> None:
        """Apply the reversal as independent writes: stock first, then the close.

        The writes are not atomic. If one fails after some stock was already
        restored, the transaction stays open and the adjusted product ids are
        logged so they can be reconciled by hand before any retry.
        """
        record = self.records.get(transaction_id)
        if record is None:
            raise NotFound("Transaction", transaction_id)
        if record["status"] == TransactionStatus.CANCELLED:
            raise AlreadyCancelled(transaction_id)

        surviving = {}
        for product_id, delta in deltas.items():
            product = self.store.get("products", product_id)
            if product is None:
                continue
            if product["current_stock"] - delta < 0:
                raise InsufficientStock(product_id, product["name"], delta, product["current_stock"])
            surviving[product_id] = delta

        writer = _IndependentWrites(self.store)
        adjusted = []
        try:
            for product_id, delta in surviving.items():
                writer.update(refs.products(product_id), {"current_stock": Increment(-delta)})
                adjusted.append(product_id)
            self._close(writer, transaction_id, items)
        except StorageFailure:
            if adjusted:
                logger.error("Reversal of %s left open after stock was restored for %s; "
                             "reconcile before retrying", transaction_id, ", ".join(adjusted))
            raise
