# backend/store/sql.py
"""SQLAlchemy adapter for the atomic document store.

Collections map one-to-one onto tables. Inside `run_atomic` every read is
remembered together with the row `version` it saw; on commit, writes are
issued as conditional statements (`WHERE version = :seen`) and rows that
were only read are re-checked. Any mismatch aborts the attempt and the
whole function is run again against fresh data, so the net effect of
concurrent operations is that of some serial order.
"""
import logging
import operator
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from models.partner import Client, Supplier
from models.product import Product
from models.transaction import Transaction, TransactionItem
from services.errors import NotFound, StorageFailure
from store.operations import DeleteOp, Increment, Operation, Ref, SetOp, UpdateOp, Where

logger = logging.getLogger(__name__)

T = TypeVar("T")

COLLECTIONS = {
    "products": Product,
    "transactions": Transaction,
    "transaction_items": TransactionItem,
    "suppliers": Supplier,
    "clients": Client,
}

_LABELS = {
    "products": "Product",
    "transactions": "Transaction",
    "transaction_items": "Transaction item",
    "suppliers": "Supplier",
    "clients": "Client",
}

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class ConcurrentModification(Exception):
    """A document changed between the read and the commit of an atomic operation."""

    def __init__(self, ref: Ref):
        super().__init__(f"{ref.collection}/{ref.id} was modified concurrently")
        self.ref = ref


def _table(collection: str) -> Table:
    try:
        return COLLECTIONS[collection].__table__
    except KeyError:
        raise ValueError(f"Unknown collection: {collection}") from None


def _values(table: Table, data: Dict[str, Any], allow_increment: bool = True) -> Dict[str, Any]:
    values = {}
    for key, value in data.items():
        if key not in table.c or key in ("id", "version"):
            raise ValueError(f"Field '{key}' cannot be written on {table.name}")
        if isinstance(value, Increment):
            if not allow_increment:
                raise ValueError("Increment is only valid in updates")
            values[key] = table.c[key] + value.amount
        else:
            values[key] = value
    return values


def _write(session: Session, op: Operation, expected: Dict[Ref, Optional[int]]) -> None:
    """Issue one operation. `expected` maps refs read in this unit to the version seen."""
    ref = op.ref
    table = _table(ref.collection)
    guarded = ref in expected and expected[ref] is not None

    if isinstance(op, SetOp):
        values = _values(table, op.data, allow_increment=False)
        exists = session.execute(select(table.c.id).where(table.c.id == ref.id)).first()
        if not exists:
            if guarded:
                raise ConcurrentModification(ref)
            session.execute(insert(table).values(id=ref.id, version=1, **values))
            expected[ref] = 1
            return
        stmt = update(table).values(**values, version=table.c.version + 1)
    elif isinstance(op, UpdateOp):
        stmt = update(table).values(**_values(table, op.data), version=table.c.version + 1)
    elif isinstance(op, DeleteOp):
        stmt = delete(table)
    else:
        raise TypeError(f"Unsupported operation: {op!r}")

    stmt = stmt.where(table.c.id == ref.id)
    if guarded:
        stmt = stmt.where(table.c.version == expected[ref])
    result = session.execute(stmt)

    if result.rowcount != 1:
        if guarded:
            raise ConcurrentModification(ref)
        if isinstance(op, UpdateOp):
            raise NotFound(_LABELS[ref.collection], ref.id)
        # Deleting or setting a row that is already gone is not an error
        return

    if isinstance(op, DeleteOp):
        expected.pop(ref, None)
    elif guarded:
        expected[ref] = expected[ref] + 1


class AtomicTransaction:
    """Handle passed to the function given to `SqlDocumentStore.run_atomic`.

    Reads go straight to the database; writes are queued as operations and
    applied together on commit. All reads must be issued before the first
    write.
    """

    def __init__(self, session: Session):
        self._session = session
        self._reads: Dict[Ref, Optional[int]] = {}
        self._snapshots: Dict[Ref, Optional[Dict[str, Any]]] = {}
        self.operations: List[Operation] = []

    def get(self, ref: Ref) -> Optional[Dict[str, Any]]:
        if ref not in self._snapshots:
            if self.operations:
                raise RuntimeError("All reads must be issued before any write")
            table = _table(ref.collection)
            row = self._session.execute(select(table).where(table.c.id == ref.id)).mappings().first()
            data = dict(row) if row else None
            self._snapshots[ref] = data
            self._reads[ref] = data["version"] if data else None
        data = self._snapshots[ref]
        return dict(data) if data is not None else None

    def set(self, ref: Ref, data: Dict[str, Any]) -> "AtomicTransaction":
        self.operations.append(SetOp(ref, dict(data)))
        return self

    def update(self, ref: Ref, data: Dict[str, Any]) -> "AtomicTransaction":
        self.operations.append(UpdateOp(ref, dict(data)))
        return self

    def delete(self, ref: Ref) -> "AtomicTransaction":
        self.operations.append(DeleteOp(ref))
        return self

    def commit(self) -> None:
        written = {op.ref for op in self.operations}
        for ref, version in self._reads.items():
            if ref in written and version is not None:
                continue  # checked by the conditional write itself
            table = _table(ref.collection)
            current = self._session.execute(
                select(table.c.version).where(table.c.id == ref.id).with_for_update()
            ).scalar_one_or_none()
            if current != version:
                raise ConcurrentModification(ref)

        expected = dict(self._reads)
        for op in self.operations:
            _write(self._session, op, expected)
        self._session.commit()


class SqlDocumentStore:
    def __init__(self, session_factory: sessionmaker, max_retries: int = 5):
        self._session_factory = session_factory
        self.max_retries = max_retries

    def get(self, collection: str, ident: str) -> Optional[Dict[str, Any]]:
        table = _table(collection)
        try:
            with self._session_factory() as session:
                row = session.execute(select(table).where(table.c.id == ident)).mappings().first()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not read {collection}/{ident}: {e}") from e
        return dict(row) if row else None

    def query(self, collection: str, *where: Where, order_by: Optional[str] = None,
              descending: bool = False) -> List[Dict[str, Any]]:
        table = _table(collection)
        stmt = select(table)
        for w in where:
            column = table.c[w.field]
            if w.op == "in":
                stmt = stmt.where(column.in_(list(w.value)))
            elif w.op in _OPERATORS:
                stmt = stmt.where(_OPERATORS[w.op](column, w.value))
            else:
                raise ValueError(f"Unsupported operator: {w.op}")
        if order_by:
            column = table.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Could not query {collection}: {e}") from e
        return [dict(r) for r in rows]

    def run_atomic(self, fn: Callable[[AtomicTransaction], T]) -> T:
        """Run `fn` and commit everything it queued, or nothing.

        Domain errors raised by `fn` propagate unchanged and nothing is
        written. Version conflicts re-run `fn`; database errors and
        exhausted retries raise StorageFailure.
        """
        conflict: Optional[ConcurrentModification] = None
        for attempt in range(1, self.max_retries + 1):
            session = self._session_factory()
            try:
                tx = AtomicTransaction(session)
                result = fn(tx)
                tx.commit()
                return result
            except ConcurrentModification as e:
                conflict = e
                logger.info("Atomic operation conflicted (%s), attempt %d/%d", e, attempt, self.max_retries)
            except SQLAlchemyError as e:
                logger.error("Atomic commit failed: %s", e)
                raise StorageFailure(f"Atomic commit failed: {e}") from e
            finally:
                session.close()
        raise StorageFailure(f"Gave up after {self.max_retries} conflicting attempts: {conflict}")

    def apply(self, op: Operation) -> None:
        """Commit a single operation on its own, outside any atomic unit."""
        session = self._session_factory()
        try:
            _write(session, op, {})
            session.commit()
        except SQLAlchemyError as e:
            logger.error("Write %s failed: %s", op.ref, e)
            raise StorageFailure(f"Write to {op.ref.collection}/{op.ref.id} failed: {e}") from e
        finally:
            session.close()
