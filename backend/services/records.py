# backend/services/records.py
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models.product import new_id
from models.transaction import TransactionStatus, TransactionType
from store import operations as refs
from store.operations import Where
from store.sql import AtomicTransaction, SqlDocumentStore


class TransactionRecords:
    """Persistence contract for the ledger history (transactions + items).

    Writes are queued on an atomic transaction handle so they land in the
    same commit as the stock changes they describe; reads go to the store.
    """

    def __init__(self, store: SqlDocumentStore):
        self.store = store

    # --- writes (inside an atomic unit) ---

    def insert_transaction(self, tx: AtomicTransaction, data: Dict[str, Any]) -> str:
        transaction_id = new_id()
        tx.set(refs.transactions(transaction_id), data)
        return transaction_id

    def insert_item(self, tx: AtomicTransaction, transaction_id: str, data: Dict[str, Any]) -> str:
        item_id = new_id()
        tx.set(refs.transaction_items(item_id), {**data, "transaction_id": transaction_id})
        return item_id

    def cancel(self, tx: AtomicTransaction, transaction_id: str, when: datetime) -> None:
        tx.update(refs.transactions(transaction_id), {
            "status": TransactionStatus.CANCELLED,
            "cancelled_at": when,
        })

    def delete(self, tx: AtomicTransaction, transaction_id: str, item_ids: Iterable[str]) -> None:
        for item_id in item_ids:
            tx.delete(refs.transaction_items(item_id))
        tx.delete(refs.transactions(transaction_id))

    # --- reads ---

    def get(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get("transactions", transaction_id)

    def items_for(self, transaction_id: str) -> List[Dict[str, Any]]:
        return self.store.query(
            "transaction_items", Where("transaction_id", "==", transaction_id), order_by="position"
        )

    def list_for_owner(self, owner_id: str, type: Optional[TransactionType] = None,
                       status: Optional[TransactionStatus] = None) -> List[Dict[str, Any]]:
        where = [Where("owner_id", "==", owner_id)]
        if type is not None:
            where.append(Where("type", "==", type))
        if status is not None:
            where.append(Where("status", "==", status))
        return self.store.query("transactions", *where, order_by="date", descending=True)
