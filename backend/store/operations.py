# backend/store/operations.py
from dataclasses import dataclass, field
from typing import Any, Dict, Union


# Typed reference to one document (row) of a collection (table)
@dataclass(frozen=True)
class Ref:
    collection: str
    id: str


# Update-value sentinel: add `amount` to the stored numeric field
@dataclass(frozen=True)
class Increment:
    amount: int


@dataclass(frozen=True)
class SetOp:
    ref: Ref
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateOp:
    ref: Ref
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteOp:
    ref: Ref


Operation = Union[SetOp, UpdateOp, DeleteOp]


# Query predicate, e.g. Where("transaction_id", "==", txn_id)
@dataclass(frozen=True)
class Where:
    field: str
    op: str
    value: Any


def products(product_id: str) -> Ref:
    return Ref("products", product_id)


def transactions(transaction_id: str) -> Ref:
    return Ref("transactions", transaction_id)


def transaction_items(item_id: str) -> Ref:
    return Ref("transaction_items", item_id)
