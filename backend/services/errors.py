# backend/services/errors.py
from typing import Optional


class LedgerError(Exception):
    """Base class for catalogue and ledger failures.

    `status_code` is the HTTP status the API layer answers with; `message`
    is safe to show to the operator as-is.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(LedgerError):
    status_code = 422


class NotFound(LedgerError):
    status_code = 404

    def __init__(self, kind: str, ident: str, label: Optional[str] = None):
        super().__init__(f"{kind} '{label or ident}' not found")
        self.kind = kind
        self.ident = ident


class InsufficientStock(LedgerError):
    status_code = 409

    def __init__(self, product_id: str, product_name: str, required: int, available: int):
        super().__init__(
            f'Insufficient stock of "{product_name}". Required {required}, available {available}.'
        )
        self.product_id = product_id
        self.product_name = product_name
        self.required = required
        self.available = available


class InsufficientComponentStock(InsufficientStock):
    def __init__(self, product_id: str, product_name: str, required: int, available: int,
                 for_product: Optional[str] = None):
        super().__init__(product_id, product_name, required, available)
        self.for_product = for_product
        target = f' to build "{for_product}"' if for_product else ""
        self.message = (
            f'Insufficient component "{product_name}"{target}. '
            f"Required {required}, available {available}."
        )
        self.args = (self.message,)


class NoBomDefined(LedgerError):
    status_code = 422

    def __init__(self, product_id: str, product_name: str):
        super().__init__(f'Product "{product_name}" has no bill of materials defined')
        self.product_id = product_id


class AlreadyCancelled(LedgerError):
    status_code = 409

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} is already cancelled")
        self.transaction_id = transaction_id


class StorageFailure(LedgerError):
    """The store could not commit (connection error, constraint, retries exhausted)."""

    status_code = 503


class ReversalDegraded(LedgerError):
    """Raised after a reversal completed through the non-atomic fallback.

    The stock adjustments were applied, but as independent writes, so a
    concurrent operation may have interleaved with them. `cause` is the
    storage failure that made the atomic path give up.
    """

    status_code = 200

    def __init__(self, transaction_id: str, cause: Exception):
        super().__init__(
            f"Transaction {transaction_id} reverted in degraded (non-atomic) mode: {cause}"
        )
        self.transaction_id = transaction_id
        self.cause = cause
