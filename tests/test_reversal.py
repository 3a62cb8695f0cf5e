"""Reverting transactions: exact inverse of the stock effects, soft cancel or hard delete."""
import pytest

from models.transaction import TransactionStatus
from services import catalog
from services.errors import AlreadyCancelled, InsufficientStock, NotFound, ReversalDegraded, StorageFailure
from services.ledger import PurchaseLine, SaleLine, StockLedger


class TestSoftCancel:

    def test_revert_sale_restores_stock(self, ledger, make_product, stock, owner):
        p = make_product("Mug", stock=10)
        txn_id = ledger.record_sale(owner, [SaleLine(p.id, 3, 50)])

        ledger.revert_transaction(owner, txn_id)

        assert stock(p.id) == 10
        record = ledger.records.get(txn_id)
        assert record["status"] == TransactionStatus.CANCELLED
        assert record["cancelled_at"] is not None
        assert len(ledger.records.items_for(txn_id)) == 1

    def test_second_revert_is_rejected(self, ledger, make_product, stock, owner):
        p = make_product("Mug", stock=10)
        txn_id = ledger.record_sale(owner, [SaleLine(p.id, 3, 50)])
        ledger.revert_transaction(owner, txn_id)

        with pytest.raises(AlreadyCancelled):
            ledger.revert_transaction(owner, txn_id)
        assert stock(p.id) == 10

    def test_revert_assembled_sale_restores_components(self, ledger, make_product, stock, owner):
        c = make_product("Tube", stock=10)
        f = make_product("Stool", stock=1, bom=[(c, 2)])
        txn_id = ledger.record_sale(owner, [SaleLine(f.id, 4, 80)])
        assert (stock(f.id), stock(c.id)) == (0, 4)

        ledger.revert_transaction(owner, txn_id)

        # components come back as components, only the ready unit returns as a stool
        assert (stock(f.id), stock(c.id)) == (1, 10)

    def test_revert_purchase(self, ledger, make_product, stock, owner):
        p = make_product("Tube", stock=2)
        txn_id = ledger.record_purchase(owner, [PurchaseLine(p.id, 5, 20)])
        ledger.revert_transaction(owner, txn_id)
        assert stock(p.id) == 2

    def test_revert_assembly(self, ledger, make_product, stock, owner):
        c = make_product("Tube", stock=10)
        f = make_product("Stool", bom=[(c, 2)])
        txn_id = ledger.process_assembly(owner, f.id, 3)
        ledger.revert_transaction(owner, txn_id)
        assert (stock(f.id), stock(c.id)) == (0, 10)

    def test_purchase_already_sold_cannot_be_reverted(self, ledger, make_product, stock, owner):
        p = make_product("Tube")
        purchase = ledger.record_purchase(owner, [PurchaseLine(p.id, 5, 20)])
        ledger.record_sale(owner, [SaleLine(p.id, 3, 30)])

        with pytest.raises(InsufficientStock):
            ledger.revert_transaction(owner, purchase)

        assert stock(p.id) == 2
        assert ledger.records.get(purchase)["status"] == TransactionStatus.COMPLETED

    def test_deleted_product_is_skipped(self, ledger, make_product, stock, db, owner):
        a = make_product("Tube", stock=1)
        b = make_product("Bolt", stock=1)
        txn_id = ledger.record_purchase(owner, [PurchaseLine(a.id, 2, 1), PurchaseLine(b.id, 3, 1)])
        catalog.delete_product(db, owner, b.id)

        ledger.revert_transaction(owner, txn_id)

        assert stock(a.id) == 1
        assert ledger.records.get(txn_id)["status"] == TransactionStatus.CANCELLED

    def test_unknown_transaction(self, ledger, owner):
        with pytest.raises(NotFound):
            ledger.revert_transaction(owner, "missing")

    def test_other_owners_transaction(self, ledger, make_product, stock, owner):
        p = make_product("Mug", stock=10)
        txn_id = ledger.record_sale(owner, [SaleLine(p.id, 3, 50)])
        with pytest.raises(NotFound):
            ledger.revert_transaction("intruder", txn_id)
        assert stock(p.id) == 7

    def test_round_trip_leaves_stock_unchanged(self, ledger, make_product, stock, owner):
        c1 = make_product("Tube", stock=9)
        c2 = make_product("Seat", stock=4)
        f = make_product("Stool", stock=2, bom=[(c1, 2), (c2, 1)])
        before = (stock(c1.id), stock(c2.id), stock(f.id))

        txn_id = ledger.record_sale(owner, [SaleLine(f.id, 5, 80), SaleLine(c1.id, 1, 4)])
        ledger.revert_transaction(owner, txn_id)

        assert (stock(c1.id), stock(c2.id), stock(f.id)) == before


class TestHardDelete:

    def test_records_are_removed(self, store, make_product, stock, owner):
        ledger = StockLedger(store, hard_delete_on_revert=True)
        p = make_product("Mug", stock=10)
        txn_id = ledger.record_sale(owner, [SaleLine(p.id, 3, 50)])

        ledger.revert_transaction(owner, txn_id)

        assert stock(p.id) == 10
        assert ledger.records.get(txn_id) is None
        assert ledger.records.items_for(txn_id) == []
        with pytest.raises(NotFound):
            ledger.revert_transaction(owner, txn_id)


class TestDegradedReversal:

    def test_falls_back_to_independent_writes(self, flaky, make_product, stock, owner):
        ledger = StockLedger(flaky, hard_delete_on_revert=False)
        c = make_product("Tube", stock=10)
        f = make_product("Stool", bom=[(c, 2)])
        txn_id = ledger.record_sale(owner, [SaleLine(f.id, 2, 80)])
        flaky.fail_atomic = True

        with pytest.raises(ReversalDegraded) as exc:
            ledger.revert_transaction(owner, txn_id)

        assert exc.value.transaction_id == txn_id
        assert isinstance(exc.value.cause, StorageFailure)
        assert stock(c.id) == 10
        assert ledger.records.get(txn_id)["status"] == TransactionStatus.CANCELLED

    def test_fallback_failure_propagates(self, flaky, make_product, stock, owner):
        ledger = StockLedger(flaky, hard_delete_on_revert=False)
        p = make_product("Mug", stock=10)
        txn_id = ledger.record_sale(owner, [SaleLine(p.id, 3, 50)])
        flaky.fail_atomic = True
        flaky.fail_apply = True

        with pytest.raises(StorageFailure) as exc:
            ledger.revert_transaction(owner, txn_id)

        assert not isinstance(exc.value, ReversalDegraded)
        assert stock(p.id) == 7
        assert ledger.records.get(txn_id)["status"] == TransactionStatus.COMPLETED

    def test_failed_close_reports_adjusted_products(self, flaky, make_product, stock, owner, caplog):
        ledger = StockLedger(flaky, hard_delete_on_revert=False)
        p = make_product("Mug", stock=10)
        txn_id = ledger.record_sale(owner, [SaleLine(p.id, 3, 50)])
        flaky.fail_atomic = True
        flaky.fail_collections = {"transactions"}

        with caplog.at_level("ERROR", logger="services.ledger"):
            with pytest.raises(StorageFailure):
                ledger.revert_transaction(owner, txn_id)

        # stock went back but the transaction could not be closed
        assert stock(p.id) == 10
        assert ledger.records.get(txn_id)["status"] == TransactionStatus.COMPLETED
        assert any(p.id in r.getMessage() and txn_id in r.getMessage() for r in caplog.records)
