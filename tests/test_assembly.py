"""Assembling finished products from their bill of materials."""
import pytest

from models.transaction import ItemRole, TransactionType
from services.errors import InsufficientComponentStock, InvalidRequest, NoBomDefined, NotFound


class TestProcessAssembly:

    def test_assembly_moves_stock(self, ledger, make_product, stock, owner):
        c1 = make_product("Tube", stock=10, cost=3)
        c2 = make_product("Seat", stock=5, cost=4)
        f = make_product("Stool", stock=1, bom=[(c1, 2), (c2, 1)])

        txn_id = ledger.process_assembly(owner, f.id, 3)

        assert stock(c1.id) == 4
        assert stock(c2.id) == 2
        assert stock(f.id) == 4
        record = ledger.records.get(txn_id)
        assert record["type"] == TransactionType.ASSEMBLY
        assert record["net_total"] == 0
        items = ledger.records.items_for(txn_id)
        assert [(i["role"], i["product_id"], i["stock_delta"]) for i in items] == [
            (ItemRole.CONSUMPTION, c1.id, -6),
            (ItemRole.CONSUMPTION, c2.id, -3),
            (ItemRole.OUTPUT, f.id, 3),
        ]
        assert items[-1]["cost_price"] == 2 * 3 + 1 * 4

    def test_exact_component_stock(self, ledger, make_product, stock, owner):
        c = make_product("Tube", stock=6)
        f = make_product("Stool", bom=[(c, 2)])
        ledger.process_assembly(owner, f.id, 3)
        assert stock(c.id) == 0
        assert stock(f.id) == 3

    def test_no_bom(self, ledger, make_product, store, stock, owner):
        p = make_product("Loose part", stock=2)
        with pytest.raises(NoBomDefined):
            ledger.process_assembly(owner, p.id, 1)
        assert stock(p.id) == 2
        assert store.query("transactions") == []

    def test_insufficient_component(self, ledger, make_product, store, stock, owner):
        c1 = make_product("Tube", stock=10)
        c2 = make_product("Seat", stock=1)
        f = make_product("Stool", bom=[(c1, 2), (c2, 1)])
        with pytest.raises(InsufficientComponentStock) as exc:
            ledger.process_assembly(owner, f.id, 2)
        assert exc.value.product_name == "Seat"
        assert exc.value.for_product == "Stool"
        assert (stock(c1.id), stock(c2.id), stock(f.id)) == (10, 1, 0)
        assert store.query("transaction_items") == []

    def test_unknown_product(self, ledger, owner):
        with pytest.raises(NotFound):
            ledger.process_assembly(owner, "missing", 1)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, ledger, make_product, owner, quantity):
        c = make_product("Tube", stock=10)
        f = make_product("Stool", bom=[(c, 2)])
        with pytest.raises(InvalidRequest):
            ledger.process_assembly(owner, f.id, quantity)
