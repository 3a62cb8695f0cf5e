# backend/populate_db.py
"""Seeds a demo business: components, an assembled product, partners and some history.

Run from the backend folder: python populate_db.py [owner_id]
"""
import logging
import sys

from config import settings
from database import SessionLocal, init_db
from models.partner import Client, Supplier
from models.product import Product, ProductType
from services import catalog
from services.ledger import PurchaseLine, SaleLine, StockLedger
from store.sql import SqlDocumentStore

logger = logging.getLogger(__name__)

DEMO_OWNER = "demo-owner"

# name, sku, cost, sale price, opening stock, min, max
COMPONENTS = [
    ("Steel tube 1m", "TUB-1M", 12.5, 0, 40, 10, 200),
    ("Bolt M8", "BLT-M8", 0.4, 0, 500, 100, 2000),
    ("Plywood seat", "SEAT-PW", 18.0, 0, 15, 5, 60),
]


def load_demo_data(owner_id: str = DEMO_OWNER) -> None:
    init_db()
    session = SessionLocal()
    try:
        if session.query(Product).filter(Product.owner_id == owner_id).first():
            logger.info("Owner %s already has products, nothing to do", owner_id)
            return

        supplier = Supplier(owner_id=owner_id, name="Metal Works Ltd", contact_name="Ana", lead_time=7)
        client = Client(owner_id=owner_id, name="Corner Cafe", email="orders@cornercafe.example")
        session.add_all([supplier, client])
        session.commit()

        ids = {}
        for name, sku, cost, price, stock, min_stock, max_stock in COMPONENTS:
            product = catalog.create_product(session, owner_id, {
                "name": name, "sku": sku, "type": ProductType.INSUMO,
                "cost_price": cost, "sale_price": price, "current_stock": stock,
                "min_stock": min_stock, "max_stock": max_stock, "supplier_id": supplier.id,
            })
            ids[sku] = product.id

        stool = catalog.create_product(session, owner_id, {
            "name": "Bar stool", "sku": "STOOL-01", "type": ProductType.FINAL,
            "sale_price": 89.9, "current_stock": 2, "min_stock": 2, "max_stock": 30,
            "bom": [
                {"component_id": ids["TUB-1M"], "quantity_per_unit": 4},
                {"component_id": ids["BLT-M8"], "quantity_per_unit": 12},
                {"component_id": ids["SEAT-PW"], "quantity_per_unit": 1},
            ],
        })
        supplier_id, client_id = supplier.id, client.id
    finally:
        session.close()

    ledger = StockLedger(SqlDocumentStore(SessionLocal, max_retries=settings.LEDGER_MAX_RETRIES))
    ledger.record_purchase(owner_id, [PurchaseLine(ids["TUB-1M"], 20, 12.0)],
                           supplier_id=supplier_id, invoice_number="NF-0001")
    ledger.process_assembly(owner_id, stool.id, 3)
    # 5 ready stools on hand, the 6th is assembled on demand from components
    ledger.record_sale(owner_id, [SaleLine(stool.id, 6, 89.9)], discount=9.9, client_id=client_id)
    logger.info("Demo data loaded for owner %s", owner_id)


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    load_demo_data(sys.argv[1] if len(sys.argv) > 1 else DEMO_OWNER)
