# backend/routes/partners.py
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from models.partner import Client, Supplier
from services.errors import NotFound
from utils.audit import write_log
from utils.deps import get_owner_id
import schemas.partner as partner_schemas

router = APIRouter(tags=["Partners"])


def _get_owned(db: Session, model, kind: str, owner_id: str, ident: str):
    record = db.query(model).filter(model.id == ident, model.owner_id == owner_id).first()
    if not record:
        raise NotFound(kind, ident)
    return record


# =========================
# SUPPLIERS
# =========================
@router.get("/suppliers", response_model=List[partner_schemas.SupplierOut])
def list_suppliers(db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id)):
    return db.query(Supplier).filter(Supplier.owner_id == owner_id).order_by(Supplier.name.asc()).all()


@router.post("/suppliers", response_model=partner_schemas.SupplierOut, status_code=201)
def add_supplier(
    payload: partner_schemas.SupplierCreate, request: Request,
    db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id),
):
    supplier = Supplier(owner_id=owner_id, **payload.model_dump())
    db.add(supplier)
    db.commit()
    db.refresh(supplier)
    write_log(db, owner_id=owner_id, action="SUPPLIER_CREATE", resource="suppliers", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": supplier.id})
    return supplier


@router.delete("/suppliers/{supplier_id}")
def delete_supplier(supplier_id: str, request: Request, db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id)):
    supplier = _get_owned(db, Supplier, "Supplier", owner_id, supplier_id)
    db.delete(supplier)
    db.commit()
    write_log(db, owner_id=owner_id, action="SUPPLIER_DELETE", resource="suppliers", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": supplier.id})
    return {"message": "Supplier deleted"}


# =========================
# CLIENTS
# =========================
@router.get("/clients", response_model=List[partner_schemas.ClientOut])
def list_clients(db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id)):
    return db.query(Client).filter(Client.owner_id == owner_id).order_by(Client.name.asc()).all()


@router.post("/clients", response_model=partner_schemas.ClientOut, status_code=201)
def add_client(
    payload: partner_schemas.ClientCreate, request: Request,
    db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id),
):
    client = Client(owner_id=owner_id, **payload.model_dump())
    db.add(client)
    db.commit()
    db.refresh(client)
    write_log(db, owner_id=owner_id, action="CLIENT_CREATE", resource="clients", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": client.id})
    return client


@router.delete("/clients/{client_id}")
def delete_client(client_id: str, request: Request, db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id)):
    client = _get_owned(db, Client, "Client", owner_id, client_id)
    db.delete(client)
    db.commit()
    write_log(db, owner_id=owner_id, action="CLIENT_DELETE", resource="clients", status="SUCCESS",
              ip=request.client.host if request.client else None, meta={"id": client.id})
    return {"message": "Client deleted"}
