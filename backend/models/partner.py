# backend/models/partner.py
from sqlalchemy import Column, Integer, String, DateTime, func
from database import Base
from models.product import new_id


# Supplier referenced by purchases (and remembered on the product)
class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    contact_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    lead_time = Column(Integer, nullable=False, default=0) # days
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# Client referenced by sales
class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    document = Column(String, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
