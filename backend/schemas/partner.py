# backend/schemas/partner.py
from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional


class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Supplier data used when registering purchases
class SupplierCreate(ORMBase):
    name: str = Field(min_length=1)
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    lead_time: int = Field(default=0, ge=0)

class SupplierOut(SupplierCreate):
    id: str


# Client data used when registering sales
class ClientCreate(ORMBase):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    document: Optional[str] = None

class ClientOut(ClientCreate):
    id: str
