from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from typing import Optional
from datetime import datetime
from decimal import Decimal

from app.common.validators import clean_document, validate_tax_id
from app.modules.clients.models import PersonType, ContactType, ClientStatus


def _check_rnc(v):
    if v is None or v == "":
        return None
    if not validate_tax_id(v):
        raise ValueError("RNC debe tener 9 dígitos o cédula 11 dígitos")
    return clean_document(v)


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    rnc: Optional[str] = Field(None, description="RNC o cédula")
    email: Optional[str] = Field(None, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=255)
    type: PersonType = PersonType.JURIDICA
    contact_type: ContactType = ContactType.CLIENT
    category: Optional[str] = Field(None, max_length=100)
    credit_limit: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None

    @field_validator("rnc")
    @classmethod
    def validate_rnc(cls, v):
        return _check_rnc(v)


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    rnc: Optional[str] = None
    email: Optional[str] = Field(None, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = Field(None, max_length=255)
    type: Optional[PersonType] = None
    contact_type: Optional[ContactType] = None
    category: Optional[str] = Field(None, max_length=100)
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    status: Optional[ClientStatus] = None
    notes: Optional[str] = None

    @field_validator("rnc")
    @classmethod
    def validate_rnc(cls, v):
        return _check_rnc(v)


class ClientOut(BaseModel):
    id: UUID
    name: str
    rnc: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    type: PersonType
    contact_type: ContactType
    category: Optional[str] = None
    credit_limit: Decimal
    status: ClientStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
