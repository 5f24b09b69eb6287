"""
Esquemas Pydantic para el módulo de Clientes
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.validators import validate_cuit, validate_dni, format_cuit, format_dni
from app.modules.customers.models import TaxCondition, DocumentType


class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Razón social o nombre")
    document_type: DocumentType = Field(DocumentType.DNI, description="Tipo de documento")
    document_number: str = Field(..., min_length=1, max_length=20, description="Número de documento")
    tax_condition: TaxCondition = Field(TaxCondition.CONSUMIDOR_FINAL, description="Condición frente al IVA")

    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=250)
    city: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    credit_limit: Optional[Decimal] = Field(None, ge=0, description="Límite de crédito")

    accepts_cash: bool = True
    accepts_check: bool = False
    accepts_transfer: bool = True
    accepts_card: bool = True


class CustomerCreate(CustomerBase):

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v and '@' not in v:
            raise ValueError('Email inválido')
        return v.lower() if v else v

    @model_validator(mode='after')
    def validate_document(self):
        if self.document_type in (DocumentType.CUIT, DocumentType.CUIL):
            if not validate_cuit(self.document_number):
                raise ValueError('CUIT/CUIL inválido')
            self.document_number = format_cuit(self.document_number)
        elif self.document_type == DocumentType.DNI:
            if not validate_dni(self.document_number):
                raise ValueError('DNI inválido: debe tener 7 u 8 dígitos')
            self.document_number = format_dni(self.document_number)

        # Responsables inscriptos y exentos se identifican con CUIT
        if self.tax_condition in (TaxCondition.RESPONSABLE_INSCRIPTO, TaxCondition.EXENTO) \
                and self.document_type not in (DocumentType.CUIT, DocumentType.CUIL):
            raise ValueError('La condición fiscal requiere CUIT')
        return self


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    tax_condition: Optional[TaxCondition] = None
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=250)
    city: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    accepts_cash: Optional[bool] = None
    accepts_check: Optional[bool] = None
    accepts_transfer: Optional[bool] = None
    accepts_card: Optional[bool] = None
    is_active: Optional[bool] = None


class CustomerOut(CustomerBase):
    id: UUID
    balance: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CustomerList(BaseModel):
    customers: List[CustomerOut]
    total: int
    limit: int
    offset: int
