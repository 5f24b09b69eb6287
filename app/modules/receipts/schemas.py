"""
Esquemas Pydantic para Recibos
"""
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.receipts.models import ReceiptStatus, InstrumentType


class InstrumentCreate(BaseModel):
    instrument_type: InstrumentType
    amount: Decimal = Field(..., gt=0)
    check_number: Optional[str] = Field(None, max_length=50)
    check_bank: Optional[str] = Field(None, max_length=100)
    check_holder: Optional[str] = Field(None, max_length=150)
    check_due_date: Optional[date] = None
    transfer_operation: Optional[str] = Field(None, max_length=100)
    transfer_bank: Optional[str] = Field(None, max_length=100)
    card_type: Optional[str] = Field(None, max_length=50)
    card_authorization: Optional[str] = Field(None, max_length=50)


class ReceiptCreate(BaseModel):
    customer_id: UUID
    sale_ids: List[UUID] = Field(..., min_length=1)
    instruments: List[InstrumentCreate] = Field(..., min_length=1)
    allow_partial: bool = Field(False, description="Acepta pagar menos que el saldo de las ventas")
    receipt_date: Optional[date] = None
    notes: Optional[str] = None


class ReceiptVoidRequest(BaseModel):
    reason: str = Field(..., description="Motivo de la anulación")


class ReceiptCorrection(BaseModel):
    corrected_amount: Decimal = Field(..., gt=0, description="Nuevo importe total cobrado")
    reason: str
    instrument_index: Optional[int] = Field(None, ge=0, description="Instrumento a corregir; obligatorio si hay más de uno")


class AllocationOut(BaseModel):
    id: UUID
    position: int
    sale_id: UUID
    sale_number: str
    sale_date: date
    sale_total: Decimal
    balance_before: Decimal
    amount_applied: Decimal
    balance_after: Decimal

    class Config:
        from_attributes = True


class InstrumentOut(BaseModel):
    id: UUID
    position: int
    instrument_type: InstrumentType
    amount: Decimal
    check_number: Optional[str] = None
    check_bank: Optional[str] = None
    check_holder: Optional[str] = None
    check_due_date: Optional[date] = None
    transfer_operation: Optional[str] = None
    transfer_bank: Optional[str] = None
    card_type: Optional[str] = None
    card_authorization: Optional[str] = None

    class Config:
        from_attributes = True


class ReceiptOut(BaseModel):
    id: UUID
    number: str
    receipt_date: date
    customer_id: UUID
    amount_due: Decimal
    amount_paid: Decimal
    amount_applied: Decimal
    change_amount: Decimal
    shortfall: Decimal
    allow_partial: bool
    status: ReceiptStatus
    void_reason: Optional[str] = None
    voided_at: Optional[datetime] = None
    previous_amount: Optional[Decimal] = None
    correction_reason: Optional[str] = None
    corrected_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReceiptDetail(ReceiptOut):
    allocations: List[AllocationOut]
    instruments: List[InstrumentOut]


class ReceiptList(BaseModel):
    receipts: List[ReceiptOut]
    total: int
    limit: int
    offset: int
