"""
Esquemas Pydantic para Ventas
"""
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.sales.models import ConfirmationState, CollectionState, DeliveryState, CollectionTiming


class SaleItemCreate(BaseModel):
    product_id: Optional[UUID] = Field(None, description="Producto del catálogo; opcional para ítems libres")
    code: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=255, description="Por defecto, el nombre del producto")
    quantity: Decimal = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Por defecto, el precio del catálogo")
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)


class SaleCreate(BaseModel):
    customer_id: UUID
    sale_date: Optional[date] = None
    collection_timing: CollectionTiming = CollectionTiming.DEFERRED
    applies_tax: bool = True
    items: List[SaleItemCreate] = Field(..., min_length=1)
    notes: Optional[str] = None


class SaleUpdate(BaseModel):
    sale_date: Optional[date] = None
    collection_timing: Optional[CollectionTiming] = None
    applies_tax: Optional[bool] = None
    items: Optional[List[SaleItemCreate]] = Field(None, min_length=1)
    notes: Optional[str] = None


class SaleCancelRequest(BaseModel):
    reason: str = Field(..., description="Motivo de la cancelación")


class SaleItemOut(BaseModel):
    id: UUID
    position: int
    product_id: Optional[UUID] = None
    code: Optional[str] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class SaleOut(BaseModel):
    id: UUID
    number: str
    sale_date: date
    customer_id: UUID
    collection_timing: CollectionTiming
    applies_tax: bool
    vat_rate: Decimal
    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    total: Decimal
    amount_collected: Decimal
    outstanding_balance: Decimal
    confirmation_state: ConfirmationState
    collection_state: CollectionState
    delivery_state: DeliveryState
    status_label: str
    invoiced: bool
    delivery_note_id: Optional[UUID] = None
    delivered_at: Optional[datetime] = None
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SaleDetail(SaleOut):
    items: List[SaleItemOut]


class SaleFilters(BaseModel):
    customer_id: Optional[UUID] = None
    confirmation_state: Optional[ConfirmationState] = None
    collection_state: Optional[CollectionState] = None
    delivery_state: Optional[DeliveryState] = None
    invoiced: Optional[bool] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None


class SaleList(BaseModel):
    sales: List[SaleOut]
    total: int
    limit: int
    offset: int
