"""
Esquemas Pydantic para Remitos
"""
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from app.modules.delivery_notes.models import DeliveryStatus


class DeliveryNoteCreate(BaseModel):
    sale_id: UUID
    delivery_address: Optional[str] = Field(None, max_length=255, description="Por defecto, la dirección del cliente")
    courier: Optional[str] = Field(None, max_length=100)
    issue_date: Optional[date] = None
    notes: Optional[str] = None


class DeliveryStatusChange(BaseModel):
    status: DeliveryStatus
    receiver_name: Optional[str] = Field(None, max_length=150, description="Obligatorio para delivered")
    receiver_document: Optional[str] = Field(None, max_length=20)
    reason: Optional[str] = Field(None, description="Obligatorio para cancelled")
    notes: Optional[str] = None


class DeliveredQuantity(BaseModel):
    item_id: UUID
    quantity_delivered: Decimal = Field(..., ge=0)


class DeliveredQuantitiesUpdate(BaseModel):
    items: List[DeliveredQuantity] = Field(..., min_length=1)


class DeliveryNoteItemOut(BaseModel):
    id: UUID
    position: int
    sale_item_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    code: Optional[str] = None
    description: str
    quantity_requested: Decimal
    quantity_delivered: Decimal

    class Config:
        from_attributes = True


class DeliveryNoteOut(BaseModel):
    id: UUID
    number: str
    issue_date: date
    sale_id: UUID
    customer_id: UUID
    delivery_address: str
    courier: Optional[str] = None
    status: DeliveryStatus
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    receiver_name: Optional[str] = None
    receiver_document: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DeliveryNoteDetail(DeliveryNoteOut):
    items: List[DeliveryNoteItemOut]
    is_partial: bool


class DeliveryNoteList(BaseModel):
    delivery_notes: List[DeliveryNoteOut]
    total: int
    limit: int
    offset: int


class DeliveryNoteStats(BaseModel):
    by_status: Dict[str, int]
    total: int
