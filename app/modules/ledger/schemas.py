from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime
from enum import Enum

from app.modules.ledger.models import EntryType, Direction, OriginType


class CreditStatus(str, Enum):
    OK = "ok"
    ATTENTION = "attention"
    NEAR_LIMIT = "near_limit"
    OVER_LIMIT = "over_limit"
    NO_LIMIT = "no_limit"


class AdjustmentKind(str, Enum):
    CHARGE = "charge"      # Aumenta la deuda
    DISCOUNT = "discount"  # Reduce la deuda


class LedgerEntryOut(BaseModel):
    id: UUID
    customer_id: UUID
    entry_type: EntryType
    direction: Direction
    amount: Decimal
    debit: Decimal
    credit: Decimal
    balance_after: Decimal
    origin_type: OriginType
    origin_id: Optional[UUID] = None
    origin_number: Optional[str] = None
    concept: str
    reverses_entry_id: Optional[UUID] = None
    voided: bool
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerStatement(BaseModel):
    customer_id: UUID
    balance: Decimal
    entries: List[LedgerEntryOut]
    total: int
    limit: int
    offset: int


class LedgerSummary(BaseModel):
    customer_id: UUID
    limit: Optional[Decimal] = None
    balance: Decimal
    available: Optional[Decimal] = None
    utilization_percent: Optional[Decimal] = None
    status: CreditStatus
    total_debits: Decimal
    total_credits: Decimal
    movements_by_type: Dict[str, int]
    last_movement_at: Optional[datetime] = None


class AgingSale(BaseModel):
    sale_id: UUID
    number: str
    sale_date: date
    days: int
    outstanding_balance: Decimal


class AgingBucket(BaseModel):
    label: str
    count: int = 0
    amount: Decimal = Decimal("0.00")
    sales: List[AgingSale] = []


class AgingReport(BaseModel):
    customer_id: UUID
    as_of: date
    buckets: List[AgingBucket]
    total: Decimal


class AdjustmentCreate(BaseModel):
    kind: AdjustmentKind
    amount: Decimal = Field(..., gt=0, description="Importe del ajuste")
    concept: str = Field(..., description="Motivo del ajuste (obligatorio)")


class AdjustmentVoid(BaseModel):
    reason: str = Field(..., description="Motivo de la anulación")
