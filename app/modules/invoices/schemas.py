from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.invoices.models import InvoiceKind, VoucherType, AuthorizationState
from app.modules.invoices.calculator import TaxCalculator, ALLOWED_VAT_RATES


class InvoiceItemCreate(BaseModel):
    product_id: Optional[UUID] = None
    code: Optional[str] = Field(None, max_length=50)
    description: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    vat_rate: Decimal = Field(Decimal("21"), description="Alícuota de IVA")

    @field_validator("vat_rate")
    @classmethod
    def validate_vat_rate(cls, v):
        if not TaxCalculator.is_allowed_rate(v):
            allowed = ", ".join(str(r) for r in ALLOWED_VAT_RATES)
            raise ValueError(f"Alícuota de IVA inválida; permitidas: {allowed}")
        return v


class InvoiceFromSales(BaseModel):
    sale_ids: List[UUID] = Field(..., min_length=1, description="Ventas a facturar (mismo cliente)")
    issue_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceManualCreate(BaseModel):
    customer_id: UUID
    items: List[InvoiceItemCreate] = Field(..., min_length=1)
    issue_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    """Solo aplica a borradores."""
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)
    issue_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceVoidRequest(BaseModel):
    reason: str = Field(..., description="Motivo de la anulación")
    amount: Optional[Decimal] = Field(None, gt=0, description="Importe a acreditar; vacío = anulación total")


class InvoiceItemOut(BaseModel):
    id: UUID
    position: int
    product_id: Optional[UUID] = None
    code: Optional[str] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    vat_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class TaxBreakdownOut(BaseModel):
    rate: Decimal
    base: Decimal
    amount: Decimal


class InvoiceOut(BaseModel):
    id: UUID
    number: str
    kind: InvoiceKind
    voucher_type: VoucherType
    point_of_sale: int
    issue_date: date
    customer_id: UUID
    customer_name: str
    customer_document_type: str
    customer_document_number: str
    customer_tax_condition: str
    subtotal: Decimal
    discount_total: Decimal
    net_total: Decimal
    vat_total: Decimal
    total: Decimal
    tax_breakdown: List[TaxBreakdownOut]
    authorization_state: AuthorizationState
    authorization_code: Optional[str] = None
    authorization_expires_on: Optional[date] = None
    authority_voucher_number: Optional[str] = None
    authorized_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    credited_amount: Decimal
    original_invoice_id: Optional[UUID] = None
    void_reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    items: List[InvoiceItemOut]
    sale_ids: List[UUID] = []
    credit_note_ids: List[UUID] = []


class InvoiceVoidResult(BaseModel):
    invoice: InvoiceOut
    credit_note: InvoiceDetail
    full_void: bool


class InvoiceFilters(BaseModel):
    customer_id: Optional[UUID] = None
    kind: Optional[InvoiceKind] = None
    authorization_state: Optional[AuthorizationState] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int


class AuthorizationCheck(BaseModel):
    invoice_id: UUID
    authorization_code: str
    valid: bool
