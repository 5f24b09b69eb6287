from pydantic import BaseModel
from decimal import Decimal
from typing import Optional, List
from datetime import date


class VoucherItem(BaseModel):
    description: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    total: Decimal


class VoucherTax(BaseModel):
    rate: Decimal
    base: Decimal
    amount: Decimal


class VoucherSnapshot(BaseModel):
    """Datos del comprobante tal como se envían a autorizar."""
    internal_number: str
    voucher_type: str
    point_of_sale: int
    issue_date: date
    issuer_tax_id: str
    issuer_tax_condition: str
    receiver_name: str
    receiver_document_type: str
    receiver_document_number: str
    receiver_tax_condition: str
    net_total: Decimal
    vat_total: Decimal
    total: Decimal
    taxes: List[VoucherTax]
    items: List[VoucherItem]
    # Comprobante asociado (notas de crédito)
    associated_voucher_type: Optional[str] = None
    associated_voucher_number: Optional[str] = None


class AuthorizationResult(BaseModel):
    authorized: bool
    code: Optional[str] = None
    expires_on: Optional[date] = None
    voucher_number: Optional[str] = None
    reason: Optional[str] = None
    observations: Optional[str] = None
