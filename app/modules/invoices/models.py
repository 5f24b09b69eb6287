from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text, JSON, Uuid, Table, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import BaseMixin, AuditMixin
import enum


class InvoiceKind(str, enum.Enum):
    INVOICE = "invoice"          # Factura
    CREDIT_NOTE = "credit_note"  # Nota de crédito


class VoucherType(str, enum.Enum):
    FACTURA_A = "FACTURA_A"
    FACTURA_B = "FACTURA_B"
    FACTURA_C = "FACTURA_C"
    NOTA_CREDITO_A = "NOTA_CREDITO_A"
    NOTA_CREDITO_B = "NOTA_CREDITO_B"
    NOTA_CREDITO_C = "NOTA_CREDITO_C"


CREDIT_NOTE_TYPES = {
    VoucherType.FACTURA_A: VoucherType.NOTA_CREDITO_A,
    VoucherType.FACTURA_B: VoucherType.NOTA_CREDITO_B,
    VoucherType.FACTURA_C: VoucherType.NOTA_CREDITO_C,
}


class AuthorizationState(str, enum.Enum):
    DRAFT = "draft"            # Borrador, editable
    AUTHORIZED = "authorized"  # Con código de autorización; inmutable
    REJECTED = "rejected"      # Rechazada por el organismo
    VOIDED = "voided"          # Acreditada totalmente
    ERROR = "error"            # La llamada no se completó


invoice_sales = Table(
    "invoice_sales",
    Base.metadata,
    Column("invoice_id", Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), primary_key=True),
    Column("sale_id", Uuid(as_uuid=True), ForeignKey("sales.id"), primary_key=True),
)


class Invoice(Base, BaseMixin, AuditMixin):
    __tablename__ = "invoices"

    number = Column(String(50), nullable=False)
    kind = Column(Enum(InvoiceKind), nullable=False, default=InvoiceKind.INVOICE)
    voucher_type = Column(Enum(VoucherType), nullable=False)
    point_of_sale = Column(Integer, nullable=False, default=1)
    issue_date = Column(Date, nullable=False, default=date.today)

    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    # Identidad fiscal del receptor congelada al autorizar
    customer_name = Column(String(200), nullable=False)
    customer_document_type = Column(String(20), nullable=False)
    customer_document_number = Column(String(20), nullable=False)
    customer_tax_condition = Column(String(30), nullable=False)

    # Totales
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount_total = Column(Numeric(15, 2), nullable=False, default=0)
    net_total = Column(Numeric(15, 2), nullable=False, default=0)
    vat_total = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    tax_breakdown = Column(JSON, nullable=False, default=list)

    authorization_state = Column(Enum(AuthorizationState), nullable=False, default=AuthorizationState.DRAFT, index=True)
    authorization_code = Column(String(50), nullable=True)
    authorization_expires_on = Column(Date, nullable=True)
    authority_voucher_number = Column(String(30), nullable=True)
    authorized_at = Column(DateTime(timezone=True), nullable=True)
    authorized_by = Column(String(100), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Notas de crédito emitidas contra esta factura
    credited_amount = Column(Numeric(15, 2), nullable=False, default=0)
    original_invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)
    void_reason = Column(String(255), nullable=True)

    notes = Column(Text, nullable=True)

    customer = relationship("Customer")
    items = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceItem.position"
    )
    sales = relationship("Sale", secondary=invoice_sales, back_populates="invoices")
    original_invoice = relationship("Invoice", remote_side="Invoice.id", back_populates="credit_notes")
    credit_notes = relationship("Invoice", back_populates="original_invoice")

    __table_args__ = (
        UniqueConstraint("number", name="uq_invoices_number"),
    )

    @property
    def creditable_amount(self):
        return self.total - (self.credited_amount or 0)

    @property
    def sale_ids(self):
        return [sale.id for sale in self.sales]

    @property
    def credit_note_ids(self):
        return [note.id for note in self.credit_notes]


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=True)
    code = Column(String(50), nullable=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=0)

    net_amount = Column(Numeric(15, 2), nullable=False)
    vat_amount = Column(Numeric(15, 2), nullable=False)
    total = Column(Numeric(15, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="items")
