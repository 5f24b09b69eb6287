"""
Modelos SQLAlchemy para Ventas

Una venta tiene tres ejes de estado independientes:
- confirmation_state: borrador / confirmada / cancelada
- collection_state: derivado de outstanding_balance, nunca se asigna a mano
- delivery_state: lo mueve únicamente el ciclo de vida del remito
"""

from app.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer, Text, Enum, Date, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import BaseMixin, AuditMixin
import enum


class ConfirmationState(str, enum.Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class CollectionState(str, enum.Enum):
    UNCOLLECTED = "uncollected"
    PARTIALLY_COLLECTED = "partially_collected"
    COLLECTED = "collected"


class DeliveryState(str, enum.Enum):
    NO_DELIVERY_NOTE = "no_delivery_note"
    DELIVERY_NOTE_ISSUED = "delivery_note_issued"
    DELIVERED = "delivered"


class CollectionTiming(str, enum.Enum):
    ADVANCE = "advance"            # Cobro antes de confirmar
    ON_DELIVERY = "on_delivery"    # Contra entrega
    DEFERRED = "deferred"          # Cuenta corriente


_CONFIRMATION_LABELS = {
    ConfirmationState.DRAFT: "Borrador",
    ConfirmationState.CONFIRMED: "Confirmada",
    ConfirmationState.CANCELLED: "Cancelada",
}
_COLLECTION_LABELS = {
    CollectionState.UNCOLLECTED: "Pendiente de cobro",
    CollectionState.PARTIALLY_COLLECTED: "Cobrada parcialmente",
    CollectionState.COLLECTED: "Cobrada",
}
_DELIVERY_LABELS = {
    DeliveryState.NO_DELIVERY_NOTE: "Sin remito",
    DeliveryState.DELIVERY_NOTE_ISSUED: "Remito emitido",
    DeliveryState.DELIVERED: "Entregada",
}


class Sale(Base, BaseMixin, AuditMixin):
    __tablename__ = "sales"

    number = Column(String(50), nullable=False)
    sale_date = Column(Date, nullable=False, default=date.today)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    collection_timing = Column(Enum(CollectionTiming), nullable=False, default=CollectionTiming.DEFERRED)
    applies_tax = Column(Boolean, nullable=False, default=True)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=0)

    # Totales
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount_total = Column(Numeric(15, 2), nullable=False, default=0)
    tax_total = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)

    # Cobranza: outstanding_balance es la fuente de verdad
    amount_collected = Column(Numeric(15, 2), nullable=False, default=0)
    outstanding_balance = Column(Numeric(15, 2), nullable=False, default=0)

    confirmation_state = Column(Enum(ConfirmationState), nullable=False, default=ConfirmationState.DRAFT, index=True)
    collection_state = Column(Enum(CollectionState), nullable=False, default=CollectionState.UNCOLLECTED)
    delivery_state = Column(Enum(DeliveryState), nullable=False, default=DeliveryState.NO_DELIVERY_NOTE)

    invoiced = Column(Boolean, nullable=False, default=False)
    # Remito vigente; referencia validada al escribir
    delivery_note_id = Column(Uuid(as_uuid=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(String(100), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(100), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    customer = relationship("Customer")
    items = relationship(
        "SaleItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.position"
    )
    invoices = relationship("Invoice", secondary="invoice_sales", back_populates="sales")

    __table_args__ = (
        UniqueConstraint("number", name="uq_sales_number"),
    )

    @property
    def status_label(self) -> str:
        if self.confirmation_state != ConfirmationState.CONFIRMED:
            return _CONFIRMATION_LABELS[self.confirmation_state]
        return " / ".join([
            _CONFIRMATION_LABELS[self.confirmation_state],
            _COLLECTION_LABELS[self.collection_state],
            _DELIVERY_LABELS[self.delivery_state],
        ])


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=True)
    code = Column(String(50), nullable=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)

    subtotal = Column(Numeric(15, 2), nullable=False)        # cantidad * precio
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False)           # subtotal - descuento

    sale = relationship("Sale", back_populates="items")
