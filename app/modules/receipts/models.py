from app.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer, Text, Enum, Date, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import BaseMixin, AuditMixin
import enum


class ReceiptStatus(str, enum.Enum):
    ACTIVE = "active"
    VOIDED = "voided"


class InstrumentType(str, enum.Enum):
    CASH = "cash"
    CHECK = "check"
    TRANSFER = "transfer"
    CARD = "card"


class Receipt(Base, BaseMixin, AuditMixin):
    __tablename__ = "receipts"

    number = Column(String(50), nullable=False)
    receipt_date = Column(Date, nullable=False, default=date.today)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    # Totales
    amount_due = Column(Numeric(15, 2), nullable=False, default=0)      # saldo de las ventas al cobrar
    amount_paid = Column(Numeric(15, 2), nullable=False, default=0)     # suma de instrumentos
    amount_applied = Column(Numeric(15, 2), nullable=False, default=0)  # imputado a ventas
    change_amount = Column(Numeric(15, 2), nullable=False, default=0)   # vuelto, no va a cuenta corriente
    shortfall = Column(Numeric(15, 2), nullable=False, default=0)
    allow_partial = Column(Boolean, nullable=False, default=False)

    status = Column(Enum(ReceiptStatus), nullable=False, default=ReceiptStatus.ACTIVE, index=True)
    void_reason = Column(String(255), nullable=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    voided_by = Column(String(100), nullable=True)

    # Última corrección de importe
    previous_amount = Column(Numeric(15, 2), nullable=True)
    correction_reason = Column(String(255), nullable=True)
    corrected_at = Column(DateTime(timezone=True), nullable=True)
    corrected_by = Column(String(100), nullable=True)

    notes = Column(Text, nullable=True)

    customer = relationship("Customer")
    allocations = relationship(
        "ReceiptAllocation", back_populates="receipt", cascade="all, delete-orphan",
        order_by="ReceiptAllocation.position"
    )
    instruments = relationship(
        "ReceiptInstrument", back_populates="receipt", cascade="all, delete-orphan",
        order_by="ReceiptInstrument.position"
    )

    __table_args__ = (
        UniqueConstraint("number", name="uq_receipts_number"),
    )


class ReceiptAllocation(Base):
    """Imputación del recibo a una venta, en orden FIFO."""
    __tablename__ = "receipt_allocations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    receipt_id = Column(Uuid(as_uuid=True), ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id"), nullable=False, index=True)
    sale_number = Column(String(50), nullable=False)
    sale_date = Column(Date, nullable=False)
    sale_total = Column(Numeric(15, 2), nullable=False)
    balance_before = Column(Numeric(15, 2), nullable=False)
    amount_applied = Column(Numeric(15, 2), nullable=False, default=0)
    balance_after = Column(Numeric(15, 2), nullable=False)

    receipt = relationship("Receipt", back_populates="allocations")
    sale = relationship("Sale")


class ReceiptInstrument(Base):
    __tablename__ = "receipt_instruments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    receipt_id = Column(Uuid(as_uuid=True), ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    instrument_type = Column(Enum(InstrumentType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)

    # Cheque
    check_number = Column(String(50), nullable=True)
    check_bank = Column(String(100), nullable=True)
    check_holder = Column(String(150), nullable=True)
    check_due_date = Column(Date, nullable=True)
    # Transferencia
    transfer_operation = Column(String(100), nullable=True)
    transfer_bank = Column(String(100), nullable=True)
    # Tarjeta
    card_type = Column(String(50), nullable=True)
    card_authorization = Column(String(50), nullable=True)

    receipt = relationship("Receipt", back_populates="instruments")
