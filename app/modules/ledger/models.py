"""
Cuenta corriente de clientes.

LedgerEntry es un registro de solo inserción. Las correcciones se hacen con
asientos compensatorios; los únicos campos que pueden cambiar después de
insertar son los de anulación (voided, voided_at, void_reason).
"""

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Numeric, Uuid, Enum, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from uuid import uuid4
from datetime import datetime, timezone
import enum


class EntryType(str, enum.Enum):
    SALE = "sale"                                # Venta confirmada (debe)
    RECEIPT = "receipt"                          # Recibo de cobro (haber)
    RECEIPT_CORRECTION = "receipt_correction"    # Corrección de importe de recibo
    CREDIT_NOTE = "credit_note"                  # Nota de crédito (haber)
    ADJUSTMENT_CHARGE = "adjustment_charge"      # Ajuste que aumenta la deuda
    ADJUSTMENT_DISCOUNT = "adjustment_discount"  # Ajuste que reduce la deuda
    REVERSAL = "reversal"                        # Contraasiento de anulación


class Direction(str, enum.Enum):
    DEBIT = "debit"    # Debe: aumenta el saldo deudor
    CREDIT = "credit"  # Haber: reduce el saldo deudor


class OriginType(str, enum.Enum):
    SALE = "sale"
    RECEIPT = "receipt"
    INVOICE = "invoice"
    ADJUSTMENT = "adjustment"


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    entry_type = Column(Enum(EntryType), nullable=False)
    direction = Column(Enum(Direction), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)  # Siempre positivo
    balance_after = Column(Numeric(15, 2), nullable=False)

    # Documento de origen
    origin_type = Column(Enum(OriginType), nullable=False)
    origin_id = Column(Uuid(as_uuid=True), nullable=True)
    origin_number = Column(String(50), nullable=True)
    concept = Column(String(255), nullable=False)

    reverses_entry_id = Column(Uuid(as_uuid=True), ForeignKey("ledger_entries.id"), nullable=True)

    voided = Column(Boolean, nullable=False, default=False)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    void_reason = Column(String(255), nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now(), nullable=False
    )

    customer = relationship("Customer", back_populates="ledger_entries")
    reverses = relationship("LedgerEntry", remote_side=[id])

    __table_args__ = (
        Index("ix_ledger_entries_origin", "origin_type", "origin_id"),
    )

    @property
    def signed_amount(self):
        return self.amount if self.direction == Direction.DEBIT else -self.amount

    @property
    def debit(self):
        return self.amount if self.direction == Direction.DEBIT else 0

    @property
    def credit(self):
        return self.amount if self.direction == Direction.CREDIT else 0
