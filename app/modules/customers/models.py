"""
Modelos SQLAlchemy para el módulo de Clientes

Customer concentra la identidad fiscal, el límite de crédito y las formas
de pago aceptadas. El saldo (balance) es la cuenta corriente materializada:
solo lo escribe LedgerService.
"""

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Numeric, Text, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from app.common.mixins import BaseMixin, AuditMixin
import enum


class TaxCondition(str, enum.Enum):
    """Condición frente al IVA"""
    RESPONSABLE_INSCRIPTO = "responsable_inscripto"
    MONOTRIBUTISTA = "monotributista"
    EXENTO = "exento"
    CONSUMIDOR_FINAL = "consumidor_final"


class DocumentType(str, enum.Enum):
    CUIT = "CUIT"
    CUIL = "CUIL"
    DNI = "DNI"
    PASSPORT = "PASSPORT"


class Customer(Base, BaseMixin, AuditMixin):
    __tablename__ = "customers"

    name = Column(String(200), nullable=False, index=True)
    document_type = Column(Enum(DocumentType), nullable=False, default=DocumentType.DNI)
    document_number = Column(String(20), nullable=False)
    tax_condition = Column(Enum(TaxCondition), nullable=False, default=TaxCondition.CONSUMIDOR_FINAL)

    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(250), nullable=True)
    city = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Límite de crédito; NULL o 0 = sin límite definido
    credit_limit = Column(Numeric(15, 2), nullable=True)

    # Formas de pago aceptadas
    accepts_cash = Column(Boolean, nullable=False, default=True)
    accepts_check = Column(Boolean, nullable=False, default=False)
    accepts_transfer = Column(Boolean, nullable=False, default=True)
    accepts_card = Column(Boolean, nullable=False, default=True)

    # Saldo de cuenta corriente (debe - haber). Solo LedgerService lo modifica.
    balance = Column(Numeric(15, 2), nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)

    ledger_entries = relationship("LedgerEntry", back_populates="customer", lazy="dynamic")

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_customers_document"),
    )

    def accepts_instrument(self, instrument_type: str) -> bool:
        return bool(getattr(self, f"accepts_{instrument_type}", False))
