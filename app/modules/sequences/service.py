"""
Numeración de documentos PREFIJO-AAAAMM-NNNN.

No hay tabla de contadores: el siguiente número se deriva del máximo
existente para el prefijo y mes, leído dentro de la misma transacción que
inserta el documento. Si dos operaciones concurrentes obtienen el mismo
número, la restricción única sobre `number` rechaza a la segunda y
@transactional reintenta la operación completa con una lectura nueva.
"""
from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import date
from typing import Optional
import enum
import logging

logger = logging.getLogger(__name__)


class DocumentType(str, enum.Enum):
    SALE = "sale"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    DELIVERY_NOTE = "delivery_note"
    RECEIPT = "receipt"


PREFIXES = {
    DocumentType.SALE: "VTA",
    DocumentType.INVOICE: "FAC",
    DocumentType.CREDIT_NOTE: "NC",
    DocumentType.DELIVERY_NOTE: "REM",
    DocumentType.RECEIPT: "REC",
}


def _number_column(document_type: DocumentType):
    # Imports diferidos: los modelos de documentos dependen de este módulo
    if document_type == DocumentType.SALE:
        from app.modules.sales.models import Sale
        return Sale.number
    if document_type in (DocumentType.INVOICE, DocumentType.CREDIT_NOTE):
        from app.modules.invoices.models import Invoice
        return Invoice.number
    if document_type == DocumentType.DELIVERY_NOTE:
        from app.modules.delivery_notes.models import DeliveryNote
        return DeliveryNote.number
    from app.modules.receipts.models import Receipt
    return Receipt.number


def period_prefix(document_type: DocumentType, on_date: date) -> str:
    return f"{PREFIXES[document_type]}-{on_date.strftime('%Y%m')}-"


def parse_sequence(number: str) -> int:
    """Parte numérica final de un número de documento."""
    return int(number.rsplit("-", 1)[-1])


class SequenceAllocator:

    def __init__(self, db: Session):
        self.db = db

    def _current_max(self, document_type: DocumentType, prefix: str) -> Optional[str]:
        column = _number_column(document_type)
        return self.db.query(column).filter(
            column.like(f"{prefix}%")
        ).order_by(func.length(column).desc(), column.desc()).limit(1).scalar()

    def next_number(self, document_type: DocumentType, on_date: Optional[date] = None) -> str:
        on_date = on_date or date.today()
        prefix = period_prefix(document_type, on_date)
        last = self._current_max(document_type, prefix)
        sequence = parse_sequence(last) + 1 if last else 1
        number = f"{prefix}{sequence:04d}"
        logger.debug(f"Número asignado: {number}")
        return number
