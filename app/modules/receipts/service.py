"""
Servicio de Recibos

Imputación FIFO: las ventas se cancelan de la más antigua a la más nueva
(fecha, número). Lo que sobra es vuelto y no se registra en la cuenta
corriente. Cada recibo genera un único asiento de haber por lo imputado.
"""
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, timezone
import logging

from app.common.exceptions import ConflictError, NotFoundError, ValidationError, IntegrityViolationError
from app.common.money import money, ZERO
from app.common.transactions import transactional
from app.common.validators import require_reason
from app.modules.customers.models import Customer
from app.modules.ledger.models import EntryType, Direction, OriginType
from app.modules.ledger.service import LedgerService
from app.modules.receipts.models import (
    Receipt, ReceiptAllocation, ReceiptInstrument, ReceiptStatus, InstrumentType
)
from app.modules.receipts.schemas import ReceiptCreate, ReceiptCorrection, InstrumentCreate
from app.modules.sales.models import Sale, ConfirmationState
from app.modules.sales.service import SaleService
from app.modules.sequences.service import SequenceAllocator, DocumentType

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    InstrumentType.CASH: [],
    InstrumentType.CHECK: [
        ("check_number", "número"), ("check_bank", "banco"),
        ("check_holder", "titular"), ("check_due_date", "fecha de vencimiento"),
    ],
    InstrumentType.TRANSFER: [("transfer_operation", "número de operación"), ("transfer_bank", "banco")],
    InstrumentType.CARD: [("card_type", "tipo de tarjeta"), ("card_authorization", "código de autorización")],
}

INSTRUMENT_LABELS = {
    InstrumentType.CASH: "efectivo",
    InstrumentType.CHECK: "cheque",
    InstrumentType.TRANSFER: "transferencia",
    InstrumentType.CARD: "tarjeta",
}


def allocate_fifo(balances: List[Decimal], funds: Decimal) -> List[Decimal]:
    """
    Reparte `funds` sobre saldos ya ordenados del más antiguo al más nuevo.
    Cada imputación se limita al saldo de su venta.
    """
    remaining = money(funds)
    applied = []
    for balance in balances:
        amount = min(remaining, money(balance)) if remaining > 0 else ZERO
        applied.append(amount)
        remaining -= amount
    return applied


def fifo_key(sale: Sale):
    return (sale.sale_date, sale.number)


class ReceiptService:

    def __init__(self, db: Session):
        self.db = db

    # ===== Consultas =====

    def get_receipt(self, receipt_id: UUID, for_update: bool = False) -> Receipt:
        query = self.db.query(Receipt).options(
            selectinload(Receipt.allocations), selectinload(Receipt.instruments)
        ).filter(Receipt.id == receipt_id)
        if for_update:
            query = query.with_for_update()
        receipt = query.first()
        if not receipt:
            raise NotFoundError("Recibo no encontrado")
        return receipt

    def list_receipts(
        self,
        customer_id: Optional[UUID] = None,
        status: Optional[ReceiptStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self.db.query(Receipt)
        if customer_id:
            query = query.filter(Receipt.customer_id == customer_id)
        if status:
            query = query.filter(Receipt.status == status)
        if date_from:
            query = query.filter(Receipt.receipt_date >= date_from)
        if date_to:
            query = query.filter(Receipt.receipt_date <= date_to)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Receipt.number.ilike(term), Receipt.notes.ilike(term)))
        total = query.count()
        receipts = query.order_by(Receipt.receipt_date.desc(), Receipt.number.desc()).offset(offset).limit(limit).all()
        return {"receipts": receipts, "total": total, "limit": limit, "offset": offset}

    def list_customer_receipts(self, customer_id: UUID, limit: int = 100, offset: int = 0) -> dict:
        if not self.db.query(Customer.id).filter(Customer.id == customer_id).first():
            raise NotFoundError("Cliente no encontrado")
        return self.list_receipts(customer_id=customer_id, limit=limit, offset=offset)

    # ===== Validaciones =====

    def _validate_instrument(self, customer: Customer, position: int, data: InstrumentCreate):
        label = INSTRUMENT_LABELS[data.instrument_type]
        if not customer.accepts_instrument(data.instrument_type.value):
            raise ValidationError(f"El cliente {customer.name} no opera con {label}")
        missing = [name for field, name in REQUIRED_FIELDS[data.instrument_type] if not getattr(data, field)]
        if missing:
            raise ValidationError(f"Instrumento {position + 1} ({label}): falta {', '.join(missing)}")

    def _check_integrity(self, receipt: Receipt):
        applied = money(sum((a.amount_applied for a in receipt.allocations), ZERO))
        paid = money(sum((i.amount for i in receipt.instruments), ZERO))
        if applied != money(receipt.amount_applied) or paid != money(receipt.amount_paid):
            raise IntegrityViolationError(
                f"Recibo {receipt.number}: totales inconsistentes (imputado {applied}/{receipt.amount_applied}, "
                f"pagado {paid}/{receipt.amount_paid})"
            )
        if applied != money(paid - receipt.change_amount):
            raise IntegrityViolationError(
                f"Recibo {receipt.number}: imputado {applied} distinto de pagado {paid} menos vuelto {receipt.change_amount}"
            )

    # ===== Operaciones =====

    @transactional
    def create_receipt(self, data: ReceiptCreate, operator: Optional[str] = None) -> Receipt:
        customer = self.db.query(Customer).filter(Customer.id == data.customer_id).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")

        sale_ids = list(dict.fromkeys(data.sale_ids))
        sales = self.db.query(Sale).filter(Sale.id.in_(sale_ids)).with_for_update().all()
        if len(sales) != len(sale_ids):
            raise NotFoundError("Una o más ventas no existen")
        for sale in sales:
            if sale.customer_id != customer.id:
                raise ValidationError(f"La venta {sale.number} no pertenece al cliente")
            if sale.confirmation_state == ConfirmationState.CANCELLED:
                raise ConflictError(f"La venta {sale.number} está cancelada")
            if sale.outstanding_balance <= 0:
                raise ConflictError(f"La venta {sale.number} no tiene saldo pendiente")

        for position, instrument in enumerate(data.instruments):
            self._validate_instrument(customer, position, instrument)

        sales.sort(key=fifo_key)
        amount_due = money(sum((s.outstanding_balance for s in sales), ZERO))
        amount_paid = money(sum((i.amount for i in data.instruments), ZERO))
        if amount_paid < amount_due and not data.allow_partial:
            raise ValidationError(
                f"El pago ({amount_paid}) no cubre el saldo de las ventas ({amount_due}); "
                f"indique allow_partial para un cobro parcial"
            )

        # Validaciones completas; desde aquí solo escrituras
        receipt_date = data.receipt_date or date.today()
        receipt = Receipt(
            number=SequenceAllocator(self.db).next_number(DocumentType.RECEIPT, receipt_date),
            receipt_date=receipt_date,
            customer_id=customer.id,
            allow_partial=data.allow_partial,
            notes=data.notes,
            created_by=operator,
        )
        receipt.instruments = [
            ReceiptInstrument(position=position, **instrument.model_dump())
            for position, instrument in enumerate(data.instruments)
        ]

        sale_service = SaleService(self.db)
        applied_amounts = allocate_fifo([s.outstanding_balance for s in sales], amount_paid)
        allocations = []
        for position, (sale, applied) in enumerate(zip(sales, applied_amounts)):
            balance_before = sale.outstanding_balance
            sale_service.apply_collection(sale, applied)
            allocations.append(ReceiptAllocation(
                position=position,
                sale_id=sale.id,
                sale_number=sale.number,
                sale_date=sale.sale_date,
                sale_total=sale.total,
                balance_before=balance_before,
                amount_applied=applied,
                balance_after=sale.outstanding_balance,
            ))
        receipt.allocations = allocations

        amount_applied = money(sum(applied_amounts, ZERO))
        receipt.amount_due = amount_due
        receipt.amount_paid = amount_paid
        receipt.amount_applied = amount_applied
        receipt.change_amount = money(amount_paid - amount_applied)
        receipt.shortfall = money(max(amount_due - amount_paid, ZERO))
        self._check_integrity(receipt)

        self.db.add(receipt)
        self.db.flush()

        LedgerService(self.db).post(
            customer_id=customer.id,
            entry_type=EntryType.RECEIPT,
            direction=Direction.CREDIT,
            amount=amount_applied,
            origin_type=OriginType.RECEIPT,
            origin_id=receipt.id,
            origin_number=receipt.number,
            concept=f"Recibo {receipt.number} ({', '.join(s.number for s in sales)})",
            operator=operator,
        )
        logger.info(
            f"Recibo {receipt.number}: pagado {amount_paid}, imputado {amount_applied}, "
            f"vuelto {receipt.change_amount}, faltante {receipt.shortfall}"
        )
        return receipt

    @transactional
    def void_receipt(self, receipt_id: UUID, reason: str, operator: Optional[str] = None) -> Receipt:
        """Revierte cada imputación y contraasienta los movimientos del recibo."""
        reason = require_reason(reason)
        receipt = self.get_receipt(receipt_id, for_update=True)
        if receipt.status == ReceiptStatus.VOIDED:
            raise ConflictError("El recibo ya está anulado")

        sale_service = SaleService(self.db)
        for allocation in receipt.allocations:
            if allocation.amount_applied <= 0:
                continue
            sale = self.db.query(Sale).filter(Sale.id == allocation.sale_id).with_for_update().first()
            sale_service.revert_collection(sale, allocation.amount_applied)

        LedgerService(self.db).reverse(
            reason, origin_type=OriginType.RECEIPT, origin_id=receipt.id, operator=operator
        )

        receipt.status = ReceiptStatus.VOIDED
        receipt.void_reason = reason
        receipt.voided_at = datetime.now(timezone.utc)
        receipt.voided_by = operator
        self.db.flush()
        logger.info(f"Recibo {receipt.number} anulado: {reason}")
        return receipt

    @transactional
    def correct_amount(self, receipt_id: UUID, data: ReceiptCorrection, operator: Optional[str] = None) -> Receipt:
        """
        Corrige el importe cobrado de un recibo activo sin anularlo.

        Se rehace la imputación FIFO del nuevo importe sobre las mismas ventas,
        tomando como techo el saldo que cada una tenía antes de este recibo.
        La diferencia imputada va a la cuenta corriente en un único asiento.
        """
        reason = require_reason(data.reason)
        receipt = self.get_receipt(receipt_id, for_update=True)
        if receipt.status != ReceiptStatus.ACTIVE:
            raise ConflictError("Solo se corrigen recibos activos")

        corrected = money(data.corrected_amount)
        delta_paid = corrected - money(receipt.amount_paid)
        if delta_paid == 0:
            raise ValidationError("El importe corregido es igual al actual")

        index = data.instrument_index
        if index is None:
            if len(receipt.instruments) > 1:
                raise ValidationError("El recibo tiene varios instrumentos; indique cuál corregir")
            index = 0
        if index >= len(receipt.instruments):
            raise ValidationError(f"El recibo no tiene el instrumento {index}")
        instrument = receipt.instruments[index]
        if instrument.amount + delta_paid <= 0:
            raise ValidationError("El instrumento corregido debe quedar con importe positivo")

        allocations = receipt.allocations
        sales = {
            sale.id: sale
            for sale in self.db.query(Sale).filter(
                Sale.id.in_([a.sale_id for a in allocations])
            ).with_for_update().all()
        }
        reachable = []
        for allocation in allocations:
            sale = sales[allocation.sale_id]
            if sale.confirmation_state == ConfirmationState.CANCELLED:
                reachable.append(allocation.amount_applied)
            else:
                reachable.append(money(sale.outstanding_balance + allocation.amount_applied))
        new_amounts = allocate_fifo(reachable, corrected)

        # Validaciones completas; desde aquí solo escrituras
        sale_service = SaleService(self.db)
        old_applied = money(receipt.amount_applied)
        for allocation, ceiling, new_amount in zip(allocations, reachable, new_amounts):
            sale = sales[allocation.sale_id]
            delta = new_amount - allocation.amount_applied
            if delta > 0:
                sale_service.apply_collection(sale, delta)
            elif delta < 0:
                sale_service.revert_collection(sale, -delta)
            allocation.balance_before = ceiling
            allocation.amount_applied = new_amount
            allocation.balance_after = money(ceiling - new_amount)

        new_applied = money(sum(new_amounts, ZERO))
        instrument.amount = money(instrument.amount + delta_paid)
        receipt.previous_amount = receipt.amount_paid
        receipt.amount_paid = corrected
        receipt.amount_applied = new_applied
        receipt.amount_due = money(sum(reachable, ZERO))
        receipt.change_amount = money(corrected - new_applied)
        receipt.shortfall = money(max(receipt.amount_due - corrected, ZERO))
        receipt.correction_reason = reason
        receipt.corrected_at = datetime.now(timezone.utc)
        receipt.corrected_by = operator
        self._check_integrity(receipt)

        applied_delta = new_applied - old_applied
        if applied_delta != 0:
            LedgerService(self.db).post(
                customer_id=receipt.customer_id,
                entry_type=EntryType.RECEIPT_CORRECTION,
                direction=Direction.CREDIT if applied_delta > 0 else Direction.DEBIT,
                amount=abs(applied_delta),
                origin_type=OriginType.RECEIPT,
                origin_id=receipt.id,
                origin_number=receipt.number,
                concept=f"Corrección recibo {receipt.number}: {receipt.previous_amount} -> {corrected}",
                operator=operator,
            )

        self.db.flush()
        logger.info(
            f"Recibo {receipt.number} corregido {receipt.previous_amount} -> {corrected} "
            f"(imputado {old_applied} -> {new_applied}): {reason}"
        )
        return receipt
