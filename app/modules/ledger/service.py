"""
Servicio de cuenta corriente.

Toda escritura sobre Customer.balance pasa por post(); reverse() se apoya
en post() para el contraasiento. Ninguno de los dos hace commit: corren
dentro de la transacción del documento que los origina.
"""
from sqlalchemy.orm import Session
from sqlalchemy import func
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4
from datetime import date, datetime, timezone
import logging

from app.core.config import settings
from app.common.exceptions import ConflictError, NotFoundError, ValidationError, IntegrityViolationError
from app.common.money import money, ZERO
from app.common.transactions import transactional
from app.common.validators import require_reason
from app.modules.customers.models import Customer
from app.modules.ledger.models import LedgerEntry, EntryType, Direction, OriginType
from app.modules.ledger.schemas import (
    CreditStatus, AdjustmentKind, LedgerSummary, AgingReport, AgingBucket, AgingSale
)

logger = logging.getLogger(__name__)

AGING_BUCKETS = [
    ("0-30", 0, 30),
    ("31-60", 31, 60),
    ("61-90", 61, 90),
    ("90+", 91, None),
]


def credit_status(balance: Decimal, limit: Optional[Decimal]) -> CreditStatus:
    """Clasificación informativa del uso del límite. Nunca bloquea."""
    if not limit or limit <= 0:
        return CreditStatus.NO_LIMIT
    utilization = balance / limit * 100
    if utilization >= Decimal(str(settings.CREDIT_LIMIT_PERCENT)):
        return CreditStatus.OVER_LIMIT
    if utilization >= Decimal(str(settings.CREDIT_WARNING_PERCENT)):
        return CreditStatus.NEAR_LIMIT
    if utilization >= Decimal(str(settings.CREDIT_ATTENTION_PERCENT)):
        return CreditStatus.ATTENTION
    return CreditStatus.OK


class LedgerService:

    def __init__(self, db: Session):
        self.db = db

    def _lock_customer(self, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).with_for_update().first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")
        return customer

    def post(
        self,
        customer_id: UUID,
        entry_type: EntryType,
        direction: Direction,
        amount: Decimal,
        origin_type: OriginType,
        origin_id: Optional[UUID],
        concept: str,
        origin_number: Optional[str] = None,
        operator: Optional[str] = None,
        reverses_entry_id: Optional[UUID] = None,
    ) -> LedgerEntry:
        """Agrega un asiento y actualiza el saldo materializado."""
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("El importe del movimiento debe ser mayor a cero")

        customer = self._lock_customer(customer_id)
        signed = amount if direction == Direction.DEBIT else -amount
        customer.balance = money((customer.balance or ZERO) + signed)

        entry = LedgerEntry(
            customer_id=customer_id,
            entry_type=entry_type,
            direction=direction,
            amount=amount,
            balance_after=customer.balance,
            origin_type=origin_type,
            origin_id=origin_id,
            origin_number=origin_number,
            concept=concept,
            reverses_entry_id=reverses_entry_id,
            created_by=operator,
        )
        self.db.add(entry)
        self.db.flush()
        logger.info(
            f"Cuenta corriente {customer.name}: {entry_type.value} {direction.value} {amount} "
            f"({origin_number or origin_type.value}) saldo {customer.balance}"
        )
        return entry

    def reverse(
        self,
        reason: str,
        entry_id: Optional[UUID] = None,
        origin_type: Optional[OriginType] = None,
        origin_id: Optional[UUID] = None,
        operator: Optional[str] = None,
    ) -> List[LedgerEntry]:
        """
        Contraasienta los movimientos vigentes de un asiento o de un documento.
        El original y su contraasiento quedan marcados como anulados.
        """
        query = self.db.query(LedgerEntry).filter(
            LedgerEntry.voided.is_(False),
            LedgerEntry.entry_type != EntryType.REVERSAL
        )
        if entry_id is not None:
            query = query.filter(LedgerEntry.id == entry_id)
        elif origin_type is not None and origin_id is not None:
            query = query.filter(LedgerEntry.origin_type == origin_type, LedgerEntry.origin_id == origin_id)
        else:
            raise ValidationError("Se requiere el asiento o el documento a revertir")

        entries = query.order_by(LedgerEntry.created_at, LedgerEntry.id).all()
        if not entries:
            raise ConflictError("No hay movimientos vigentes para revertir")

        now = datetime.now(timezone.utc)
        reversals = []
        for entry in entries:
            opposite = Direction.CREDIT if entry.direction == Direction.DEBIT else Direction.DEBIT
            reversal = self.post(
                customer_id=entry.customer_id,
                entry_type=EntryType.REVERSAL,
                direction=opposite,
                amount=entry.amount,
                origin_type=entry.origin_type,
                origin_id=entry.origin_id,
                origin_number=entry.origin_number,
                concept=f"Anulación: {entry.concept}"[:255],
                operator=operator,
                reverses_entry_id=entry.id,
            )
            for voided in (entry, reversal):
                voided.voided = True
                voided.voided_at = now
                voided.void_reason = reason
            reversals.append(reversal)
        self.db.flush()
        return reversals

    @transactional
    def create_adjustment(self, customer_id: UUID, kind: AdjustmentKind, amount: Decimal,
                          concept: str, operator: Optional[str] = None) -> LedgerEntry:
        """Ajuste manual sin movimiento de fondos."""
        concept = require_reason(concept)
        if kind == AdjustmentKind.CHARGE:
            entry_type, direction = EntryType.ADJUSTMENT_CHARGE, Direction.DEBIT
        else:
            entry_type, direction = EntryType.ADJUSTMENT_DISCOUNT, Direction.CREDIT
        return self.post(
            customer_id=customer_id,
            entry_type=entry_type,
            direction=direction,
            amount=amount,
            origin_type=OriginType.ADJUSTMENT,
            origin_id=uuid4(),
            concept=concept,
            operator=operator,
        )

    @transactional
    def void_adjustment(self, customer_id: UUID, entry_id: UUID, reason: str,
                        operator: Optional[str] = None) -> LedgerEntry:
        reason = require_reason(reason)
        entry = self.db.query(LedgerEntry).filter(
            LedgerEntry.id == entry_id, LedgerEntry.customer_id == customer_id
        ).first()
        if not entry:
            raise NotFoundError("Movimiento no encontrado")
        if entry.entry_type not in (EntryType.ADJUSTMENT_CHARGE, EntryType.ADJUSTMENT_DISCOUNT):
            raise ConflictError("Solo los ajustes manuales se anulan desde la cuenta corriente")
        return self.reverse(reason, entry_id=entry.id, operator=operator)[0]

    def list_entries(self, customer_id: UUID, date_from: Optional[date] = None, date_to: Optional[date] = None,
                     entry_type: Optional[EntryType] = None, limit: int = 100, offset: int = 0) -> dict:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")

        query = self.db.query(LedgerEntry).filter(LedgerEntry.customer_id == customer_id)
        if date_from:
            query = query.filter(func.date(LedgerEntry.created_at) >= date_from)
        if date_to:
            query = query.filter(func.date(LedgerEntry.created_at) <= date_to)
        if entry_type:
            query = query.filter(LedgerEntry.entry_type == entry_type)

        total = query.count()
        entries = query.order_by(LedgerEntry.created_at, LedgerEntry.id).offset(offset).limit(limit).all()
        return {
            "customer_id": customer_id,
            "balance": customer.balance,
            "entries": entries,
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def summary(self, customer_id: UUID) -> LedgerSummary:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")

        balance = money(customer.balance or ZERO)
        limit = customer.credit_limit
        has_limit = bool(limit and limit > 0)

        totals = dict(
            self.db.query(LedgerEntry.direction, func.coalesce(func.sum(LedgerEntry.amount), 0))
            .filter(LedgerEntry.customer_id == customer_id, LedgerEntry.voided.is_(False))
            .group_by(LedgerEntry.direction)
            .all()
        )
        counts = (
            self.db.query(LedgerEntry.entry_type, func.count(LedgerEntry.id))
            .filter(LedgerEntry.customer_id == customer_id)
            .group_by(LedgerEntry.entry_type)
            .all()
        )
        last_movement_at = self.db.query(func.max(LedgerEntry.created_at)).filter(
            LedgerEntry.customer_id == customer_id
        ).scalar()

        return LedgerSummary(
            customer_id=customer_id,
            limit=money(limit) if has_limit else None,
            balance=balance,
            available=money(max(limit - balance, ZERO)) if has_limit else None,
            utilization_percent=money(balance / limit * 100) if has_limit else None,
            status=credit_status(balance, limit),
            total_debits=money(totals.get(Direction.DEBIT, 0)),
            total_credits=money(totals.get(Direction.CREDIT, 0)),
            movements_by_type={entry_type.value: count for entry_type, count in counts},
            last_movement_at=last_movement_at,
        )

    def aging(self, customer_id: UUID, as_of: Optional[date] = None) -> AgingReport:
        """Antigüedad de deuda sobre ventas con saldo pendiente, por fecha de venta."""
        from app.modules.sales.models import Sale, ConfirmationState

        if not self.db.query(Customer.id).filter(Customer.id == customer_id).first():
            raise NotFoundError("Cliente no encontrado")

        as_of = as_of or date.today()
        sales = self.db.query(Sale).filter(
            Sale.customer_id == customer_id,
            Sale.confirmation_state == ConfirmationState.CONFIRMED,
            Sale.outstanding_balance > 0
        ).order_by(Sale.sale_date, Sale.number).all()

        buckets = [AgingBucket(label=label) for label, _, _ in AGING_BUCKETS]
        total = ZERO
        for sale in sales:
            days = max((as_of - sale.sale_date).days, 0)
            for bucket, (_, low, high) in zip(buckets, AGING_BUCKETS):
                if days >= low and (high is None or days <= high):
                    bucket.count += 1
                    bucket.amount = money(bucket.amount + sale.outstanding_balance)
                    bucket.sales.append(AgingSale(
                        sale_id=sale.id,
                        number=sale.number,
                        sale_date=sale.sale_date,
                        days=days,
                        outstanding_balance=sale.outstanding_balance,
                    ))
                    break
            total += sale.outstanding_balance

        return AgingReport(customer_id=customer_id, as_of=as_of, buckets=buckets, total=money(total))

    def verify_balance(self, customer_id: UUID) -> Decimal:
        """Recalcula el saldo desde los asientos vigentes y lo compara con el materializado."""
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")

        entries = self.db.query(LedgerEntry).filter(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.voided.is_(False)
        ).all()
        computed = money(sum((e.signed_amount for e in entries), ZERO))
        if computed != money(customer.balance or ZERO):
            raise IntegrityViolationError(
                f"Saldo materializado {customer.balance} difiere del recalculado {computed} "
                f"para el cliente {customer_id}"
            )
        return computed
