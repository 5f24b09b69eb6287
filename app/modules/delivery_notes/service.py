"""
Servicio de Remitos

El remito es lo único que mueve el eje de entrega de la venta:
- generar: delivery_note_issued + referencia al remito
- delivered: sella delivered_at en la venta y registra la salida de stock
- cancelled: la venta vuelve a no_delivery_note y admite un remito nuevo
"""
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func, or_
from typing import Optional
from uuid import UUID
from datetime import date, datetime, timezone
import logging

from app.common.exceptions import ConflictError, NotFoundError, ValidationError
from app.common.transactions import transactional
from app.common.validators import require_reason
from app.modules.catalog.service import StockService
from app.modules.delivery_notes.models import DeliveryNote, DeliveryNoteItem, DeliveryStatus, TRANSITIONS
from app.modules.delivery_notes.schemas import (
    DeliveryNoteCreate, DeliveryStatusChange, DeliveredQuantitiesUpdate
)
from app.modules.sales.models import Sale, ConfirmationState, DeliveryState
from app.modules.sequences.service import SequenceAllocator, DocumentType

logger = logging.getLogger(__name__)


class DeliveryNoteService:

    def __init__(self, db: Session):
        self.db = db

    def get_delivery_note(self, delivery_note_id: UUID, for_update: bool = False) -> DeliveryNote:
        query = self.db.query(DeliveryNote).options(
            selectinload(DeliveryNote.items)
        ).filter(DeliveryNote.id == delivery_note_id)
        if for_update:
            query = query.with_for_update()
        delivery_note = query.first()
        if not delivery_note:
            raise NotFoundError("Remito no encontrado")
        return delivery_note

    def list_delivery_notes(
        self,
        sale_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
        status: Optional[DeliveryStatus] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self.db.query(DeliveryNote)
        if sale_id:
            query = query.filter(DeliveryNote.sale_id == sale_id)
        if customer_id:
            query = query.filter(DeliveryNote.customer_id == customer_id)
        if status:
            query = query.filter(DeliveryNote.status == status)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                DeliveryNote.number.ilike(term),
                DeliveryNote.delivery_address.ilike(term),
                DeliveryNote.courier.ilike(term)
            ))
        total = query.count()
        notes = query.order_by(DeliveryNote.issue_date.desc(), DeliveryNote.number.desc()).offset(offset).limit(limit).all()
        return {"delivery_notes": notes, "total": total, "limit": limit, "offset": offset}

    def get_stats(self) -> dict:
        rows = self.db.query(DeliveryNote.status, func.count(DeliveryNote.id)).group_by(DeliveryNote.status).all()
        by_status = {status.value: 0 for status in DeliveryStatus}
        for status, count in rows:
            by_status[status.value] = count
        return {"by_status": by_status, "total": sum(by_status.values())}

    def _active_note(self, sale_id: UUID) -> Optional[DeliveryNote]:
        return self.db.query(DeliveryNote).filter(
            DeliveryNote.sale_id == sale_id,
            DeliveryNote.status != DeliveryStatus.CANCELLED
        ).first()

    @transactional
    def generate_from_sale(self, data: DeliveryNoteCreate, operator: Optional[str] = None) -> DeliveryNote:
        sale = self.db.query(Sale).options(selectinload(Sale.items)).filter(
            Sale.id == data.sale_id
        ).with_for_update().first()
        if not sale:
            raise NotFoundError("Venta no encontrada")
        if sale.confirmation_state != ConfirmationState.CONFIRMED:
            raise ConflictError("Solo se generan remitos de ventas confirmadas")

        existing = self._active_note(sale.id)
        if existing:
            raise ConflictError(f"La venta {sale.number} ya tiene el remito {existing.number} ({existing.status.value})")

        address = data.delivery_address or sale.customer.address
        if not address:
            raise ValidationError("Debe indicar la dirección de entrega")

        issue_date = data.issue_date or date.today()
        delivery_note = DeliveryNote(
            number=SequenceAllocator(self.db).next_number(DocumentType.DELIVERY_NOTE, issue_date),
            issue_date=issue_date,
            sale_id=sale.id,
            customer_id=sale.customer_id,
            delivery_address=address,
            courier=data.courier,
            status=DeliveryStatus.PENDING,
            notes=data.notes,
            created_by=operator,
        )
        delivery_note.items = [
            DeliveryNoteItem(
                position=item.position,
                sale_item_id=item.id,
                product_id=item.product_id,
                code=item.code,
                description=item.description,
                quantity_requested=item.quantity,
                quantity_delivered=item.quantity,
            )
            for item in sale.items
        ]
        self.db.add(delivery_note)
        self.db.flush()

        sale.delivery_state = DeliveryState.DELIVERY_NOTE_ISSUED
        sale.delivery_note_id = delivery_note.id
        self.db.flush()
        logger.info(f"Remito {delivery_note.number} generado para la venta {sale.number}")
        return delivery_note

    @transactional
    def change_status(self, delivery_note_id: UUID, data: DeliveryStatusChange,
                      operator: Optional[str] = None) -> DeliveryNote:
        delivery_note = self.get_delivery_note(delivery_note_id, for_update=True)
        current, target = delivery_note.status, data.status
        if target not in TRANSITIONS[current]:
            raise ConflictError(f"Transición inválida del remito: {current.value} -> {target.value}")

        sale = self.db.query(Sale).filter(Sale.id == delivery_note.sale_id).with_for_update().first()
        now = datetime.now(timezone.utc)

        if target == DeliveryStatus.DELIVERED:
            receiver_name = (data.receiver_name or "").strip()
            if not receiver_name:
                raise ValidationError("El nombre de quien recibe es obligatorio")
            delivery_note.receiver_name = receiver_name
            delivery_note.receiver_document = data.receiver_document
            delivery_note.delivered_at = now
            sale.delivery_state = DeliveryState.DELIVERED
            sale.delivered_at = now
            StockService(self.db).consume(
                [(item.product_id, item.quantity_requested, item.quantity_delivered) for item in delivery_note.items],
                delivery_note.number, operator
            )
        elif target == DeliveryStatus.CANCELLED:
            self._cancel(delivery_note, sale, require_reason(data.reason), now)
        elif target == DeliveryStatus.IN_TRANSIT:
            delivery_note.dispatched_at = now
        elif target == DeliveryStatus.RETURNED:
            delivery_note.returned_at = now

        if data.notes:
            delivery_note.notes = data.notes
        delivery_note.status = target
        delivery_note.updated_by = operator
        self.db.flush()
        logger.info(f"Remito {delivery_note.number}: {current.value} -> {target.value}")
        return delivery_note

    def _cancel(self, delivery_note: DeliveryNote, sale: Sale, reason: str, now: datetime):
        delivery_note.cancellation_reason = reason
        delivery_note.cancelled_at = now
        delivery_note.status = DeliveryStatus.CANCELLED
        if sale is not None and sale.delivery_note_id == delivery_note.id:
            sale.delivery_state = DeliveryState.NO_DELIVERY_NOTE
            sale.delivery_note_id = None

    def cancel_with_sale(self, delivery_note: DeliveryNote, sale: Sale, reason: str,
                         operator: Optional[str] = None):
        """Cancela un remito pendiente o devuelto como parte de la cancelación de su venta."""
        if delivery_note.status not in (DeliveryStatus.PENDING, DeliveryStatus.RETURNED):
            raise ConflictError(f"El remito {delivery_note.number} está {delivery_note.status.value}")
        self._cancel(delivery_note, sale, reason, datetime.now(timezone.utc))
        delivery_note.updated_by = operator
        self.db.flush()
        logger.info(f"Remito {delivery_note.number} cancelado junto con la venta {sale.number}")

    @transactional
    def update_delivered_quantities(self, delivery_note_id: UUID, data: DeliveredQuantitiesUpdate,
                                    operator: Optional[str] = None) -> DeliveryNote:
        """Entrega parcial: ajusta cantidades sin cambiar el estado."""
        delivery_note = self.get_delivery_note(delivery_note_id, for_update=True)
        if delivery_note.status not in (DeliveryStatus.PENDING, DeliveryStatus.IN_TRANSIT):
            raise ConflictError(
                f"El remito está {delivery_note.status.value}; solo se ajustan remitos pendientes o en tránsito"
            )

        items = {item.id: item for item in delivery_note.items}
        for change in data.items:
            item = items.get(change.item_id)
            if item is None:
                raise ValidationError(f"El ítem {change.item_id} no pertenece al remito")
            if change.quantity_delivered > item.quantity_requested:
                raise ValidationError(
                    f"La cantidad entregada de '{item.description}' supera la solicitada ({item.quantity_requested})"
                )
        for change in data.items:
            items[change.item_id].quantity_delivered = change.quantity_delivered

        delivery_note.updated_by = operator
        self.db.flush()
        logger.info(f"Remito {delivery_note.number}: cantidades entregadas actualizadas")
        return delivery_note
