"""
Servicio de Ventas

Confirmar es el único punto donde la venta genera deuda (asiento de debe) y
reserva stock. Cancelar deshace ambos efectos en la misma transacción.
"""
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, timezone
import logging

from app.core.config import settings
from app.common.exceptions import ConflictError, NotFoundError, ValidationError, IntegrityViolationError
from app.common.money import money, ZERO
from app.common.transactions import transactional
from app.common.validators import require_reason
from app.modules.catalog.models import Product
from app.modules.catalog.service import StockService
from app.modules.customers.models import Customer
from app.modules.invoices.calculator import TaxCalculator
from app.modules.ledger.models import EntryType, Direction, OriginType
from app.modules.ledger.service import LedgerService
from app.modules.sales.models import (
    Sale, SaleItem, ConfirmationState, CollectionState, DeliveryState, CollectionTiming
)
from app.modules.sales.schemas import SaleCreate, SaleUpdate, SaleItemCreate, SaleFilters
from app.modules.sequences.service import SequenceAllocator, DocumentType

logger = logging.getLogger(__name__)


def derive_collection_state(sale: Sale) -> CollectionState:
    if (sale.amount_collected or ZERO) <= 0:
        return CollectionState.UNCOLLECTED
    if sale.outstanding_balance <= 0:
        return CollectionState.COLLECTED
    return CollectionState.PARTIALLY_COLLECTED


def stock_lines(sale: Sale):
    return [(item.product_id, item.quantity) for item in sale.items]


class SaleService:

    def __init__(self, db: Session):
        self.db = db

    # ===== Consultas =====

    def get_sale(self, sale_id: UUID, for_update: bool = False) -> Sale:
        query = self.db.query(Sale).options(selectinload(Sale.items)).filter(Sale.id == sale_id)
        if for_update:
            query = query.with_for_update()
        sale = query.first()
        if not sale:
            raise NotFoundError("Venta no encontrada")
        return sale

    def list_sales(self, filters: SaleFilters, limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Sale)
        if filters.customer_id:
            query = query.filter(Sale.customer_id == filters.customer_id)
        if filters.confirmation_state:
            query = query.filter(Sale.confirmation_state == filters.confirmation_state)
        if filters.collection_state:
            query = query.filter(Sale.collection_state == filters.collection_state)
        if filters.delivery_state:
            query = query.filter(Sale.delivery_state == filters.delivery_state)
        if filters.invoiced is not None:
            query = query.filter(Sale.invoiced == filters.invoiced)
        if filters.date_from:
            query = query.filter(Sale.sale_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Sale.sale_date <= filters.date_to)
        if filters.search:
            term = f"%{filters.search}%"
            query = query.filter(or_(Sale.number.ilike(term), Sale.notes.ilike(term)))

        total = query.count()
        sales = query.order_by(Sale.sale_date.desc(), Sale.number.desc()).offset(offset).limit(limit).all()
        return {"sales": sales, "total": total, "limit": limit, "offset": offset}

    # ===== Armado de la venta =====

    def _build_items(self, items_data: List[SaleItemCreate]) -> List[SaleItem]:
        items = []
        for position, item_data in enumerate(items_data):
            product = None
            if item_data.product_id:
                product = self.db.query(Product).filter(Product.id == item_data.product_id).first()
                if not product:
                    raise ValidationError(f"Producto {item_data.product_id} no encontrado")
                if not product.is_active:
                    raise ValidationError(f"El producto {product.sku} está inactivo")

            description = item_data.description or (product.name if product else None)
            unit_price = item_data.unit_price if item_data.unit_price is not None else (
                product.unit_price if product else None
            )
            if not description:
                raise ValidationError(f"El ítem {position + 1} requiere descripción")
            if unit_price is None:
                raise ValidationError(f"El ítem {position + 1} requiere precio unitario")

            amounts = TaxCalculator.calculate_line(item_data.quantity, unit_price, item_data.discount_percent)
            items.append(SaleItem(
                position=position,
                product_id=item_data.product_id,
                code=item_data.code or (product.sku if product else None),
                description=description,
                quantity=item_data.quantity,
                unit_price=money(unit_price),
                discount_percent=item_data.discount_percent,
                subtotal=amounts.subtotal,
                discount_amount=amounts.discount,
                total=amounts.net,
            ))
        return items

    def _calculate_totals(self, sale: Sale):
        vat_rate = sale.vat_rate if sale.applies_tax else ZERO
        subtotal = discount = tax = ZERO
        for item in sale.items:
            subtotal += item.subtotal
            discount += item.discount_amount
            tax += TaxCalculator.calculate_line(
                item.quantity, item.unit_price, item.discount_percent, vat_rate
            ).vat
        sale.subtotal = money(subtotal)
        sale.discount_total = money(discount)
        sale.tax_total = money(tax)
        sale.total = money(subtotal - discount + tax)
        if sale.total <= 0:
            raise ValidationError("El total de la venta debe ser mayor a cero")
        sale.outstanding_balance = money(sale.total - (sale.amount_collected or ZERO))
        if sale.outstanding_balance < 0:
            raise ValidationError("El nuevo total es menor a lo ya cobrado")
        sale.collection_state = derive_collection_state(sale)

    # ===== Operaciones =====

    @transactional
    def create_sale(self, data: SaleCreate, operator: Optional[str] = None) -> Sale:
        """Crear venta en borrador. No tiene efecto financiero ni de stock."""
        customer = self.db.query(Customer).filter(Customer.id == data.customer_id).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")
        if not customer.is_active:
            raise ValidationError("El cliente está inactivo")

        items = self._build_items(data.items)
        sale_date = data.sale_date or date.today()
        sale = Sale(
            number=SequenceAllocator(self.db).next_number(DocumentType.SALE, sale_date),
            sale_date=sale_date,
            customer_id=customer.id,
            collection_timing=data.collection_timing,
            applies_tax=data.applies_tax,
            vat_rate=Decimal(str(settings.DEFAULT_VAT_RATE)) if data.applies_tax else ZERO,
            amount_collected=ZERO,
            confirmation_state=ConfirmationState.DRAFT,
            delivery_state=DeliveryState.NO_DELIVERY_NOTE,
            invoiced=False,
            notes=data.notes,
            created_by=operator,
        )
        sale.items = items
        self._calculate_totals(sale)
        self.db.add(sale)
        self.db.flush()
        logger.info(f"Venta {sale.number} creada en borrador por {sale.total}")
        return sale

    @transactional
    def update_sale(self, sale_id: UUID, data: SaleUpdate, operator: Optional[str] = None) -> Sale:
        sale = self.get_sale(sale_id, for_update=True)
        if sale.confirmation_state != ConfirmationState.DRAFT:
            raise ConflictError("Solo se pueden modificar ventas en borrador")
        if sale.invoiced:
            raise ConflictError("La venta ya está incluida en una factura")

        update_data = data.model_dump(exclude_unset=True, exclude={"items"})
        for field, value in update_data.items():
            setattr(sale, field, value)
        if data.applies_tax is not None:
            sale.vat_rate = Decimal(str(settings.DEFAULT_VAT_RATE)) if data.applies_tax else ZERO
        if data.items is not None:
            sale.items = self._build_items(data.items)
        self._calculate_totals(sale)
        sale.updated_by = operator
        self.db.flush()
        return sale

    @transactional
    def delete_sale(self, sale_id: UUID) -> None:
        """Descartar un borrador sin cobros ni factura."""
        sale = self.get_sale(sale_id, for_update=True)
        if sale.confirmation_state != ConfirmationState.DRAFT:
            raise ConflictError("Solo se pueden eliminar ventas en borrador")
        if sale.amount_collected > 0:
            raise ConflictError("La venta tiene cobros registrados; anule los recibos primero")
        if sale.invoiced or sale.invoices:
            raise ConflictError("La venta está referenciada por una factura")

        from app.modules.receipts.models import ReceiptAllocation
        if self.db.query(ReceiptAllocation.id).filter(ReceiptAllocation.sale_id == sale.id).first():
            raise ConflictError("La venta está referenciada por un recibo")
        self.db.delete(sale)
        self.db.flush()
        logger.info(f"Venta borrador {sale.number} eliminada")

    @transactional
    def confirm_sale(self, sale_id: UUID, operator: Optional[str] = None) -> Sale:
        sale = self.get_sale(sale_id, for_update=True)
        if sale.confirmation_state != ConfirmationState.DRAFT:
            raise ConflictError(f"La venta está {sale.confirmation_state.value}; solo se confirman borradores")
        if sale.collection_timing == CollectionTiming.ADVANCE and sale.collection_state != CollectionState.COLLECTED:
            raise ConflictError("Las ventas con cobro anticipado deben estar cobradas antes de confirmarse")

        StockService(self.db).reserve(stock_lines(sale), sale.number, operator)
        LedgerService(self.db).post(
            customer_id=sale.customer_id,
            entry_type=EntryType.SALE,
            direction=Direction.DEBIT,
            amount=sale.total,
            origin_type=OriginType.SALE,
            origin_id=sale.id,
            origin_number=sale.number,
            concept=f"Venta {sale.number}",
            operator=operator,
        )

        sale.confirmation_state = ConfirmationState.CONFIRMED
        sale.confirmed_at = datetime.now(timezone.utc)
        sale.confirmed_by = operator
        self.db.flush()
        logger.info(f"Venta {sale.number} confirmada por {sale.total}")
        return sale

    @transactional
    def cancel_sale(self, sale_id: UUID, reason: str, operator: Optional[str] = None) -> Sale:
        """
        Cancelar venta. Se rechaza si fue entregada, si tiene cobros vigentes
        o si está en una factura no anulada. Un remito pendiente o devuelto se
        cancela junto con la venta; uno en tránsito bloquea la cancelación.
        """
        from app.modules.invoices.models import AuthorizationState

        reason = require_reason(reason)
        sale = self.get_sale(sale_id, for_update=True)

        if sale.confirmation_state == ConfirmationState.CANCELLED:
            raise ConflictError("La venta ya está cancelada")
        if sale.delivery_state == DeliveryState.DELIVERED:
            raise ConflictError("No se puede cancelar una venta entregada")
        if sale.amount_collected > 0:
            raise ConflictError("La venta tiene cobros registrados; anule los recibos primero")

        live_states = (AuthorizationState.DRAFT, AuthorizationState.AUTHORIZED, AuthorizationState.ERROR)
        live_invoices = [inv for inv in sale.invoices if inv.authorization_state in live_states]
        if live_invoices:
            numbers = ", ".join(inv.number for inv in live_invoices)
            raise ConflictError(f"La venta está incluida en la factura {numbers}; anule la factura primero")

        delivery_note = self.ensure_not_in_transit(sale)

        # Validaciones completas; desde aquí solo escrituras
        if sale.confirmation_state == ConfirmationState.CONFIRMED:
            LedgerService(self.db).reverse(
                reason, origin_type=OriginType.SALE, origin_id=sale.id, operator=operator
            )
        self._close(sale, delivery_note, reason, operator)
        logger.info(f"Venta {sale.number} cancelada: {reason}")
        return sale

    def ensure_not_in_transit(self, sale: Sale):
        """Devuelve el remito de la venta; uno en tránsito impide cerrarla."""
        from app.modules.delivery_notes.models import DeliveryNote, DeliveryStatus

        if not sale.delivery_note_id:
            return None
        delivery_note = self.db.query(DeliveryNote).filter(DeliveryNote.id == sale.delivery_note_id).first()
        if delivery_note and delivery_note.status == DeliveryStatus.IN_TRANSIT:
            raise ConflictError(f"El remito {delivery_note.number} de la venta {sale.number} está en tránsito")
        return delivery_note

    def _close(self, sale: Sale, delivery_note, reason: str, operator: Optional[str]):
        from app.modules.delivery_notes.models import DeliveryStatus
        from app.modules.delivery_notes.service import DeliveryNoteService

        if delivery_note and delivery_note.status in (DeliveryStatus.PENDING, DeliveryStatus.RETURNED):
            DeliveryNoteService(self.db).cancel_with_sale(delivery_note, sale, reason, operator)
        if sale.confirmation_state == ConfirmationState.CONFIRMED and sale.delivery_state != DeliveryState.DELIVERED:
            StockService(self.db).release(stock_lines(sale), sale.number, operator)

        sale.confirmation_state = ConfirmationState.CANCELLED
        sale.cancelled_at = datetime.now(timezone.utc)
        sale.cancelled_by = operator
        sale.cancellation_reason = reason
        self.db.flush()

    def close_by_credit_note(self, sale: Sale, credit_note_number: str, reason: str,
                             operator: Optional[str] = None):
        """
        Cierra una venta cuya factura quedó anulada por completo.

        La nota de crédito ya compensa la deuda en la cuenta corriente, así que
        el asiento de la venta no se revierte. Corre dentro de la transacción
        de la anulación; el remito en tránsito se valida antes.
        """
        if sale.confirmation_state == ConfirmationState.CANCELLED:
            return
        delivery_note = self.ensure_not_in_transit(sale)
        self._close(sale, delivery_note, f"{reason} (NC {credit_note_number})"[:255], operator)
        logger.info(f"Venta {sale.number} cerrada por la nota de crédito {credit_note_number}")

    # ===== Cobranza (usado por recibos, dentro de su transacción) =====

    def apply_collection(self, sale: Sale, amount: Decimal):
        amount = money(amount)
        if amount < 0 or amount > sale.outstanding_balance:
            raise IntegrityViolationError(
                f"Imputación de {amount} sobre la venta {sale.number} con saldo {sale.outstanding_balance}"
            )
        sale.amount_collected = money(sale.amount_collected + amount)
        sale.outstanding_balance = money(sale.total - sale.amount_collected)
        sale.collection_state = derive_collection_state(sale)

    def revert_collection(self, sale: Sale, amount: Decimal):
        amount = money(amount)
        if amount < 0 or amount > sale.amount_collected:
            raise IntegrityViolationError(
                f"Reversión de {amount} sobre la venta {sale.number} con cobrado {sale.amount_collected}"
            )
        sale.amount_collected = money(sale.amount_collected - amount)
        sale.outstanding_balance = money(sale.total - sale.amount_collected)
        sale.collection_state = derive_collection_state(sale)
