"""
Servicio de Facturación

Reglas principales:
- Una venta solo puede estar en una factura vigente (borrador, autorizada o
  con error de autorización).
- El tipo de comprobante se deriva de las condiciones fiscales, nunca lo
  elige quien llama.
- authorize() llama al organismo una sola vez; rechazo y error quedan
  registrados y se informan con su clasificación.
- void() emite una nota de crédito que también se autoriza; si el
  organismo falla no se persiste nada. La anulación total cierra las
  ventas facturadas: la nota de crédito reemplaza a la reversión de su deuda.
"""
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, timezone
import logging

from app.core.config import settings
from app.common.exceptions import ConflictError, NotFoundError, ValidationError, ExternalServiceError
from app.common.money import money, ZERO
from app.common.transactions import transactional
from app.common.validators import require_reason
from app.modules.customers.models import Customer, TaxCondition
from app.modules.invoices.calculator import TaxCalculator, TaxBucket
from app.modules.invoices.models import (
    Invoice, InvoiceItem, InvoiceKind, VoucherType, AuthorizationState, CREDIT_NOTE_TYPES
)
from app.modules.invoices.schemas import (
    InvoiceFromSales, InvoiceManualCreate, InvoiceUpdate, InvoiceItemCreate, InvoiceFilters
)
from app.modules.ledger.models import EntryType, Direction, OriginType
from app.modules.ledger.service import LedgerService
from app.modules.sales.models import Sale, ConfirmationState
from app.modules.sales.service import SaleService
from app.modules.sequences.service import SequenceAllocator, DocumentType
from app.modules.tax_authority.client import (
    TaxAuthorityClient, TaxAuthorityUnavailable, ensure_authorization_artifacts, get_tax_authority_client
)
from app.modules.tax_authority.schemas import VoucherSnapshot, VoucherItem, VoucherTax, AuthorizationResult

logger = logging.getLogger(__name__)

LIVE_STATES = (AuthorizationState.DRAFT, AuthorizationState.AUTHORIZED, AuthorizationState.ERROR)


def determine_voucher_type(customer_tax_condition: TaxCondition,
                           issuer_tax_condition: Optional[str] = None) -> VoucherType:
    """
    Tipo de comprobante según emisor y receptor:
    - Emisor no responsable inscripto: C
    - Receptor responsable inscripto o exento: A
    - Resto (monotributista, consumidor final): B
    """
    issuer = issuer_tax_condition or settings.COMPANY_TAX_CONDITION
    if issuer != TaxCondition.RESPONSABLE_INSCRIPTO.value:
        return VoucherType.FACTURA_C
    if customer_tax_condition in (TaxCondition.RESPONSABLE_INSCRIPTO, TaxCondition.EXENTO):
        return VoucherType.FACTURA_A
    return VoucherType.FACTURA_B


class InvoiceService:

    def __init__(self, db: Session, tax_client: Optional[TaxAuthorityClient] = None):
        self.db = db
        self.tax_client = tax_client or get_tax_authority_client()

    # ===== Consultas =====

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        query = self.db.query(Invoice).options(
            selectinload(Invoice.items), selectinload(Invoice.sales)
        ).filter(Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update()
        invoice = query.first()
        if not invoice:
            raise NotFoundError("Factura no encontrada")
        return invoice

    def list_invoices(self, filters: InvoiceFilters, limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Invoice)
        if filters.customer_id:
            query = query.filter(Invoice.customer_id == filters.customer_id)
        if filters.kind:
            query = query.filter(Invoice.kind == filters.kind)
        if filters.authorization_state:
            query = query.filter(Invoice.authorization_state == filters.authorization_state)
        if filters.date_from:
            query = query.filter(Invoice.issue_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Invoice.issue_date <= filters.date_to)
        if filters.search:
            term = f"%{filters.search}%"
            query = query.filter(or_(
                Invoice.number.ilike(term),
                Invoice.customer_name.ilike(term),
                Invoice.authorization_code.ilike(term)
            ))
        total = query.count()
        invoices = query.order_by(Invoice.issue_date.desc(), Invoice.number.desc()).offset(offset).limit(limit).all()
        return {"invoices": invoices, "total": total, "limit": limit, "offset": offset}

    def get_credit_notes(self, invoice_id: UUID) -> List[Invoice]:
        invoice = self.get_invoice(invoice_id)
        return self.db.query(Invoice).filter(
            Invoice.original_invoice_id == invoice.id
        ).order_by(Invoice.created_at).all()

    # ===== Armado =====

    def _build_items(self, items_data: List[InvoiceItemCreate]) -> List[InvoiceItem]:
        items = []
        for position, data in enumerate(items_data):
            amounts = TaxCalculator.calculate_line(data.quantity, data.unit_price, data.discount_percent, data.vat_rate)
            items.append(InvoiceItem(
                position=position,
                product_id=data.product_id,
                code=data.code,
                description=data.description,
                quantity=data.quantity,
                unit_price=money(data.unit_price),
                discount_percent=data.discount_percent,
                vat_rate=data.vat_rate,
                net_amount=amounts.net,
                vat_amount=amounts.vat,
                total=amounts.total,
            ))
        return items

    def _items_from_sales(self, sales: List[Sale]) -> List[InvoiceItem]:
        items = []
        for sale in sales:
            for sale_item in sale.items:
                vat_rate = sale.vat_rate if sale.applies_tax else ZERO
                amounts = TaxCalculator.calculate_line(
                    sale_item.quantity, sale_item.unit_price, sale_item.discount_percent, vat_rate
                )
                items.append(InvoiceItem(
                    position=len(items),
                    product_id=sale_item.product_id,
                    code=sale_item.code,
                    description=sale_item.description,
                    quantity=sale_item.quantity,
                    unit_price=sale_item.unit_price,
                    discount_percent=sale_item.discount_percent,
                    vat_rate=vat_rate,
                    net_amount=amounts.net,
                    vat_amount=amounts.vat,
                    total=amounts.total,
                ))
        return items

    def _copy_items(self, source: Invoice) -> List[InvoiceItem]:
        return [
            InvoiceItem(
                position=item.position,
                product_id=item.product_id,
                code=item.code,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount_percent=item.discount_percent,
                vat_rate=item.vat_rate,
                net_amount=item.net_amount,
                vat_amount=item.vat_amount,
                total=item.total,
            )
            for item in source.items
        ]

    def _items_from_buckets(self, buckets: List[TaxBucket], source: Invoice) -> List[InvoiceItem]:
        return [
            InvoiceItem(
                position=position,
                description=f"Ajuste s/ {source.number} - IVA {bucket.rate}%",
                quantity=Decimal("1"),
                unit_price=bucket.base,
                discount_percent=ZERO,
                vat_rate=bucket.rate,
                net_amount=bucket.base,
                vat_amount=bucket.amount,
                total=bucket.gross,
            )
            for position, bucket in enumerate(buckets)
        ]

    def _apply_totals(self, invoice: Invoice):
        subtotal = net = vat = total = ZERO
        for item in invoice.items:
            subtotal += money(item.quantity * item.unit_price)
            net += item.net_amount
            vat += item.vat_amount
            total += item.total
        invoice.subtotal = money(subtotal)
        invoice.net_total = money(net)
        invoice.discount_total = money(subtotal - net)
        invoice.vat_total = money(vat)
        invoice.total = money(total)
        invoice.tax_breakdown = TaxCalculator.serialize_buckets(TaxCalculator.group_taxes(invoice.items))

    def _snapshot_customer(self, invoice: Invoice, customer: Customer):
        invoice.customer_name = customer.name
        invoice.customer_document_type = customer.document_type.value
        invoice.customer_document_number = customer.document_number
        invoice.customer_tax_condition = customer.tax_condition.value

    def _new_invoice(self, customer: Customer, issue_date: Optional[date], notes: Optional[str],
                     operator: Optional[str]) -> Invoice:
        issue_date = issue_date or date.today()
        invoice = Invoice(
            number=SequenceAllocator(self.db).next_number(DocumentType.INVOICE, issue_date),
            kind=InvoiceKind.INVOICE,
            voucher_type=determine_voucher_type(customer.tax_condition),
            point_of_sale=settings.POINT_OF_SALE,
            issue_date=issue_date,
            customer_id=customer.id,
            authorization_state=AuthorizationState.DRAFT,
            credited_amount=ZERO,
            notes=notes,
            created_by=operator,
        )
        self._snapshot_customer(invoice, customer)
        return invoice

    # ===== Creación y edición de borradores =====

    @transactional
    def create_from_sales(self, data: InvoiceFromSales, operator: Optional[str] = None) -> Invoice:
        sale_ids = list(dict.fromkeys(data.sale_ids))
        sales = self.db.query(Sale).options(
            selectinload(Sale.items), selectinload(Sale.invoices)
        ).filter(Sale.id.in_(sale_ids)).with_for_update().all()
        if len(sales) != len(sale_ids):
            raise NotFoundError("Una o más ventas no existen")

        if len({sale.customer_id for sale in sales}) > 1:
            raise ValidationError("Todas las ventas deben pertenecer al mismo cliente")
        for sale in sales:
            if sale.confirmation_state == ConfirmationState.CANCELLED:
                raise ConflictError(f"La venta {sale.number} está cancelada")
            if sale.confirmation_state != ConfirmationState.CONFIRMED:
                raise ConflictError(f"La venta {sale.number} no está confirmada; solo se facturan ventas confirmadas")
            live = [inv for inv in sale.invoices if inv.authorization_state in LIVE_STATES]
            if live or sale.invoiced:
                raise ConflictError(f"La venta {sale.number} ya está facturada")

        sales.sort(key=lambda s: (s.sale_date, s.number))
        customer = self.db.query(Customer).filter(Customer.id == sales[0].customer_id).first()
        invoice = self._new_invoice(customer, data.issue_date, data.notes, operator)
        invoice.items = self._items_from_sales(sales)
        self._apply_totals(invoice)
        invoice.sales = sales
        for sale in sales:
            sale.invoiced = True

        self.db.add(invoice)
        self.db.flush()
        logger.info(
            f"Factura {invoice.number} ({invoice.voucher_type.value}) creada desde "
            f"{', '.join(s.number for s in sales)} por {invoice.total}"
        )
        return invoice

    @transactional
    def create_manual(self, data: InvoiceManualCreate, operator: Optional[str] = None) -> Invoice:
        customer = self.db.query(Customer).filter(Customer.id == data.customer_id).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")

        invoice = self._new_invoice(customer, data.issue_date, data.notes, operator)
        invoice.items = self._build_items(data.items)
        self._apply_totals(invoice)
        self.db.add(invoice)
        self.db.flush()
        logger.info(f"Factura manual {invoice.number} ({invoice.voucher_type.value}) creada por {invoice.total}")
        return invoice

    @transactional
    def update_draft(self, invoice_id: UUID, data: InvoiceUpdate, operator: Optional[str] = None) -> Invoice:
        invoice = self.get_invoice(invoice_id, for_update=True)
        if invoice.authorization_state != AuthorizationState.DRAFT:
            raise ConflictError(
                f"La factura está {invoice.authorization_state.value}; solo se editan borradores"
            )
        if data.items is not None:
            invoice.items = self._build_items(data.items)
            self._apply_totals(invoice)
        if data.issue_date is not None:
            invoice.issue_date = data.issue_date
        if data.notes is not None:
            invoice.notes = data.notes
        invoice.updated_by = operator
        self.db.flush()
        return invoice

    @transactional
    def delete_draft(self, invoice_id: UUID) -> None:
        invoice = self.get_invoice(invoice_id, for_update=True)
        if invoice.authorization_state not in (AuthorizationState.DRAFT, AuthorizationState.REJECTED):
            raise ConflictError(
                f"La factura está {invoice.authorization_state.value}; solo se eliminan borradores o rechazadas"
            )
        for sale in invoice.sales:
            sale.invoiced = False
        invoice.sales = []
        self.db.delete(invoice)
        self.db.flush()
        logger.info(f"Factura {invoice.number} eliminada")

    # ===== Autorización =====

    def _build_snapshot(self, invoice: Invoice, original: Optional[Invoice] = None) -> VoucherSnapshot:
        return VoucherSnapshot(
            internal_number=invoice.number,
            voucher_type=invoice.voucher_type.value,
            point_of_sale=invoice.point_of_sale,
            issue_date=invoice.issue_date,
            issuer_tax_id=settings.COMPANY_TAX_ID,
            issuer_tax_condition=settings.COMPANY_TAX_CONDITION,
            receiver_name=invoice.customer_name,
            receiver_document_type=invoice.customer_document_type,
            receiver_document_number=invoice.customer_document_number,
            receiver_tax_condition=invoice.customer_tax_condition,
            net_total=invoice.net_total,
            vat_total=invoice.vat_total,
            total=invoice.total,
            taxes=[VoucherTax(**bucket) for bucket in invoice.tax_breakdown],
            items=[
                VoucherItem(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    vat_rate=item.vat_rate,
                    net_amount=item.net_amount,
                    vat_amount=item.vat_amount,
                    total=item.total,
                )
                for item in invoice.items
            ],
            associated_voucher_type=original.voucher_type.value if original else None,
            associated_voucher_number=original.authority_voucher_number if original else None,
        )

    def _mark_authorized(self, invoice: Invoice, result: AuthorizationResult, operator: Optional[str]):
        invoice.authorization_state = AuthorizationState.AUTHORIZED
        invoice.authorization_code = result.code
        invoice.authorization_expires_on = result.expires_on
        invoice.authority_voucher_number = result.voucher_number
        invoice.authorized_at = datetime.now(timezone.utc)
        invoice.authorized_by = operator
        invoice.rejection_reason = None

    def _request_authorization(self, snapshot: VoucherSnapshot) -> AuthorizationResult:
        return ensure_authorization_artifacts(self.tax_client.authorize(snapshot))

    @transactional
    def authorize(self, invoice_id: UUID, operator: Optional[str] = None) -> Invoice:
        """
        Solicitar autorización al organismo fiscal.

        Solo desde borrador o error. El rechazo libera las ventas asociadas.
        Rechazo y error se confirman en la base antes de informarse
        (ExternalServiceError con keep_changes).
        """
        invoice = self.get_invoice(invoice_id, for_update=True)
        if invoice.authorization_state not in (AuthorizationState.DRAFT, AuthorizationState.ERROR):
            raise ConflictError(
                f"La factura está {invoice.authorization_state.value}; solo se autorizan borradores o facturas con error"
            )
        if not invoice.items:
            raise ValidationError("La factura no tiene ítems")
        if invoice.total <= 0:
            raise ValidationError("El total de la factura debe ser mayor a cero")
        customer = self.db.query(Customer).filter(Customer.id == invoice.customer_id).first()
        if not customer:
            raise ValidationError("La factura no tiene cliente")

        # Se congela la identidad fiscal vigente al momento de emitir
        if invoice.kind == InvoiceKind.INVOICE:
            self._snapshot_customer(invoice, customer)
            invoice.voucher_type = determine_voucher_type(customer.tax_condition)
        self.db.flush()

        snapshot = self._build_snapshot(invoice, invoice.original_invoice)
        logger.info(f"Solicitando autorización de {invoice.number} ({invoice.voucher_type.value}) por {invoice.total}")
        try:
            result = self._request_authorization(snapshot)
        except TaxAuthorityUnavailable as e:
            invoice.authorization_state = AuthorizationState.ERROR
            invoice.rejection_reason = str(e)
            self.db.flush()
            logger.error(f"Autorización de {invoice.number} sin respuesta válida: {e}")
            raise ExternalServiceError(ExternalServiceError.ERROR, str(e), keep_changes=True)

        if not result.authorized:
            reason = result.reason or "Rechazada sin motivo informado"
            invoice.authorization_state = AuthorizationState.REJECTED
            invoice.rejection_reason = reason
            for sale in invoice.sales:
                sale.invoiced = False
            self.db.flush()
            logger.warning(f"Factura {invoice.number} rechazada: {reason}")
            raise ExternalServiceError(ExternalServiceError.REJECTED, reason, keep_changes=True)

        self._mark_authorized(invoice, result, operator)
        self.db.flush()
        logger.info(f"Factura {invoice.number} autorizada, código {invoice.authorization_code}")
        return invoice

    def verify_authorization(self, invoice_id: UUID) -> dict:
        invoice = self.get_invoice(invoice_id)
        if not invoice.authorization_code:
            raise ConflictError("La factura no tiene código de autorización")
        try:
            valid = self.tax_client.verify(
                invoice.voucher_type.value, invoice.authority_voucher_number or invoice.number,
                invoice.authorization_code
            )
        except TaxAuthorityUnavailable as e:
            raise ExternalServiceError(ExternalServiceError.ERROR, str(e))
        return {"invoice_id": invoice.id, "authorization_code": invoice.authorization_code, "valid": valid}

    # ===== Anulación =====

    @transactional
    def void(self, invoice_id: UUID, reason: str, amount: Optional[Decimal] = None,
             operator: Optional[str] = None) -> dict:
        """
        Anular total o parcialmente una factura autorizada con una nota de crédito.

        - Sin importe, o con el total: anulación total, la factura pasa a voided,
          las ventas vuelven a quedar sin facturar y se cierran (canceladas) sin
          revertir su asiento, que ya compensan las notas de crédito.
        - Importe menor: nota de crédito parcial; la factura sigue autorizada y
          las ventas conservan el flag de facturadas.
        La cuenta corriente se acredita solo si la factura proviene de ventas.
        """
        reason = require_reason(reason)
        invoice = self.get_invoice(invoice_id, for_update=True)
        if invoice.kind != InvoiceKind.INVOICE:
            raise ConflictError("Las notas de crédito no se anulan")
        if invoice.authorization_state != AuthorizationState.AUTHORIZED:
            raise ConflictError(
                f"La factura está {invoice.authorization_state.value}; solo se anulan facturas autorizadas"
            )

        remaining = money(invoice.creditable_amount)
        amount = money(amount) if amount is not None else remaining
        if amount <= 0:
            raise ValidationError("El importe a anular debe ser mayor a cero")
        if amount > remaining:
            raise ValidationError(f"El importe a anular supera el saldo acreditable ({remaining})")
        full_void = money(invoice.credited_amount + amount) == money(invoice.total)
        sales = SaleService(self.db)
        if full_void:
            for sale in invoice.sales:
                sales.ensure_not_in_transit(sale)

        issue_date = date.today()
        credit_note = Invoice(
            number=SequenceAllocator(self.db).next_number(DocumentType.CREDIT_NOTE, issue_date),
            kind=InvoiceKind.CREDIT_NOTE,
            voucher_type=CREDIT_NOTE_TYPES[invoice.voucher_type],
            point_of_sale=invoice.point_of_sale,
            issue_date=issue_date,
            customer_id=invoice.customer_id,
            customer_name=invoice.customer_name,
            customer_document_type=invoice.customer_document_type,
            customer_document_number=invoice.customer_document_number,
            customer_tax_condition=invoice.customer_tax_condition,
            authorization_state=AuthorizationState.DRAFT,
            credited_amount=ZERO,
            original_invoice_id=invoice.id,
            void_reason=reason,
            notes=f"Anulación {'total' if full_void else 'parcial'} de {invoice.number}",
            created_by=operator,
        )
        if amount == money(invoice.total):
            credit_note.items = self._copy_items(invoice)
        else:
            buckets = [
                TaxBucket(Decimal(b["rate"]), Decimal(b["base"]), Decimal(b["amount"]))
                for b in invoice.tax_breakdown
            ]
            credit_note.items = self._items_from_buckets(TaxCalculator.scale_buckets(buckets, amount), invoice)
        self._apply_totals(credit_note)
        self.db.add(credit_note)
        self.db.flush()

        snapshot = self._build_snapshot(credit_note, invoice)
        try:
            result = self._request_authorization(snapshot)
        except TaxAuthorityUnavailable as e:
            logger.error(f"Nota de crédito para {invoice.number} sin respuesta válida: {e}")
            raise ExternalServiceError(ExternalServiceError.ERROR, str(e))
        if not result.authorized:
            logger.warning(f"Nota de crédito para {invoice.number} rechazada: {result.reason}")
            raise ExternalServiceError(ExternalServiceError.REJECTED, result.reason or "Rechazada sin motivo informado")

        self._mark_authorized(credit_note, result, operator)
        invoice.credited_amount = money(invoice.credited_amount + credit_note.total)
        if full_void:
            invoice.authorization_state = AuthorizationState.VOIDED
            invoice.void_reason = reason
            for sale in invoice.sales:
                sale.invoiced = False
                sales.close_by_credit_note(sale, credit_note.number, reason, operator)

        if invoice.sales:
            LedgerService(self.db).post(
                customer_id=invoice.customer_id,
                entry_type=EntryType.CREDIT_NOTE,
                direction=Direction.CREDIT,
                amount=credit_note.total,
                origin_type=OriginType.INVOICE,
                origin_id=credit_note.id,
                origin_number=credit_note.number,
                concept=f"Nota de crédito {credit_note.number} s/ {invoice.number}",
                operator=operator,
            )

        self.db.flush()
        logger.info(
            f"Factura {invoice.number}: nota de crédito {credit_note.number} por {credit_note.total} "
            f"({'total' if full_void else 'parcial'})"
        )
        return {"invoice": invoice, "credit_note": credit_note, "full_void": full_void}
