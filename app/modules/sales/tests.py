"""
Tests para el módulo de Ventas

- Borrador sin efectos; confirmación con debe y reserva de stock
- Cálculo de totales con descuento e IVA por línea
- Reglas de cancelación (entrega, cobros, factura, remito)
- Tres ejes de estado independientes
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError, ValidationError
from app.modules.catalog.models import Product
from app.modules.delivery_notes.models import DeliveryNote, DeliveryStatus
from app.modules.delivery_notes.schemas import DeliveryNoteCreate, DeliveryStatusChange
from app.modules.delivery_notes.service import DeliveryNoteService
from app.modules.invoices.schemas import InvoiceFromSales
from app.modules.invoices.service import InvoiceService
from app.modules.ledger.models import LedgerEntry, EntryType
from app.modules.receipts.schemas import ReceiptCreate, InstrumentCreate
from app.modules.receipts.service import ReceiptService
from app.modules.sales.models import (
    Sale, ConfirmationState, CollectionState, DeliveryState, CollectionTiming
)
from app.modules.sales.schemas import SaleCreate, SaleItemCreate, SaleUpdate
from app.modules.sales.service import SaleService


def _pay(db_session, customer, sale, amount):
    return ReceiptService(db_session).create_receipt(ReceiptCreate(
        customer_id=customer.id,
        sale_ids=[sale.id],
        instruments=[InstrumentCreate(instrument_type="cash", amount=Decimal(amount))],
        allow_partial=True,
    ), "cajero.test")


# ===== CREACIÓN Y TOTALES =====

class TestSaleCreation:
    """Tests de creación en borrador"""

    def test_draft_has_no_financial_effect(self, db_session, customer, make_sale):
        sale = make_sale(customer, "1000.00", confirm=False)

        assert sale.confirmation_state == ConfirmationState.DRAFT
        assert sale.outstanding_balance == Decimal("1000.00")
        assert db_session.query(LedgerEntry).count() == 0
        db_session.refresh(customer)
        assert customer.balance == Decimal("0.00")

    def test_totals_with_discount_and_vat(self, db_session, customer, product):
        """2 x 100 con 10% de descuento e IVA 21%: neto 180, IVA 37.80, total 217.80"""
        sale = SaleService(db_session).create_sale(SaleCreate(
            customer_id=customer.id,
            applies_tax=True,
            items=[SaleItemCreate(product_id=product.id, quantity=Decimal("2"), discount_percent=Decimal("10"))],
        ))

        assert sale.vat_rate == Decimal("21")
        assert sale.subtotal == Decimal("200.00")
        assert sale.discount_total == Decimal("20.00")
        assert sale.tax_total == Decimal("37.80")
        assert sale.total == Decimal("217.80")
        assert sale.items[0].description == product.name
        assert sale.items[0].code == product.sku

    def test_item_without_price_or_description_is_rejected(self, db_session, customer):
        with pytest.raises(ValidationError):
            SaleService(db_session).create_sale(SaleCreate(
                customer_id=customer.id,
                items=[SaleItemCreate(quantity=Decimal("1"), unit_price=Decimal("10"))],
            ))
        assert db_session.query(Sale).count() == 0

    def test_update_draft_recalculates(self, db_session, customer, make_sale):
        sale = make_sale(customer, "100.00", confirm=False)
        updated = SaleService(db_session).update_sale(sale.id, SaleUpdate(
            items=[SaleItemCreate(description="Caja de té", quantity=Decimal("3"), unit_price=Decimal("50"))],
            notes="Entregar por la tarde",
        ))
        assert updated.total == Decimal("150.00")
        assert updated.outstanding_balance == Decimal("150.00")
        assert updated.notes == "Entregar por la tarde"

    def test_confirmed_sale_is_not_editable(self, db_session, customer, make_sale):
        sale = make_sale(customer, "100.00")
        with pytest.raises(ConflictError):
            SaleService(db_session).update_sale(sale.id, SaleUpdate(notes="cambio"))

    def test_delete_draft(self, db_session, customer, make_sale):
        sale = make_sale(customer, "100.00", confirm=False)
        SaleService(db_session).delete_sale(sale.id)
        assert db_session.query(Sale).count() == 0

    def test_delete_draft_with_collection_is_rejected(self, db_session, customer, make_sale):
        sale = make_sale(customer, "100.00", confirm=False, timing=CollectionTiming.ADVANCE)
        _pay(db_session, customer, sale, "40.00")
        with pytest.raises(ConflictError):
            SaleService(db_session).delete_sale(sale.id)


# ===== CONFIRMACIÓN =====

class TestSaleConfirmation:
    """Tests de confirmación"""

    def test_confirm_posts_debit_and_reserves_stock(self, db_session, customer, product, make_sale):
        sale = make_sale(customer, "300.00", product=product, quantity="3")

        assert sale.confirmation_state == ConfirmationState.CONFIRMED
        assert sale.confirmed_by == "vendedor.test"
        entry = db_session.query(LedgerEntry).one()
        assert entry.entry_type == EntryType.SALE
        assert entry.amount == Decimal("300.00")
        assert entry.origin_id == sale.id
        db_session.refresh(product)
        assert product.reserved_quantity == Decimal("3")
        assert product.available_quantity == Decimal("47")

    def test_confirm_twice_is_rejected(self, db_session, customer, make_sale):
        sale = make_sale(customer, "100.00")
        with pytest.raises(ConflictError):
            SaleService(db_session).confirm_sale(sale.id)

    def test_insufficient_stock_rolls_back(self, db_session, customer, product, make_sale):
        sale = make_sale(customer, "6000.00", product=product, quantity="60", confirm=False)
        with pytest.raises(ConflictError):
            SaleService(db_session).confirm_sale(sale.id)

        db_session.expire_all()
        assert db_session.query(Sale).filter(Sale.id == sale.id).one().confirmation_state == ConfirmationState.DRAFT
        assert db_session.query(LedgerEntry).count() == 0
        assert db_session.query(Product).filter(Product.id == product.id).one().reserved_quantity == Decimal("0")

    def test_advance_sale_requires_collection(self, db_session, customer, make_sale):
        sale = make_sale(customer, "500.00", confirm=False, timing=CollectionTiming.ADVANCE)
        service = SaleService(db_session)
        with pytest.raises(ConflictError):
            service.confirm_sale(sale.id)

        _pay(db_session, customer, sale, "500.00")
        confirmed = service.confirm_sale(sale.id)
        assert confirmed.confirmation_state == ConfirmationState.CONFIRMED
        assert confirmed.collection_state == CollectionState.COLLECTED

    def test_over_credit_limit_is_not_blocked(self, db_session, customer, make_sale):
        sale = make_sale(customer, "7500.00")
        assert sale.confirmation_state == ConfirmationState.CONFIRMED
        db_session.refresh(customer)
        assert customer.balance == Decimal("7500.00")


# ===== CANCELACIÓN =====

class TestSaleCancellation:
    """Tests de cancelación"""

    def test_cancel_confirmed_sale_reverses_effects(self, db_session, customer, product, make_sale):
        sale = make_sale(customer, "200.00", product=product, quantity="2")
        cancelled = SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")

        assert cancelled.confirmation_state == ConfirmationState.CANCELLED
        assert cancelled.cancellation_reason == "Cliente desistió de la compra"
        db_session.refresh(customer)
        db_session.refresh(product)
        assert customer.balance == Decimal("0.00")
        assert product.reserved_quantity == Decimal("0")
        assert db_session.query(LedgerEntry).filter(LedgerEntry.voided.is_(True)).count() == 2

    def test_reason_is_mandatory(self, db_session, customer, make_sale):
        sale = make_sale(customer, "200.00")
        with pytest.raises(ValidationError):
            SaleService(db_session).cancel_sale(sale.id, "corto")

    def test_cancel_twice_is_rejected(self, db_session, customer, make_sale):
        sale = make_sale(customer, "200.00")
        service = SaleService(db_session)
        service.cancel_sale(sale.id, "Cliente desistió de la compra")
        with pytest.raises(ConflictError):
            service.cancel_sale(sale.id, "Cliente desistió de la compra")

    def test_collected_sale_cannot_be_cancelled(self, db_session, customer, make_sale):
        sale = make_sale(customer, "200.00")
        _pay(db_session, customer, sale, "50.00")
        with pytest.raises(ConflictError):
            SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")

    def test_sale_in_live_invoice_cannot_be_cancelled(self, db_session, customer, make_sale, tax_client):
        sale = make_sale(customer, "200.00")
        InvoiceService(db_session, tax_client).create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        with pytest.raises(ConflictError):
            SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")

    def test_sale_closed_by_credit_notes_is_not_credited_twice(self, db_session, customer, make_sale, tax_client):
        """Dos notas de crédito parciales que completan la factura cierran la venta."""
        sale = make_sale(customer, "200.00")
        invoices = InvoiceService(db_session, tax_client)
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        invoices.authorize(invoice.id)

        invoices.void(invoice.id, "Bonificación por mercadería dañada", Decimal("50.00"))
        db_session.refresh(sale)
        assert sale.confirmation_state == ConfirmationState.CONFIRMED
        invoices.void(invoice.id, "Cierre de la operación", Decimal("150.00"))
        db_session.refresh(sale)
        assert sale.confirmation_state == ConfirmationState.CANCELLED

        with pytest.raises(ConflictError):
            SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")
        db_session.refresh(customer)
        assert customer.balance == Decimal("0.00")

    def test_pending_delivery_note_is_cancelled_with_sale(self, db_session, customer, make_sale):
        sale = make_sale(customer, "200.00")
        note = DeliveryNoteService(db_session).generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))

        cancelled = SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")

        db_session.refresh(note)
        assert note.status == DeliveryStatus.CANCELLED
        assert cancelled.delivery_state == DeliveryState.NO_DELIVERY_NOTE
        assert cancelled.delivery_note_id is None

    def test_in_transit_delivery_note_blocks_cancellation(self, db_session, customer, make_sale):
        sale = make_sale(customer, "200.00")
        notes = DeliveryNoteService(db_session)
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))
        notes.change_status(note.id, DeliveryStatusChange(status=DeliveryStatus.IN_TRANSIT))

        with pytest.raises(ConflictError):
            SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")
        db_session.expire_all()
        assert db_session.query(DeliveryNote).one().status == DeliveryStatus.IN_TRANSIT

    def test_delivered_sale_cannot_be_cancelled(self, db_session, customer, make_sale):
        sale = make_sale(customer, "200.00")
        notes = DeliveryNoteService(db_session)
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))
        notes.change_status(note.id, DeliveryStatusChange(status=DeliveryStatus.IN_TRANSIT))
        notes.change_status(note.id, DeliveryStatusChange(status=DeliveryStatus.DELIVERED, receiver_name="Ana Gómez"))

        with pytest.raises(ConflictError):
            SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")


# ===== EJES DE ESTADO =====

class TestStatusAxes:

    def test_deferred_collection_flow(self, db_session, customer, make_sale):
        """Venta de 1000 en cuenta corriente cobrada en dos recibos."""
        sale = make_sale(customer, "1000.00")
        db_session.refresh(customer)
        assert customer.balance == Decimal("1000.00")

        _pay(db_session, customer, sale, "600.00")
        db_session.refresh(sale)
        db_session.refresh(customer)
        assert sale.outstanding_balance == Decimal("400.00")
        assert sale.collection_state == CollectionState.PARTIALLY_COLLECTED
        assert customer.balance == Decimal("400.00")

        _pay(db_session, customer, sale, "400.00")
        db_session.refresh(sale)
        db_session.refresh(customer)
        assert sale.outstanding_balance == Decimal("0.00")
        assert sale.collection_state == CollectionState.COLLECTED
        assert customer.balance == Decimal("0.00")

    def test_status_label(self, db_session, customer, make_sale):
        draft = make_sale(customer, "100.00", confirm=False)
        assert draft.status_label == "Borrador"

        confirmed = make_sale(customer, "100.00")
        assert confirmed.status_label == "Confirmada / Pendiente de cobro / Sin remito"

    def test_axes_move_independently(self, db_session, customer, make_sale):
        sale = make_sale(customer, "100.00")
        DeliveryNoteService(db_session).generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))
        db_session.refresh(sale)

        assert sale.confirmation_state == ConfirmationState.CONFIRMED
        assert sale.collection_state == CollectionState.UNCOLLECTED
        assert sale.delivery_state == DeliveryState.DELIVERY_NOTE_ISSUED


# ===== ENDPOINTS =====

class TestSaleEndpoints:

    def test_create_and_confirm(self, client, auth_headers, customer):
        payload = {
            "customer_id": str(customer.id),
            "applies_tax": False,
            "items": [{"description": "Bolsa de harina", "quantity": "4", "unit_price": "25.00"}],
        }
        response = client.post("/sales/", json=payload, headers=auth_headers("seller"))
        assert response.status_code == 201
        data = response.json()
        assert data["confirmation_state"] == "draft"
        assert Decimal(data["total"]) == Decimal("100.00")
        assert data["created_by"] == "operador.test"

        response = client.post(f"/sales/{data['id']}/confirm", headers=auth_headers("seller"))
        assert response.status_code == 200
        assert response.json()["confirmation_state"] == "confirmed"

    def test_empty_items_is_rejected(self, client, auth_headers, customer):
        response = client.post(
            "/sales/", json={"customer_id": str(customer.id), "items": []}, headers=auth_headers()
        )
        assert response.status_code == 422

    def test_cancel_requires_owner_or_admin(self, client, auth_headers, customer, make_sale):
        sale = make_sale(customer, "100.00")
        payload = {"reason": "Cliente desistió de la compra"}

        response = client.post(f"/sales/{sale.id}/cancel", json=payload, headers=auth_headers("seller"))
        assert response.status_code == 403

        response = client.post(f"/sales/{sale.id}/cancel", json=payload, headers=auth_headers("admin"))
        assert response.status_code == 200
        assert response.json()["confirmation_state"] == "cancelled"

    def test_list_with_filters(self, client, auth_headers, customer, consumer, make_sale):
        make_sale(customer, "100.00")
        make_sale(customer, "200.00", confirm=False)
        make_sale(consumer, "300.00")

        response = client.get(
            "/sales/", params={"customer_id": str(customer.id), "confirmation_state": "confirmed"},
            headers=auth_headers("viewer")
        )
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_unknown_sale_returns_404(self, client, auth_headers):
        response = client.get("/sales/00000000-0000-0000-0000-000000000000", headers=auth_headers())
        assert response.status_code == 404
