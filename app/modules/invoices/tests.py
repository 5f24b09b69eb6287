"""
Tests para el módulo de Facturación

- Cálculo de IVA por línea y desglose por alícuota
- Tipo de comprobante derivado de las condiciones fiscales
- Autorización: aprobada, rechazada y sin respuesta
- Anulación total y parcial con nota de crédito
- Inmutabilidad de facturas autorizadas
"""

import pytest
from decimal import Decimal

import httpx
from fastapi import HTTPException

from app.common.exceptions import ConflictError, ValidationError, NotFoundError, IntegrityViolationError
from app.common.transactions import transactional
from app.modules.customers.models import TaxCondition
from app.modules.invoices.calculator import TaxCalculator, TaxBucket
from app.modules.invoices.models import (
    Invoice, InvoiceKind, VoucherType, AuthorizationState
)
from app.modules.invoices.schemas import (
    InvoiceFromSales, InvoiceManualCreate, InvoiceItemCreate, InvoiceUpdate
)
from app.modules.invoices.service import InvoiceService, determine_voucher_type
from app.modules.delivery_notes.models import DeliveryStatus
from app.modules.delivery_notes.schemas import DeliveryNoteCreate, DeliveryStatusChange
from app.modules.delivery_notes.service import DeliveryNoteService
from app.modules.ledger.models import LedgerEntry, EntryType
from app.modules.ledger.service import LedgerService
from app.modules.receipts.schemas import ReceiptCreate, InstrumentCreate
from app.modules.receipts.service import ReceiptService
from app.modules.sales.models import Sale, ConfirmationState, DeliveryState
from app.modules.sales.service import SaleService
from app.modules.tax_authority.client import HttpTaxAuthorityClient


# ===== FIXTURES =====

@pytest.fixture
def invoices(db_session, tax_client):
    return InvoiceService(db_session, tax_client)


@pytest.fixture
def authorized_invoice(db_session, customer, make_sale, invoices):
    """Factura autorizada por 1000 sobre una venta sin IVA."""
    sale = make_sale(customer, "1000.00")
    invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
    return invoices.authorize(invoice.id, "contador.test")


def _mixed_vat_items():
    return [
        InvoiceItemCreate(description="Servicio de flete", quantity=Decimal("1"),
                          unit_price=Decimal("100"), vat_rate=Decimal("21")),
        InvoiceItemCreate(description="Harina 000", quantity=Decimal("2"),
                          unit_price=Decimal("100"), vat_rate=Decimal("10.5")),
    ]


# ===== CÁLCULOS =====

class TestTaxCalculator:

    def test_line_amounts(self):
        line = TaxCalculator.calculate_line(Decimal("2"), Decimal("100"), Decimal("10"), Decimal("21"))
        assert line.subtotal == Decimal("200.00")
        assert line.discount == Decimal("20.00")
        assert line.net == Decimal("180.00")
        assert line.vat == Decimal("37.80")
        assert line.total == Decimal("217.80")

    def test_vat_is_rounded_per_line(self):
        """Tres líneas de 0.05 al 10.5%: 0.01 por línea, no 0.02 sobre el total."""
        lines = [TaxCalculator.calculate_line(Decimal("1"), Decimal("0.05"), 0, Decimal("10.5")) for _ in range(3)]
        assert sum(line.vat for line in lines) == Decimal("0.03")

    def test_allowed_rates(self):
        assert TaxCalculator.is_allowed_rate("21")
        assert TaxCalculator.is_allowed_rate(Decimal("10.5"))
        assert not TaxCalculator.is_allowed_rate("19")

    def test_scale_buckets_adds_up_exactly(self):
        buckets = [
            TaxBucket(Decimal("10.5"), Decimal("200.00"), Decimal("21.00")),
            TaxBucket(Decimal("21"), Decimal("100.00"), Decimal("21.00")),
        ]
        scaled = TaxCalculator.scale_buckets(buckets, Decimal("171.00"))
        assert sum((b.gross for b in scaled), Decimal("0")) == Decimal("171.00")
        assert scaled[0] == TaxBucket(Decimal("10.5"), Decimal("100.00"), Decimal("10.50"))
        assert scaled[1] == TaxBucket(Decimal("21"), Decimal("50.00"), Decimal("10.50"))


class TestVoucherType:

    @pytest.mark.parametrize("condition,expected", [
        (TaxCondition.RESPONSABLE_INSCRIPTO, VoucherType.FACTURA_A),
        (TaxCondition.EXENTO, VoucherType.FACTURA_A),
        (TaxCondition.MONOTRIBUTISTA, VoucherType.FACTURA_B),
        (TaxCondition.CONSUMIDOR_FINAL, VoucherType.FACTURA_B),
    ])
    def test_issuer_responsable_inscripto(self, condition, expected):
        assert determine_voucher_type(condition, "responsable_inscripto") == expected

    def test_issuer_monotributista_always_issues_c(self):
        for condition in TaxCondition:
            assert determine_voucher_type(condition, "monotributista") == VoucherType.FACTURA_C


# ===== CREACIÓN =====

class TestInvoiceCreation:

    def test_from_sales_marks_them_invoiced(self, db_session, customer, make_sale, invoices):
        first = make_sale(customer, "300.00")
        second = make_sale(customer, "200.00")

        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[second.id, first.id]))

        assert invoice.kind == InvoiceKind.INVOICE
        assert invoice.voucher_type == VoucherType.FACTURA_A
        assert invoice.authorization_state == AuthorizationState.DRAFT
        assert invoice.total == Decimal("500.00")
        assert invoice.customer_name == customer.name
        assert set(invoice.sale_ids) == {first.id, second.id}
        assert len(invoice.items) == 2
        db_session.refresh(first)
        assert first.invoiced is True

    def test_draft_sale_cannot_be_invoiced(self, db_session, customer, make_sale, invoices):
        """Un borrador no generó deuda; su nota de crédito acreditaría algo nunca debido."""
        draft = make_sale(customer, "1000.00", confirm=False)

        with pytest.raises(ConflictError):
            invoices.create_from_sales(InvoiceFromSales(sale_ids=[draft.id]))

        db_session.refresh(draft)
        assert draft.invoiced is False
        assert db_session.query(Invoice).count() == 0

    def test_totals_match_sale_with_vat(self, db_session, customer, product, make_sale, invoices):
        sale = make_sale(customer, "100.00", product=product, quantity="1", applies_tax=True)
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))

        assert invoice.total == sale.total == Decimal("121.00")
        assert invoice.vat_total == Decimal("21.00")
        assert invoice.tax_breakdown == [{"rate": "21.00", "base": "100.00", "amount": "21.00"}]

    def test_sales_of_different_customers_are_rejected(self, customer, consumer, make_sale, invoices):
        first = make_sale(customer, "100.00")
        second = make_sale(consumer, "100.00")
        with pytest.raises(ValidationError):
            invoices.create_from_sales(InvoiceFromSales(sale_ids=[first.id, second.id]))

    def test_sale_already_invoiced_is_rejected(self, customer, make_sale, invoices):
        sale = make_sale(customer, "100.00")
        invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        with pytest.raises(ConflictError):
            invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))

    def test_cancelled_sale_is_rejected(self, db_session, customer, make_sale, invoices):
        sale = make_sale(customer, "100.00")
        SaleService(db_session).cancel_sale(sale.id, "Pedido duplicado por error")
        with pytest.raises(ConflictError):
            invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))

    def test_unknown_sale_is_rejected(self, invoices):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            invoices.create_from_sales(InvoiceFromSales(sale_ids=[uuid4()]))

    def test_manual_invoice_for_consumer(self, consumer, invoices):
        invoice = invoices.create_manual(InvoiceManualCreate(customer_id=consumer.id, items=_mixed_vat_items()))

        assert invoice.voucher_type == VoucherType.FACTURA_B
        assert invoice.net_total == Decimal("300.00")
        assert invoice.vat_total == Decimal("42.00")
        assert invoice.total == Decimal("342.00")
        assert [b["rate"] for b in invoice.tax_breakdown] == ["10.50", "21.00"]

    def test_update_and_delete_draft(self, db_session, customer, make_sale, invoices):
        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))

        updated = invoices.update_draft(invoice.id, InvoiceUpdate(notes="Entrega en depósito"))
        assert updated.notes == "Entrega en depósito"

        invoices.delete_draft(invoice.id)
        db_session.expire_all()
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(Sale).filter(Sale.id == sale.id).one().invoiced is False


# ===== AUTORIZACIÓN =====

class TestAuthorization:

    def test_approved(self, authorized_invoice, tax_client):
        assert authorized_invoice.authorization_state == AuthorizationState.AUTHORIZED
        assert authorized_invoice.authorization_code == "70000000000001"
        assert authorized_invoice.authority_voucher_number == "00001-00000001"
        assert authorized_invoice.authorized_by == "contador.test"
        assert tax_client.calls[0].receiver_document_number == "20123456786"

    def test_rejected_is_persisted_and_releases_sales(self, db_session, customer, make_sale, invoices, tax_client):
        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        tax_client.mode = "reject"

        with pytest.raises(HTTPException) as exc_info:
            invoices.authorize(invoice.id)

        assert exc_info.value.status_code == 502
        assert exc_info.value.detail["classification"] == "rejected"
        assert exc_info.value.detail["reason"] == tax_client.reason
        db_session.expire_all()
        stored = db_session.query(Invoice).filter(Invoice.id == invoice.id).one()
        assert stored.authorization_state == AuthorizationState.REJECTED
        assert stored.rejection_reason == tax_client.reason
        assert db_session.query(Sale).filter(Sale.id == sale.id).one().invoiced is False

        # La venta liberada puede volver a facturarse
        tax_client.mode = "approve"
        retry = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        assert invoices.authorize(retry.id).authorization_state == AuthorizationState.AUTHORIZED

    def test_timeout_leaves_error_state_and_can_be_retried(self, db_session, customer, make_sale, invoices, tax_client):
        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        tax_client.mode = "timeout"

        with pytest.raises(HTTPException) as exc_info:
            invoices.authorize(invoice.id)
        assert exc_info.value.detail["classification"] == "error"

        db_session.expire_all()
        assert db_session.query(Invoice).filter(Invoice.id == invoice.id).one().authorization_state == \
            AuthorizationState.ERROR
        assert db_session.query(Sale).filter(Sale.id == sale.id).one().invoiced is True

        tax_client.mode = "approve"
        assert invoices.authorize(invoice.id).authorization_state == AuthorizationState.AUTHORIZED
        assert len(tax_client.calls) == 2

    def test_approval_without_code_is_recorded_as_error(self, db_session, customer, make_sale, invoices, tax_client):
        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        tax_client.mode = "incomplete"

        with pytest.raises(HTTPException) as exc_info:
            invoices.authorize(invoice.id)
        assert exc_info.value.status_code == 502
        assert exc_info.value.detail["classification"] == "error"

        db_session.expire_all()
        stored = db_session.query(Invoice).filter(Invoice.id == invoice.id).one()
        assert stored.authorization_state == AuthorizationState.ERROR
        assert stored.authorization_code is None

    def test_garbled_http_response_is_recorded_as_error(self, db_session, customer, make_sale, monkeypatch):
        request = httpx.Request("POST", "http://autorizador.test/vouchers/authorize")
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: httpx.Response(200, json=["ok"], request=request))
        service = InvoiceService(db_session, HttpTaxAuthorityClient(base_url="http://autorizador.test"))
        sale = make_sale(customer, "100.00")
        invoice = service.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))

        with pytest.raises(HTTPException) as exc_info:
            service.authorize(invoice.id)
        assert exc_info.value.status_code == 502
        assert exc_info.value.detail["classification"] == "error"

        db_session.expire_all()
        stored = db_session.query(Invoice).filter(Invoice.id == invoice.id).one()
        assert stored.authorization_state == AuthorizationState.ERROR
        assert stored.rejection_reason

    def test_rejection_is_kept_inside_an_outer_transaction(self, db_session, customer, make_sale, invoices, tax_client):
        """El commit del rechazo lo hace el método más externo."""

        class Batch:
            def __init__(self, db):
                self.db = db

            @transactional
            def authorize_all(self, invoice_ids):
                for invoice_id in invoice_ids:
                    invoices.authorize(invoice_id)

        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        tax_client.mode = "reject"

        with pytest.raises(HTTPException):
            Batch(db_session).authorize_all([invoice.id])

        db_session.expire_all()
        assert db_session.query(Invoice).filter(Invoice.id == invoice.id).one().authorization_state == \
            AuthorizationState.REJECTED
        assert db_session.info.get("transaction_depth") == 0

    def test_authorize_twice_is_rejected(self, authorized_invoice, invoices, tax_client):
        with pytest.raises(ConflictError):
            invoices.authorize(authorized_invoice.id)
        assert len(tax_client.calls) == 1

    def test_voucher_type_follows_current_tax_condition(self, db_session, customer, make_sale, invoices):
        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        assert invoice.voucher_type == VoucherType.FACTURA_A

        customer.tax_condition = TaxCondition.MONOTRIBUTISTA
        db_session.commit()

        authorized = invoices.authorize(invoice.id)
        assert authorized.voucher_type == VoucherType.FACTURA_B
        assert authorized.customer_tax_condition == "monotributista"

    def test_verify_authorization(self, authorized_invoice, invoices):
        result = invoices.verify_authorization(authorized_invoice.id)
        assert result["valid"] is True


class TestImmutability:

    def test_authorized_invoice_cannot_be_updated(self, authorized_invoice, invoices):
        with pytest.raises(ConflictError):
            invoices.update_draft(authorized_invoice.id, InvoiceUpdate(notes="cambio"))

    def test_authorized_invoice_cannot_be_deleted(self, authorized_invoice, invoices):
        with pytest.raises(ConflictError):
            invoices.delete_draft(authorized_invoice.id)

    def test_direct_orm_edit_is_blocked(self, db_session, authorized_invoice):
        invoice = db_session.query(Invoice).filter(Invoice.id == authorized_invoice.id).one()
        assert invoice.authorization_state == AuthorizationState.AUTHORIZED
        invoice.total = Decimal("1.00")
        with pytest.raises(IntegrityViolationError):
            db_session.flush()


# ===== ANULACIÓN =====

class TestVoid:

    def test_full_void(self, db_session, customer, authorized_invoice, invoices):
        result = invoices.void(authorized_invoice.id, "Factura emitida con datos erróneos")

        assert result["full_void"] is True
        invoice, credit_note = result["invoice"], result["credit_note"]
        assert invoice.authorization_state == AuthorizationState.VOIDED
        assert invoice.credited_amount == Decimal("1000.00")
        assert credit_note.kind == InvoiceKind.CREDIT_NOTE
        assert credit_note.voucher_type == VoucherType.NOTA_CREDITO_A
        assert credit_note.authorization_state == AuthorizationState.AUTHORIZED
        assert credit_note.total == Decimal("1000.00")
        assert credit_note.original_invoice_id == invoice.id
        assert all(not sale.invoiced for sale in invoice.sales)

        entry = db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.CREDIT_NOTE).one()
        assert entry.amount == Decimal("1000.00")
        db_session.refresh(customer)
        assert customer.balance == Decimal("0.00")

    def test_partial_void_of_collected_sale(self, db_session, customer, make_sale, invoices):
        """Venta de 1000 cobrada, factura autorizada, nota de crédito por 300."""
        sale = make_sale(customer, "1000.00")
        ReceiptService(db_session).create_receipt(ReceiptCreate(
            customer_id=customer.id,
            sale_ids=[sale.id],
            instruments=[InstrumentCreate(instrument_type="cash", amount=Decimal("1000.00"))],
        ))
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        invoices.authorize(invoice.id)

        result = invoices.void(invoice.id, "Bonificación por mercadería dañada", Decimal("300.00"))

        assert result["full_void"] is False
        assert result["invoice"].authorization_state == AuthorizationState.AUTHORIZED
        assert result["invoice"].credited_amount == Decimal("300.00")
        assert result["credit_note"].total == Decimal("300.00")
        assert result["credit_note"].authorization_state == AuthorizationState.AUTHORIZED
        db_session.refresh(sale)
        assert sale.invoiced is True
        db_session.refresh(customer)
        assert customer.balance == Decimal("-300.00")

    def test_amount_over_remaining_is_rejected(self, authorized_invoice, invoices):
        invoices.void(authorized_invoice.id, "Bonificación por mercadería dañada", Decimal("300.00"))
        with pytest.raises(ValidationError):
            invoices.void(authorized_invoice.id, "Bonificación por mercadería dañada", Decimal("800.00"))

        result = invoices.void(authorized_invoice.id, "Cierre de la operación", Decimal("700.00"))
        assert result["full_void"] is True
        assert result["invoice"].authorization_state == AuthorizationState.VOIDED

    def test_authority_failure_persists_nothing(self, db_session, customer, authorized_invoice, invoices, tax_client):
        tax_client.mode = "timeout"
        with pytest.raises(HTTPException) as exc_info:
            invoices.void(authorized_invoice.id, "Factura emitida con datos erróneos")
        assert exc_info.value.status_code == 502

        db_session.expire_all()
        assert db_session.query(Invoice).filter(Invoice.kind == InvoiceKind.CREDIT_NOTE).count() == 0
        stored = db_session.query(Invoice).filter(Invoice.id == authorized_invoice.id).one()
        assert stored.authorization_state == AuthorizationState.AUTHORIZED
        assert stored.credited_amount == Decimal("0.00")
        assert db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.CREDIT_NOTE).count() == 0

    def test_full_void_closes_sales(self, db_session, customer, authorized_invoice, invoices):
        """Anulada la factura, la venta no puede volver a acreditarse al cancelarla."""
        invoices.void(authorized_invoice.id, "Factura emitida con datos erróneos")
        sale = authorized_invoice.sales[0]

        db_session.refresh(sale)
        assert sale.confirmation_state == ConfirmationState.CANCELLED
        assert "NC " in sale.cancellation_reason

        with pytest.raises(ConflictError):
            SaleService(db_session).cancel_sale(sale.id, "Cliente desistió de la compra")

        db_session.refresh(customer)
        assert customer.balance == Decimal("0.00")
        assert LedgerService(db_session).verify_balance(customer.id) == Decimal("0.00")
        credits = db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.CREDIT_NOTE).count()
        assert credits == 1
        assert db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.REVERSAL).count() == 0

    def test_full_void_releases_stock_and_pending_note(self, db_session, customer, product, make_sale, invoices):
        sale = make_sale(customer, "500.00", product=product, quantity="5")
        note = DeliveryNoteService(db_session).generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        invoices.authorize(invoice.id)

        invoices.void(invoice.id, "Factura emitida con datos erróneos")

        db_session.refresh(product)
        assert product.reserved_quantity == Decimal("0")
        assert product.stock_quantity == Decimal("50")
        db_session.refresh(note)
        assert note.status == DeliveryStatus.CANCELLED
        db_session.refresh(sale)
        assert sale.confirmation_state == ConfirmationState.CANCELLED
        assert sale.delivery_state != DeliveryState.DELIVERED

    def test_full_void_blocked_by_note_in_transit(self, db_session, customer, product, make_sale, invoices):
        sale = make_sale(customer, "500.00", product=product, quantity="5")
        notes = DeliveryNoteService(db_session)
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))
        notes.change_status(note.id, DeliveryStatusChange(status=DeliveryStatus.IN_TRANSIT), "logistica.test")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        invoices.authorize(invoice.id)

        with pytest.raises(ConflictError):
            invoices.void(invoice.id, "Factura emitida con datos erróneos")

        db_session.expire_all()
        assert db_session.query(Invoice).filter(Invoice.kind == InvoiceKind.CREDIT_NOTE).count() == 0
        assert db_session.query(Sale).filter(Sale.id == sale.id).one().confirmation_state == \
            ConfirmationState.CONFIRMED

    def test_draft_cannot_be_voided(self, customer, make_sale, invoices):
        sale = make_sale(customer, "100.00")
        invoice = invoices.create_from_sales(InvoiceFromSales(sale_ids=[sale.id]))
        with pytest.raises(ConflictError):
            invoices.void(invoice.id, "Factura emitida con datos erróneos")

    def test_manual_invoice_void_has_no_ledger_effect(self, db_session, customer, invoices):
        invoice = invoices.create_manual(InvoiceManualCreate(customer_id=customer.id, items=_mixed_vat_items()))
        invoices.authorize(invoice.id)
        invoices.void(invoice.id, "Factura emitida con datos erróneos")

        assert db_session.query(LedgerEntry).count() == 0

    def test_partial_credit_note_keeps_vat_proportions(self, customer, invoices):
        invoice = invoices.create_manual(InvoiceManualCreate(customer_id=customer.id, items=_mixed_vat_items()))
        invoices.authorize(invoice.id)

        credit_note = invoices.void(invoice.id, "Devolución parcial de mercadería", Decimal("171.00"))["credit_note"]

        assert credit_note.total == Decimal("171.00")
        assert credit_note.net_total == Decimal("150.00")
        assert credit_note.vat_total == Decimal("21.00")
        assert [(item.vat_rate, item.net_amount) for item in credit_note.items] == [
            (Decimal("10.50"), Decimal("100.00")), (Decimal("21.00"), Decimal("50.00"))
        ]
        assert invoices.get_credit_notes(invoice.id)[0].id == credit_note.id


# ===== ENDPOINTS =====

class TestInvoiceEndpoints:

    def test_authorize_rejection_returns_classification(self, client, auth_headers, customer, make_sale, tax_client):
        sale = make_sale(customer, "100.00")
        response = client.post(
            "/invoices/from-sales", json={"sale_ids": [str(sale.id)]}, headers=auth_headers("accountant")
        )
        assert response.status_code == 201
        invoice_id = response.json()["id"]

        tax_client.mode = "reject"
        response = client.post(f"/invoices/{invoice_id}/authorize", headers=auth_headers("accountant"))
        assert response.status_code == 502
        assert response.json()["detail"] == {"classification": "rejected", "reason": tax_client.reason}

        response = client.get(f"/invoices/{invoice_id}", headers=auth_headers("viewer"))
        assert response.json()["authorization_state"] == "rejected"

    def test_void_through_api(self, client, auth_headers, authorized_invoice):
        response = client.post(
            f"/invoices/{authorized_invoice.id}/void",
            json={"reason": "Factura emitida con datos erróneos", "amount": "250.00"},
            headers=auth_headers("owner"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["full_void"] is False
        assert Decimal(data["credit_note"]["total"]) == Decimal("250.00")

        response = client.get(f"/invoices/{authorized_invoice.id}/credit-notes", headers=auth_headers("viewer"))
        assert len(response.json()) == 1

    def test_invalid_vat_rate_is_rejected(self, client, auth_headers, customer):
        payload = {
            "customer_id": str(customer.id),
            "items": [{"description": "Servicio", "quantity": "1", "unit_price": "10", "vat_rate": "19"}],
        }
        response = client.post("/invoices/", json=payload, headers=auth_headers())
        assert response.status_code == 422

    def test_seller_cannot_authorize(self, client, auth_headers, customer, make_sale, tax_client):
        sale = make_sale(customer, "100.00")
        response = client.post("/invoices/from-sales", json={"sale_ids": [str(sale.id)]}, headers=auth_headers("seller"))
        assert response.status_code == 403
