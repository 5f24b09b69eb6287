"""
Tests para el módulo de Recibos

- Imputación FIFO por fecha de venta
- Pagos parciales, vuelto y faltante
- Instrumentos aceptados por el cliente y datos obligatorios
- Anulación y corrección de importe
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from app.common.exceptions import ConflictError, ValidationError
from app.modules.ledger.models import LedgerEntry, EntryType, Direction
from app.modules.ledger.service import LedgerService
from app.modules.receipts.models import ReceiptStatus
from app.modules.receipts.schemas import ReceiptCreate, InstrumentCreate, ReceiptCorrection
from app.modules.receipts.service import ReceiptService, allocate_fifo
from app.modules.sales.models import Sale, CollectionState


# ===== FIXTURES =====

@pytest.fixture
def receipts(db_session):
    return ReceiptService(db_session)


@pytest.fixture
def three_sales(customer, make_sale):
    """Tres ventas de 100, 200 y 300 con fechas crecientes, creadas en orden inverso."""
    today = date.today()
    third = make_sale(customer, "300.00", sale_date=today - timedelta(days=1))
    second = make_sale(customer, "200.00", sale_date=today - timedelta(days=5))
    first = make_sale(customer, "100.00", sale_date=today - timedelta(days=10))
    return first, second, third


def _cash(amount):
    return InstrumentCreate(instrument_type="cash", amount=Decimal(amount))


def _receipt(customer, sales, *instruments, allow_partial=False):
    return ReceiptCreate(
        customer_id=customer.id,
        sale_ids=[sale.id for sale in sales],
        instruments=list(instruments),
        allow_partial=allow_partial,
    )


def _reload(db_session, sale):
    return db_session.query(Sale).filter(Sale.id == sale.id).one()


# ===== IMPUTACIÓN =====

class TestAllocation:

    def test_allocate_fifo(self):
        assert allocate_fifo([Decimal("100"), Decimal("200"), Decimal("300")], Decimal("250")) == [
            Decimal("100.00"), Decimal("150.00"), Decimal("0.00")
        ]
        assert allocate_fifo([Decimal("100")], Decimal("130")) == [Decimal("100.00")]

    def test_fifo_across_three_sales(self, db_session, customer, three_sales, receipts):
        """Pago de 250 sobre saldos 100/200/300: 100, 150 y nada."""
        first, second, third = three_sales
        receipt = receipts.create_receipt(
            _receipt(customer, [third, first, second], _cash("250.00"), allow_partial=True), "cajero.test"
        )

        assert [a.sale_id for a in receipt.allocations] == [first.id, second.id, third.id]
        assert [a.amount_applied for a in receipt.allocations] == [
            Decimal("100.00"), Decimal("150.00"), Decimal("0.00")
        ]
        assert receipt.amount_due == Decimal("600.00")
        assert receipt.amount_applied == Decimal("250.00")
        assert receipt.change_amount == Decimal("0.00")
        assert receipt.shortfall == Decimal("350.00")

        db_session.expire_all()
        assert _reload(db_session, first).collection_state == CollectionState.COLLECTED
        assert _reload(db_session, second).outstanding_balance == Decimal("50.00")
        assert _reload(db_session, second).collection_state == CollectionState.PARTIALLY_COLLECTED
        assert _reload(db_session, third).collection_state == CollectionState.UNCOLLECTED

    def test_partial_payment_requires_flag(self, db_session, customer, three_sales, receipts):
        with pytest.raises(ValidationError):
            receipts.create_receipt(_receipt(customer, three_sales, _cash("250.00")))
        db_session.expire_all()
        assert all(_reload(db_session, s).outstanding_balance == s.total for s in three_sales)

    def test_overpayment_is_change(self, db_session, customer, make_sale, receipts):
        sale = make_sale(customer, "870.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("1000.00")))

        assert receipt.amount_paid == Decimal("1000.00")
        assert receipt.amount_applied == Decimal("870.00")
        assert receipt.change_amount == Decimal("130.00")
        assert receipt.shortfall == Decimal("0.00")
        entry = db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.RECEIPT).one()
        assert entry.amount == Decimal("870.00")

    def test_mixed_instruments(self, customer, make_sale, receipts):
        sale = make_sale(customer, "1000.00")
        check = InstrumentCreate(
            instrument_type="check", amount=Decimal("600.00"), check_number="00012345",
            check_bank="Banco Nación", check_holder="Distribuidora del Sur S.A.",
            check_due_date=date.today() + timedelta(days=30),
        )
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("400.00"), check))

        assert [i.instrument_type.value for i in receipt.instruments] == ["cash", "check"]
        assert receipt.amount_paid == Decimal("1000.00")

    def test_balance_equals_total_minus_live_allocations(self, db_session, customer, make_sale, receipts):
        sale = make_sale(customer, "1000.00")
        first = receipts.create_receipt(_receipt(customer, [sale], _cash("300.00"), allow_partial=True))
        receipts.create_receipt(_receipt(customer, [sale], _cash("200.00"), allow_partial=True))
        receipts.void_receipt(first.id, "Cobro registrado dos veces")

        db_session.expire_all()
        stored = _reload(db_session, sale)
        assert stored.outstanding_balance == stored.total - stored.amount_collected == Decimal("800.00")


# ===== VALIDACIONES =====

class TestValidation:

    def test_instrument_not_accepted_by_customer(self, db_session, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        card = InstrumentCreate(
            instrument_type="card", amount=Decimal("100.00"), card_type="VISA", card_authorization="A1B2"
        )
        with pytest.raises(ValidationError):
            receipts.create_receipt(_receipt(customer, [sale], card))
        assert db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.RECEIPT).count() == 0

    def test_check_requires_complete_data(self, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        check = InstrumentCreate(instrument_type="check", amount=Decimal("100.00"), check_number="123")
        with pytest.raises(ValidationError) as exc_info:
            receipts.create_receipt(_receipt(customer, [sale], check))
        assert "banco" in exc_info.value.detail

    def test_transfer_requires_operation(self, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        transfer = InstrumentCreate(instrument_type="transfer", amount=Decimal("100.00"), transfer_bank="Galicia")
        with pytest.raises(ValidationError):
            receipts.create_receipt(_receipt(customer, [sale], transfer))

    def test_sale_of_another_customer(self, customer, consumer, make_sale, receipts):
        sale = make_sale(consumer, "100.00")
        with pytest.raises(ValidationError):
            receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))

    def test_sale_without_balance(self, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))
        with pytest.raises(ConflictError):
            receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))

    def test_cancelled_sale(self, db_session, customer, make_sale, receipts):
        from app.modules.sales.service import SaleService
        sale = make_sale(customer, "100.00")
        SaleService(db_session).cancel_sale(sale.id, "Pedido duplicado por error")
        with pytest.raises(ConflictError):
            receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))


# ===== ANULACIÓN =====

class TestVoid:

    def test_void_restores_balances(self, db_session, customer, three_sales, receipts):
        first, second, third = three_sales
        receipt = receipts.create_receipt(_receipt(customer, three_sales, _cash("250.00"), allow_partial=True))

        voided = receipts.void_receipt(receipt.id, "Cheque rechazado por el banco", "tesoreria.test")

        assert voided.status == ReceiptStatus.VOIDED
        assert voided.voided_by == "tesoreria.test"
        db_session.expire_all()
        for sale in three_sales:
            stored = _reload(db_session, sale)
            assert stored.outstanding_balance == stored.total
            assert stored.collection_state == CollectionState.UNCOLLECTED
        db_session.refresh(customer)
        assert customer.balance == Decimal("600.00")
        assert LedgerService(db_session).verify_balance(customer.id) == Decimal("600.00")

    def test_void_twice_is_rejected(self, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))
        receipts.void_receipt(receipt.id, "Cobro registrado dos veces")
        with pytest.raises(ConflictError):
            receipts.void_receipt(receipt.id, "Cobro registrado dos veces")

    def test_void_requires_reason(self, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))
        with pytest.raises(ValidationError):
            receipts.void_receipt(receipt.id, "error")


# ===== CORRECCIÓN =====

class TestCorrection:

    def test_increase_amount(self, db_session, customer, three_sales, receipts):
        first, second, third = three_sales
        receipt = receipts.create_receipt(_receipt(customer, three_sales, _cash("250.00"), allow_partial=True))

        corrected = receipts.correct_amount(receipt.id, ReceiptCorrection(
            corrected_amount=Decimal("400.00"), reason="Importe mal tipeado en caja"
        ))

        assert corrected.previous_amount == Decimal("250.00")
        assert corrected.amount_paid == Decimal("400.00")
        assert [a.amount_applied for a in corrected.allocations] == [
            Decimal("100.00"), Decimal("200.00"), Decimal("100.00")
        ]
        assert corrected.instruments[0].amount == Decimal("400.00")
        entry = db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.RECEIPT_CORRECTION).one()
        assert entry.direction == Direction.CREDIT
        assert entry.amount == Decimal("150.00")
        db_session.refresh(customer)
        assert customer.balance == Decimal("200.00")

    def test_decrease_amount(self, db_session, customer, three_sales, receipts):
        first, second, third = three_sales
        receipt = receipts.create_receipt(_receipt(customer, three_sales, _cash("600.00")))

        corrected = receipts.correct_amount(receipt.id, ReceiptCorrection(
            corrected_amount=Decimal("250.00"), reason="Importe mal tipeado en caja"
        ))

        assert [a.amount_applied for a in corrected.allocations] == [
            Decimal("100.00"), Decimal("150.00"), Decimal("0.00")
        ]
        assert corrected.shortfall == Decimal("350.00")
        db_session.expire_all()
        assert _reload(db_session, third).outstanding_balance == Decimal("300.00")
        entry = db_session.query(LedgerEntry).filter(LedgerEntry.entry_type == EntryType.RECEIPT_CORRECTION).one()
        assert entry.direction == Direction.DEBIT
        assert entry.amount == Decimal("350.00")

    def test_corrected_receipt_can_be_voided(self, db_session, customer, three_sales, receipts):
        receipt = receipts.create_receipt(_receipt(customer, three_sales, _cash("250.00"), allow_partial=True))
        receipts.correct_amount(receipt.id, ReceiptCorrection(
            corrected_amount=Decimal("400.00"), reason="Importe mal tipeado en caja"
        ))
        receipts.void_receipt(receipt.id, "Recibo emitido al cliente equivocado")

        db_session.refresh(customer)
        assert customer.balance == Decimal("600.00")
        assert LedgerService(db_session).verify_balance(customer.id) == Decimal("600.00")

    def test_correction_beyond_debt_is_change(self, customer, make_sale, receipts):
        sale = make_sale(customer, "500.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("500.00")))

        corrected = receipts.correct_amount(receipt.id, ReceiptCorrection(
            corrected_amount=Decimal("550.00"), reason="Se recibió un billete de más"
        ))
        assert corrected.amount_applied == Decimal("500.00")
        assert corrected.change_amount == Decimal("50.00")

    def test_same_amount_is_rejected(self, customer, make_sale, receipts):
        sale = make_sale(customer, "500.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("500.00")))
        with pytest.raises(ValidationError):
            receipts.correct_amount(receipt.id, ReceiptCorrection(
                corrected_amount=Decimal("500.00"), reason="Importe mal tipeado en caja"
            ))

    def test_several_instruments_require_index(self, customer, make_sale, receipts):
        sale = make_sale(customer, "500.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("300.00"), _cash("200.00")))
        with pytest.raises(ValidationError):
            receipts.correct_amount(receipt.id, ReceiptCorrection(
                corrected_amount=Decimal("450.00"), reason="Importe mal tipeado en caja"
            ))

        corrected = receipts.correct_amount(receipt.id, ReceiptCorrection(
            corrected_amount=Decimal("450.00"), reason="Importe mal tipeado en caja", instrument_index=1
        ))
        assert [i.amount for i in corrected.instruments] == [Decimal("300.00"), Decimal("150.00")]

    def test_voided_receipt_cannot_be_corrected(self, customer, make_sale, receipts):
        sale = make_sale(customer, "500.00")
        receipt = receipts.create_receipt(_receipt(customer, [sale], _cash("500.00")))
        receipts.void_receipt(receipt.id, "Cobro registrado dos veces")
        with pytest.raises(ConflictError):
            receipts.correct_amount(receipt.id, ReceiptCorrection(
                corrected_amount=Decimal("400.00"), reason="Importe mal tipeado en caja"
            ))


# ===== ENDPOINTS =====

class TestReceiptEndpoints:

    def test_create_and_void(self, client, auth_headers, customer, make_sale):
        sale = make_sale(customer, "1000.00")
        payload = {
            "customer_id": str(customer.id),
            "sale_ids": [str(sale.id)],
            "instruments": [{"instrument_type": "transfer", "amount": "600.00",
                             "transfer_operation": "OP-778812", "transfer_bank": "Banco Galicia"}],
            "allow_partial": True,
        }
        response = client.post("/receipts/", json=payload, headers=auth_headers("seller"))
        assert response.status_code == 201
        data = response.json()
        assert data["number"].startswith("REC-")
        assert Decimal(data["allocations"][0]["balance_after"]) == Decimal("400.00")

        response = client.post(
            f"/receipts/{data['id']}/void", json={"reason": "Transferencia devuelta"}, headers=auth_headers("seller")
        )
        assert response.status_code == 403

        response = client.post(
            f"/receipts/{data['id']}/void", json={"reason": "Transferencia devuelta"}, headers=auth_headers("accountant")
        )
        assert response.status_code == 200
        assert response.json()["status"] == "voided"

    def test_customer_receipts(self, client, auth_headers, customer, make_sale, receipts):
        sale = make_sale(customer, "100.00")
        receipts.create_receipt(_receipt(customer, [sale], _cash("100.00")))

        response = client.get(f"/receipts/customer/{customer.id}", headers=auth_headers("viewer"))
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_missing_instruments_is_422(self, client, auth_headers, customer, make_sale):
        sale = make_sale(customer, "100.00")
        payload = {"customer_id": str(customer.id), "sale_ids": [str(sale.id)], "instruments": []}
        response = client.post("/receipts/", json=payload, headers=auth_headers())
        assert response.status_code == 422
