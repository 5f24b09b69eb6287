"""
Tests para la cuenta corriente

- Asientos de solo inserción y saldo materializado
- Reversión por contraasiento
- Ajustes manuales con concepto obligatorio
- Estado de crédito informativo y antigüedad de deuda
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import ConflictError, ValidationError, IntegrityViolationError
from app.modules.customers.models import Customer
from app.modules.ledger.models import LedgerEntry, EntryType, Direction, OriginType
from app.modules.ledger.schemas import CreditStatus, AdjustmentKind
from app.modules.ledger.service import LedgerService, credit_status


def _post_debit(db_session, customer, amount, origin_id=None):
    entry = LedgerService(db_session).post(
        customer_id=customer.id,
        entry_type=EntryType.SALE,
        direction=Direction.DEBIT,
        amount=Decimal(amount),
        origin_type=OriginType.SALE,
        origin_id=origin_id or uuid4(),
        origin_number="VTA-TEST",
        concept="Venta de prueba",
    )
    db_session.commit()
    return entry


class TestCreditStatus:

    @pytest.mark.parametrize("balance,expected", [
        ("0", CreditStatus.OK),
        ("599.99", CreditStatus.OK),
        ("600", CreditStatus.ATTENTION),
        ("800", CreditStatus.NEAR_LIMIT),
        ("1000", CreditStatus.OVER_LIMIT),
        ("1500", CreditStatus.OVER_LIMIT),
    ])
    def test_thresholds(self, balance, expected):
        assert credit_status(Decimal(balance), Decimal("1000")) == expected

    def test_without_limit(self):
        assert credit_status(Decimal("99999"), None) == CreditStatus.NO_LIMIT
        assert credit_status(Decimal("10"), Decimal("0")) == CreditStatus.NO_LIMIT


class TestPosting:

    def test_post_updates_materialized_balance(self, db_session, customer):
        first = _post_debit(db_session, customer, "1000.00")
        second = _post_debit(db_session, customer, "250.50")

        db_session.refresh(customer)
        assert customer.balance == Decimal("1250.50")
        assert first.balance_after == Decimal("1000.00")
        assert second.balance_after == Decimal("1250.50")

    def test_post_rejects_non_positive_amount(self, db_session, customer):
        with pytest.raises(ValidationError):
            _post_debit(db_session, customer, "0")

    def test_posting_over_limit_is_not_blocked(self, db_session, customer):
        """El límite de crédito es informativo."""
        _post_debit(db_session, customer, "9000.00")
        summary = LedgerService(db_session).summary(customer.id)
        assert summary.status == CreditStatus.OVER_LIMIT
        assert summary.balance == Decimal("9000.00")


class TestReversal:

    def test_reverse_by_origin(self, db_session, customer):
        origin_id = uuid4()
        original = _post_debit(db_session, customer, "700.00", origin_id)
        service = LedgerService(db_session)

        reversals = service.reverse("Venta cargada por error", origin_type=OriginType.SALE, origin_id=origin_id)
        db_session.commit()

        assert len(reversals) == 1
        reversal = reversals[0]
        assert reversal.entry_type == EntryType.REVERSAL
        assert reversal.direction == Direction.CREDIT
        assert reversal.reverses_entry_id == original.id
        assert original.voided and reversal.voided
        db_session.refresh(customer)
        assert customer.balance == Decimal("0.00")
        assert service.verify_balance(customer.id) == Decimal("0.00")

    def test_reverse_without_live_entries_fails(self, db_session, customer):
        origin_id = uuid4()
        _post_debit(db_session, customer, "700.00", origin_id)
        service = LedgerService(db_session)
        service.reverse("Primera reversión válida", origin_type=OriginType.SALE, origin_id=origin_id)
        db_session.commit()

        with pytest.raises(ConflictError):
            service.reverse("Segunda reversión inválida", origin_type=OriginType.SALE, origin_id=origin_id)

    def test_balance_equals_sum_of_live_entries(self, db_session, customer):
        origin_id = uuid4()
        _post_debit(db_session, customer, "100.00")
        _post_debit(db_session, customer, "200.00", origin_id)
        service = LedgerService(db_session)
        service.reverse("Anulación de prueba", origin_type=OriginType.SALE, origin_id=origin_id)
        db_session.commit()

        live = db_session.query(LedgerEntry).filter(
            LedgerEntry.customer_id == customer.id, LedgerEntry.voided.is_(False)
        ).all()
        assert sum(e.signed_amount for e in live) == Decimal("100.00")
        assert service.verify_balance(customer.id) == Decimal("100.00")


class TestImmutability:

    def test_amount_cannot_be_modified(self, db_session, customer):
        entry = _post_debit(db_session, customer, "100.00")
        entry.amount = Decimal("50.00")
        with pytest.raises(IntegrityViolationError):
            db_session.flush()

    def test_entries_cannot_be_deleted(self, db_session, customer):
        entry = _post_debit(db_session, customer, "100.00")
        db_session.delete(entry)
        with pytest.raises(IntegrityViolationError):
            db_session.flush()

    def test_voided_entry_cannot_be_restored(self, db_session, customer):
        origin_id = uuid4()
        entry = _post_debit(db_session, customer, "100.00", origin_id)
        LedgerService(db_session).reverse("Anulación de prueba", origin_type=OriginType.SALE, origin_id=origin_id)
        db_session.commit()

        assert entry.voided is True
        entry.voided = False
        with pytest.raises(IntegrityViolationError):
            db_session.flush()

    def test_tampered_balance_is_detected(self, db_session, customer):
        _post_debit(db_session, customer, "100.00")
        db_session.query(Customer).filter(Customer.id == customer.id).update({"balance": Decimal("90.00")})
        db_session.commit()
        with pytest.raises(IntegrityViolationError):
            LedgerService(db_session).verify_balance(customer.id)


class TestAdjustments:

    def test_charge_and_discount(self, db_session, customer):
        service = LedgerService(db_session)
        charge = service.create_adjustment(
            customer.id, AdjustmentKind.CHARGE, Decimal("150.00"), "Intereses por mora de marzo"
        )
        discount = service.create_adjustment(
            customer.id, AdjustmentKind.DISCOUNT, Decimal("50.00"), "Bonificación comercial acordada"
        )

        assert charge.entry_type == EntryType.ADJUSTMENT_CHARGE
        assert charge.direction == Direction.DEBIT
        assert discount.entry_type == EntryType.ADJUSTMENT_DISCOUNT
        assert discount.direction == Direction.CREDIT
        db_session.refresh(customer)
        assert customer.balance == Decimal("100.00")

    def test_concept_is_mandatory(self, db_session, customer):
        with pytest.raises(ValidationError):
            LedgerService(db_session).create_adjustment(customer.id, AdjustmentKind.CHARGE, Decimal("10"), "ajuste")
        assert db_session.query(LedgerEntry).count() == 0

    def test_void_adjustment(self, db_session, customer):
        service = LedgerService(db_session)
        charge = service.create_adjustment(
            customer.id, AdjustmentKind.CHARGE, Decimal("150.00"), "Intereses por mora de marzo"
        )
        reversal = service.void_adjustment(customer.id, charge.id, "Intereses condonados por gerencia")

        assert reversal.reverses_entry_id == charge.id
        db_session.refresh(customer)
        assert customer.balance == Decimal("0.00")

    def test_only_adjustments_can_be_voided_directly(self, db_session, customer):
        entry = _post_debit(db_session, customer, "100.00")
        with pytest.raises(ConflictError):
            LedgerService(db_session).void_adjustment(customer.id, entry.id, "Intento de anular una venta")


class TestSummaryAndAging:

    def test_summary(self, db_session, customer):
        _post_debit(db_session, customer, "4000.00")
        summary = LedgerService(db_session).summary(customer.id)

        assert summary.limit == Decimal("5000.00")
        assert summary.available == Decimal("1000.00")
        assert summary.utilization_percent == Decimal("80.00")
        assert summary.status == CreditStatus.NEAR_LIMIT
        assert summary.total_debits == Decimal("4000.00")
        assert summary.movements_by_type == {"sale": 1}

    def test_summary_without_limit(self, db_session, consumer):
        summary = LedgerService(db_session).summary(consumer.id)
        assert summary.status == CreditStatus.NO_LIMIT
        assert summary.available is None

    def test_aging_buckets_by_sale_date(self, db_session, customer, make_sale):
        today = date.today()
        make_sale(customer, "100.00", sale_date=today - timedelta(days=10))
        make_sale(customer, "200.00", sale_date=today - timedelta(days=45))
        make_sale(customer, "300.00", sale_date=today - timedelta(days=75))
        make_sale(customer, "400.00", sale_date=today - timedelta(days=120))
        make_sale(customer, "999.00", confirm=False)  # borrador: no es deuda

        report = LedgerService(db_session).aging(customer.id, today)

        assert [b.label for b in report.buckets] == ["0-30", "31-60", "61-90", "90+"]
        assert [b.count for b in report.buckets] == [1, 1, 1, 1]
        assert [b.amount for b in report.buckets] == [
            Decimal("100.00"), Decimal("200.00"), Decimal("300.00"), Decimal("400.00")
        ]
        assert report.total == Decimal("1000.00")


class TestLedgerEndpoints:

    def test_statement_and_summary(self, client, auth_headers, customer, make_sale):
        make_sale(customer, "1000.00")

        response = client.get(f"/customers/{customer.id}/ledger/", headers=auth_headers("viewer"))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert Decimal(data["balance"]) == Decimal("1000.00")

        response = client.get(f"/customers/{customer.id}/ledger/summary", headers=auth_headers("viewer"))
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_adjustment_requires_role(self, client, auth_headers, customer):
        payload = {"kind": "charge", "amount": "100.00", "concept": "Cargo por flete especial"}
        response = client.post(
            f"/customers/{customer.id}/ledger/adjustments", json=payload, headers=auth_headers("viewer")
        )
        assert response.status_code == 403

        response = client.post(
            f"/customers/{customer.id}/ledger/adjustments", json=payload, headers=auth_headers("accountant")
        )
        assert response.status_code == 201
        assert response.json()["direction"] == "debit"
        assert response.json()["created_by"] == "operador.test"

    def test_requires_token(self, client, customer):
        response = client.get(f"/customers/{customer.id}/ledger/summary")
        assert response.status_code in (401, 403)
