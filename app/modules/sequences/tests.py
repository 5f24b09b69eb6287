"""
Tests para la numeración de documentos

- Formato PREFIJO-AAAAMM-NNNN y reinicio mensual
- Independencia entre tipos de documento
- Colisión por lectura concurrente: la operación completa se reintenta
"""

import pytest
from datetime import date
from decimal import Decimal
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from app.common.transactions import is_number_collision
from app.modules.receipts.models import Receipt
from app.modules.receipts.schemas import ReceiptCreate, InstrumentCreate
from app.modules.receipts.service import ReceiptService
from app.modules.sales.models import Sale
from app.modules.sequences.service import (
    SequenceAllocator, DocumentType, period_prefix, parse_sequence
)


def _cash_receipt(customer, sale, amount):
    return ReceiptCreate(
        customer_id=customer.id,
        sale_ids=[sale.id],
        instruments=[InstrumentCreate(instrument_type="cash", amount=Decimal(amount))],
    )


class TestNumberFormat:

    def test_period_prefix(self):
        assert period_prefix(DocumentType.SALE, date(2024, 3, 15)) == "VTA-202403-"
        assert period_prefix(DocumentType.INVOICE, date(2024, 3, 15)) == "FAC-202403-"
        assert period_prefix(DocumentType.CREDIT_NOTE, date(2024, 3, 15)) == "NC-202403-"
        assert period_prefix(DocumentType.DELIVERY_NOTE, date(2024, 3, 15)) == "REM-202403-"
        assert period_prefix(DocumentType.RECEIPT, date(2024, 3, 15)) == "REC-202403-"

    def test_parse_sequence(self):
        assert parse_sequence("VTA-202403-0007") == 7
        assert parse_sequence("REC-202403-12345") == 12345

    def test_first_number_of_month(self, db_session):
        allocator = SequenceAllocator(db_session)
        assert allocator.next_number(DocumentType.SALE, date(2024, 3, 1)) == "VTA-202403-0001"


class TestSequenceAllocation:

    def test_numbers_are_consecutive_without_gaps(self, db_session, customer, make_sale):
        sales = [make_sale(customer, "100.00", confirm=False) for _ in range(5)]
        prefix = period_prefix(DocumentType.SALE, date.today())
        assert [s.number for s in sales] == [f"{prefix}{i:04d}" for i in range(1, 6)]

    def test_sequence_resets_each_month(self, db_session, customer, make_sale):
        march = make_sale(customer, "100.00", sale_date=date(2024, 3, 31), confirm=False)
        march_2 = make_sale(customer, "100.00", sale_date=date(2024, 3, 31), confirm=False)
        april = make_sale(customer, "100.00", sale_date=date(2024, 4, 1), confirm=False)

        assert march.number == "VTA-202403-0001"
        assert march_2.number == "VTA-202403-0002"
        assert april.number == "VTA-202404-0001"

    def test_numbering_past_four_digits(self, db_session, customer):
        """El orden no es lexicográfico: después de 9999 viene 10000, y después 10001."""
        for number in ("REC-202405-0002", "REC-202405-9999"):
            db_session.add(Receipt(number=number, receipt_date=date(2024, 5, 1), customer_id=customer.id))
        db_session.commit()
        allocator = SequenceAllocator(db_session)
        assert allocator.next_number(DocumentType.RECEIPT, date(2024, 5, 2)) == "REC-202405-10000"

        db_session.add(Receipt(number="REC-202405-10000", receipt_date=date(2024, 5, 2), customer_id=customer.id))
        db_session.commit()
        assert allocator.next_number(DocumentType.RECEIPT, date(2024, 5, 3)) == "REC-202405-10001"

    def test_failed_operation_leaves_no_gap(self, db_session, customer, make_sale):
        first = make_sale(customer, "100.00", confirm=False)
        with pytest.raises(HTTPException):
            make_sale(customer, "0.00", confirm=False)  # total cero: rechazada
        second = make_sale(customer, "100.00", confirm=False)
        assert parse_sequence(second.number) == parse_sequence(first.number) + 1


class TestConcurrentAllocation:

    def test_receipts_for_different_customers_share_sequence(self, db_session, customer, consumer, make_sale):
        """Dos recibos del mismo mes, clientes distintos: 0001 y 0002, sin colisión."""
        sale_a = make_sale(customer, "500.00")
        sale_b = make_sale(consumer, "300.00")
        service = ReceiptService(db_session)

        receipt_a = service.create_receipt(_cash_receipt(customer, sale_a, "500.00"))
        receipt_b = service.create_receipt(_cash_receipt(consumer, sale_b, "300.00"))

        prefix = period_prefix(DocumentType.RECEIPT, date.today())
        assert {receipt_a.number, receipt_b.number} == {f"{prefix}0001", f"{prefix}0002"}

    def test_stale_read_is_retried_with_fresh_number(self, db_session, customer, consumer, make_sale, monkeypatch):
        """
        Simula que la segunda operación leyó el máximo antes de que la primera
        confirmara: obtiene 0001, choca con la restricción única y se reintenta.
        """
        sale_a = make_sale(customer, "500.00")
        sale_b = make_sale(consumer, "300.00")
        service = ReceiptService(db_session)
        service.create_receipt(_cash_receipt(customer, sale_a, "500.00"))

        original = SequenceAllocator._current_max
        calls = {"count": 0}

        def stale_then_fresh(self, document_type, prefix):
            calls["count"] += 1
            if document_type == DocumentType.RECEIPT and calls["count"] == 1:
                return None
            return original(self, document_type, prefix)

        monkeypatch.setattr(SequenceAllocator, "_current_max", stale_then_fresh)
        receipt_b = service.create_receipt(_cash_receipt(consumer, sale_b, "300.00"))

        assert calls["count"] == 2
        assert receipt_b.number.endswith("-0002")
        # El reintento no duplicó efectos
        db_session.expire_all()
        sale_b = db_session.query(Sale).filter(Sale.id == sale_b.id).one()
        assert sale_b.outstanding_balance == Decimal("0.00")
        assert db_session.query(Receipt).count() == 2

    def test_retries_are_bounded(self, db_session, customer, consumer, make_sale, monkeypatch):
        sale_a = make_sale(customer, "500.00")
        sale_b = make_sale(consumer, "300.00")
        service = ReceiptService(db_session)
        service.create_receipt(_cash_receipt(customer, sale_a, "500.00"))

        monkeypatch.setattr(SequenceAllocator, "_current_max", lambda self, document_type, prefix: None)
        with pytest.raises(HTTPException) as exc_info:
            service.create_receipt(_cash_receipt(consumer, sale_b, "300.00"))

        assert exc_info.value.status_code == 500
        db_session.expire_all()
        assert db_session.query(Receipt).count() == 1
        assert db_session.query(Sale).filter(Sale.id == sale_b.id).one().outstanding_balance == Decimal("300.00")


class TestCollisionDetection:

    def _integrity_error(self, message):
        return IntegrityError("INSERT ...", {}, Exception(message))

    def test_detects_sqlite_number_collision(self):
        assert is_number_collision(self._integrity_error("UNIQUE constraint failed: receipts.number"))

    def test_detects_postgres_number_collision(self):
        assert is_number_collision(self._integrity_error(
            'duplicate key value violates unique constraint "uq_invoices_number"'
        ))

    def test_ignores_other_constraints(self):
        assert not is_number_collision(self._integrity_error(
            'duplicate key value violates unique constraint "uq_customers_document"'
        ))
        assert not is_number_collision(self._integrity_error("UNIQUE constraint failed: products.sku"))
