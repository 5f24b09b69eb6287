"""
Tests para el módulo de Remitos

- Un solo remito vigente por venta
- Máquina de estados y efectos sobre la venta
- Entregas parciales
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError, ValidationError
from app.modules.delivery_notes.models import DeliveryNote, DeliveryStatus, TRANSITIONS
from app.modules.delivery_notes.schemas import (
    DeliveryNoteCreate, DeliveryStatusChange, DeliveredQuantity, DeliveredQuantitiesUpdate
)
from app.modules.delivery_notes.service import DeliveryNoteService
from app.modules.sales.models import DeliveryState


# ===== FIXTURES =====

@pytest.fixture
def notes(db_session):
    return DeliveryNoteService(db_session)


@pytest.fixture
def confirmed_sale(customer, product, make_sale):
    """Venta confirmada de 5 unidades de yerba."""
    return make_sale(customer, "500.00", product=product, quantity="5")


def _move(service, note, status, **kwargs):
    return service.change_status(note.id, DeliveryStatusChange(status=status, **kwargs), "logistica.test")


# ===== GENERACIÓN =====

class TestGeneration:

    def test_generate_from_confirmed_sale(self, db_session, customer, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id, courier="Transporte Sur"))

        assert note.status == DeliveryStatus.PENDING
        assert note.number.startswith("REM-")
        assert note.delivery_address == customer.address
        assert note.customer_id == customer.id
        assert len(note.items) == 1
        assert note.items[0].quantity_requested == Decimal("5")
        assert note.items[0].quantity_delivered == Decimal("5")
        assert note.is_partial is False

        db_session.refresh(confirmed_sale)
        assert confirmed_sale.delivery_state == DeliveryState.DELIVERY_NOTE_ISSUED
        assert confirmed_sale.delivery_note_id == note.id

    def test_one_live_note_per_sale(self, db_session, confirmed_sale, notes):
        """Segundo remito rechazado; al cancelar el primero se puede generar otro."""
        first = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        with pytest.raises(ConflictError):
            notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))

        _move(notes, first, DeliveryStatus.CANCELLED, reason="Dirección de entrega equivocada")
        db_session.refresh(confirmed_sale)
        assert confirmed_sale.delivery_state == DeliveryState.NO_DELIVERY_NOTE

        second = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        assert second.number != first.number
        db_session.refresh(confirmed_sale)
        assert confirmed_sale.delivery_note_id == second.id

    def test_draft_sale_is_rejected(self, customer, make_sale, notes):
        sale = make_sale(customer, "100.00", confirm=False)
        with pytest.raises(ConflictError):
            notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))

    def test_address_is_required(self, db_session, customer, make_sale, notes):
        customer.address = None
        db_session.commit()
        sale = make_sale(customer, "100.00")

        with pytest.raises(ValidationError):
            notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))

        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id, delivery_address="Ruta 8 km 50"))
        assert note.delivery_address == "Ruta 8 km 50"


# ===== ESTADOS =====

class TestStatusTransitions:

    def test_transition_table(self):
        assert TRANSITIONS[DeliveryStatus.DELIVERED] == set()
        assert TRANSITIONS[DeliveryStatus.CANCELLED] == set()
        assert TRANSITIONS[DeliveryStatus.RETURNED] == {DeliveryStatus.PENDING}

    def test_illegal_transition_is_rejected(self, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        with pytest.raises(ConflictError):
            _move(notes, note, DeliveryStatus.DELIVERED, receiver_name="Ana Gómez")

    def test_delivered_requires_receiver(self, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        _move(notes, note, DeliveryStatus.IN_TRANSIT)
        with pytest.raises(ValidationError):
            _move(notes, note, DeliveryStatus.DELIVERED, receiver_name="  ")

    def test_delivered_stamps_sale_and_consumes_stock(self, db_session, confirmed_sale, product, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        in_transit = _move(notes, note, DeliveryStatus.IN_TRANSIT)
        assert in_transit.dispatched_at is not None

        delivered = _move(notes, note, DeliveryStatus.DELIVERED, receiver_name="Ana Gómez", receiver_document="28999111")

        assert delivered.status == DeliveryStatus.DELIVERED
        assert delivered.receiver_name == "Ana Gómez"
        assert delivered.delivered_at is not None
        db_session.refresh(confirmed_sale)
        assert confirmed_sale.delivery_state == DeliveryState.DELIVERED
        assert confirmed_sale.delivered_at is not None
        db_session.refresh(product)
        assert product.stock_quantity == Decimal("45")
        assert product.reserved_quantity == Decimal("0")

        with pytest.raises(ConflictError):
            _move(notes, note, DeliveryStatus.CANCELLED, reason="Intento de cancelar lo entregado")

    def test_returned_goes_back_to_pending(self, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        _move(notes, note, DeliveryStatus.IN_TRANSIT)
        returned = _move(notes, note, DeliveryStatus.RETURNED, notes="Cliente ausente")
        assert returned.returned_at is not None
        assert returned.notes == "Cliente ausente"

        pending = _move(notes, note, DeliveryStatus.PENDING)
        assert pending.status == DeliveryStatus.PENDING

    def test_cancel_requires_reason(self, db_session, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        with pytest.raises(ValidationError):
            _move(notes, note, DeliveryStatus.CANCELLED, reason="no")

        db_session.expire_all()
        assert db_session.query(DeliveryNote).one().status == DeliveryStatus.PENDING

    def test_cancelled_note_keeps_reason(self, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        cancelled = _move(notes, note, DeliveryStatus.CANCELLED, reason="Cliente reprogramó la compra")
        assert cancelled.cancellation_reason == "Cliente reprogramó la compra"
        assert cancelled.cancelled_at is not None


# ===== ENTREGAS PARCIALES =====

class TestDeliveredQuantities:

    def test_partial_delivery(self, db_session, confirmed_sale, product, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        item = note.items[0]

        updated = notes.update_delivered_quantities(note.id, DeliveredQuantitiesUpdate(
            items=[DeliveredQuantity(item_id=item.id, quantity_delivered=Decimal("3"))]
        ))
        assert updated.is_partial is True

        _move(notes, note, DeliveryStatus.IN_TRANSIT)
        _move(notes, note, DeliveryStatus.DELIVERED, receiver_name="Ana Gómez")
        db_session.refresh(product)
        assert product.stock_quantity == Decimal("47")
        assert product.reserved_quantity == Decimal("0")

    def test_quantity_above_requested_is_rejected(self, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        with pytest.raises(ValidationError):
            notes.update_delivered_quantities(note.id, DeliveredQuantitiesUpdate(
                items=[DeliveredQuantity(item_id=note.items[0].id, quantity_delivered=Decimal("6"))]
            ))

    def test_closed_note_cannot_be_adjusted(self, confirmed_sale, notes):
        note = notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        _move(notes, note, DeliveryStatus.CANCELLED, reason="Cliente reprogramó la compra")
        with pytest.raises(ConflictError):
            notes.update_delivered_quantities(note.id, DeliveredQuantitiesUpdate(
                items=[DeliveredQuantity(item_id=note.items[0].id, quantity_delivered=Decimal("1"))]
            ))


# ===== CONSULTAS Y ENDPOINTS =====

class TestDeliveryNoteEndpoints:

    def test_stats(self, customer, make_sale, notes):
        for _ in range(2):
            sale = make_sale(customer, "100.00")
            notes.generate_from_sale(DeliveryNoteCreate(sale_id=sale.id))
        stats = notes.get_stats()
        assert stats["by_status"]["pending"] == 2
        assert stats["by_status"]["delivered"] == 0
        assert stats["total"] == 2

    def test_full_flow_through_api(self, client, auth_headers, confirmed_sale):
        headers = auth_headers("seller")
        response = client.post("/delivery-notes/", json={"sale_id": str(confirmed_sale.id)}, headers=headers)
        assert response.status_code == 201
        note_id = response.json()["id"]

        response = client.post(f"/delivery-notes/{note_id}/status", json={"status": "in_transit"}, headers=headers)
        assert response.status_code == 200

        response = client.post(
            f"/delivery-notes/{note_id}/status",
            json={"status": "delivered", "receiver_name": "Ana Gómez"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "delivered"

        response = client.get(f"/sales/{confirmed_sale.id}", headers=auth_headers("viewer"))
        assert response.json()["delivery_state"] == "delivered"

        response = client.get("/delivery-notes/stats", headers=auth_headers("viewer"))
        assert response.json()["by_status"]["delivered"] == 1

    def test_duplicate_returns_409(self, client, auth_headers, confirmed_sale):
        headers = auth_headers("seller")
        client.post("/delivery-notes/", json={"sale_id": str(confirmed_sale.id)}, headers=headers)
        response = client.post("/delivery-notes/", json={"sale_id": str(confirmed_sale.id)}, headers=headers)
        assert response.status_code == 409

    def test_list_by_sale(self, client, auth_headers, confirmed_sale, notes):
        notes.generate_from_sale(DeliveryNoteCreate(sale_id=confirmed_sale.id))
        response = client.get(
            "/delivery-notes/", params={"sale_id": str(confirmed_sale.id)}, headers=auth_headers("viewer")
        )
        assert response.status_code == 200
        assert response.json()["total"] == 1
