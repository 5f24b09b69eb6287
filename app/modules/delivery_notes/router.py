"""
Router para el módulo de Remitos
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.delivery_notes.models import DeliveryStatus
from app.modules.delivery_notes.service import DeliveryNoteService
from app.modules.delivery_notes.schemas import (
    DeliveryNoteCreate, DeliveryStatusChange, DeliveredQuantitiesUpdate,
    DeliveryNoteDetail, DeliveryNoteList, DeliveryNoteStats
)

router = APIRouter(prefix="/delivery-notes", tags=["Delivery Notes"])

LOGISTICS_ROLES = ["owner", "admin", "seller"]


@router.post("/", response_model=DeliveryNoteDetail, status_code=status.HTTP_201_CREATED)
def generate_delivery_note(
    note_data: DeliveryNoteCreate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(LOGISTICS_ROLES))
):
    """
    Generar el remito de una venta confirmada

    - Las cantidades solicitadas se copian de la venta
    - 409 si la venta ya tiene un remito no cancelado
    """
    return DeliveryNoteService(db).generate_from_sale(note_data, operator.username)


@router.get("/", response_model=DeliveryNoteList)
def list_delivery_notes(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    sale_id: Optional[UUID] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    status: Optional[DeliveryStatus] = Query(None),
    search: Optional[str] = Query(None, description="Número, dirección o transportista"),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return DeliveryNoteService(db).list_delivery_notes(sale_id, customer_id, status, search, limit, offset)


@router.get("/stats", response_model=DeliveryNoteStats)
def delivery_note_stats(
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    """Cantidad de remitos por estado."""
    return DeliveryNoteService(db).get_stats()


@router.get("/{delivery_note_id}", response_model=DeliveryNoteDetail)
def get_delivery_note(
    delivery_note_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return DeliveryNoteService(db).get_delivery_note(delivery_note_id)


@router.post("/{delivery_note_id}/status", response_model=DeliveryNoteDetail)
def change_delivery_status(
    delivery_note_id: UUID,
    status_data: DeliveryStatusChange,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(LOGISTICS_ROLES))
):
    """
    Cambiar el estado del remito

    Transiciones: pending → in_transit | cancelled; in_transit → delivered |
    returned | cancelled; returned → pending.
    - **delivered** requiere receiver_name
    - **cancelled** requiere reason y libera la venta para un remito nuevo
    """
    return DeliveryNoteService(db).change_status(delivery_note_id, status_data, operator.username)


@router.put("/{delivery_note_id}/delivered-quantities", response_model=DeliveryNoteDetail)
def update_delivered_quantities(
    delivery_note_id: UUID,
    quantities: DeliveredQuantitiesUpdate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(LOGISTICS_ROLES))
):
    """Registrar entrega parcial. No cambia el estado del remito."""
    return DeliveryNoteService(db).update_delivered_quantities(delivery_note_id, quantities, operator.username)
