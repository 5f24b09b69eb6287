"""
Router para el módulo de Ventas
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.sales.models import ConfirmationState, CollectionState, DeliveryState
from app.modules.sales.service import SaleService
from app.modules.sales.schemas import (
    SaleCreate, SaleUpdate, SaleCancelRequest, SaleDetail, SaleList, SaleFilters
)

router = APIRouter(
    prefix="/sales",
    tags=["Sales"],
    responses={404: {"description": "Not found"}}
)

SALES_ROLES = ["owner", "admin", "seller"]


@router.post("/", response_model=SaleDetail, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """
    Crear una venta en borrador

    - Sin efecto en cuenta corriente ni stock hasta confirmarla
    - Precio y descripción se toman del producto si no se informan
    - **applies_tax**: aplica IVA a la alícuota por defecto sobre el neto
    """
    return SaleService(db).create_sale(sale_data, operator.username)


@router.get("/", response_model=SaleList)
def list_sales(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    customer_id: Optional[UUID] = Query(None),
    confirmation_state: Optional[ConfirmationState] = Query(None),
    collection_state: Optional[CollectionState] = Query(None),
    delivery_state: Optional[DeliveryState] = Query(None),
    invoiced: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    search: Optional[str] = Query(None, description="Número o notas"),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    filters = SaleFilters(
        customer_id=customer_id,
        confirmation_state=confirmation_state,
        collection_state=collection_state,
        delivery_state=delivery_state,
        invoiced=invoiced,
        date_from=date_from,
        date_to=date_to,
        search=search
    )
    return SaleService(db).list_sales(filters, limit, offset)


@router.get("/{sale_id}", response_model=SaleDetail)
def get_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return SaleService(db).get_sale(sale_id)


@router.patch("/{sale_id}", response_model=SaleDetail)
def update_sale(
    sale_id: UUID,
    sale_data: SaleUpdate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """Modificar un borrador. Recalcula los totales."""
    return SaleService(db).update_sale(sale_id, sale_data, operator.username)


@router.delete("/{sale_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """Descartar un borrador sin cobros ni factura."""
    SaleService(db).delete_sale(sale_id)


@router.post("/{sale_id}/confirm", response_model=SaleDetail)
def confirm_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(SALES_ROLES))
):
    """
    Confirmar la venta

    Reserva stock y registra el debe por el total en la cuenta corriente.
    Con cobro anticipado la venta debe estar cobrada.
    """
    return SaleService(db).confirm_sale(sale_id, operator.username)


@router.post("/{sale_id}/cancel", response_model=SaleDetail)
def cancel_sale(
    sale_id: UUID,
    cancel_data: SaleCancelRequest,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    """
    Cancelar la venta

    - 409 si fue entregada, tiene cobros o está en una factura vigente
    - Cancela el remito pendiente o devuelto; uno en tránsito bloquea
    - Si estaba confirmada revierte el debe y libera el stock
    """
    return SaleService(db).cancel_sale(sale_id, cancel_data.reason, operator.username)
