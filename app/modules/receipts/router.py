"""
Router para el módulo de Recibos
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.receipts.models import ReceiptStatus
from app.modules.receipts.service import ReceiptService
from app.modules.receipts.schemas import (
    ReceiptCreate, ReceiptVoidRequest, ReceiptCorrection, ReceiptDetail, ReceiptList
)

router = APIRouter(prefix="/receipts", tags=["Receipts"])

COLLECTION_ROLES = ["owner", "admin", "seller", "accountant"]


@router.post("/", response_model=ReceiptDetail, status_code=status.HTTP_201_CREATED)
def create_receipt(
    receipt_data: ReceiptCreate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(COLLECTION_ROLES))
):
    """
    Registrar un cobro

    - Imputa de la venta más antigua a la más nueva
    - El excedente se informa como vuelto
    - Con **allow_partial** acepta pagos menores al saldo (queda faltante)
    - Cheque: número, banco, titular y vencimiento; transferencia: operación
      y banco; tarjeta: tipo y autorización
    """
    return ReceiptService(db).create_receipt(receipt_data, operator.username)


@router.get("/", response_model=ReceiptList)
def list_receipts(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    customer_id: Optional[UUID] = Query(None),
    status: Optional[ReceiptStatus] = Query(None),
    date_from: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    search: Optional[str] = Query(None, description="Número o notas"),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return ReceiptService(db).list_receipts(customer_id, status, date_from, date_to, search, limit, offset)


@router.get("/customer/{customer_id}", response_model=ReceiptList)
def list_customer_receipts(
    customer_id: UUID,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return ReceiptService(db).list_customer_receipts(customer_id, limit, offset)


@router.get("/{receipt_id}", response_model=ReceiptDetail)
def get_receipt(
    receipt_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return ReceiptService(db).get_receipt(receipt_id)


@router.post("/{receipt_id}/void", response_model=ReceiptDetail)
def void_receipt(
    receipt_id: UUID,
    void_data: ReceiptVoidRequest,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "accountant"]))
):
    """Anular un recibo: restaura los saldos de las ventas y contraasienta la cuenta corriente."""
    return ReceiptService(db).void_receipt(receipt_id, void_data.reason, operator.username)


@router.post("/{receipt_id}/correct", response_model=ReceiptDetail)
def correct_receipt_amount(
    receipt_id: UUID,
    correction: ReceiptCorrection,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "accountant"]))
):
    """Corregir el importe cobrado de un recibo activo conservando su número e instrumentos."""
    return ReceiptService(db).correct_amount(receipt_id, correction, operator.username)
