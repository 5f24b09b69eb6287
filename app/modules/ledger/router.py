"""
Router de cuenta corriente de clientes
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.ledger.models import EntryType
from app.modules.ledger.service import LedgerService
from app.modules.ledger.schemas import (
    LedgerEntryOut, LedgerStatement, LedgerSummary, AgingReport, AdjustmentCreate, AdjustmentVoid
)

router = APIRouter(prefix="/customers/{customer_id}/ledger", tags=["Ledger"])


@router.get("/", response_model=LedgerStatement)
def get_statement(
    customer_id: UUID,
    date_from: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    entry_type: Optional[EntryType] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    """Movimientos de la cuenta corriente, incluidos los anulados y sus contraasientos."""
    return LedgerService(db).list_entries(customer_id, date_from, date_to, entry_type, limit, offset)


@router.get("/summary", response_model=LedgerSummary)
def get_summary(
    customer_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    """
    Estado de crédito del cliente

    Umbrales: attention desde 60%, near_limit desde 80%, over_limit desde 100%.
    Es informativo: ninguna operación se bloquea por límite de crédito.
    """
    return LedgerService(db).summary(customer_id)


@router.get("/aging", response_model=AgingReport)
def get_aging(
    customer_id: UUID,
    as_of: Optional[date] = Query(None, description="Fecha de corte; por defecto hoy"),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return LedgerService(db).aging(customer_id, as_of)


@router.post("/adjustments", response_model=LedgerEntryOut, status_code=status.HTTP_201_CREATED)
def create_adjustment(
    customer_id: UUID,
    adjustment: AdjustmentCreate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "accountant"]))
):
    """
    Ajuste manual de cuenta corriente

    - **charge**: aumenta la deuda (debe)
    - **discount**: reduce la deuda (haber)
    """
    return LedgerService(db).create_adjustment(
        customer_id, adjustment.kind, adjustment.amount, adjustment.concept, operator.username
    )


@router.post("/adjustments/{entry_id}/void", response_model=LedgerEntryOut)
def void_adjustment(
    customer_id: UUID,
    entry_id: UUID,
    void_data: AdjustmentVoid,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "accountant"]))
):
    """Anular un ajuste manual. Devuelve el contraasiento."""
    return LedgerService(db).void_adjustment(customer_id, entry_id, void_data.reason, operator.username)


@router.get("/verify")
def verify_balance(
    customer_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "accountant"]))
):
    """Recalcular el saldo desde los asientos vigentes y compararlo con el materializado."""
    balance = LedgerService(db).verify_balance(customer_id)
    return {"customer_id": customer_id, "balance": balance, "consistent": True}
