"""
Router para el módulo de Facturación (facturas y notas de crédito)
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.invoices.models import InvoiceKind, AuthorizationState
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceFromSales, InvoiceManualCreate, InvoiceUpdate, InvoiceVoidRequest,
    InvoiceOut, InvoiceDetail, InvoiceList, InvoiceVoidResult, InvoiceFilters, AuthorizationCheck
)
from app.modules.tax_authority.client import TaxAuthorityClient, get_tax_authority_client

router = APIRouter(prefix="/invoices", tags=["Invoices"])

BILLING_ROLES = ["owner", "admin", "accountant"]


@router.post("/from-sales", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice_from_sales(
    invoice_data: InvoiceFromSales,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(BILLING_ROLES + ["seller"]))
):
    """
    Crear una factura borrador agrupando ventas del mismo cliente

    - Las ventas no pueden estar canceladas ni en otra factura vigente
    - El tipo de comprobante (A/B/C) se deriva de las condiciones fiscales
    """
    return InvoiceService(db, tax_client).create_from_sales(invoice_data, operator.username)


@router.post("/", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_manual_invoice(
    invoice_data: InvoiceManualCreate,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Crear una factura borrador sin ventas asociadas. No impacta la cuenta corriente."""
    return InvoiceService(db, tax_client).create_manual(invoice_data, operator.username)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    customer_id: Optional[UUID] = Query(None),
    kind: Optional[InvoiceKind] = Query(None, description="invoice o credit_note"),
    authorization_state: Optional[AuthorizationState] = Query(None),
    date_from: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    search: Optional[str] = Query(None, description="Número, cliente o código de autorización"),
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    filters = InvoiceFilters(
        customer_id=customer_id,
        kind=kind,
        authorization_state=authorization_state,
        date_from=date_from,
        date_to=date_to,
        search=search
    )
    return InvoiceService(db, tax_client).list_invoices(filters, limit, offset)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return InvoiceService(db, tax_client).get_invoice(invoice_id)


@router.get("/{invoice_id}/credit-notes", response_model=List[InvoiceOut])
def list_credit_notes(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return InvoiceService(db, tax_client).get_credit_notes(invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: UUID,
    invoice_data: InvoiceUpdate,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Editar una factura en borrador. Autorizadas, rechazadas o con error no se editan."""
    return InvoiceService(db, tax_client).update_draft(invoice_id, invoice_data, operator.username)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """Eliminar un borrador o una factura rechazada. Las ventas vuelven a quedar sin facturar."""
    InvoiceService(db, tax_client).delete_draft(invoice_id)


@router.post("/{invoice_id}/authorize", response_model=InvoiceDetail)
def authorize_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Solicitar autorización fiscal

    - 409 si la factura no está en borrador o error
    - 502 con classification=rejected y el motivo del organismo si la rechaza
    - 502 con classification=error si la llamada no se completa; se puede reintentar
    """
    return InvoiceService(db, tax_client).authorize(invoice_id, operator.username)


@router.post("/{invoice_id}/void", response_model=InvoiceVoidResult)
def void_invoice(
    invoice_id: UUID,
    void_data: InvoiceVoidRequest,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Anular una factura autorizada emitiendo una nota de crédito

    - Sin **amount**: anulación total
    - Con **amount** menor al saldo acreditable: nota de crédito parcial
    - Si el organismo no autoriza la nota de crédito no se registra nada
    """
    return InvoiceService(db, tax_client).void(
        invoice_id, void_data.reason, void_data.amount, operator.username
    )


@router.get("/{invoice_id}/verify", response_model=AuthorizationCheck)
def verify_invoice_authorization(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    tax_client: TaxAuthorityClient = Depends(get_tax_authority_client),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    """Consultar al organismo si el código de autorización es válido."""
    return InvoiceService(db, tax_client).verify_authorization(invoice_id)
