"""
Router para el módulo de Clientes
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.customers.service import CustomerService
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate, CustomerOut, CustomerList

router = APIRouter(
    prefix="/customers",
    tags=["Customers"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(
    customer_data: CustomerCreate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "seller"]))
):
    """
    Crear un nuevo cliente

    - **document_number**: único; CUIT/CUIL se valida con dígito verificador
    - **tax_condition**: determina el tipo de comprobante (A/B/C)
    - **credit_limit**: solo informativo, nunca bloquea operaciones
    """
    return CustomerService(db).create_customer(customer_data, operator.username)


@router.get("/", response_model=CustomerList)
def list_customers(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Búsqueda por nombre, documento o email"),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return CustomerService(db).list_customers(search, is_active, limit, offset)


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return CustomerService(db).get_customer(customer_id)


@router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: UUID,
    customer_data: CustomerUpdate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin", "seller"]))
):
    """Actualizar datos del cliente. El saldo solo cambia a través de la cuenta corriente."""
    return CustomerService(db).update_customer(customer_id, customer_data, operator.username)
