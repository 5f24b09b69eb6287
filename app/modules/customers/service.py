from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional
from uuid import UUID
import logging

from app.common.exceptions import ConflictError, NotFoundError
from app.common.transactions import transactional
from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)


class CustomerService:
    """Alta y mantenimiento de clientes. El saldo no se toca aquí."""

    def __init__(self, db: Session):
        self.db = db

    @transactional
    def create_customer(self, data: CustomerCreate, operator: Optional[str] = None) -> Customer:
        existing = self.db.query(Customer).filter(
            Customer.document_number == data.document_number
        ).first()
        if existing:
            raise ConflictError(f"Ya existe un cliente con el documento {data.document_number}")

        customer = Customer(
            **data.model_dump(),
            balance=0,
            created_by=operator,
        )
        self.db.add(customer)
        self.db.flush()
        logger.info(f"Cliente creado: {customer.name} ({customer.document_number})")
        return customer

    @transactional
    def update_customer(self, customer_id: UUID, data: CustomerUpdate, operator: Optional[str] = None) -> Customer:
        customer = self.get_customer(customer_id)
        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(customer, field, value)
        customer.updated_by = operator
        self.db.flush()
        return customer

    def get_customer(self, customer_id: UUID, for_update: bool = False) -> Customer:
        query = self.db.query(Customer).filter(Customer.id == customer_id)
        if for_update:
            query = query.with_for_update()
        customer = query.first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")
        return customer

    def list_customers(self, search: Optional[str] = None, is_active: Optional[bool] = None,
                       limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Customer)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Customer.name.ilike(term),
                Customer.document_number.ilike(term),
                Customer.email.ilike(term)
            ))
        if is_active is not None:
            query = query.filter(Customer.is_active == is_active)

        total = query.count()
        customers = query.order_by(Customer.name).offset(offset).limit(limit).all()
        return {"customers": customers, "total": total, "limit": limit, "offset": offset}
