"""
Fixtures compartidas.

La configuración se fija por variables de entorno antes de importar la
aplicación: base SQLite en memoria y servicio fiscal en modo sandbox.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["TAX_AUTHORITY_MODE"] = "sandbox"

import pytest
from datetime import date, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, SessionLocal, sync_engine
from app.modules.auth.utils import create_access_token
from app.modules.catalog.models import Product
from app.modules.customers.models import Customer, TaxCondition, DocumentType
from app.modules.sales.models import CollectionTiming
from app.modules.sales.schemas import SaleCreate, SaleItemCreate
from app.modules.sales.service import SaleService
from app.modules.tax_authority.client import (
    TaxAuthorityClient, TaxAuthorityUnavailable, get_tax_authority_client
)
from app.modules.tax_authority.schemas import AuthorizationResult


class FakeTaxAuthorityClient(TaxAuthorityClient):
    """Organismo fiscal controlable: approve, reject, timeout o incomplete (aprobado sin código)."""

    def __init__(self):
        self.mode = "approve"
        self.reason = "CUIT del receptor inexistente en el padrón"
        self.calls = []

    def authorize(self, snapshot):
        self.calls.append(snapshot)
        if self.mode == "timeout":
            raise TaxAuthorityUnavailable("Timeout del servicio de autorización")
        if self.mode == "reject":
            return AuthorizationResult(authorized=False, reason=self.reason)
        if self.mode == "incomplete":
            return AuthorizationResult(authorized=True)
        sequence = len(self.calls)
        return AuthorizationResult(
            authorized=True,
            code=f"7{sequence:013d}",
            expires_on=date.today() + timedelta(days=10),
            voucher_number=f"00001-{sequence:08d}",
        )

    def verify(self, voucher_type, voucher_number, code):
        return code.startswith("7")


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def tax_client():
    fake = FakeTaxAuthorityClient()
    app.dependency_overrides[get_tax_authority_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_tax_authority_client, None)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Headers con token para un rol dado (owner por defecto)."""
    def _headers(role: str = "owner", username: str = "operador.test"):
        token = create_access_token(username, role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def customer(db_session):
    """Responsable inscripto con límite de crédito de 5000."""
    customer = Customer(
        name="Distribuidora del Sur S.A.",
        document_type=DocumentType.CUIT,
        document_number="20123456786",
        tax_condition=TaxCondition.RESPONSABLE_INSCRIPTO,
        address="Av. Belgrano 1234, CABA",
        credit_limit=Decimal("5000.00"),
        accepts_cash=True,
        accepts_check=True,
        accepts_transfer=True,
        accepts_card=False,
        balance=Decimal("0"),
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def consumer(db_session):
    """Consumidor final sin límite de crédito."""
    consumer = Customer(
        name="Juan Pérez",
        document_type=DocumentType.DNI,
        document_number="30111222",
        tax_condition=TaxCondition.CONSUMIDOR_FINAL,
        address="Calle Falsa 123, Rosario",
        balance=Decimal("0"),
    )
    db_session.add(consumer)
    db_session.commit()
    return consumer


@pytest.fixture
def product(db_session):
    product = Product(
        sku="YERBA-1KG",
        name="Yerba mate 1kg",
        unit_price=Decimal("100.00"),
        stock_quantity=Decimal("50"),
        reserved_quantity=Decimal("0"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def make_sale(db_session):
    """
    Crea una venta de un único ítem libre (sin producto) por `total`.
    Sin IVA para que el total sea exacto.
    """
    def _make(customer, total="1000.00", sale_date=None, confirm=True,
              timing=CollectionTiming.DEFERRED, applies_tax=False, product=None, quantity="1"):
        service = SaleService(db_session)
        sale = service.create_sale(SaleCreate(
            customer_id=customer.id,
            sale_date=sale_date,
            collection_timing=timing,
            applies_tax=applies_tax,
            items=[SaleItemCreate(
                product_id=product.id if product else None,
                description="Mercadería varia" if product is None else None,
                quantity=Decimal(quantity),
                unit_price=Decimal(total) / Decimal(quantity),
            )],
        ), "vendedor.test")
        if confirm:
            sale = service.confirm_sale(sale.id, "vendedor.test")
        return sale
    return _make
