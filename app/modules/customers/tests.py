"""
Tests para el módulo de Clientes

- Validación de CUIT/CUIL y DNI
- Alta, duplicados y búsquedas
- El saldo no se modifica desde el ABM
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError as SchemaValidationError

from app.common.validators import validate_cuit, validate_dni, format_cuit, validate_reason
from app.modules.customers.models import TaxCondition, DocumentType
from app.modules.customers.schemas import CustomerCreate


# ===== FIXTURES =====

@pytest.fixture
def company_data():
    """Responsable inscripto con CUIT válido"""
    return {
        "name": "Almacén La Esquina S.R.L.",
        "document_type": "CUIT",
        "document_number": "30712345671",
        "tax_condition": "responsable_inscripto",
        "email": "Compras@LaEsquina.com.ar",
        "address": "San Martín 455, Córdoba",
        "credit_limit": "20000.00",
        "accepts_check": True,
    }


# ===== VALIDADORES =====

class TestDocumentValidators:

    def test_valid_cuit(self):
        assert validate_cuit("20123456786")
        assert validate_cuit("20-12345678-6")
        assert validate_cuit("27289991110")

    def test_invalid_cuit(self):
        assert not validate_cuit("20123456787")  # dígito verificador
        assert not validate_cuit("2012345678")   # largo
        assert not validate_cuit("20A23456786")

    def test_format_cuit(self):
        assert format_cuit("30712345671") == "30-71234567-1"
        assert format_cuit("123") == "123"

    def test_dni(self):
        assert validate_dni("30.111.222")
        assert validate_dni("1234567")
        assert not validate_dni("123456")

    def test_reason_min_length(self):
        assert validate_reason("  Motivo suficiente  ", 10) == "Motivo suficiente"
        with pytest.raises(ValueError):
            validate_reason("corto", 10)


class TestCustomerSchema:

    def test_cuit_is_formatted(self, company_data):
        customer = CustomerCreate(**company_data)
        assert customer.document_number == "30-71234567-1"
        assert customer.document_type == DocumentType.CUIT
        assert customer.email == "compras@laesquina.com.ar"

    def test_invalid_cuit_is_rejected(self, company_data):
        company_data["document_number"] = "30712345672"
        with pytest.raises(SchemaValidationError):
            CustomerCreate(**company_data)

    def test_responsable_inscripto_requires_cuit(self):
        with pytest.raises(SchemaValidationError):
            CustomerCreate(
                name="Kiosco Central",
                document_type="DNI",
                document_number="30111222",
                tax_condition=TaxCondition.RESPONSABLE_INSCRIPTO,
            )

    def test_negative_credit_limit_is_rejected(self, company_data):
        company_data["credit_limit"] = "-1"
        with pytest.raises(SchemaValidationError):
            CustomerCreate(**company_data)


# ===== ENDPOINTS =====

class TestCustomerEndpoints:

    def test_create_customer(self, client, auth_headers, company_data):
        response = client.post("/customers/", json=company_data, headers=auth_headers("seller"))

        assert response.status_code == 201
        data = response.json()
        assert data["document_number"] == "30-71234567-1"
        assert Decimal(data["balance"]) == Decimal("0")
        assert data["accepts_check"] is True
        assert data["is_active"] is True

    def test_duplicate_document_returns_409(self, client, auth_headers, company_data):
        client.post("/customers/", json=company_data, headers=auth_headers())
        response = client.post("/customers/", json=company_data, headers=auth_headers())
        assert response.status_code == 409

    def test_invalid_payload_returns_422(self, client, auth_headers, company_data):
        company_data["document_number"] = "30712345672"
        response = client.post("/customers/", json=company_data, headers=auth_headers())
        assert response.status_code == 422

    def test_viewer_cannot_create(self, client, auth_headers, company_data):
        response = client.post("/customers/", json=company_data, headers=auth_headers("viewer"))
        assert response.status_code == 403

    def test_update_does_not_touch_balance(self, client, auth_headers, customer, make_sale):
        make_sale(customer, "1000.00")

        response = client.patch(
            f"/customers/{customer.id}",
            json={"name": "Distribuidora del Sur S.A.U.", "balance": "0", "credit_limit": "8000"},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Distribuidora del Sur S.A.U."
        assert Decimal(data["credit_limit"]) == Decimal("8000")
        assert Decimal(data["balance"]) == Decimal("1000.00")

    def test_search(self, client, auth_headers, customer, consumer):
        response = client.get("/customers/", params={"search": "Distribuidora"}, headers=auth_headers("viewer"))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["customers"][0]["id"] == str(customer.id)

        response = client.get("/customers/", params={"search": "30111222"}, headers=auth_headers("viewer"))
        assert response.json()["customers"][0]["id"] == str(consumer.id)

    def test_unknown_customer_returns_404(self, client, auth_headers):
        response = client.get("/customers/00000000-0000-0000-0000-000000000000", headers=auth_headers())
        assert response.status_code == 404
