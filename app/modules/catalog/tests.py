"""
Tests para catálogo y stock
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError
from app.modules.catalog.models import StockMovement, MovementType
from app.modules.catalog.service import StockService


class TestStockService:

    def test_reserve_and_release(self, db_session, product):
        stock = StockService(db_session)
        stock.reserve([(product.id, Decimal("10")), (None, Decimal("99"))], "VTA-TEST-0001")
        assert product.reserved_quantity == Decimal("10")
        assert product.available_quantity == Decimal("40")

        stock.release([(product.id, Decimal("10"))], "VTA-TEST-0001")
        assert product.reserved_quantity == Decimal("0")

        kinds = [m.movement_type for m in db_session.query(StockMovement).order_by(StockMovement.created_at)]
        assert sorted(kinds) == sorted([MovementType.RESERVE.value, MovementType.RELEASE.value])

    def test_reserve_more_than_available(self, db_session, product):
        with pytest.raises(ConflictError):
            StockService(db_session).reserve([(product.id, Decimal("51"))], "VTA-TEST-0002")

    def test_negative_stock_allowed_per_product(self, db_session, product):
        product.allow_negative_stock = True
        StockService(db_session).reserve([(product.id, Decimal("60"))], "VTA-TEST-0003")
        assert product.available_quantity == Decimal("-10")

    def test_consume_releases_full_reservation(self, db_session, product):
        stock = StockService(db_session)
        stock.reserve([(product.id, Decimal("5"))], "VTA-TEST-0004")
        stock.consume([(product.id, Decimal("5"), Decimal("3"))], "REM-TEST-0001")

        assert product.stock_quantity == Decimal("47")
        assert product.reserved_quantity == Decimal("0")


class TestProductEndpoints:

    def test_create_and_adjust(self, client, auth_headers):
        payload = {"sku": "AZUCAR-1KG", "name": "Azúcar 1kg", "unit_price": "80.00", "stock_quantity": "10"}
        response = client.post("/products/", json=payload, headers=auth_headers("admin"))
        assert response.status_code == 201
        product_id = response.json()["id"]

        response = client.post(
            f"/products/{product_id}/stock-adjustments",
            json={"quantity": "15", "notes": "Ingreso de proveedor"},
            headers=auth_headers("admin"),
        )
        assert response.status_code == 200
        assert Decimal(response.json()["stock_quantity"]) == Decimal("25")
        assert Decimal(response.json()["available_quantity"]) == Decimal("25")

    def test_duplicate_sku(self, client, auth_headers, product):
        payload = {"sku": product.sku, "name": "Otra yerba", "unit_price": "90.00"}
        response = client.post("/products/", json=payload, headers=auth_headers("admin"))
        assert response.status_code == 409

    def test_adjustment_below_zero_is_rejected(self, client, auth_headers, product):
        response = client.post(
            f"/products/{product.id}/stock-adjustments", json={"quantity": "-60"}, headers=auth_headers("admin")
        )
        assert response.status_code == 400

    def test_seller_cannot_create_products(self, client, auth_headers):
        payload = {"sku": "CAFE-500", "name": "Café 500g", "unit_price": "150.00"}
        response = client.post("/products/", json=payload, headers=auth_headers("seller"))
        assert response.status_code == 403
