"""
Tests para el cliente del servicio de autorización fiscal

Las llamadas HTTP se reemplazan con monkeypatch sobre httpx.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import httpx

from app.modules.tax_authority.client import (
    HttpTaxAuthorityClient, SandboxTaxAuthorityClient, TaxAuthorityClient, TaxAuthorityUnavailable,
    ensure_authorization_artifacts
)
from app.modules.tax_authority.schemas import VoucherSnapshot, VoucherTax, AuthorizationResult


# ===== FIXTURES =====

@pytest.fixture
def snapshot():
    return VoucherSnapshot(
        internal_number="FAC-202405-0001",
        voucher_type="FACTURA_A",
        point_of_sale=1,
        issue_date=date(2024, 5, 10),
        issuer_tax_id="20000000001",
        issuer_tax_condition="responsable_inscripto",
        receiver_name="Distribuidora del Sur S.A.",
        receiver_document_type="CUIT",
        receiver_document_number="20123456786",
        receiver_tax_condition="responsable_inscripto",
        net_total=Decimal("100.00"),
        vat_total=Decimal("21.00"),
        total=Decimal("121.00"),
        taxes=[VoucherTax(rate=Decimal("21"), base=Decimal("100.00"), amount=Decimal("21.00"))],
        items=[],
    )


@pytest.fixture
def http_client():
    return HttpTaxAuthorityClient(base_url="http://autorizador.test/", api_key="clave", timeout=2)


def _respond(status_code, payload=None, text=None):
    request = httpx.Request("POST", "http://autorizador.test/vouchers/authorize")
    if payload is not None:
        return httpx.Response(status_code, json=payload, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


class TestHttpClient:

    def test_authorized(self, monkeypatch, http_client, snapshot):
        captured = {}

        def fake_post(url, json, headers, timeout):
            captured.update(url=url, json=json, headers=headers, timeout=timeout)
            return _respond(200, {
                "authorized": True, "code": "74123456789012",
                "expires_on": "2024-05-20", "voucher_number": "00001-00000042",
            })

        monkeypatch.setattr(httpx, "post", fake_post)
        result = http_client.authorize(snapshot)

        assert result.authorized is True
        assert result.code == "74123456789012"
        assert result.expires_on == date(2024, 5, 20)
        assert captured["url"] == "http://autorizador.test/vouchers/authorize"
        assert captured["headers"]["Authorization"] == "Bearer clave"
        assert captured["json"]["total"] == "121.00"
        assert captured["timeout"] == 2

    def test_rejection_with_reason(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: _respond(422, {"reason": "Receptor inexistente"}))
        result = http_client.authorize(snapshot)
        assert result.authorized is False
        assert result.reason == "Receptor inexistente"

    def test_explicit_rejection_body(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(
            httpx, "post", lambda *a, **kw: _respond(200, {"authorized": False, "reason": "Importe inválido"})
        )
        result = http_client.authorize(snapshot)
        assert result.authorized is False
        assert result.reason == "Importe inválido"

    def test_timeout_is_unavailable(self, monkeypatch, http_client, snapshot):
        def fake_post(*args, **kwargs):
            raise httpx.ReadTimeout("timed out")

        monkeypatch.setattr(httpx, "post", fake_post)
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_connection_error_is_unavailable(self, monkeypatch, http_client, snapshot):
        def fake_post(*args, **kwargs):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(httpx, "post", fake_post)
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_server_error_is_unavailable(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: _respond(503, text="Servicio en mantenimiento"))
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_unreadable_body_is_unavailable(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: _respond(200, text="<html>"))
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_approval_without_code_is_unavailable(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: _respond(200, {"authorized": True}))
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_non_mapping_body_is_unavailable(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: _respond(200, ["ok"]))
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_invalid_fields_are_unavailable(self, monkeypatch, http_client, snapshot):
        monkeypatch.setattr(httpx, "post", lambda *a, **kw: _respond(200, {
            "authorized": True, "code": "74123456789012", "expires_on": "mañana",
        }))
        with pytest.raises(TaxAuthorityUnavailable):
            http_client.authorize(snapshot)

    def test_verify(self, monkeypatch, http_client):
        request = httpx.Request("GET", "http://autorizador.test/vouchers/verify")
        monkeypatch.setattr(
            httpx, "get", lambda *a, **kw: httpx.Response(200, json={"valid": True}, request=request)
        )
        assert http_client.verify("FACTURA_A", "00001-00000042", "74123456789012") is True


class TestSandboxClient:

    def test_deterministic_code(self, snapshot):
        first = SandboxTaxAuthorityClient().authorize(snapshot)
        second = SandboxTaxAuthorityClient().authorize(snapshot)

        assert first.authorized is True
        assert first.code == second.code
        assert len(first.code) == 14
        assert first.voucher_number == "00001-00000001"

    def test_voucher_numbers_per_type(self, snapshot):
        sandbox = SandboxTaxAuthorityClient()
        sandbox.authorize(snapshot)
        assert sandbox.authorize(snapshot).voucher_number == "00001-00000002"
        credit_note = snapshot.model_copy(update={"voucher_type": "NOTA_CREDITO_A"})
        assert sandbox.authorize(credit_note).voucher_number == "00001-00000001"

    def test_rejects_zero_total(self, snapshot):
        result = SandboxTaxAuthorityClient().authorize(snapshot.model_copy(update={"total": Decimal("0")}))
        assert result.authorized is False

    def test_verify(self, snapshot):
        sandbox = SandboxTaxAuthorityClient()
        result = sandbox.authorize(snapshot)
        assert sandbox.verify("FACTURA_A", result.voucher_number, result.code)
        assert not sandbox.verify("FACTURA_A", result.voucher_number, "")

    def test_voucher_numbers_are_unique_across_threads(self, snapshot):
        sandbox = SandboxTaxAuthorityClient()
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: sandbox.authorize(snapshot), range(200)))

        numbers = {result.voucher_number for result in results}
        assert len(numbers) == 200
        assert "00001-00000200" in numbers


class TestClientInterface:

    def test_both_operations_are_required(self):
        class AuthorizeOnly(TaxAuthorityClient):
            def authorize(self, snapshot):
                return AuthorizationResult(authorized=False, reason="sin servicio")

        with pytest.raises(TypeError):
            AuthorizeOnly()

    def test_incomplete_approval_is_not_an_authorization(self):
        with pytest.raises(TaxAuthorityUnavailable):
            ensure_authorization_artifacts(AuthorizationResult(authorized=True, code="74123456789012"))
        rejected = AuthorizationResult(authorized=False, reason="Importe inválido")
        assert ensure_authorization_artifacts(rejected) is rejected
