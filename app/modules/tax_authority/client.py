"""
Cliente del servicio de autorización fiscal.

La llamada es síncrona, tiene su propio timeout y no es idempotente: nunca
se reintenta automáticamente. Un rechazo vuelve como AuthorizationResult con
authorized=False; si la llamada no se completa se lanza
TaxAuthorityUnavailable.
"""
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Optional
import hashlib
import logging
import threading

import httpx
from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.modules.tax_authority.schemas import VoucherSnapshot, AuthorizationResult

logger = logging.getLogger(__name__)


class TaxAuthorityUnavailable(Exception):
    """
    Timeout, error de transporte o respuesta ilegible: no se sabe si el
    organismo registró el pedido.
    """


def ensure_authorization_artifacts(result: AuthorizationResult) -> AuthorizationResult:
    """Una aprobación sin código o sin vencimiento no sirve como autorización."""
    if result.authorized and not (result.code and result.expires_on):
        raise TaxAuthorityUnavailable("Autorización informada sin código o sin fecha de vencimiento")
    return result


class TaxAuthorityClient(ABC):

    @abstractmethod
    def authorize(self, snapshot: VoucherSnapshot) -> AuthorizationResult:
        ...

    @abstractmethod
    def verify(self, voucher_type: str, voucher_number: str, code: str) -> bool:
        ...


class HttpTaxAuthorityClient(TaxAuthorityClient):
    """Gateway HTTP hacia el organismo (o el middleware que lo encapsula)."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.base_url = (base_url or settings.TAX_AUTHORITY_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.TAX_AUTHORITY_API_KEY
        self.timeout = timeout or settings.TAX_AUTHORITY_TIMEOUT_SECONDS

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def authorize(self, snapshot: VoucherSnapshot) -> AuthorizationResult:
        url = f"{self.base_url}/vouchers/authorize"
        try:
            response = httpx.post(
                url,
                json=snapshot.model_dump(mode="json"),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout autorizando {snapshot.internal_number}: {e}")
            raise TaxAuthorityUnavailable(f"Timeout del servicio de autorización: {e}")
        except httpx.RequestError as e:
            logger.error(f"Error de conexión autorizando {snapshot.internal_number}: {e}")
            raise TaxAuthorityUnavailable(f"No se pudo contactar al servicio de autorización: {e}")

        if response.status_code >= 500:
            raise TaxAuthorityUnavailable(
                f"El servicio de autorización respondió {response.status_code}: {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError:
            raise TaxAuthorityUnavailable("Respuesta ilegible del servicio de autorización")
        if not isinstance(payload, dict):
            raise TaxAuthorityUnavailable(
                f"Respuesta inesperada del servicio de autorización: {response.text[:200]}"
            )

        if response.status_code >= 400 and "authorized" not in payload:
            return AuthorizationResult(
                authorized=False,
                reason=str(payload.get("reason") or payload.get("detail") or response.text[:255])
            )
        try:
            result = AuthorizationResult(**payload)
        except SchemaValidationError as e:
            logger.error(f"Respuesta inválida autorizando {snapshot.internal_number}: {e}")
            raise TaxAuthorityUnavailable("Respuesta inválida del servicio de autorización")
        return ensure_authorization_artifacts(result)

    def verify(self, voucher_type: str, voucher_number: str, code: str) -> bool:
        url = f"{self.base_url}/vouchers/verify"
        try:
            response = httpx.get(
                url,
                params={"voucher_type": voucher_type, "voucher_number": voucher_number, "code": code},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TaxAuthorityUnavailable(f"El servicio de autorización respondió {e.response.status_code}")
        except httpx.RequestError as e:
            raise TaxAuthorityUnavailable(f"No se pudo contactar al servicio de autorización: {e}")
        return bool(response.json().get("valid"))


class SandboxTaxAuthorityClient(TaxAuthorityClient):
    """
    Autorización local determinística para desarrollo: aprueba todo
    comprobante con total positivo y deriva el código del número interno.
    """

    def __init__(self):
        self._sequence = {}
        self._lock = threading.Lock()

    @staticmethod
    def _code_for(internal_number: str) -> str:
        digest = hashlib.sha256(internal_number.encode()).hexdigest()
        return str(int(digest[:16], 16))[:14].rjust(14, "0")

    def authorize(self, snapshot: VoucherSnapshot) -> AuthorizationResult:
        if snapshot.total <= 0:
            return AuthorizationResult(authorized=False, reason="El importe total debe ser mayor a cero")
        key = (snapshot.voucher_type, snapshot.point_of_sale)
        # Los endpoints sync corren en el threadpool
        with self._lock:
            sequence = self._sequence.get(key, 0) + 1
            self._sequence[key] = sequence
        return AuthorizationResult(
            authorized=True,
            code=self._code_for(snapshot.internal_number),
            expires_on=date.today() + timedelta(days=settings.AUTHORIZATION_VALIDITY_DAYS),
            voucher_number=f"{snapshot.point_of_sale:05d}-{sequence:08d}",
        )

    def verify(self, voucher_type: str, voucher_number: str, code: str) -> bool:
        return bool(code) and len(code) == 14


_sandbox = SandboxTaxAuthorityClient()


def get_tax_authority_client() -> TaxAuthorityClient:
    """Cliente según TAX_AUTHORITY_MODE. Se usa como dependencia de FastAPI."""
    if settings.TAX_AUTHORITY_MODE == "http":
        return HttpTaxAuthorityClient()
    return _sandbox
