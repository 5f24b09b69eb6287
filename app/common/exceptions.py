"""
Errores de dominio.

Todos son HTTPException para que los servicios los lancen directamente y
FastAPI los convierta en respuestas sin traducción en los routers.
"""
from typing import Optional
from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Entrada faltante o mal formada. El motivo se devuelve tal cual."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    """Transición ilegal o estado incompatible; el cliente debe releer y reintentar."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ExternalServiceError(HTTPException):
    """
    Falla del servicio de autorización fiscal.

    classification distingue "rejected" (el organismo respondió que no) de
    "error" (la llamada no se completó). Con keep_changes=True la transacción
    que la lanza se confirma igual, para dejar registrado el rechazo o el error.
    """

    REJECTED = "rejected"
    ERROR = "error"

    def __init__(self, classification: str, reason: str, keep_changes: bool = False):
        self.classification = classification
        self.reason = reason
        self.keep_changes = keep_changes
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"classification": classification, "reason": reason}
        )


class IntegrityViolationError(HTTPException):
    """
    Un invariante contable se rompería. Se aborta la operación completa y el
    detalle queda solo en el log; el cliente recibe un mensaje genérico.
    """

    def __init__(self, internal_detail: str, detail: Optional[str] = None):
        self.internal_detail = internal_detail
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail or "Error interno de integridad; la operación no fue aplicada"
        )
