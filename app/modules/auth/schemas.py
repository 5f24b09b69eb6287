from pydantic import BaseModel
from typing import Optional


class OperatorContext(BaseModel):
    """Operador autenticado, extraído del token emitido por el servicio de identidad."""
    username: str
    role: str
    display_name: Optional[str] = None
