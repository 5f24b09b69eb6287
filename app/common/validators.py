"""
Validadores de identificación fiscal argentina
"""
import re

_CUIT_MULTIPLIERS = [5, 4, 3, 2, 7, 6, 5, 4, 3, 2]


def _digits(value: str) -> str:
    return re.sub(r'[\.\s\-]', '', value)


def validate_dni(dni: str) -> bool:
    """
    Valida DNI.
    - Entre 7 y 8 dígitos
    - Solo números
    """
    cleaned = _digits(dni)
    return cleaned.isdigit() and 7 <= len(cleaned) <= 8


def validate_cuit(cuit: str) -> bool:
    """
    Valida CUIT/CUIL.
    - 11 dígitos: prefijo (2) + número (8) + dígito verificador (1)
    - Formato aceptado: XX-XXXXXXXX-X o sin guiones
    - El dígito verificador se calcula con módulo 11
    """
    cleaned = _digits(cuit)

    if not cleaned.isdigit() or len(cleaned) != 11:
        return False

    suma = sum(int(d) * m for d, m in zip(cleaned[:10], _CUIT_MULTIPLIERS))
    resto = 11 - (suma % 11)

    if resto == 11:
        digito_calculado = 0
    elif resto == 10:
        # Combinación inválida; AFIP reasigna prefijo en estos casos
        return False
    else:
        digito_calculado = resto

    return int(cleaned[-1]) == digito_calculado


def format_cuit(cuit: str) -> str:
    """
    Formatea CUIT al formato estándar XX-XXXXXXXX-X
    """
    if not validate_cuit(cuit):
        return cuit  # Retorna sin cambios si no es válido

    cleaned = _digits(cuit)
    return f"{cleaned[:2]}-{cleaned[2:10]}-{cleaned[10]}"


def format_dni(dni: str) -> str:
    """
    Normaliza DNI quitando puntos y espacios
    """
    if not validate_dni(dni):
        return dni
    return _digits(dni)


def validate_reason(reason: str, min_length: int) -> str:
    """
    Valida motivos de anulación, cancelación y ajuste.
    Se exige un texto mínimo para la auditoría.
    """
    cleaned = (reason or "").strip()
    if len(cleaned) < min_length:
        raise ValueError(f"El motivo debe tener al menos {min_length} caracteres")
    return cleaned


def require_reason(reason: str) -> str:
    """validate_reason con el mínimo configurado; lanza ValidationError (400)."""
    from app.common.exceptions import ValidationError
    from app.core.config import settings
    try:
        return validate_reason(reason, settings.MIN_REASON_LENGTH)
    except ValueError as e:
        raise ValidationError(str(e))
