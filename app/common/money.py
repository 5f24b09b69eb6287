"""
Redondeo monetario compartido por ventas, facturas y recibos.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # float -> str para no arrastrar el error binario
    return Decimal(str(value))


def money(value: Number) -> Decimal:
    """Redondea a 2 decimales con ROUND_HALF_UP."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Number, rate: Number) -> Decimal:
    """amount * rate / 100, redondeado."""
    return money(to_decimal(amount) * to_decimal(rate) / Decimal('100'))
