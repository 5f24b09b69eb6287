"""
Helper para cálculo de importes e IVA

El IVA se calcula por línea (redondeo por renglón) y el desglose por
alícuota suma los valores ya redondeados, de modo que venta, factura y nota
de crédito derivadas de los mismos renglones dan exactamente el mismo total.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple

from app.common.money import money, percent_of, to_decimal, ZERO

ALLOWED_VAT_RATES = [Decimal("0"), Decimal("2.5"), Decimal("5"), Decimal("10.5"), Decimal("21"), Decimal("27")]


class LineAmounts(NamedTuple):
    subtotal: Decimal        # cantidad * precio
    discount: Decimal
    net: Decimal             # subtotal - descuento
    vat: Decimal
    total: Decimal           # neto + IVA


class TaxBucket(NamedTuple):
    rate: Decimal
    base: Decimal
    amount: Decimal

    @property
    def gross(self) -> Decimal:
        return self.base + self.amount


class TaxCalculator:
    """Cálculos puros, sin acceso a base de datos."""

    @staticmethod
    def is_allowed_rate(rate) -> bool:
        return to_decimal(rate) in ALLOWED_VAT_RATES

    @staticmethod
    def calculate_line(quantity, unit_price, discount_percent=0, vat_rate=0) -> LineAmounts:
        subtotal = money(to_decimal(quantity) * to_decimal(unit_price))
        discount = percent_of(subtotal, discount_percent or 0)
        net = subtotal - discount
        vat = percent_of(net, vat_rate or 0)
        return LineAmounts(subtotal, discount, net, vat, net + vat)

    @staticmethod
    def group_taxes(lines: Iterable) -> List[TaxBucket]:
        """
        Agrupa líneas con atributos vat_rate, net_amount y vat_amount por alícuota.
        """
        buckets: Dict[Decimal, List[Decimal]] = {}
        for line in lines:
            rate = money(line.vat_rate)
            base, amount = buckets.setdefault(rate, [ZERO, ZERO])
            buckets[rate] = [base + to_decimal(line.net_amount), amount + to_decimal(line.vat_amount)]
        return [
            TaxBucket(rate, money(base), money(amount))
            for rate, (base, amount) in sorted(buckets.items())
        ]

    @staticmethod
    def scale_buckets(buckets: List[TaxBucket], amount: Decimal) -> List[TaxBucket]:
        """
        Reparte un importe bruto proporcionalmente entre las alícuotas.
        La suma de base + IVA de los tramos resultantes es exactamente `amount`;
        el último tramo absorbe la diferencia de redondeo.
        """
        amount = money(amount)
        total = sum((b.gross for b in buckets), ZERO)
        if total <= 0:
            return []

        scaled: List[TaxBucket] = []
        allocated = ZERO
        for index, bucket in enumerate(buckets):
            if index == len(buckets) - 1:
                gross = amount - allocated
            else:
                gross = money(bucket.gross * amount / total)
            allocated += gross
            base = money(gross * 100 / (100 + bucket.rate))
            scaled.append(TaxBucket(bucket.rate, base, gross - base))
        return scaled

    @staticmethod
    def serialize_buckets(buckets: List[TaxBucket]) -> List[dict]:
        return [
            {"rate": str(b.rate), "base": str(b.base), "amount": str(b.amount)}
            for b in buckets
        ]
