"""
Módulo de Facturación (Invoices)

Facturas y notas de crédito frente al organismo fiscal:

- Facturas agrupadas desde una o varias ventas del mismo cliente
- Facturas manuales sin venta asociada
- Tipo de comprobante (A/B/C) derivado de las condiciones fiscales
- Autorización externa (código + vencimiento); nunca se reintenta sola
- Anulación total o parcial mediante nota de crédito autorizada

Estados de autorización:
- draft: Borrador, editable
- authorized: Autorizada; importes e ítems inmutables
- rejected: Rechazada por el organismo (motivo literal)
- error: La llamada no se completó; el operador decide si reintentar
- voided: Totalmente acreditada por notas de crédito

Tablas principales:
- invoices: Facturas y notas de crédito
- invoice_items: Ítems con alícuota de IVA
- invoice_sales: Relación N:M con ventas
"""
