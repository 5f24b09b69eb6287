"""
Seed script: carga datos de demostración para desarrollo.

Qué crea:
- Productos con stock inicial.
- Clientes (responsables inscriptos y consumidores finales) con CUIT/DNI válidos.
- Ventas confirmadas que afectan stock y cuenta corriente.
- Recibos que cancelan parte de esas ventas.

Uso:
    python scripts/seed_demo_data.py --customers 20 --products 40 --sales 60

Solo para entornos de desarrollo.
"""

# Raíz del proyecto en sys.path para que `app.*` importe aunque cambie el CWD
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import date, timedelta
from decimal import Decimal

from fastapi import HTTPException

from app.database.database import SessionLocal
from app.common.immutability import register_immutability_listeners
from app.modules.catalog.schemas import ProductCreate
from app.modules.catalog.service import ProductService
from app.modules.customers.models import Customer, TaxCondition, DocumentType
from app.modules.customers.schemas import CustomerCreate
from app.modules.customers.service import CustomerService
from app.modules.sales.schemas import SaleCreate, SaleItemCreate
from app.modules.sales.service import SaleService
from app.modules.receipts.models import InstrumentType
from app.modules.receipts.schemas import ReceiptCreate, InstrumentCreate
from app.modules.receipts.service import ReceiptService

OPERATOR = "seed.demo"

PRODUCT_NAMES = [
    "Yerba mate", "Azúcar", "Harina 000", "Aceite girasol", "Arroz largo fino",
    "Fideos tirabuzón", "Café molido", "Leche larga vida", "Galletitas de agua", "Dulce de leche",
]
COMPANY_NAMES = ["Distribuidora", "Almacén", "Autoservicio", "Mayorista", "Kiosco"]
STREETS = ["Av. Belgrano", "San Martín", "Rivadavia", "Mitre", "Sarmiento", "Av. Corrientes"]


def pick(seq):
    return random.choice(seq)


def random_cuit(prefix: str) -> str:
    """CUIT con dígito verificador válido (reintenta si el resto da 10)."""
    multipliers = [5, 4, 3, 2, 7, 6, 5, 4, 3, 2]
    while True:
        base = prefix + f"{random.randint(10000000, 99999999)}"
        remainder = 11 - (sum(int(d) * m for d, m in zip(base, multipliers)) % 11)
        if remainder == 10:
            continue
        return base + str(0 if remainder == 11 else remainder)


def create_products(db, count: int):
    service = ProductService(db)
    products = []
    for i in range(count):
        data = ProductCreate(
            sku=f"DEMO-{i:04d}",
            name=f"{pick(PRODUCT_NAMES)} {random.choice(['500g', '1kg', '1L', 'x3'])}",
            unit_price=Decimal(random.randint(50, 3000)),
            stock_quantity=Decimal(random.randint(20, 300)),
        )
        try:
            products.append(service.create_product(data))
        except HTTPException:
            continue
    return products


def create_customers(db, count: int):
    service = CustomerService(db)
    customers = []
    for i in range(count):
        address = f"{pick(STREETS)} {random.randint(100, 4000)}, CABA"
        if i % 3 == 0:
            data = CustomerCreate(
                name=f"Consumidor {i:03d}",
                document_type=DocumentType.DNI,
                document_number=str(random.randint(20000000, 45000000)),
                tax_condition=TaxCondition.CONSUMIDOR_FINAL,
                address=address,
            )
        else:
            data = CustomerCreate(
                name=f"{pick(COMPANY_NAMES)} {i:03d} S.R.L.",
                document_type=DocumentType.CUIT,
                document_number=random_cuit("30"),
                tax_condition=TaxCondition.RESPONSABLE_INSCRIPTO,
                address=address,
                credit_limit=Decimal(random.choice([50000, 100000, 250000])),
                accepts_check=True,
            )
        try:
            customers.append(service.create_customer(data, OPERATOR))
        except HTTPException:
            continue
    return customers


def create_sales(db, customers, products, count: int):
    service = SaleService(db)
    sales = []
    for _ in range(count):
        items = [
            SaleItemCreate(product_id=product.id, quantity=Decimal(random.randint(1, 5)))
            for product in random.sample(products, k=min(len(products), random.randint(1, 4)))
        ]
        data = SaleCreate(
            customer_id=pick(customers).id,
            sale_date=date.today() - timedelta(days=random.randint(0, 120)),
            items=items,
        )
        try:
            sale = service.create_sale(data, OPERATOR)
            sales.append(service.confirm_sale(sale.id, OPERATOR))
        except HTTPException as e:
            print(f"  Venta omitida: {e.detail}")
    return sales


def create_receipts(db, sales, ratio: float):
    service = ReceiptService(db)
    created = 0
    for sale in sales:
        if random.random() > ratio:
            continue
        customer = db.get(Customer, sale.customer_id)
        amount = (sale.outstanding_balance * Decimal(random.choice(["0.5", "1"]))).quantize(Decimal("0.01"))
        if amount <= 0:
            continue
        data = ReceiptCreate(
            customer_id=customer.id,
            sale_ids=[sale.id],
            instruments=[InstrumentCreate(instrument_type=InstrumentType.CASH, amount=amount)],
            allow_partial=True,
        )
        try:
            service.create_receipt(data, OPERATOR)
            created += 1
        except HTTPException as e:
            print(f"  Recibo omitido: {e.detail}")
    return created


def main():
    parser = argparse.ArgumentParser(description="Carga datos de demostración")
    parser.add_argument("--customers", type=int, default=20)
    parser.add_argument("--products", type=int, default=40)
    parser.add_argument("--sales", type=int, default=60)
    parser.add_argument("--collected-ratio", type=float, default=0.5)
    args = parser.parse_args()

    register_immutability_listeners()
    db = SessionLocal()
    try:
        print("Creando productos...")
        products = create_products(db, args.products)
        print(f"Productos: {len(products)}")

        print("Creando clientes...")
        customers = create_customers(db, args.customers)
        print(f"Clientes: {len(customers)}")

        print("Creando ventas confirmadas...")
        sales = create_sales(db, customers, products, args.sales)
        print(f"Ventas: {len(sales)}")

        print("Creando recibos...")
        receipts = create_receipts(db, sales, args.collected_ratio)
        print(f"Recibos: {receipts}")

        print("\nSeed completado.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
