"""
Catálogo y stock.

StockService es la interfaz angosta que consumen las ventas y los remitos:
reserve al confirmar, release al anular y consume al entregar.
"""
from sqlalchemy.orm import Session
from sqlalchemy import or_
from decimal import Decimal
from typing import Iterable, Optional, Tuple
from uuid import UUID
import logging

from app.common.exceptions import ConflictError, NotFoundError, ValidationError
from app.common.transactions import transactional
from app.modules.catalog.models import Product, StockMovement, MovementType
from app.modules.catalog.schemas import ProductCreate, ProductUpdate, StockAdjustment

logger = logging.getLogger(__name__)

# (product_id, quantity)
StockLine = Tuple[Optional[UUID], Decimal]


class ProductService:

    def __init__(self, db: Session):
        self.db = db

    @transactional
    def create_product(self, data: ProductCreate) -> Product:
        if self.db.query(Product).filter(Product.sku == data.sku).first():
            raise ConflictError(f"Ya existe un producto con SKU {data.sku}")
        product = Product(**data.model_dump())
        self.db.add(product)
        self.db.flush()
        return product

    @transactional
    def update_product(self, product_id: UUID, data: ProductUpdate) -> Product:
        product = self.get_product(product_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(product, field, value)
        self.db.flush()
        return product

    @transactional
    def adjust_stock(self, product_id: UUID, data: StockAdjustment, operator: Optional[str] = None) -> Product:
        """Ingreso o ajuste manual de existencias."""
        product = self.db.query(Product).filter(Product.id == product_id).with_for_update().first()
        if not product:
            raise NotFoundError("Producto no encontrado")
        new_quantity = product.stock_quantity + data.quantity
        if new_quantity < 0 and not product.allow_negative_stock:
            raise ValidationError("El ajuste dejaría el stock en negativo")
        product.stock_quantity = new_quantity
        self.db.add(StockMovement(
            product_id=product.id,
            movement_type=MovementType.IN.value,
            quantity=data.quantity,
            notes=data.notes,
            created_by=operator
        ))
        self.db.flush()
        return product

    def get_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Producto no encontrado")
        return product

    def list_products(self, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Product)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
        total = query.count()
        products = query.order_by(Product.name).offset(offset).limit(limit).all()
        return {"products": products, "total": total, "limit": limit, "offset": offset}


class StockService:
    """Reservas de stock. Corre siempre dentro de la transacción del documento."""

    def __init__(self, db: Session):
        self.db = db

    def _lock(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).with_for_update().first()
        if not product:
            raise NotFoundError(f"Producto {product_id} no encontrado")
        return product

    def _movement(self, product: Product, movement_type: MovementType, quantity: Decimal,
                  reference: str, operator: Optional[str]):
        self.db.add(StockMovement(
            product_id=product.id,
            movement_type=movement_type.value,
            quantity=quantity,
            reference=reference,
            created_by=operator
        ))

    def reserve(self, lines: Iterable[StockLine], reference: str, operator: Optional[str] = None):
        for product_id, quantity in lines:
            if product_id is None:
                continue  # Ítem libre, sin control de stock
            product = self._lock(product_id)
            if not product.is_active:
                raise ConflictError(f"El producto {product.sku} está inactivo")
            if product.available_quantity < quantity and not product.allow_negative_stock:
                raise ConflictError(
                    f"Stock insuficiente para {product.sku}: disponible {product.available_quantity}, "
                    f"requerido {quantity}"
                )
            product.reserved_quantity += quantity
            self._movement(product, MovementType.RESERVE, quantity, reference, operator)
        self.db.flush()
        logger.info(f"Stock reservado para {reference}")

    def release(self, lines: Iterable[StockLine], reference: str, operator: Optional[str] = None):
        for product_id, quantity in lines:
            if product_id is None:
                continue
            product = self._lock(product_id)
            product.reserved_quantity = max(Decimal("0"), product.reserved_quantity - quantity)
            self._movement(product, MovementType.RELEASE, quantity, reference, operator)
        self.db.flush()
        logger.info(f"Reserva de stock liberada para {reference}")

    def consume(self, lines: Iterable[Tuple[Optional[UUID], Decimal, Decimal]], reference: str,
                operator: Optional[str] = None):
        """
        Salida física: (product_id, reservado, entregado). Descuenta lo entregado
        del stock y libera la reserva completa.
        """
        for product_id, reserved, delivered in lines:
            if product_id is None:
                continue
            product = self._lock(product_id)
            product.reserved_quantity = max(Decimal("0"), product.reserved_quantity - reserved)
            product.stock_quantity -= delivered
            if delivered:
                self._movement(product, MovementType.OUT, delivered, reference, operator)
        self.db.flush()
        logger.info(f"Salida de stock registrada para {reference}")
