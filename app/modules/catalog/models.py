from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.common.mixins import BaseMixin
import enum


class MovementType(str, enum.Enum):
    RESERVE = "reserve"    # Reserva al confirmar venta
    RELEASE = "release"    # Liberación al anular venta
    OUT = "out"            # Salida física al entregar
    IN = "in"              # Ingreso / ajuste positivo


class Product(Base, BaseMixin):
    __tablename__ = "products"

    sku = Column(String(50), nullable=False)
    name = Column(String(150), nullable=False)
    description = Column(String(255), nullable=True)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)
    stock_quantity = Column(Numeric(12, 2), nullable=False, default=0)
    reserved_quantity = Column(Numeric(12, 2), nullable=False, default=0)
    allow_negative_stock = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    movements = relationship("StockMovement", back_populates="product")

    __table_args__ = (
        UniqueConstraint("sku", name="uq_products_sku"),
    )

    @property
    def available_quantity(self):
        return (self.stock_quantity or 0) - (self.reserved_quantity or 0)


class StockMovement(Base, BaseMixin):
    __tablename__ = "stock_movements"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    movement_type = Column(String(20), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    reference = Column(String(100), nullable=True)  # Número de venta / remito
    notes = Column(String(255), nullable=True)
    created_by = Column(String(100), nullable=True)

    product = relationship("Product", back_populates="movements")
