from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID


class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=255)
    unit_price: Decimal = Field(..., ge=0)
    stock_quantity: Decimal = Field(Decimal("0"), ge=0)
    allow_negative_stock: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=255)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    allow_negative_stock: Optional[bool] = None
    is_active: Optional[bool] = None


class StockAdjustment(BaseModel):
    quantity: Decimal = Field(..., description="Positivo para ingreso, negativo para ajuste a la baja")
    notes: Optional[str] = Field(None, max_length=255)


class ProductOut(BaseModel):
    id: UUID
    sku: str
    name: str
    description: Optional[str] = None
    unit_price: Decimal
    stock_quantity: Decimal
    reserved_quantity: Decimal
    available_quantity: Decimal
    allow_negative_stock: bool
    is_active: bool

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    products: List[ProductOut]
    total: int
    limit: int
    offset: int
