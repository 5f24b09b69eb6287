from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, ALL_ROLES
from app.modules.catalog.service import ProductService
from app.modules.catalog.schemas import ProductCreate, ProductUpdate, ProductOut, ProductList, StockAdjustment

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    return ProductService(db).create_product(product_data)


@router.get("/", response_model=ProductList)
def list_products(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Buscar por nombre o SKU"),
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return ProductService(db).list_products(search, limit, offset)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(
    product_id: UUID,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(ALL_ROLES))
):
    return ProductService(db).get_product(product_id)


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: UUID,
    product_data: ProductUpdate,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    return ProductService(db).update_product(product_id, product_data)


@router.post("/{product_id}/stock-adjustments", response_model=ProductOut)
def adjust_stock(
    product_id: UUID,
    adjustment: StockAdjustment,
    db: Session = Depends(get_db),
    operator=Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    """Ingreso o ajuste manual de existencias"""
    return ProductService(db).adjust_stock(product_id, adjustment, operator.username)
