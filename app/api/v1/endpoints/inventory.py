"""
Endpoints de inventario: productos, reposiciones, ventas y reportes.
"""
from datetime import date, datetime, timedelta
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.core.config import settings
from app.core.timezone_utils import utcnow, convert_utc_to_local
from app.db.session import get_db
from app.schemas.common import PaginatedResponse
from app.schemas.inventory import (
    Product,
    ProductCreate,
    ProductUpdate,
    RestockRequest,
    StockAdjustment,
    StockMovement,
    Sale,
    SaleCreate,
    LowStockAlert,
    SalesReport
)
from app.services.inventory import inventory_service

router = APIRouter()


# === Productos ===

@router.get("/products", response_model=PaginatedResponse[Product])
def list_products(
    search: Optional[str] = Query(None, description="Busca en nombre y SKU"),
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    low_stock_only: bool = False,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    products, total = inventory_service.list_products(
        db, search=search, category=category, is_active=is_active,
        low_stock_only=low_stock_only, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[Product].build(
        [Product.model_validate(p) for p in products], total, pagination.page, pagination.limit
    )


@router.post("/products", response_model=Product, status_code=status.HTTP_201_CREATED)
def create_product(product_data: ProductCreate = Body(...), db: Session = Depends(get_db)) -> Any:
    """
    Crear un producto. Si no se indica `low_stock_threshold` se usa el umbral
    configurado por defecto.
    """
    return inventory_service.create_product(db, product_in=product_data)


@router.get("/products/{product_id}", response_model=Product)
def get_product(product_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return inventory_service.get_product(db, product_id)


@router.patch("/products/{product_id}", response_model=Product)
def update_product(
    product_id: int = Path(..., ge=1),
    product_data: ProductUpdate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    return inventory_service.update_product(db, product_id=product_id, product_in=product_data)


@router.post("/products/{product_id}/deactivate", response_model=Product)
def deactivate_product(product_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return inventory_service.deactivate_product(db, product_id)


@router.post("/products/{product_id}/restock", response_model=Product)
def restock_product(
    product_id: int = Path(..., ge=1),
    restock_data: RestockRequest = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    return inventory_service.restock(db, product_id=product_id, restock_in=restock_data)


@router.post("/products/{product_id}/adjust", response_model=Product)
def adjust_product_stock(
    product_id: int = Path(..., ge=1),
    adjustment_data: StockAdjustment = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """Fija el stock al valor de un recuento físico."""
    return inventory_service.adjust_stock(db, product_id=product_id, adjustment_in=adjustment_data)


@router.get("/products/{product_id}/movements", response_model=List[StockMovement])
def list_stock_movements(
    product_id: int = Path(..., ge=1),
    limit: int = Query(50, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db)
) -> Any:
    return inventory_service.get_stock_movements(db, product_id, limit=limit)


@router.get("/low-stock", response_model=List[LowStockAlert])
def low_stock_alerts(db: Session = Depends(get_db)) -> Any:
    """Productos activos con stock igual o inferior a su umbral."""
    return inventory_service.low_stock_alerts(db)


# === Ventas ===

@router.post("/sales", response_model=Sale, status_code=status.HTTP_201_CREATED)
def create_sale(sale_data: SaleCreate = Body(...), db: Session = Depends(get_db)) -> Any:
    """
    Registrar una venta.

    La venta es atómica: si algún producto no tiene stock suficiente se
    devuelve 409 y no se descuenta nada.
    """
    return inventory_service.create_sale(db, sale_in=sale_data)


@router.get("/sales", response_model=PaginatedResponse[Sale])
def list_sales(
    member_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    sales, total = inventory_service.list_sales(
        db, member_id=member_id, start=start, end=end, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[Sale].build(sales, total, pagination.page, pagination.limit)


@router.get("/sales/{sale_id}", response_model=Sale)
def get_sale(sale_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return inventory_service.get_sale(db, sale_id)


@router.get("/reports/sales", response_model=SalesReport)
def sales_report(
    days: int = Query(30, ge=1, le=settings.MAX_REPORT_DAYS),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    top_n: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db)
) -> Any:
    today = convert_utc_to_local(utcnow(), settings.GYM_TIMEZONE).date()
    end = end_date or today
    start = start_date or end - timedelta(days=days - 1)
    return inventory_service.sales_report(db, start_date=start, end_date=end, top_n=top_n)
