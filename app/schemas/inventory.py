from typing import Optional, List, Dict
from datetime import datetime, date
from pydantic import BaseModel, Field, model_validator

from app.models.inventory import PaymentMethod, StockMovementType


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    sku: str = Field(..., min_length=1, max_length=64)
    category: Optional[str] = Field(None, max_length=60)
    description: Optional[str] = None
    sale_price_cents: int = Field(..., ge=0)
    cost_price_cents: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class ProductCreate(ProductBase):
    stock_quantity: int = Field(0, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0, description="Por defecto, el umbral configurado")


class ProductUpdate(BaseModel):
    """El stock solo cambia mediante reposiciones y ventas"""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    category: Optional[str] = Field(None, max_length=60)
    description: Optional[str] = None
    sale_price_cents: Optional[int] = Field(None, ge=0)
    cost_price_cents: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class Product(ProductBase):
    id: int
    stock_quantity: int
    low_stock_threshold: int
    is_low_stock: bool
    low_stock_deficit: int
    created_at: datetime

    model_config = {"from_attributes": True}


class RestockRequest(BaseModel):
    quantity: int = Field(..., ge=1)
    note: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=64)


class StockMovement(BaseModel):
    id: int
    product_id: int
    type: StockMovementType
    quantity_delta: int
    previous_quantity: int
    new_quantity: int
    reference: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SaleItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class SaleCreate(BaseModel):
    items: List[SaleItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod
    member_id: Optional[int] = None
    discount_cents: int = Field(0, ge=0)
    tax_cents: int = Field(0, ge=0)
    notes: Optional[str] = None

    @model_validator(mode='after')
    def check_unique_products(self):
        ids = [item.product_id for item in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError('Cada producto solo puede aparecer una vez en la venta')
        return self


class SaleItem(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price_cents: int
    line_total_cents: int

    model_config = {"from_attributes": True}


class Sale(BaseModel):
    id: int
    sale_number: str
    member_id: Optional[int] = None
    payment_method: PaymentMethod
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    notes: Optional[str] = None
    sold_at: datetime
    items: List[SaleItem] = []


class LowStockAlert(BaseModel):
    product_id: int
    name: str
    sku: str
    category: Optional[str] = None
    stock_quantity: int
    low_stock_threshold: int
    deficit: int


class TopProduct(BaseModel):
    product_id: int
    name: str
    sku: str
    quantity_sold: int
    revenue_cents: int


class SalesReport(BaseModel):
    start_date: date
    end_date: date
    total_sales: int
    total_revenue_cents: int
    total_items_sold: int
    average_ticket_cents: int
    by_payment_method: Dict[str, int]
    top_products: List[TopProduct]


class StockAdjustment(BaseModel):
    """Recuento físico: fija el stock al valor contado"""
    new_quantity: int = Field(..., ge=0)
    note: Optional[str] = Field(None, max_length=255)
