from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Enum, CheckConstraint
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class StockMovementType(str, enum.Enum):
    RESTOCK = "RESTOCK"
    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    category = Column(String(60), nullable=True, index=True)
    description = Column(Text, nullable=True)
    sale_price_cents = Column(Integer, nullable=False)
    cost_price_cents = Column(Integer, nullable=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    low_stock_threshold = Column(Integer, default=5, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('stock_quantity >= 0', name='check_product_stock_non_negative'),
        CheckConstraint('low_stock_threshold >= 0', name='check_product_threshold_non_negative'),
        CheckConstraint('sale_price_cents >= 0', name='check_product_price_non_negative'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}', stock={self.stock_quantity})>"

    # Derivados: se calculan siempre a partir del stock actual
    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    @property
    def low_stock_deficit(self) -> int:
        return max(0, self.low_stock_threshold - self.stock_quantity)


class StockMovement(Base):
    """Historial de movimientos de stock"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    type = Column(Enum(StockMovementType), nullable=False)
    quantity_delta = Column(Integer, nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    reference = Column(String(64), nullable=True)  # Número de venta, albarán...
    note = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class ProductSale(Base):
    __tablename__ = "product_sales"

    id = Column(Integer, primary_key=True, index=True)
    sale_number = Column(String(40), unique=True, index=True, nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=True, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    subtotal_cents = Column(Integer, nullable=False)
    discount_cents = Column(Integer, default=0, nullable=False)
    tax_cents = Column(Integer, default=0, nullable=False)
    total_cents = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    sold_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint('total_cents >= 0', name='check_sale_total_non_negative'),
    )


class ProductSaleItem(Base):
    __tablename__ = "product_sale_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("product_sales.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    line_total_cents = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_sale_item_quantity_positive'),
    )
