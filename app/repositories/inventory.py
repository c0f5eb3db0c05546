from typing import List, Optional
from datetime import datetime
from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.inventory import Product, StockMovement, ProductSale, ProductSaleItem
from app.schemas.inventory import ProductCreate, ProductUpdate, RestockRequest, SaleCreate


class ProductRepository(BaseRepository[Product, ProductCreate, ProductUpdate]):
    def get_by_sku(self, db: Session, *, sku: str) -> Optional[Product]:
        return db.query(Product).filter(Product.sku == sku).first()

    def search(
        self, db: Session, *, search: Optional[str] = None, category: Optional[str] = None,
        is_active: Optional[bool] = None, low_stock_only: bool = False,
        page: int = 1, limit: int = 20
    ):
        query = db.query(Product)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
        if category:
            query = query.filter(Product.category == category)
        if is_active is not None:
            query = query.filter(Product.is_active == is_active)
        if low_stock_only:
            query = query.filter(Product.stock_quantity <= Product.low_stock_threshold)
        return self.get_page(db, page=page, limit=limit, query=query)

    def get_low_stock(self, db: Session) -> List[Product]:
        return db.query(Product).filter(
            Product.is_active == True,
            Product.stock_quantity <= Product.low_stock_threshold
        ).order_by(Product.stock_quantity, Product.id).all()

    def try_decrement_stock(self, db: Session, *, product_id: int, quantity: int) -> bool:
        """
        Descuenta stock en una única sentencia condicionada a que haya
        existencias suficientes. Devuelve False si no las hay.
        """
        result = db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_stock(self, db: Session, *, product_id: int, quantity: int) -> None:
        db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )


class StockMovementRepository(BaseRepository[StockMovement, RestockRequest, RestockRequest]):
    def get_by_product(self, db: Session, *, product_id: int, limit: int = 50) -> List[StockMovement]:
        return db.query(StockMovement).filter(
            StockMovement.product_id == product_id
        ).order_by(StockMovement.id.desc()).limit(limit).all()


class ProductSaleRepository(BaseRepository[ProductSale, SaleCreate, SaleCreate]):
    def get_items(self, db: Session, *, sale_id: int) -> List[ProductSaleItem]:
        return db.query(ProductSaleItem).filter(
            ProductSaleItem.sale_id == sale_id
        ).order_by(ProductSaleItem.id).all()

    def get_in_range(self, db: Session, *, start: datetime, end: datetime) -> List[ProductSale]:
        return db.query(ProductSale).filter(
            ProductSale.sold_at >= start,
            ProductSale.sold_at < end
        ).order_by(ProductSale.sold_at).all()

    def get_items_for_sales(self, db: Session, *, sale_ids: List[int]) -> List[ProductSaleItem]:
        if not sale_ids:
            return []
        return db.query(ProductSaleItem).filter(ProductSaleItem.sale_id.in_(sale_ids)).all()

    def list_sales(
        self, db: Session, *, member_id: Optional[int] = None, start: Optional[datetime] = None,
        end: Optional[datetime] = None, page: int = 1, limit: int = 20
    ):
        query = db.query(ProductSale)
        if member_id is not None:
            query = query.filter(ProductSale.member_id == member_id)
        if start is not None:
            query = query.filter(ProductSale.sold_at >= start)
        if end is not None:
            query = query.filter(ProductSale.sold_at < end)
        return self.get_page(db, page=page, limit=limit, query=query)


product_repository = ProductRepository(Product)
stock_movement_repository = StockMovementRepository(StockMovement)
product_sale_repository = ProductSaleRepository(ProductSale)
