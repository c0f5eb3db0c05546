from collections import defaultdict
from datetime import datetime, date
import logging
import secrets
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.timezone_utils import utcnow, local_day_bounds_utc
from app.models.inventory import (
    Product,
    ProductSale,
    ProductSaleItem,
    StockMovement,
    StockMovementType
)
from app.repositories.inventory import (
    product_repository,
    product_sale_repository,
    stock_movement_repository
)
from app.schemas import inventory as inventory_schemas
from app.services.member import member_service

logger = logging.getLogger(__name__)


class InventoryService:
    """
    Productos, movimientos de stock y ventas en mostrador.

    El stock nunca baja de cero: cada venta descuenta con un UPDATE
    condicionado por producto y, si alguno falla, se deshace la venta entera.
    """

    # === Productos ===

    def create_product(self, db: Session, *, product_in: inventory_schemas.ProductCreate) -> Product:
        if product_repository.get_by_sku(db, sku=product_in.sku):
            raise ConflictError(f"Ya existe un producto con SKU {product_in.sku}")
        data = product_in.model_dump()
        if data.get("low_stock_threshold") is None:
            data["low_stock_threshold"] = get_settings().DEFAULT_LOW_STOCK_THRESHOLD
        try:
            product = Product(**data)
            db.add(product)
            db.flush()
            if product.stock_quantity > 0:
                db.add(StockMovement(
                    product_id=product.id,
                    type=StockMovementType.RESTOCK,
                    quantity_delta=product.stock_quantity,
                    previous_quantity=0,
                    new_quantity=product.stock_quantity,
                    note="Stock inicial",
                ))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"Ya existe un producto con SKU {product_in.sku}")
        db.refresh(product)
        logger.info(f"Producto creado: {product.sku} (ID: {product.id}, stock {product.stock_quantity})")
        return product

    def get_product(self, db: Session, product_id: int) -> Product:
        product = product_repository.get(db, id=product_id)
        if not product:
            raise NotFoundError(f"Producto con ID {product_id} no encontrado")
        return product

    def list_products(
        self, db: Session, *, search: Optional[str] = None, category: Optional[str] = None,
        is_active: Optional[bool] = None, low_stock_only: bool = False, page: int = 1, limit: int = 20
    ) -> Tuple[List[Product], int]:
        return product_repository.search(
            db, search=search, category=category, is_active=is_active,
            low_stock_only=low_stock_only, page=page, limit=limit
        )

    def update_product(
        self, db: Session, *, product_id: int, product_in: inventory_schemas.ProductUpdate
    ) -> Product:
        product = self.get_product(db, product_id)
        product = product_repository.update(db, db_obj=product, obj_in=product_in)
        logger.info(f"Producto {product.sku} actualizado")
        return product

    def deactivate_product(self, db: Session, product_id: int) -> Product:
        """Los productos tienen historial de ventas; no se borran."""
        product = self.get_product(db, product_id)
        if product.is_active:
            product.is_active = False
            db.commit()
            db.refresh(product)
            logger.info(f"Producto {product.sku} desactivado")
        return product

    # === Stock ===

    def restock(
        self, db: Session, *, product_id: int, restock_in: inventory_schemas.RestockRequest
    ) -> Product:
        if restock_in.quantity < 1:
            raise ValidationError("La cantidad a reponer debe ser al menos 1")
        try:
            product = product_repository.get_for_update(db, product_id)
            if not product:
                raise NotFoundError(f"Producto con ID {product_id} no encontrado")
            previous = product.stock_quantity
            product_repository.increment_stock(db, product_id=product.id, quantity=restock_in.quantity)
            db.refresh(product)
            db.add(StockMovement(
                product_id=product.id,
                type=StockMovementType.RESTOCK,
                quantity_delta=restock_in.quantity,
                previous_quantity=previous,
                new_quantity=product.stock_quantity,
                reference=restock_in.reference,
                note=restock_in.note,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(product)
        logger.info(f"Reposición de {product.sku}: {previous} -> {product.stock_quantity}")
        return product

    def adjust_stock(
        self, db: Session, *, product_id: int, adjustment_in: inventory_schemas.StockAdjustment
    ) -> Product:
        try:
            product = product_repository.get_for_update(db, product_id)
            if not product:
                raise NotFoundError(f"Producto con ID {product_id} no encontrado")
            previous = product.stock_quantity
            if previous == adjustment_in.new_quantity:
                return product
            product.stock_quantity = adjustment_in.new_quantity
            db.add(StockMovement(
                product_id=product.id,
                type=StockMovementType.ADJUSTMENT,
                quantity_delta=adjustment_in.new_quantity - previous,
                previous_quantity=previous,
                new_quantity=adjustment_in.new_quantity,
                note=adjustment_in.note,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(product)
        logger.info(f"Ajuste de stock de {product.sku}: {previous} -> {product.stock_quantity}")
        return product

    def get_stock_movements(self, db: Session, product_id: int, limit: int = 50) -> List[StockMovement]:
        self.get_product(db, product_id)
        return stock_movement_repository.get_by_product(db, product_id=product_id, limit=limit)

    def low_stock_alerts(self, db: Session) -> List[inventory_schemas.LowStockAlert]:
        return [
            inventory_schemas.LowStockAlert(
                product_id=p.id,
                name=p.name,
                sku=p.sku,
                category=p.category,
                stock_quantity=p.stock_quantity,
                low_stock_threshold=p.low_stock_threshold,
                deficit=p.low_stock_deficit,
            )
            for p in product_repository.get_low_stock(db)
        ]

    # === Ventas ===

    def _generate_sale_number(self, now: datetime) -> str:
        return f"V{now:%Y%m%d}-{secrets.token_hex(4).upper()}"

    def _build_sale(self, db: Session, sale: ProductSale) -> inventory_schemas.Sale:
        items = product_sale_repository.get_items(db, sale_id=sale.id)
        return inventory_schemas.Sale(
            id=sale.id,
            sale_number=sale.sale_number,
            member_id=sale.member_id,
            payment_method=sale.payment_method,
            subtotal_cents=sale.subtotal_cents,
            discount_cents=sale.discount_cents,
            tax_cents=sale.tax_cents,
            total_cents=sale.total_cents,
            notes=sale.notes,
            sold_at=sale.sold_at,
            items=[inventory_schemas.SaleItem.model_validate(i) for i in items],
        )

    def create_sale(
        self, db: Session, *, sale_in: inventory_schemas.SaleCreate, now: Optional[datetime] = None
    ) -> inventory_schemas.Sale:
        """
        Registra una venta de forma atómica.

        Raises:
            ValidationError: productos repetidos o inactivos, descuento mayor que el subtotal
            ConflictError: stock insuficiente para alguna línea
        """
        now = now or utcnow()
        product_ids = [item.product_id for item in sale_in.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError("Cada producto solo puede aparecer una vez en la venta")
        if sale_in.member_id is not None:
            member_service.require_member(db, sale_in.member_id)

        products: Dict[int, Product] = {}
        for item in sale_in.items:
            product = self.get_product(db, item.product_id)
            if not product.is_active:
                raise ValidationError(f"El producto {product.sku} no está a la venta")
            products[product.id] = product

        subtotal = sum(products[i.product_id].sale_price_cents * i.quantity for i in sale_in.items)
        if sale_in.discount_cents > subtotal:
            raise ValidationError("El descuento no puede superar el subtotal")

        try:
            sale = ProductSale(
                sale_number=self._generate_sale_number(now),
                member_id=sale_in.member_id,
                payment_method=sale_in.payment_method,
                subtotal_cents=subtotal,
                discount_cents=sale_in.discount_cents,
                tax_cents=sale_in.tax_cents,
                total_cents=subtotal - sale_in.discount_cents + sale_in.tax_cents,
                notes=sale_in.notes,
                sold_at=now,
            )
            db.add(sale)
            db.flush()

            # Orden fijo por id para que dos ventas concurrentes bloqueen en el mismo orden
            for item in sorted(sale_in.items, key=lambda i: i.product_id):
                product = products[item.product_id]
                if not product_repository.try_decrement_stock(db, product_id=product.id, quantity=item.quantity):
                    db.rollback()
                    db.refresh(product)
                    logger.warning(
                        f"Venta rechazada: stock insuficiente de {product.sku} "
                        f"(pedido {item.quantity}, disponible {product.stock_quantity})"
                    )
                    raise ConflictError(
                        f"Stock insuficiente para {product.sku}",
                        {"product_id": product.id, "requested": item.quantity, "available": product.stock_quantity},
                    )
                db.refresh(product)
                unit_price = product.sale_price_cents
                db.add(ProductSaleItem(
                    sale_id=sale.id,
                    product_id=product.id,
                    quantity=item.quantity,
                    unit_price_cents=unit_price,
                    line_total_cents=unit_price * item.quantity,
                ))
                db.add(StockMovement(
                    product_id=product.id,
                    type=StockMovementType.SALE,
                    quantity_delta=-item.quantity,
                    previous_quantity=product.stock_quantity + item.quantity,
                    new_quantity=product.stock_quantity,
                    reference=sale.sale_number,
                ))
            db.commit()
        except ConflictError:
            raise
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al registrar la venta: {e.orig}")
            raise ConflictError("La venta no pudo registrarse por un cambio concurrente; reintente")
        except Exception:
            db.rollback()
            raise

        db.refresh(sale)
        for product in products.values():
            db.refresh(product)
            if product.is_low_stock:
                logger.warning(
                    f"Stock bajo: {product.sku} ({product.stock_quantity}/{product.low_stock_threshold})"
                )
        logger.info(f"Venta {sale.sale_number} registrada: {len(sale_in.items)} líneas, total {sale.total_cents}")
        return self._build_sale(db, sale)

    def get_sale(self, db: Session, sale_id: int) -> inventory_schemas.Sale:
        sale = product_sale_repository.get(db, id=sale_id)
        if not sale:
            raise NotFoundError(f"Venta con ID {sale_id} no encontrada")
        return self._build_sale(db, sale)

    def list_sales(
        self, db: Session, *, member_id: Optional[int] = None, start: Optional[datetime] = None,
        end: Optional[datetime] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[inventory_schemas.Sale], int]:
        sales, total = product_sale_repository.list_sales(
            db, member_id=member_id, start=start, end=end, page=page, limit=limit
        )
        return [self._build_sale(db, s) for s in sales], total

    def sales_report(
        self, db: Session, *, start_date: date, end_date: date, top_n: int = 5
    ) -> inventory_schemas.SalesReport:
        if end_date < start_date:
            raise ValidationError("end_date debe ser igual o posterior a start_date")
        if (end_date - start_date).days + 1 > get_settings().MAX_REPORT_DAYS:
            raise ValidationError(f"El rango no puede superar {get_settings().MAX_REPORT_DAYS} días")

        start, end = local_day_bounds_utc(start_date, end_date, get_settings().GYM_TIMEZONE)
        sales = product_sale_repository.get_in_range(db, start=start, end=end)
        items = product_sale_repository.get_items_for_sales(db, sale_ids=[s.id for s in sales])

        by_method = defaultdict(int)
        for sale in sales:
            by_method[sale.payment_method.value] += sale.total_cents

        quantity_by_product = defaultdict(int)
        revenue_by_product = defaultdict(int)
        for item in items:
            quantity_by_product[item.product_id] += item.quantity
            revenue_by_product[item.product_id] += item.line_total_cents

        ranked = sorted(quantity_by_product, key=lambda pid: (-quantity_by_product[pid], -revenue_by_product[pid], pid))
        top_products = []
        for product_id in ranked[:top_n]:
            product = product_repository.get(db, id=product_id)
            top_products.append(inventory_schemas.TopProduct(
                product_id=product_id,
                name=product.name,
                sku=product.sku,
                quantity_sold=quantity_by_product[product_id],
                revenue_cents=revenue_by_product[product_id],
            ))

        total_revenue = sum(s.total_cents for s in sales)
        return inventory_schemas.SalesReport(
            start_date=start_date,
            end_date=end_date,
            total_sales=len(sales),
            total_revenue_cents=total_revenue,
            total_items_sold=sum(quantity_by_product.values()),
            average_ticket_cents=total_revenue // len(sales) if sales else 0,
            by_payment_method=dict(by_method),
            top_products=top_products,
        )


inventory_service = InventoryService()
