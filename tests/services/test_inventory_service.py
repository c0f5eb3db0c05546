from datetime import date, datetime

import pytest

from app.core.exceptions import ConflictError, ValidationError
from app.models.inventory import PaymentMethod, StockMovementType
from app.schemas.inventory import (
    ProductCreate,
    RestockRequest,
    SaleCreate,
    SaleItemCreate,
    StockAdjustment
)
from app.services.inventory import inventory_service


@pytest.fixture
def water(db):
    return inventory_service.create_product(db, product_in=ProductCreate(
        name="Agua 500ml", sku="AGUA-500", category="Bebidas", sale_price_cents=150, stock_quantity=10,
        low_stock_threshold=3
    ))


@pytest.fixture
def protein_bar(db):
    return inventory_service.create_product(db, product_in=ProductCreate(
        name="Barrita proteica", sku="BAR-01", category="Snacks", sale_price_cents=250, stock_quantity=2
    ))


def _sale(db, items, now=None, **extra):
    return inventory_service.create_sale(db, sale_in=SaleCreate(
        items=[SaleItemCreate(product_id=pid, quantity=qty) for pid, qty in items],
        payment_method=extra.pop("payment_method", PaymentMethod.CASH),
        **extra
    ), now=now)


def test_new_product_records_initial_stock(db, water):
    movements = inventory_service.get_stock_movements(db, water.id)

    assert len(movements) == 1
    assert movements[0].type == StockMovementType.RESTOCK
    assert movements[0].new_quantity == 10


def test_default_low_stock_threshold(db, protein_bar):
    assert protein_bar.low_stock_threshold == 5
    assert protein_bar.is_low_stock is True


def test_duplicate_sku(db, water):
    with pytest.raises(ConflictError):
        inventory_service.create_product(db, product_in=ProductCreate(
            name="Otra agua", sku="AGUA-500", sale_price_cents=100
        ))


def test_restock_increments_and_logs(db, water):
    product = inventory_service.restock(
        db, product_id=water.id, restock_in=RestockRequest(quantity=5, reference="ALB-77")
    )

    assert product.stock_quantity == 15
    latest = inventory_service.get_stock_movements(db, water.id)[0]
    assert (latest.previous_quantity, latest.new_quantity, latest.reference) == (10, 15, "ALB-77")


def test_adjust_stock_to_physical_count(db, water):
    product = inventory_service.adjust_stock(
        db, product_id=water.id, adjustment_in=StockAdjustment(new_quantity=7, note="Recuento mensual")
    )

    assert product.stock_quantity == 7
    latest = inventory_service.get_stock_movements(db, water.id)[0]
    assert latest.type == StockMovementType.ADJUSTMENT
    assert latest.quantity_delta == -3


def test_sale_totals_and_stock(db, water, protein_bar):
    sale = _sale(db, [(water.id, 2), (protein_bar.id, 1)], discount_cents=50, tax_cents=20)

    assert sale.subtotal_cents == 550
    assert sale.total_cents == 520
    assert sale.sale_number.startswith("V")
    assert len(sale.items) == 2
    db.refresh(water)
    assert water.stock_quantity == 8


def test_sale_is_all_or_nothing(db, water, protein_bar):
    with pytest.raises(ConflictError) as exc_info:
        _sale(db, [(water.id, 2), (protein_bar.id, 3)])

    assert exc_info.value.details == {"product_id": protein_bar.id, "requested": 3, "available": 2}
    db.refresh(water)
    db.refresh(protein_bar)
    assert water.stock_quantity == 10
    assert protein_bar.stock_quantity == 2
    _, total = inventory_service.list_sales(db)
    assert total == 0


def test_sale_can_empty_stock(db, protein_bar):
    _sale(db, [(protein_bar.id, 2)])

    db.refresh(protein_bar)
    assert protein_bar.stock_quantity == 0
    alerts = inventory_service.low_stock_alerts(db)
    assert alerts[0].product_id == protein_bar.id
    assert alerts[0].deficit == 5


def test_inactive_products_cannot_be_sold(db, water):
    inventory_service.deactivate_product(db, water.id)

    with pytest.raises(ValidationError):
        _sale(db, [(water.id, 1)])


def test_discount_above_subtotal(db, water):
    with pytest.raises(ValidationError):
        _sale(db, [(water.id, 1)], discount_cents=500)


def test_sales_report(db, water, protein_bar):
    _sale(db, [(water.id, 3)], now=datetime(2026, 3, 2, 10, 0))
    _sale(db, [(protein_bar.id, 1), (water.id, 1)], now=datetime(2026, 3, 3, 12, 0),
          payment_method=PaymentMethod.CARD)
    _sale(db, [(water.id, 1)], now=datetime(2026, 4, 1, 12, 0))

    report = inventory_service.sales_report(db, start_date=date(2026, 3, 1), end_date=date(2026, 3, 31))

    assert report.total_sales == 2
    assert report.total_revenue_cents == 850
    assert report.total_items_sold == 5
    assert report.average_ticket_cents == 425
    assert report.by_payment_method == {"CASH": 450, "CARD": 400}
    assert report.top_products[0].product_id == water.id
    assert report.top_products[0].quantity_sold == 4
