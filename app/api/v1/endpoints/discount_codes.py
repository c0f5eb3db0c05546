"""
Endpoints de códigos de descuento.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.db.session import get_db
from app.schemas.common import PaginatedResponse
from app.schemas.discount import DiscountCode, DiscountCodeCreate, DiscountCodeUpdate, DiscountUsage
from app.services.discount import discount_service

router = APIRouter()


@router.get("", response_model=PaginatedResponse[DiscountCode])
def list_discount_codes(
    is_active: Optional[bool] = Query(None),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    codes, total = discount_service.list_codes(
        db, is_active=is_active, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[DiscountCode].build(
        [DiscountCode.model_validate(c) for c in codes], total, pagination.page, pagination.limit
    )


@router.post("", response_model=DiscountCode, status_code=status.HTTP_201_CREATED)
def create_discount_code(code_data: DiscountCodeCreate, db: Session = Depends(get_db)) -> Any:
    """
    Crear un código de descuento. El código se guarda en mayúsculas.

    Raises:
        409: el código ya existe
        422: porcentaje mayor que 100 o ventana de vigencia inválida
    """
    return discount_service.create_code(db, code_in=code_data)


@router.get("/usage", response_model=List[DiscountUsage])
def discount_usage_report(db: Session = Depends(get_db)) -> Any:
    """Usos y descuento total concedido por cada código."""
    return discount_service.usage_report(db)


@router.get("/{code_id}", response_model=DiscountCode)
def get_discount_code(code_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return discount_service.get_code(db, code_id)


@router.patch("/{code_id}", response_model=DiscountCode)
def update_discount_code(
    code_data: DiscountCodeUpdate,
    code_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
) -> Any:
    return discount_service.update_code(db, code_id=code_id, code_in=code_data)


@router.delete("/{code_id}", response_model=DiscountCode)
def delete_discount_code(code_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """Si el código ya se canjeó, solo se desactiva."""
    return discount_service.delete_code(db, code_id)
