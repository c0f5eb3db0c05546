"""
Endpoints para gestión de membresías y planes de membresía.

Este módulo proporciona todas las rutas relacionadas con la gestión de:
- Planes de membresía (creación, actualización, consulta)
- Asignación de membresías a socios, con código de descuento opcional
- Ciclo de vida de la membresía (congelar, descongelar, cancelar)
"""

from typing import Any, List

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.membership import (
    MembershipPlan,
    MembershipPlanCreate,
    MembershipPlanUpdate,
    MembershipAssign,
    Membership,
    DiscountPreviewRequest,
    PriceBreakdown,
    MembershipLifecycleResult
)
from app.services.membership import membership_service

router = APIRouter()


# === Endpoints de Planes de Membresía ===

@router.get("/plans", response_model=List[MembershipPlan])
def list_membership_plans(
    active_only: bool = Query(True, description="Solo planes activos"),
    db: Session = Depends(get_db)
) -> Any:
    """
    Obtener los planes de membresía, ordenados por precio.
    """
    return membership_service.list_plans(db, active_only=active_only)


@router.post("/plans", response_model=MembershipPlan, status_code=status.HTTP_201_CREATED)
def create_membership_plan(plan_data: MembershipPlanCreate, db: Session = Depends(get_db)) -> Any:
    """
    Crear un nuevo plan de membresía.

    Raises:
        409: ya existe un plan con ese nombre
    """
    return membership_service.create_plan(db, plan_in=plan_data)


@router.get("/plans/{plan_id}", response_model=MembershipPlan)
def get_membership_plan(plan_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.get_plan(db, plan_id)


@router.patch("/plans/{plan_id}", response_model=MembershipPlan)
def update_membership_plan(
    plan_data: MembershipPlanUpdate,
    plan_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
) -> Any:
    """
    Actualizar un plan. Las membresías ya asignadas conservan su precio y fechas.
    """
    return membership_service.update_plan(db, plan_id=plan_id, plan_in=plan_data)


@router.post("/plans/{plan_id}/deactivate", response_model=MembershipPlan)
def deactivate_membership_plan(plan_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.deactivate_plan(db, plan_id)


@router.delete("/plans/{plan_id}", response_model=MembershipPlan)
def delete_membership_plan(plan_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """
    Eliminar un plan. Si ya tiene membresías asociadas solo se desactiva.
    """
    return membership_service.delete_plan(db, plan_id)


# === Endpoints de Membresías ===

@router.post("/preview-discount", response_model=PriceBreakdown)
def preview_discount(preview_data: DiscountPreviewRequest, db: Session = Depends(get_db)) -> Any:
    """
    Calcular el precio de un plan con un código de descuento sin canjearlo.

    Raises:
        400: código inactivo, fuera de vigencia o agotado (campo `reason`)
        404: plan o código inexistente
    """
    return membership_service.preview_discount(db, plan_id=preview_data.plan_id, code=preview_data.code)


@router.post("", response_model=Membership, status_code=status.HTTP_201_CREATED)
def assign_membership(assign_data: MembershipAssign, db: Session = Depends(get_db)) -> Any:
    """
    Asignar un plan a un socio.

    Un socio solo puede tener una membresía ACTIVE, PENDING o FROZEN. Si se
    indica un código de descuento, se canjea en la misma operación.
    """
    return membership_service.assign_membership(db, assign_in=assign_data)


@router.post("/lifecycle/run", response_model=MembershipLifecycleResult)
def run_membership_lifecycle(db: Session = Depends(get_db)) -> Any:
    """Ejecutar manualmente el barrido de expiración/activación."""
    return membership_service.run_lifecycle(db)


@router.get("/{membership_id}", response_model=Membership)
def get_membership(membership_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.get_membership(db, membership_id)


@router.post("/{membership_id}/freeze", response_model=Membership)
def freeze_membership(membership_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.freeze_membership(db, membership_id)


@router.post("/{membership_id}/unfreeze", response_model=Membership)
def unfreeze_membership(membership_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.unfreeze_membership(db, membership_id)


@router.post("/{membership_id}/cancel", response_model=Membership)
def cancel_membership(membership_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.cancel_membership(db, membership_id)
