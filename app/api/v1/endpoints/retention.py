"""
Endpoints de retención: clasificación de socios por riesgo de baja y tareas
de seguimiento.
"""
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.db.session import get_db
from app.models.retention import RiskLevel, RetentionTaskStatus
from app.schemas.common import PaginatedResponse
from app.schemas.retention import (
    MemberRetentionRisk,
    RetentionOverview,
    RetentionRecalculateRequest,
    RetentionRecalculateResult,
    RetentionTask,
    RetentionTaskUpdate
)
from app.services.retention import retention_service

router = APIRouter()


@router.get("/overview", response_model=RetentionOverview)
def retention_overview(db: Session = Depends(get_db)) -> Any:
    return retention_service.get_overview(db)


@router.get("/members", response_model=PaginatedResponse[MemberRetentionRisk])
def list_members_at_risk(
    risk_level: Optional[RiskLevel] = None,
    min_score: Optional[int] = Query(None, ge=0, le=100),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    """Socios evaluados, de mayor a menor puntuación de riesgo."""
    risks, total = retention_service.list_members(
        db, risk_level=risk_level, min_score=min_score, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[MemberRetentionRisk].build(
        [MemberRetentionRisk.model_validate(r) for r in risks], total, pagination.page, pagination.limit
    )


@router.get("/members/{member_id}", response_model=MemberRetentionRisk)
def get_member_risk(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return retention_service.get_member_risk(db, member_id)


@router.post("/recalculate", response_model=RetentionRecalculateResult)
def recalculate_retention(
    request: Optional[RetentionRecalculateRequest] = Body(None),
    db: Session = Depends(get_db)
) -> Any:
    """
    Recalcular el riesgo de todos los socios activos. Con el mismo `as_of` y
    los mismos datos el resultado es idéntico.
    """
    as_of = request.as_of if request else None
    return retention_service.recalculate_all(db, as_of=as_of)


@router.get("/tasks", response_model=PaginatedResponse[RetentionTask])
def list_retention_tasks(
    status: Optional[RetentionTaskStatus] = None,
    member_id: Optional[int] = None,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    tasks, total = retention_service.list_tasks(
        db, status=status, member_id=member_id, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[RetentionTask].build(
        [RetentionTask.model_validate(t) for t in tasks], total, pagination.page, pagination.limit
    )


@router.patch("/tasks/{task_id}", response_model=RetentionTask)
def update_retention_task(
    task_id: int = Path(..., ge=1),
    task_data: RetentionTaskUpdate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    return retention_service.update_task(db, task_id=task_id, task_in=task_data)
