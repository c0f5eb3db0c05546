from typing import Any, List, Union

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.member import Trainer, TrainerCreate
from app.schemas.views import (
    ViewType,
    TrainerWebView,
    TrainerMobileView,
    trainer_web_view,
    trainer_mobile_view
)
from app.services.member import trainer_service

router = APIRouter()


def _project(trainer: Trainer, view: ViewType):
    return trainer_web_view(trainer) if view == ViewType.WEB else trainer_mobile_view(trainer)


@router.post("", response_model=Trainer, status_code=status.HTTP_201_CREATED)
def create_trainer(trainer_in: TrainerCreate, db: Session = Depends(get_db)) -> Any:
    return trainer_service.create_trainer(db, trainer_in=trainer_in)


@router.get("", response_model=List[Union[TrainerWebView, TrainerMobileView]])
def list_trainers(
    view: ViewType = Query(ViewType.WEB, description="Proyección: web (administración) o mobile (app)"),
    active_only: bool = Query(True),
    db: Session = Depends(get_db)
) -> Any:
    """
    Listar entrenadores con su valoración media.

    La misma entidad se devuelve recortada según el cliente que la consume.
    """
    return [_project(t, view) for t in trainer_service.list_trainers(db, active_only=active_only)]


@router.get("/{trainer_id}", response_model=Union[TrainerWebView, TrainerMobileView])
def get_trainer(
    trainer_id: int = Path(..., ge=1),
    view: ViewType = Query(ViewType.WEB),
    db: Session = Depends(get_db)
) -> Any:
    return _project(trainer_service.get_trainer(db, trainer_id), view)
