"""
Endpoints de marketing: campañas segmentadas, registro de eventos de los
destinatarios y analítica. La entrega de los mensajes es externa.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.db.session import get_db
from app.models.marketing import CampaignAudience, CampaignChannel, CampaignStatus, RecipientStatus
from app.schemas.common import PaginatedResponse
from app.schemas.marketing import (
    AutomationRunResult,
    Campaign,
    CampaignAnalytics,
    CampaignCreate,
    CampaignEvent,
    CampaignEventCreate,
    CampaignListItem,
    CampaignRecipient,
    CampaignSendResult,
    CampaignUpdate
)
from app.services.marketing import marketing_service

router = APIRouter()


@router.post("/campaigns", response_model=Campaign, status_code=status.HTTP_201_CREATED)
def create_campaign(campaign_data: CampaignCreate = Body(...), db: Session = Depends(get_db)) -> Any:
    return marketing_service.create_campaign(db, campaign_in=campaign_data)


@router.get("/campaigns", response_model=PaginatedResponse[CampaignListItem])
def list_campaigns(
    status: Optional[CampaignStatus] = None,
    channel: Optional[CampaignChannel] = None,
    audience: Optional[CampaignAudience] = None,
    search: Optional[str] = Query(None, max_length=100),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    """Campañas más recientes primero, con su número de destinatarios."""
    rows, total = marketing_service.list_campaigns(
        db, status=status, channel=channel, audience=audience, search=search,
        page=pagination.page, limit=pagination.limit
    )
    items = [
        CampaignListItem.model_validate(campaign).model_copy(update={"recipients_count": count})
        for campaign, count in rows
    ]
    return PaginatedResponse[CampaignListItem].build(items, total, pagination.page, pagination.limit)


@router.get("/campaigns/{campaign_id}", response_model=Campaign)
def get_campaign(campaign_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return marketing_service.get_campaign(db, campaign_id)


@router.patch("/campaigns/{campaign_id}", response_model=Campaign)
def update_campaign(
    campaign_id: int = Path(..., ge=1),
    campaign_data: CampaignUpdate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    return marketing_service.update_campaign(db, campaign_id=campaign_id, campaign_in=campaign_data)


@router.post("/campaigns/{campaign_id}/send", response_model=CampaignSendResult)
def send_campaign(campaign_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """
    Enviar ahora una campaña en DRAFT o SCHEDULED. Responde 422 si la
    audiencia está vacía (la campaña queda FAILED).
    """
    return marketing_service.send_campaign(db, campaign_id)


@router.get("/campaigns/{campaign_id}/recipients", response_model=PaginatedResponse[CampaignRecipient])
def list_campaign_recipients(
    campaign_id: int = Path(..., ge=1),
    status: Optional[RecipientStatus] = None,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    recipients, total = marketing_service.list_recipients(
        db, campaign_id=campaign_id, status=status, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[CampaignRecipient].build(
        [CampaignRecipient.model_validate(r) for r in recipients], total, pagination.page, pagination.limit
    )


@router.post(
    "/campaigns/{campaign_id}/recipients/{recipient_id}/events",
    response_model=CampaignEvent,
    status_code=status.HTTP_201_CREATED
)
def log_campaign_event(
    campaign_id: int = Path(..., ge=1),
    recipient_id: int = Path(..., ge=1),
    event_data: CampaignEventCreate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """Registrar una apertura, clic, entrega o fallo informado por el proveedor."""
    return marketing_service.log_campaign_event(
        db, campaign_id=campaign_id, recipient_id=recipient_id, event_in=event_data
    )


@router.get("/campaigns/{campaign_id}/recipients/{recipient_id}/events", response_model=List[CampaignEvent])
def list_recipient_events(
    campaign_id: int = Path(..., ge=1),
    recipient_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
) -> Any:
    return marketing_service.get_recipient_events(db, campaign_id=campaign_id, recipient_id=recipient_id)


@router.get("/campaigns/{campaign_id}/analytics", response_model=CampaignAnalytics)
def campaign_analytics(campaign_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return marketing_service.get_campaign_analytics(db, campaign_id)


@router.post("/automations/run", response_model=AutomationRunResult)
def run_automations(db: Session = Depends(get_db)) -> Any:
    """Ejecutar ahora las campañas automáticas del día (cumpleaños y reenganche)."""
    return marketing_service.run_daily_automations(db)
