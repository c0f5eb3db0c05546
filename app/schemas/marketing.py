from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from app.models.marketing import (
    CampaignAudience,
    CampaignChannel,
    CampaignEventType,
    CampaignStatus,
    RecipientStatus
)


class CampaignBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    channel: CampaignChannel = CampaignChannel.EMAIL
    audience: CampaignAudience = CampaignAudience.ALL_MEMBERS
    class_id: Optional[int] = None
    custom_member_ids: List[int] = Field(default_factory=list)
    inactive_days: Optional[int] = Field(None, ge=1, le=365)
    subject: Optional[str] = Field(None, max_length=200)
    content: str = Field(..., min_length=1)
    special_offer: Optional[str] = Field(None, max_length=200)
    scheduled_at: Optional[datetime] = None


class CampaignCreate(CampaignBase):
    status: CampaignStatus = CampaignStatus.DRAFT

    @model_validator(mode='after')
    def check_audience_and_status(self):
        if self.audience == CampaignAudience.CLASS_ATTENDEES and not self.class_id:
            raise ValueError('class_id es obligatorio para campañas a asistentes de una clase')
        if self.audience == CampaignAudience.CUSTOM and not self.custom_member_ids:
            raise ValueError('custom_member_ids es obligatorio para campañas personalizadas')
        if self.status not in (CampaignStatus.DRAFT, CampaignStatus.SCHEDULED):
            raise ValueError('Una campaña nueva solo puede crearse como DRAFT o SCHEDULED')
        if self.status == CampaignStatus.SCHEDULED and not self.scheduled_at:
            raise ValueError('scheduled_at es obligatorio para programar la campaña')
        return self


class CampaignUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    channel: Optional[CampaignChannel] = None
    status: Optional[CampaignStatus] = None
    audience: Optional[CampaignAudience] = None
    class_id: Optional[int] = None
    custom_member_ids: Optional[List[int]] = None
    inactive_days: Optional[int] = Field(None, ge=1, le=365)
    subject: Optional[str] = Field(None, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    special_offer: Optional[str] = Field(None, max_length=200)
    scheduled_at: Optional[datetime] = None


class Campaign(CampaignBase):
    id: int
    status: CampaignStatus
    sent_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CampaignListItem(Campaign):
    recipients_count: int = 0


class CampaignRecipient(BaseModel):
    id: int
    campaign_id: int
    member_id: int
    destination: Optional[str] = None
    status: RecipientStatus
    fail_reason: Optional[str] = None
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CampaignEventCreate(BaseModel):
    event_type: CampaignEventType
    detail: Optional[str] = Field(None, max_length=500)


class CampaignEvent(BaseModel):
    id: int
    recipient_id: int
    event_type: CampaignEventType
    detail: Optional[str] = None
    occurred_at: datetime

    model_config = {"from_attributes": True}


class CampaignSendResult(BaseModel):
    campaign_id: int
    total_recipients: int
    delivered_count: int
    failed_count: int
    status: CampaignStatus


class CampaignAnalytics(BaseModel):
    campaign_id: int
    total_recipients: int
    delivered_count: int
    failed_count: int
    opened_count: int
    clicked_count: int
    open_rate: float = Field(..., description="Porcentaje sobre entregados, dos decimales")
    click_rate: float


class AutomationRunResult(BaseModel):
    birthday_sent: int = 0
    reengagement_sent: int = 0
    campaign_ids: List[int] = Field(default_factory=list)
