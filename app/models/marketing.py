from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Enum, JSON, UniqueConstraint
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class CampaignChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    IN_APP = "IN_APP"


class CampaignStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    PARTIAL = "PARTIAL"  # Algunos destinatarios fallaron
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class CampaignAudience(str, enum.Enum):
    ALL_MEMBERS = "ALL_MEMBERS"
    INACTIVE_MEMBERS = "INACTIVE_MEMBERS"
    BIRTHDAY_MEMBERS = "BIRTHDAY_MEMBERS"
    CLASS_ATTENDEES = "CLASS_ATTENDEES"
    HIGH_RISK_MEMBERS = "HIGH_RISK_MEMBERS"
    CUSTOM = "CUSTOM"


class RecipientStatus(str, enum.Enum):
    SENT = "SENT"
    OPENED = "OPENED"
    CLICKED = "CLICKED"
    FAILED = "FAILED"


class CampaignEventType(str, enum.Enum):
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    CLICKED = "CLICKED"
    FAILED = "FAILED"


class MarketingCampaign(Base):
    """
    Campaña de marketing dirigida a un segmento de socios.

    El envío real (correo, SMS, notificación) lo hace un servicio externo;
    aquí se guardan la audiencia resuelta, los destinatarios y sus eventos.
    """
    __tablename__ = "marketing_campaigns"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    channel = Column(Enum(CampaignChannel), default=CampaignChannel.EMAIL, nullable=False)
    status = Column(Enum(CampaignStatus), default=CampaignStatus.DRAFT, nullable=False, index=True)
    audience = Column(Enum(CampaignAudience), default=CampaignAudience.ALL_MEMBERS, nullable=False)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=True)
    custom_member_ids = Column(JSON, nullable=False, default=list)
    inactive_days = Column(Integer, nullable=True)
    subject = Column(String(200), nullable=True)
    content = Column(Text, nullable=False)
    special_offer = Column(String(200), nullable=True)
    scheduled_at = Column(DateTime, nullable=True, index=True)
    sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class CampaignRecipient(Base):
    """Un socio alcanzado por una campaña y el estado de su entrega."""
    __tablename__ = "campaign_recipients"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("marketing_campaigns.id"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    destination = Column(String(255), nullable=True)
    status = Column(Enum(RecipientStatus), nullable=False, index=True)
    fail_reason = Column(String(255), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    clicked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('campaign_id', 'member_id', name='uq_campaign_recipient_member'),
    )


class CampaignEvent(Base):
    """Registro inmutable de lo ocurrido con un destinatario (entrega, apertura, clic)."""
    __tablename__ = "campaign_events"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("campaign_recipients.id"), nullable=False, index=True)
    event_type = Column(Enum(CampaignEventType), nullable=False)
    detail = Column(String(500), nullable=True)
    occurred_at = Column(DateTime, default=utcnow, nullable=False, index=True)
