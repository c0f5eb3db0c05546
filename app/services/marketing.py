from datetime import datetime, date, timedelta
import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import GymDomainError, NotFoundError, StateTransitionError, ValidationError
from app.core.timezone_utils import convert_utc_to_local, to_naive_utc, utcnow
from app.models.marketing import (
    MarketingCampaign,
    CampaignRecipient,
    CampaignEvent,
    CampaignAudience,
    CampaignChannel,
    CampaignEventType,
    CampaignStatus,
    RecipientStatus
)
from app.models.member import Member
from app.models.user import User
from app.repositories.marketing import (
    audience_repository,
    campaign_event_repository,
    campaign_recipient_repository,
    marketing_campaign_repository
)
from app.schemas.marketing import (
    AutomationRunResult,
    CampaignAnalytics,
    CampaignCreate,
    CampaignEventCreate,
    CampaignSendResult,
    CampaignUpdate
)
from app.services.schedule import class_service

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (CampaignStatus.DRAFT, CampaignStatus.SCHEDULED)
DEFAULT_SPECIAL_OFFER = "una oferta exclusiva"


class DeliveryError(Exception):
    """El proveedor externo rechazó el mensaje de un destinatario."""


# (canal, destino, asunto, cuerpo). Lanza DeliveryError si el envío falla.
Dispatcher = Callable[[CampaignChannel, str, Optional[str], str], None]


def log_dispatcher(channel: CampaignChannel, destination: str, subject: Optional[str], body: str) -> None:
    logger.debug(f"Mensaje {channel.value} para {destination}: {subject or body[:40]}")


def render_message(raw: str, user: User, special_offer: Optional[str]) -> str:
    return (
        raw.replace("{{first_name}}", user.first_name)
        .replace("{{last_name}}", user.last_name)
        .replace("{{email}}", user.email)
        .replace("{{special_offer}}", special_offer or DEFAULT_SPECIAL_OFFER)
    )


def destination_for(channel: CampaignChannel, member: Member, user: User) -> Optional[str]:
    if channel == CampaignChannel.EMAIL:
        return user.email or None
    if channel == CampaignChannel.SMS:
        return user.phone or None
    return str(member.id)


def _check_audience(audience: CampaignAudience, class_id: Optional[int], custom_member_ids: List[int]) -> None:
    if audience == CampaignAudience.CLASS_ATTENDEES and not class_id:
        raise ValidationError("class_id es obligatorio para campañas a asistentes de una clase")
    if audience == CampaignAudience.CUSTOM and not custom_member_ids:
        raise ValidationError("custom_member_ids es obligatorio para campañas personalizadas")


class MarketingService:
    """
    Campañas de marketing: segmentación de socios, registro de destinatarios
    y eventos, y analítica de apertura y clics.

    La entrega la hace un `Dispatcher` externo e intercambiable; por defecto
    solo se registra en el log.
    """

    def __init__(self, dispatcher: Dispatcher = log_dispatcher):
        self.dispatcher = dispatcher

    def set_dispatcher(self, dispatcher: Optional[Dispatcher]) -> None:
        self.dispatcher = dispatcher or log_dispatcher

    def create_campaign(self, db: Session, *, campaign_in: CampaignCreate) -> MarketingCampaign:
        if campaign_in.class_id is not None:
            class_service.get_class(db, campaign_in.class_id)
        data = campaign_in.model_dump()
        data["scheduled_at"] = to_naive_utc(campaign_in.scheduled_at)
        campaign = MarketingCampaign(**data)
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        logger.info(f"Campaña {campaign.id} creada ({campaign.audience.value}, {campaign.status.value})")
        return campaign

    def get_campaign(self, db: Session, campaign_id: int) -> MarketingCampaign:
        campaign = marketing_campaign_repository.get(db, id=campaign_id)
        if not campaign:
            raise NotFoundError(f"Campaña con ID {campaign_id} no encontrada")
        return campaign

    def list_campaigns(
        self, db: Session, *, status: Optional[CampaignStatus] = None, channel: Optional[CampaignChannel] = None,
        audience: Optional[CampaignAudience] = None, search: Optional[str] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[Tuple[MarketingCampaign, int]], int]:
        return marketing_campaign_repository.list_filtered(
            db, status=status, channel=channel, audience=audience, search=search, page=page, limit=limit
        )

    def update_campaign(self, db: Session, *, campaign_id: int, campaign_in: CampaignUpdate) -> MarketingCampaign:
        """
        Editar una campaña que aún no se ha enviado. Solo admite los estados
        DRAFT, SCHEDULED y CANCELLED.
        """
        campaign = self.get_campaign(db, campaign_id)
        if campaign.status not in EDITABLE_STATUSES:
            raise StateTransitionError(
                f"La campaña {campaign.id} ya no se puede editar", campaign.status, campaign_in.status
            )
        update_data = campaign_in.model_dump(exclude_unset=True)
        new_status = update_data.get("status")
        if new_status is not None and new_status not in EDITABLE_STATUSES + (CampaignStatus.CANCELLED,):
            raise StateTransitionError(
                "El estado de envío lo asigna el propio envío", campaign.status, new_status
            )
        if "scheduled_at" in update_data:
            update_data["scheduled_at"] = to_naive_utc(update_data["scheduled_at"])

        audience = update_data.get("audience", campaign.audience)
        class_id = update_data.get("class_id", campaign.class_id)
        custom_ids = update_data.get("custom_member_ids", campaign.custom_member_ids) or []
        _check_audience(audience, class_id, custom_ids)
        if "class_id" in update_data and class_id is not None:
            class_service.get_class(db, class_id)
        status = new_status or campaign.status
        scheduled_at = update_data.get("scheduled_at", campaign.scheduled_at)
        if status == CampaignStatus.SCHEDULED and scheduled_at is None:
            raise ValidationError("scheduled_at es obligatorio para programar la campaña")

        for field, value in update_data.items():
            setattr(campaign, field, value)
        db.commit()
        db.refresh(campaign)
        return campaign

    def resolve_audience(
        self, db: Session, campaign: MarketingCampaign, now: Optional[datetime] = None
    ) -> List[Tuple[Member, User]]:
        now = now or utcnow()
        if campaign.audience == CampaignAudience.ALL_MEMBERS:
            return audience_repository.all_members(db)
        if campaign.audience == CampaignAudience.BIRTHDAY_MEMBERS:
            today = convert_utc_to_local(now, get_settings().GYM_TIMEZONE).date()
            return audience_repository.with_birthday(db, month=today.month, day=today.day)
        if campaign.audience == CampaignAudience.INACTIVE_MEMBERS:
            days = campaign.inactive_days or get_settings().MARKETING_REENGAGEMENT_INACTIVE_DAYS
            return audience_repository.inactive_since(db, cutoff=now - timedelta(days=days))
        if campaign.audience == CampaignAudience.CLASS_ATTENDEES:
            return audience_repository.attendees_of_class(db, class_id=campaign.class_id)
        if campaign.audience == CampaignAudience.HIGH_RISK_MEMBERS:
            return audience_repository.at_high_risk(db)
        return audience_repository.by_ids(db, member_ids=list(campaign.custom_member_ids or []))

    def _record(
        self, db: Session, campaign: MarketingCampaign, member: Member, *,
        destination: Optional[str], fail_reason: Optional[str], now: datetime
    ) -> CampaignRecipient:
        recipient = campaign_recipient_repository.get_by_member(db, campaign_id=campaign.id, member_id=member.id)
        if recipient is None:
            recipient = CampaignRecipient(campaign_id=campaign.id, member_id=member.id)
            db.add(recipient)
        recipient.destination = destination
        if fail_reason:
            recipient.status = RecipientStatus.FAILED
            recipient.fail_reason = fail_reason
        else:
            recipient.status = RecipientStatus.SENT
            recipient.fail_reason = None
            recipient.sent_at = now
        db.flush()
        db.add(CampaignEvent(
            recipient_id=recipient.id,
            event_type=CampaignEventType.FAILED if fail_reason else CampaignEventType.DELIVERED,
            detail=fail_reason,
            occurred_at=now,
        ))
        return recipient

    def send_campaign(self, db: Session, campaign_id: int, now: Optional[datetime] = None) -> CampaignSendResult:
        """
        Resolver la audiencia, entregar el mensaje a cada socio y registrar
        destinatarios y eventos en una sola transacción.

        Estado final: SENT si todos se entregaron, PARTIAL si falló alguno y
        FAILED si no se entregó ninguno.

        Raises:
            StateTransitionError: la campaña ya se envió o está cancelada.
            ValidationError: la audiencia está vacía (la campaña queda FAILED).
        """
        now = to_naive_utc(now) or utcnow()
        self.get_campaign(db, campaign_id)
        try:
            campaign = marketing_campaign_repository.get_for_update(db, campaign_id)
            if campaign.status not in EDITABLE_STATUSES:
                raise StateTransitionError(
                    f"La campaña {campaign.id} no se puede enviar", campaign.status, CampaignStatus.SENT
                )
            audience = self.resolve_audience(db, campaign, now)
            if not audience:
                campaign.status = CampaignStatus.FAILED
                campaign.sent_at = now
                db.commit()
                logger.warning(f"Campaña {campaign.id} sin destinatarios")
                raise ValidationError(
                    "Ningún socio coincide con la audiencia de la campaña", {"campaign_id": campaign.id}
                )

            delivered = failed = 0
            for member, user in audience:
                destination = destination_for(campaign.channel, member, user)
                fail_reason = None
                if not destination:
                    fail_reason = f"Sin destino para {campaign.channel.value}"
                else:
                    subject = render_message(campaign.subject, user, campaign.special_offer) if campaign.subject else None
                    body = render_message(campaign.content, user, campaign.special_offer)
                    try:
                        self.dispatcher(campaign.channel, destination, subject, body)
                    except DeliveryError as e:
                        fail_reason = str(e)[:255] or "Rechazado por el proveedor"
                        logger.warning(f"Entrega fallida de la campaña {campaign.id} al socio {member.id}: {e}")
                self._record(db, campaign, member, destination=destination, fail_reason=fail_reason, now=now)
                if fail_reason:
                    failed += 1
                else:
                    delivered += 1

            if failed == 0:
                campaign.status = CampaignStatus.SENT
            elif delivered > 0:
                campaign.status = CampaignStatus.PARTIAL
            else:
                campaign.status = CampaignStatus.FAILED
            campaign.sent_at = now
            db.commit()
        except GymDomainError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error enviando la campaña {campaign_id}: {e}", exc_info=True)
            raise

        logger.info(
            f"Campaña {campaign_id} enviada: {delivered} entregados, {failed} fallidos -> {campaign.status.value}"
        )
        return CampaignSendResult(
            campaign_id=campaign_id,
            total_recipients=delivered + failed,
            delivered_count=delivered,
            failed_count=failed,
            status=campaign.status,
        )

    def log_campaign_event(
        self, db: Session, *, campaign_id: int, recipient_id: int, event_in: CampaignEventCreate,
        now: Optional[datetime] = None
    ) -> CampaignEvent:
        """
        Registrar un evento informado por el proveedor (apertura, clic...) y
        actualizar el estado del destinatario. Un clic implica apertura y un
        estado nunca retrocede de CLICKED a OPENED.
        """
        now = now or utcnow()
        recipient = campaign_recipient_repository.get_in_campaign(
            db, campaign_id=campaign_id, recipient_id=recipient_id
        )
        if not recipient:
            raise NotFoundError(f"Destinatario {recipient_id} no encontrado en la campaña {campaign_id}")

        event_type = event_in.event_type
        if event_type == CampaignEventType.OPENED:
            if recipient.status != RecipientStatus.CLICKED:
                recipient.status = RecipientStatus.OPENED
            recipient.opened_at = recipient.opened_at or now
        elif event_type == CampaignEventType.CLICKED:
            recipient.status = RecipientStatus.CLICKED
            recipient.clicked_at = now
            recipient.opened_at = recipient.opened_at or now
        elif event_type == CampaignEventType.FAILED:
            recipient.status = RecipientStatus.FAILED
            recipient.fail_reason = event_in.detail or recipient.fail_reason
        elif recipient.status not in (RecipientStatus.OPENED, RecipientStatus.CLICKED):
            recipient.status = RecipientStatus.SENT
            recipient.sent_at = recipient.sent_at or now

        event = CampaignEvent(recipient_id=recipient.id, event_type=event_type, detail=event_in.detail, occurred_at=now)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    def list_recipients(
        self, db: Session, *, campaign_id: int, status: Optional[RecipientStatus] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[CampaignRecipient], int]:
        self.get_campaign(db, campaign_id)
        return campaign_recipient_repository.get_page_for_campaign(
            db, campaign_id=campaign_id, status=status, page=page, limit=limit
        )

    def get_recipient_events(self, db: Session, *, campaign_id: int, recipient_id: int) -> List[CampaignEvent]:
        recipient = campaign_recipient_repository.get_in_campaign(
            db, campaign_id=campaign_id, recipient_id=recipient_id
        )
        if not recipient:
            raise NotFoundError(f"Destinatario {recipient_id} no encontrado en la campaña {campaign_id}")
        return campaign_event_repository.get_by_recipient(db, recipient_id=recipient.id)

    def get_campaign_analytics(self, db: Session, campaign_id: int) -> CampaignAnalytics:
        self.get_campaign(db, campaign_id)
        stats = campaign_recipient_repository.get_stats(db, campaign_id=campaign_id)
        delivered = stats["delivered"]
        return CampaignAnalytics(
            campaign_id=campaign_id,
            total_recipients=stats["total"],
            delivered_count=delivered,
            failed_count=stats["failed"],
            opened_count=stats["opened"],
            clicked_count=stats["clicked"],
            open_rate=round(stats["opened"] * 100 / delivered, 2) if delivered else 0.0,
            click_rate=round(stats["clicked"] * 100 / delivered, 2) if delivered else 0.0,
        )

    def process_scheduled_campaigns(self, db: Session, now: Optional[datetime] = None) -> int:
        """Enviar las campañas programadas cuya hora ya llegó. Devuelve cuántas se procesaron."""
        now = now or utcnow()
        due = marketing_campaign_repository.get_due_scheduled(db, now=now)
        for campaign in due:
            try:
                self.send_campaign(db, campaign.id, now=now)
            except GymDomainError as e:
                logger.warning(f"Campaña programada {campaign.id} no enviada: {e.message}")
        return len(due)

    def _run_automation(
        self, db: Session, *, name: str, audience: CampaignAudience, content: str, now: datetime,
        inactive_days: Optional[int] = None
    ) -> Tuple[Optional[int], int]:
        if marketing_campaign_repository.get_by_name(db, name=name):
            logger.info(f"Automatización '{name}' ya ejecutada")
            return None, 0
        campaign = MarketingCampaign(
            name=name,
            channel=CampaignChannel.EMAIL,
            status=CampaignStatus.DRAFT,
            audience=audience,
            inactive_days=inactive_days,
            content=content,
        )
        if not self.resolve_audience(db, campaign, now):
            return None, 0
        db.add(campaign)
        db.commit()
        result = self.send_campaign(db, campaign.id, now=now)
        return campaign.id, result.delivered_count

    def run_daily_automations(self, db: Session, now: Optional[datetime] = None) -> AutomationRunResult:
        """
        Campañas automáticas del día: felicitación a los socios que cumplen
        años y reenganche de socios inactivos. Volver a ejecutarlas el mismo
        día no crea campañas nuevas.
        """
        now = now or utcnow()
        settings = get_settings()
        today: date = convert_utc_to_local(now, settings.GYM_TIMEZONE).date()
        result = AutomationRunResult()

        campaign_id, sent = self._run_automation(
            db, name=f"Cumpleaños {today.isoformat()}", audience=CampaignAudience.BIRTHDAY_MEMBERS,
            content=settings.MARKETING_BIRTHDAY_MESSAGE, now=now
        )
        result.birthday_sent = sent
        if campaign_id:
            result.campaign_ids.append(campaign_id)

        campaign_id, sent = self._run_automation(
            db, name=f"Reenganche {today.isoformat()}", audience=CampaignAudience.INACTIVE_MEMBERS,
            content=settings.MARKETING_REENGAGEMENT_MESSAGE, now=now,
            inactive_days=settings.MARKETING_REENGAGEMENT_INACTIVE_DAYS
        )
        result.reengagement_sent = sent
        if campaign_id:
            result.campaign_ids.append(campaign_id)

        logger.info(
            f"Automatizaciones de marketing: {result.birthday_sent} cumpleaños, "
            f"{result.reengagement_sent} reenganche"
        )
        return result


marketing_service = MarketingService()
