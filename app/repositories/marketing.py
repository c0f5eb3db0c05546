from typing import Dict, List, Optional, Tuple
from datetime import datetime
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.attendance import Attendance
from app.models.marketing import (
    MarketingCampaign,
    CampaignRecipient,
    CampaignEvent,
    CampaignAudience,
    CampaignChannel,
    CampaignStatus,
    RecipientStatus
)
from app.models.member import Member
from app.models.retention import MemberRetentionRisk, RiskLevel
from app.models.schedule import BookingStatus, ClassBooking, ClassSchedule
from app.models.user import User, UserStatus
from app.schemas.marketing import CampaignCreate, CampaignUpdate, CampaignEventCreate

DELIVERED_STATUSES = (RecipientStatus.SENT, RecipientStatus.OPENED, RecipientStatus.CLICKED)


class MarketingCampaignRepository(BaseRepository[MarketingCampaign, CampaignCreate, CampaignUpdate]):
    def list_filtered(
        self, db: Session, *, status: Optional[CampaignStatus] = None, channel: Optional[CampaignChannel] = None,
        audience: Optional[CampaignAudience] = None, search: Optional[str] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[Tuple[MarketingCampaign, int]], int]:
        """
        Campañas más recientes primero, con el número de destinatarios de cada una.

        Returns:
            Tupla (pares (campaña, destinatarios) de la página, total)
        """
        query = db.query(MarketingCampaign)
        if status is not None:
            query = query.filter(MarketingCampaign.status == status)
        if channel is not None:
            query = query.filter(MarketingCampaign.channel == channel)
        if audience is not None:
            query = query.filter(MarketingCampaign.audience == audience)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                MarketingCampaign.name.ilike(pattern),
                MarketingCampaign.description.ilike(pattern),
                MarketingCampaign.content.ilike(pattern),
            ))
        total = query.count()
        campaigns = query.order_by(
            MarketingCampaign.created_at.desc(), MarketingCampaign.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        counts = {}
        if campaigns:
            rows = db.query(CampaignRecipient.campaign_id, func.count(CampaignRecipient.id)).filter(
                CampaignRecipient.campaign_id.in_([c.id for c in campaigns])
            ).group_by(CampaignRecipient.campaign_id).all()
            counts = {campaign_id: count for campaign_id, count in rows}
        return [(c, counts.get(c.id, 0)) for c in campaigns], total

    def get_by_name(self, db: Session, *, name: str) -> Optional[MarketingCampaign]:
        return db.query(MarketingCampaign).filter(MarketingCampaign.name == name).first()

    def get_due_scheduled(self, db: Session, *, now: datetime, limit: int = 50) -> List[MarketingCampaign]:
        return db.query(MarketingCampaign).filter(
            MarketingCampaign.status == CampaignStatus.SCHEDULED,
            MarketingCampaign.scheduled_at <= now
        ).order_by(MarketingCampaign.scheduled_at).limit(limit).all()


class CampaignRecipientRepository(BaseRepository[CampaignRecipient, CampaignEventCreate, CampaignEventCreate]):
    def get_in_campaign(self, db: Session, *, campaign_id: int, recipient_id: int) -> Optional[CampaignRecipient]:
        return db.query(CampaignRecipient).filter(
            CampaignRecipient.id == recipient_id,
            CampaignRecipient.campaign_id == campaign_id
        ).first()

    def get_by_member(self, db: Session, *, campaign_id: int, member_id: int) -> Optional[CampaignRecipient]:
        return db.query(CampaignRecipient).filter(
            CampaignRecipient.campaign_id == campaign_id,
            CampaignRecipient.member_id == member_id
        ).first()

    def get_page_for_campaign(
        self, db: Session, *, campaign_id: int, status: Optional[RecipientStatus] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[CampaignRecipient], int]:
        return self.get_page(
            db, page=page, limit=limit, filters={"campaign_id": campaign_id, "status": status}
        )

    def get_stats(self, db: Session, *, campaign_id: int) -> Dict[str, int]:
        base = db.query(func.count(CampaignRecipient.id)).filter(CampaignRecipient.campaign_id == campaign_id)
        return {
            "total": base.scalar() or 0,
            "delivered": base.filter(CampaignRecipient.status.in_(DELIVERED_STATUSES)).scalar() or 0,
            "failed": base.filter(CampaignRecipient.status == RecipientStatus.FAILED).scalar() or 0,
            "opened": base.filter(or_(
                CampaignRecipient.opened_at.isnot(None),
                CampaignRecipient.status.in_((RecipientStatus.OPENED, RecipientStatus.CLICKED)),
            )).scalar() or 0,
            "clicked": base.filter(or_(
                CampaignRecipient.clicked_at.isnot(None),
                CampaignRecipient.status == RecipientStatus.CLICKED,
            )).scalar() or 0,
        }


class CampaignEventRepository(BaseRepository[CampaignEvent, CampaignEventCreate, CampaignEventCreate]):
    def get_by_recipient(self, db: Session, *, recipient_id: int) -> List[CampaignEvent]:
        return db.query(CampaignEvent).filter(
            CampaignEvent.recipient_id == recipient_id
        ).order_by(CampaignEvent.occurred_at, CampaignEvent.id).all()


class AudienceRepository:
    """
    Consultas de segmentación. Todas devuelven pares (Member, User) de socios
    activos cuyo usuario también está activo, ordenados por ID de socio.
    """

    def _active_members(self, db: Session):
        return db.query(Member, User).join(User, User.id == Member.user_id).filter(
            Member.is_active == True,
            User.status == UserStatus.ACTIVE
        )

    def all_members(self, db: Session) -> List[Tuple[Member, User]]:
        return self._active_members(db).order_by(Member.id).all()

    def by_ids(self, db: Session, *, member_ids: List[int]) -> List[Tuple[Member, User]]:
        if not member_ids:
            return []
        return self._active_members(db).filter(Member.id.in_(member_ids)).order_by(Member.id).all()

    def with_birthday(self, db: Session, *, month: int, day: int) -> List[Tuple[Member, User]]:
        rows = self._active_members(db).filter(Member.date_of_birth.isnot(None)).order_by(Member.id).all()
        return [
            (member, user) for member, user in rows
            if member.date_of_birth.month == month and member.date_of_birth.day == day
        ]

    def inactive_since(self, db: Session, *, cutoff: datetime) -> List[Tuple[Member, User]]:
        """Socios sin asistencias o cuya última entrada es anterior a `cutoff`."""
        last_check_in = db.query(
            Attendance.member_id.label("member_id"),
            func.max(Attendance.check_in_time).label("last_check_in")
        ).group_by(Attendance.member_id).subquery()
        return self._active_members(db).outerjoin(
            last_check_in, last_check_in.c.member_id == Member.id
        ).filter(or_(
            last_check_in.c.last_check_in.is_(None),
            last_check_in.c.last_check_in < cutoff,
        )).order_by(Member.id).all()

    def attendees_of_class(self, db: Session, *, class_id: int) -> List[Tuple[Member, User]]:
        booked = select(ClassBooking.member_id).join(
            ClassSchedule, ClassSchedule.id == ClassBooking.schedule_id
        ).where(
            ClassSchedule.class_id == class_id,
            ClassBooking.status.in_((BookingStatus.CONFIRMED, BookingStatus.COMPLETED))
        )
        return self._active_members(db).filter(Member.id.in_(booked)).order_by(Member.id).all()

    def at_high_risk(self, db: Session) -> List[Tuple[Member, User]]:
        high = select(MemberRetentionRisk.member_id).where(MemberRetentionRisk.risk_level == RiskLevel.HIGH)
        return self._active_members(db).filter(Member.id.in_(high)).order_by(Member.id).all()


marketing_campaign_repository = MarketingCampaignRepository(MarketingCampaign)
campaign_recipient_repository = CampaignRecipientRepository(CampaignRecipient)
campaign_event_repository = CampaignEventRepository(CampaignEvent)
audience_repository = AudienceRepository()
