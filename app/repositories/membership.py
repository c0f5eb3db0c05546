from typing import List, Optional
from datetime import date
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.membership import MembershipPlan, Membership, MembershipStatus
from app.schemas.membership import MembershipPlanCreate, MembershipPlanUpdate, MembershipAssign

# Estados que ocupan el "hueco" de membresía vigente de un socio
CURRENT_STATUSES = (MembershipStatus.ACTIVE, MembershipStatus.PENDING, MembershipStatus.FROZEN)


class MembershipPlanRepository(BaseRepository[MembershipPlan, MembershipPlanCreate, MembershipPlanUpdate]):
    def get_by_name(self, db: Session, *, name: str) -> Optional[MembershipPlan]:
        return db.query(MembershipPlan).filter(MembershipPlan.name == name).first()

    def is_referenced(self, db: Session, *, plan_id: int) -> bool:
        query = db.query(Membership.id).filter(Membership.plan_id == plan_id)
        return db.query(query.exists()).scalar()


class MembershipRepository(BaseRepository[Membership, MembershipAssign, MembershipAssign]):
    def get_current(self, db: Session, *, member_id: int) -> Optional[Membership]:
        """Membresía ACTIVE, PENDING o FROZEN del socio."""
        return db.query(Membership).filter(
            Membership.member_id == member_id,
            Membership.status.in_(CURRENT_STATUSES)
        ).order_by(Membership.start_date.desc()).first()

    def get_active(self, db: Session, *, member_id: int, today: date) -> Optional[Membership]:
        """Membresía ACTIVE que cubre `today`."""
        return db.query(Membership).filter(
            Membership.member_id == member_id,
            Membership.status == MembershipStatus.ACTIVE,
            Membership.start_date <= today,
            Membership.end_date >= today
        ).first()

    def get_by_member(self, db: Session, *, member_id: int) -> List[Membership]:
        return db.query(Membership).filter(
            Membership.member_id == member_id
        ).order_by(Membership.start_date.desc()).all()

    def get_due_for_expiry(self, db: Session, *, today: date) -> List[Membership]:
        return db.query(Membership).filter(
            Membership.status.in_((MembershipStatus.ACTIVE, MembershipStatus.PENDING)),
            Membership.end_date < today
        ).all()

    def get_due_for_activation(self, db: Session, *, today: date) -> List[Membership]:
        return db.query(Membership).filter(
            Membership.status == MembershipStatus.PENDING,
            Membership.start_date <= today,
            Membership.end_date >= today
        ).all()


membership_plan_repository = MembershipPlanRepository(MembershipPlan)
membership_repository = MembershipRepository(Membership)
