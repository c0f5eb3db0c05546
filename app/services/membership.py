from typing import List, Optional, Dict
from datetime import date, timedelta
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, StateTransitionError, ValidationError
from app.core.config import get_settings
from app.core.timezone_utils import gym_today, utcnow
from app.models.membership import MembershipPlan, Membership, MembershipStatus
from app.repositories.member import member_repository
from app.repositories.membership import membership_plan_repository, membership_repository
from app.schemas.membership import (
    MembershipPlanCreate,
    MembershipPlanUpdate,
    MembershipAssign,
    PriceBreakdown
)
from app.services.discount import discount_service
from app.services.member import member_service

logger = logging.getLogger(__name__)


def _today() -> date:
    return gym_today(get_settings().GYM_TIMEZONE)


class MembershipService:
    """Servicio para gestionar planes de membresía y membresías de socios"""

    # === Gestión de Planes de Membresía ===

    def create_plan(self, db: Session, *, plan_in: MembershipPlanCreate) -> MembershipPlan:
        """Crear un nuevo plan de membresía"""
        if membership_plan_repository.get_by_name(db, name=plan_in.name):
            raise ConflictError(f"Ya existe un plan llamado '{plan_in.name}'")
        try:
            plan = membership_plan_repository.create(db, obj_in=plan_in)
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"Ya existe un plan llamado '{plan_in.name}'")
        logger.info(f"Plan de membresía creado: {plan.name} (ID: {plan.id})")
        return plan

    def get_plan(self, db: Session, plan_id: int) -> MembershipPlan:
        plan = membership_plan_repository.get(db, id=plan_id)
        if not plan:
            raise NotFoundError(f"Plan de membresía con ID {plan_id} no encontrado")
        return plan

    def list_plans(self, db: Session, *, active_only: bool = True) -> List[MembershipPlan]:
        query = db.query(MembershipPlan)
        if active_only:
            query = query.filter(MembershipPlan.is_active == True)
        return query.order_by(MembershipPlan.price_cents, MembershipPlan.id).all()

    def update_plan(self, db: Session, *, plan_id: int, plan_in: MembershipPlanUpdate) -> MembershipPlan:
        """
        Actualizar un plan. Las membresías ya asignadas conservan su precio y
        fechas porque se copiaron en el momento de la asignación.
        """
        plan = self.get_plan(db, plan_id)
        if plan_in.name and plan_in.name != plan.name and membership_plan_repository.get_by_name(db, name=plan_in.name):
            raise ConflictError(f"Ya existe un plan llamado '{plan_in.name}'")
        plan = membership_plan_repository.update(db, db_obj=plan, obj_in=plan_in)
        logger.info(f"Plan de membresía actualizado: {plan.id}")
        return plan

    def deactivate_plan(self, db: Session, plan_id: int) -> MembershipPlan:
        """Los planes no se borran si tienen membresías; se desactivan."""
        plan = self.get_plan(db, plan_id)
        if plan.is_active:
            plan.is_active = False
            db.commit()
            db.refresh(plan)
            logger.info(f"Plan de membresía desactivado: {plan.id}")
        return plan

    def delete_plan(self, db: Session, plan_id: int) -> MembershipPlan:
        plan = self.get_plan(db, plan_id)
        if membership_plan_repository.is_referenced(db, plan_id=plan_id):
            return self.deactivate_plan(db, plan_id)
        membership_plan_repository.remove(db, id=plan_id)
        logger.info(f"Plan de membresía eliminado: {plan_id}")
        return plan

    # === Membresías ===

    def preview_discount(self, db: Session, *, plan_id: int, code: str) -> PriceBreakdown:
        plan = self.get_plan(db, plan_id)
        return discount_service.preview(db, code=code, price_cents=plan.price_cents)

    def assign_membership(self, db: Session, *, assign_in: MembershipAssign, today: Optional[date] = None) -> Membership:
        """
        Asigna un plan a un socio.

        Un socio solo puede tener una membresía ACTIVE, PENDING o FROZEN a la
        vez. El canje del código de descuento y la creación de la membresía
        se confirman en la misma transacción.
        """
        today = today or _today()
        member = member_service.require_member(db, assign_in.member_id)
        if not member.is_active:
            raise ValidationError(f"El socio {member.id} está dado de baja")

        plan = self.get_plan(db, assign_in.plan_id)
        if not plan.is_active:
            raise ValidationError(f"El plan {plan.name} no está activo")

        start_date = assign_in.start_date or today
        if start_date < today:
            raise ValidationError("start_date no puede estar en el pasado")
        end_date = start_date + timedelta(days=plan.duration_days)

        original = plan.price_cents
        discount_cents = 0
        discount_code_id = None
        try:
            # Serializa asignaciones concurrentes del mismo socio
            member_repository.get_for_update(db, member.id)
            current = membership_repository.get_current(db, member_id=member.id)
            if current:
                raise ConflictError(
                    f"El socio ya tiene una membresía vigente (ID {current.id}, estado {current.status.value})"
                )

            if assign_in.discount_code:
                discount, breakdown = discount_service.redeem(db, code=assign_in.discount_code, price_cents=original)
                discount_cents = breakdown.discount_cents
                discount_code_id = discount.id

            membership = Membership(
                member_id=member.id,
                plan_id=plan.id,
                start_date=start_date,
                end_date=end_date,
                status=MembershipStatus.ACTIVE if start_date <= today else MembershipStatus.PENDING,
                original_price_cents=original,
                discount_cents=discount_cents,
                final_price_cents=max(0, original - discount_cents),
                discount_code_id=discount_code_id,
                notes=assign_in.notes,
            )
            db.add(membership)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al asignar membresía al socio {member.id}: {e.orig}")
            raise ConflictError("La membresía no pudo asignarse por un cambio concurrente; reintente")
        except Exception:
            db.rollback()
            raise

        db.refresh(membership)
        logger.info(
            f"Membresía {membership.id} asignada: socio {member.id}, plan {plan.id}, "
            f"{membership.start_date} -> {membership.end_date}, estado {membership.status.value}"
        )
        return membership

    def get_membership(self, db: Session, membership_id: int) -> Membership:
        membership = membership_repository.get(db, id=membership_id)
        if not membership:
            raise NotFoundError(f"Membresía con ID {membership_id} no encontrada")
        return membership

    def list_member_memberships(self, db: Session, member_id: int) -> List[Membership]:
        member_service.require_member(db, member_id)
        return membership_repository.get_by_member(db, member_id=member_id)

    def get_active_membership(self, db: Session, member_id: int, today: Optional[date] = None) -> Optional[Membership]:
        return membership_repository.get_active(db, member_id=member_id, today=today or _today())

    def is_membership_valid(self, db: Session, member_id: int, today: Optional[date] = None) -> bool:
        return self.get_active_membership(db, member_id, today) is not None

    def has_unlimited_classes(self, db: Session, member_id: int, today: Optional[date] = None) -> bool:
        """True si la membresía activa del socio incluye clases ilimitadas."""
        membership = self.get_active_membership(db, member_id, today)
        if not membership:
            return False
        plan = membership_plan_repository.get(db, id=membership.plan_id)
        return bool(plan and plan.unlimited_classes)

    def freeze_membership(self, db: Session, membership_id: int) -> Membership:
        membership = self.get_membership(db, membership_id)
        if membership.status != MembershipStatus.ACTIVE:
            raise StateTransitionError(
                "Solo se pueden congelar membresías activas", membership.status, MembershipStatus.FROZEN
            )
        membership.status = MembershipStatus.FROZEN
        membership.frozen_at = utcnow()
        db.commit()
        db.refresh(membership)
        logger.info(f"Membresía {membership_id} congelada")
        return membership

    def unfreeze_membership(self, db: Session, membership_id: int, today: Optional[date] = None) -> Membership:
        today = today or _today()
        membership = self.get_membership(db, membership_id)
        if membership.status != MembershipStatus.FROZEN:
            raise StateTransitionError(
                "La membresía no está congelada", membership.status, MembershipStatus.ACTIVE
            )
        membership.status = MembershipStatus.EXPIRED if membership.end_date < today else MembershipStatus.ACTIVE
        membership.frozen_at = None
        db.commit()
        db.refresh(membership)
        logger.info(f"Membresía {membership_id} descongelada -> {membership.status.value}")
        return membership

    def cancel_membership(self, db: Session, membership_id: int) -> Membership:
        membership = self.get_membership(db, membership_id)
        if membership.status not in (MembershipStatus.ACTIVE, MembershipStatus.PENDING, MembershipStatus.FROZEN):
            raise StateTransitionError(
                "La membresía ya no está vigente", membership.status, MembershipStatus.CANCELLED
            )
        membership.status = MembershipStatus.CANCELLED
        membership.cancelled_at = utcnow()
        db.commit()
        db.refresh(membership)
        logger.info(f"Membresía {membership_id} cancelada")
        return membership

    def run_lifecycle(self, db: Session, today: Optional[date] = None) -> Dict[str, int]:
        """
        Barrido periódico: ACTIVE o PENDING con end_date pasada -> EXPIRED y
        PENDING cuya fecha de inicio ya llegó -> ACTIVE. La fecha por defecto
        es la del gimnasio, no la UTC.
        """
        today = today or _today()
        expired = membership_repository.get_due_for_expiry(db, today=today)
        for membership in expired:
            membership.status = MembershipStatus.EXPIRED
        activated = membership_repository.get_due_for_activation(db, today=today)
        for membership in activated:
            membership.status = MembershipStatus.ACTIVE
        db.commit()
        if expired or activated:
            logger.info(f"Ciclo de membresías: {len(expired)} expiradas, {len(activated)} activadas")
        return {"expired": len(expired), "activated": len(activated)}


membership_service = MembershipService()
