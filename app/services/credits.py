from typing import List, Optional
from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientCreditsError, NotFoundError, ValidationError
from app.core.timezone_utils import utcnow
from app.models.credits import (
    ClassPackage,
    MemberClassPass,
    ClassCreditTransaction,
    ClassPassStatus,
    CreditTransactionType
)
from app.models.schedule import ClassBooking, ClassSchedule, GymClass
from app.repositories.credits import (
    class_package_repository,
    member_class_pass_repository,
    credit_transaction_repository
)
from app.repositories.schedule import class_repository
from app.schemas.credits import ClassPackageCreate, MemberCredits, MemberClassPass as MemberClassPassSchema
from app.services.member import member_service
from app.services.membership import membership_service

logger = logging.getLogger(__name__)


def _expiry_sort_key(credit_pass: MemberClassPass):
    # Primero el que caduca antes; los que no caducan al final; empate por antigüedad
    return (
        credit_pass.expires_at is None,
        credit_pass.expires_at or datetime.max,
        credit_pass.purchased_at,
        credit_pass.id,
    )


class CreditService:
    """
    Paquetes de clases y contabilidad de créditos.

    Cada compra crea un pase con su propio contador. Reservar una clase que
    requiere créditos descuenta 1 del pase aplicable que caduque antes; si el
    socio tiene un pase ilimitado vigente no se descuenta nada.
    """

    # === Paquetes ===

    def create_package(self, db: Session, *, package_in: ClassPackageCreate) -> ClassPackage:
        if package_in.class_id is not None and not class_repository.exists(db, package_in.class_id):
            raise NotFoundError(f"Clase con ID {package_in.class_id} no encontrada")
        package = class_package_repository.create(db, obj_in=package_in)
        logger.info(f"Paquete de clases creado: {package.name} (ID: {package.id})")
        return package

    def get_package(self, db: Session, package_id: int) -> ClassPackage:
        package = class_package_repository.get(db, id=package_id)
        if not package:
            raise NotFoundError(f"Paquete con ID {package_id} no encontrado")
        return package

    def list_packages(self, db: Session, *, active_only: bool = True) -> List[ClassPackage]:
        if active_only:
            return class_package_repository.get_active(db)
        return class_package_repository.get_multi(db, limit=1000)

    def purchase_package(
        self, db: Session, *, member_id: int, package_id: int, now: Optional[datetime] = None
    ) -> MemberClassPass:
        now = now or utcnow()
        member = member_service.require_member(db, member_id)
        if not member.is_active:
            raise ValidationError(f"El socio {member_id} está dado de baja")
        package = self.get_package(db, package_id)
        if not package.is_active:
            raise ValidationError(f"El paquete {package.name} no está disponible")

        if package.monthly_unlimited or package.validity_days is None:
            expires_at = None
        else:
            expires_at = now + timedelta(days=package.validity_days)

        credit_pass = MemberClassPass(
            member_id=member.id,
            package_id=package.id,
            class_id=package.class_id,
            purchased_at=now,
            expires_at=expires_at,
            total_credits=package.credits_included,
            remaining_credits=package.credits_included,
            monthly_unlimited=package.monthly_unlimited,
            status=ClassPassStatus.ACTIVE,
        )
        db.add(credit_pass)
        db.flush()
        db.add(ClassCreditTransaction(
            member_id=member.id,
            pass_id=credit_pass.id,
            type=CreditTransactionType.PURCHASE,
            credits_delta=package.credits_included,
            balance_after=credit_pass.remaining_credits,
            notes=f"Compra del paquete {package.name}",
        ))
        db.commit()
        db.refresh(credit_pass)
        logger.info(f"Socio {member.id} compró el paquete {package.id} (pase {credit_pass.id})")
        return credit_pass

    # === Créditos ===

    def get_member_credits(self, db: Session, member_id: int, now: Optional[datetime] = None) -> MemberCredits:
        now = now or utcnow()
        member_service.require_member(db, member_id)
        passes = member_class_pass_repository.get_active_for_member(db, member_id=member_id, now=now)
        return MemberCredits(
            member_id=member_id,
            total_remaining_credits=sum(p.remaining_credits for p in passes if not p.monthly_unlimited),
            has_unlimited_pass=any(p.monthly_unlimited for p in passes),
            active_passes=[MemberClassPassSchema.model_validate(p) for p in passes],
        )

    def requires_credit(self, db: Session, *, member_id: int, gym_class: GymClass, now: datetime) -> bool:
        """La clase exige créditos salvo que la membresía activa incluya clases ilimitadas."""
        if not gym_class.requires_credits:
            return False
        return not membership_service.has_unlimited_classes(db, member_id, now.date())

    def select_pass(
        self, db: Session, *, member_id: int, schedule: ClassSchedule, now: Optional[datetime] = None
    ) -> Optional[MemberClassPass]:
        """
        Elige (y bloquea) el pase del que se descontará el crédito.

        Returns:
            El pase aplicable que caduca antes, o None si no hay que descontar
            (clase sin créditos, membresía con clases ilimitadas o pase ilimitado).

        Raises:
            InsufficientCreditsError: si no hay ningún pase aplicable con saldo.
        """
        now = now or utcnow()
        gym_class = class_repository.get(db, id=schedule.class_id)
        if not self.requires_credit(db, member_id=member_id, gym_class=gym_class, now=now):
            return None

        usable = member_class_pass_repository.get_usable(
            db, member_id=member_id, class_id=schedule.class_id, now=now, for_update=True
        )
        if any(p.monthly_unlimited for p in usable):
            logger.debug(f"Socio {member_id} tiene pase ilimitado; no se descuentan créditos")
            return None

        candidates = sorted((p for p in usable if p.remaining_credits > 0), key=_expiry_sort_key)
        if not candidates:
            raise InsufficientCreditsError(
                f"El socio {member_id} no tiene créditos disponibles para esta clase"
            )
        return candidates[0]

    def apply_usage(
        self, db: Session, *, credit_pass: MemberClassPass, booking: ClassBooking
    ) -> MemberClassPass:
        """Descuenta 1 crédito del pase y lo anota en el libro. No hace commit."""
        credit_pass.remaining_credits -= 1
        if credit_pass.remaining_credits == 0:
            credit_pass.status = ClassPassStatus.EXHAUSTED
        booking.credit_pass_id = credit_pass.id
        db.flush()
        db.add(ClassCreditTransaction(
            member_id=booking.member_id,
            pass_id=credit_pass.id,
            booking_id=booking.id,
            type=CreditTransactionType.USAGE,
            credits_delta=-1,
            balance_after=credit_pass.remaining_credits,
            notes=f"Reserva de la sesión {booking.schedule_id}",
        ))
        logger.info(
            f"Crédito consumido: socio {booking.member_id}, pase {credit_pass.id}, "
            f"restantes {credit_pass.remaining_credits}"
        )
        return credit_pass

    def consume_credit(
        self, db: Session, *, schedule: ClassSchedule, booking: ClassBooking,
        now: Optional[datetime] = None
    ) -> Optional[MemberClassPass]:
        """
        Descuenta un crédito para `booking` dentro de la transacción actual.
        No hace commit.
        """
        credit_pass = self.select_pass(db, member_id=booking.member_id, schedule=schedule, now=now)
        if credit_pass is None:
            return None
        return self.apply_usage(db, credit_pass=credit_pass, booking=booking)

    def refund_credit(self, db: Session, *, booking: ClassBooking, reason: str,
                      now: Optional[datetime] = None) -> Optional[MemberClassPass]:
        """
        Devuelve el crédito al mismo pase del que se descontó. No hace commit.
        No hace nada si la reserva no consumió crédito.
        """
        if booking.credit_pass_id is None:
            return None
        now = now or utcnow()
        credit_pass = member_class_pass_repository.get_for_update(db, booking.credit_pass_id)
        if credit_pass is None:
            return None

        credit_pass.remaining_credits = min(credit_pass.total_credits, credit_pass.remaining_credits + 1)
        if credit_pass.status == ClassPassStatus.EXHAUSTED:
            credit_pass.status = ClassPassStatus.EXPIRED if credit_pass.is_expired(now) else ClassPassStatus.ACTIVE
        db.add(ClassCreditTransaction(
            member_id=booking.member_id,
            pass_id=credit_pass.id,
            booking_id=booking.id,
            type=CreditTransactionType.REFUND,
            credits_delta=1,
            balance_after=credit_pass.remaining_credits,
            notes=reason,
        ))
        booking.credit_pass_id = None
        logger.info(f"Crédito devuelto al pase {credit_pass.id} por la reserva {booking.id}")
        return credit_pass

    def get_transactions(self, db: Session, member_id: int) -> List[ClassCreditTransaction]:
        member_service.require_member(db, member_id)
        return credit_transaction_repository.get_by_member(db, member_id=member_id)

    def expire_passes(self, db: Session, now: Optional[datetime] = None) -> int:
        """Marca como EXPIRED los pases caducados."""
        now = now or utcnow()
        passes = db.query(MemberClassPass).filter(
            MemberClassPass.status.in_([ClassPassStatus.ACTIVE, ClassPassStatus.EXHAUSTED]),
            MemberClassPass.expires_at.isnot(None),
            MemberClassPass.expires_at <= now
        ).all()
        for credit_pass in passes:
            credit_pass.status = ClassPassStatus.EXPIRED
        db.commit()
        if passes:
            logger.info(f"{len(passes)} pases de clases caducados")
        return len(passes)


credit_service = CreditService()
