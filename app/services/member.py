from typing import List, Optional, Tuple
import hashlib
import logging
import secrets

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError
from app.core.timezone_utils import utcnow
from app.models.member import Member, Trainer
from app.models.user import User, UserRole, UserStatus
from app.repositories.member import member_repository, trainer_repository
from app.repositories.schedule import instructor_rating_repository
from app.repositories.user import user_repository
from app.schemas import member as member_schemas

logger = logging.getLogger(__name__)


class MemberService:
    """Alta, baja lógica y consulta de socios"""

    def generate_qr_token(self, member_id: int) -> str:
        """
        Genera un código QR único para un socio.
        El formato es: M{member_id}_{hash}
        """
        random_str = secrets.token_hex(8)
        hash_short = hashlib.sha256(f"{member_id}_{random_str}".encode()).hexdigest()[:8]
        return f"M{member_id}_{hash_short}"

    def register_member(self, db: Session, *, member_in: member_schemas.MemberCreate) -> member_schemas.Member:
        if user_repository.get_by_email(db, email=member_in.email):
            raise ConflictError(f"Ya existe un usuario con el email {member_in.email}")

        try:
            user = User(
                email=member_in.email.lower(),
                first_name=member_in.first_name,
                last_name=member_in.last_name,
                phone=member_in.phone,
                role=UserRole.MEMBER,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
            db.flush()

            member = Member(
                user_id=user.id,
                date_of_birth=member_in.date_of_birth,
                emergency_contact_name=member_in.emergency_contact_name,
                emergency_contact_phone=member_in.emergency_contact_phone,
                is_active=True,
            )
            db.add(member)
            db.flush()
            member.qr_code_token = self.generate_qr_token(member.id)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al registrar socio {member_in.email}: {e.orig}")
            raise ConflictError(f"Ya existe un usuario con el email {member_in.email}")

        db.refresh(member)
        db.refresh(user)
        logger.info(f"Socio registrado: member_id={member.id}, user_id={user.id}")
        return member_schemas.build_member_response(member, user)

    def get_member_with_user(self, db: Session, member_id: int) -> Tuple[Member, User]:
        row = member_repository.get_with_user(db, member_id=member_id)
        if not row:
            raise NotFoundError(f"Socio con ID {member_id} no encontrado")
        return row

    def get_member(self, db: Session, member_id: int) -> member_schemas.Member:
        member, user = self.get_member_with_user(db, member_id)
        return member_schemas.build_member_response(member, user)

    def require_member(self, db: Session, member_id: int) -> Member:
        member = member_repository.get(db, id=member_id)
        if not member:
            raise NotFoundError(f"Socio con ID {member_id} no encontrado")
        return member

    def list_members(
        self, db: Session, *, search: Optional[str] = None, is_active: Optional[bool] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[member_schemas.Member], int]:
        rows, total = member_repository.search(db, search=search, is_active=is_active, page=page, limit=limit)
        return [member_schemas.build_member_response(m, u) for m, u in rows], total

    def update_member(
        self, db: Session, *, member_id: int, member_in: member_schemas.MemberUpdate
    ) -> member_schemas.Member:
        member, user = self.get_member_with_user(db, member_id)
        update_data = member_in.model_dump(exclude_unset=True)

        for field in ("first_name", "last_name", "phone"):
            if field in update_data:
                setattr(user, field, update_data.pop(field))
        for field, value in update_data.items():
            setattr(member, field, value)

        db.commit()
        db.refresh(member)
        db.refresh(user)
        logger.info(f"Socio {member_id} actualizado: {sorted(member_in.model_dump(exclude_unset=True).keys())}")
        return member_schemas.build_member_response(member, user)

    def deactivate_member(self, db: Session, member_id: int) -> member_schemas.Member:
        """Baja lógica: el socio nunca se elimina físicamente."""
        member, user = self.get_member_with_user(db, member_id)
        if member.is_active:
            member.is_active = False
            member.deactivated_at = utcnow()
            user.status = UserStatus.INACTIVE
            db.commit()
            db.refresh(member)
            db.refresh(user)
            logger.info(f"Socio {member_id} desactivado")
        return member_schemas.build_member_response(member, user)

    def reactivate_member(self, db: Session, member_id: int) -> member_schemas.Member:
        member, user = self.get_member_with_user(db, member_id)
        if not member.is_active:
            member.is_active = True
            member.deactivated_at = None
            user.status = UserStatus.ACTIVE
            db.commit()
            db.refresh(member)
            db.refresh(user)
            logger.info(f"Socio {member_id} reactivado")
        return member_schemas.build_member_response(member, user)

    def regenerate_qr_token(self, db: Session, member_id: int) -> str:
        member = self.require_member(db, member_id)
        member.qr_code_token = self.generate_qr_token(member.id)
        db.commit()
        logger.info(f"Código QR regenerado para socio {member_id}")
        return member.qr_code_token

    def resolve_qr_token(self, db: Session, token: str) -> Member:
        """El token debe corresponder exactamente a un socio."""
        member = member_repository.get_by_qr_token(db, token=token.strip())
        if not member:
            raise NotFoundError("Código QR no reconocido")
        return member


class TrainerService:
    def create_trainer(self, db: Session, *, trainer_in: member_schemas.TrainerCreate) -> member_schemas.Trainer:
        if user_repository.get_by_email(db, email=trainer_in.email):
            raise ConflictError(f"Ya existe un usuario con el email {trainer_in.email}")

        try:
            user = User(
                email=trainer_in.email.lower(),
                first_name=trainer_in.first_name,
                last_name=trainer_in.last_name,
                phone=trainer_in.phone,
                role=UserRole.TRAINER,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
            db.flush()
            trainer = Trainer(
                user_id=user.id,
                specialization=trainer_in.specialization,
                bio=trainer_in.bio,
            )
            db.add(trainer)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al crear entrenador {trainer_in.email}: {e.orig}")
            raise ConflictError(f"Ya existe un usuario con el email {trainer_in.email}")

        db.refresh(trainer)
        db.refresh(user)
        logger.info(f"Entrenador creado: trainer_id={trainer.id}")
        return member_schemas.build_trainer_response(trainer, user)

    def get_trainer(self, db: Session, trainer_id: int) -> member_schemas.Trainer:
        row = trainer_repository.get_with_user(db, trainer_id=trainer_id)
        if not row:
            raise NotFoundError(f"Entrenador con ID {trainer_id} no encontrado")
        trainer, user = row
        average, count = instructor_rating_repository.get_trainer_stats(db, trainer_id=trainer.id)
        return member_schemas.build_trainer_response(trainer, user, average, count)

    def list_trainers(self, db: Session, *, active_only: bool = True) -> List[member_schemas.Trainer]:
        result = []
        for trainer, user in trainer_repository.get_all_with_user(db, active_only=active_only):
            average, count = instructor_rating_repository.get_trainer_stats(db, trainer_id=trainer.id)
            result.append(member_schemas.build_trainer_response(trainer, user, average, count))
        return result

    def get_trainer_name(self, db: Session, trainer_id: Optional[int]) -> Optional[str]:
        if trainer_id is None:
            return None
        row = trainer_repository.get_with_user(db, trainer_id=trainer_id)
        return row[1].full_name if row else None


member_service = MemberService()
trainer_service = TrainerService()
