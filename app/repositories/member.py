from typing import List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.member import Member, Trainer
from app.models.user import User
from app.schemas.member import MemberCreate, MemberUpdate, TrainerCreate


class MemberRepository(BaseRepository[Member, MemberCreate, MemberUpdate]):
    def get_by_user_id(self, db: Session, *, user_id: int) -> Optional[Member]:
        return db.query(Member).filter(Member.user_id == user_id).first()

    def get_by_qr_token(self, db: Session, *, token: str) -> Optional[Member]:
        return db.query(Member).filter(Member.qr_code_token == token).first()

    def get_with_user(self, db: Session, *, member_id: int) -> Optional[Tuple[Member, User]]:
        return (
            db.query(Member, User)
            .join(User, User.id == Member.user_id)
            .filter(Member.id == member_id)
            .first()
        )

    def search(
        self, db: Session, *, search: Optional[str] = None, is_active: Optional[bool] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[Tuple[Member, User]], int]:
        """
        Buscar socios por nombre, apellido o email.

        Returns:
            Tupla (pares (Member, User) de la página, total)
        """
        query = db.query(Member, User).join(User, User.id == Member.user_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            ))
        if is_active is not None:
            query = query.filter(Member.is_active == is_active)
        total = query.count()
        rows = query.order_by(Member.id).offset((page - 1) * limit).limit(limit).all()
        return rows, total

    def get_active_ids(self, db: Session) -> List[int]:
        return [row[0] for row in db.query(Member.id).filter(Member.is_active == True).order_by(Member.id).all()]


class TrainerRepository(BaseRepository[Trainer, TrainerCreate, TrainerCreate]):
    def get_with_user(self, db: Session, *, trainer_id: int) -> Optional[Tuple[Trainer, User]]:
        return (
            db.query(Trainer, User)
            .join(User, User.id == Trainer.user_id)
            .filter(Trainer.id == trainer_id)
            .first()
        )

    def get_all_with_user(self, db: Session, *, active_only: bool = True) -> List[Tuple[Trainer, User]]:
        query = db.query(Trainer, User).join(User, User.id == Trainer.user_id)
        if active_only:
            query = query.filter(Trainer.is_active == True)
        return query.order_by(Trainer.id).all()


member_repository = MemberRepository(Member)
trainer_repository = TrainerRepository(Trainer)
