from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.user import User
from app.schemas.member import MemberCreate, MemberUpdate


class UserRepository(BaseRepository[User, MemberCreate, MemberUpdate]):
    def get_by_email(self, db: Session, *, email: str) -> Optional[User]:
        """Buscar un usuario por email (sin distinguir mayúsculas)."""
        return db.query(User).filter(func.lower(User.email) == email.lower()).first()


user_repository = UserRepository(User)
