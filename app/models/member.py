from sqlalchemy import Column, Integer, String, DateTime, Date, Boolean, ForeignKey, Text

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class Member(Base):
    """
    Perfil de socio. Existe uno por cada usuario con rol MEMBER.
    Nunca se elimina: la baja se hace con `is_active = False`.
    """
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), unique=True, nullable=False)
    date_of_birth = Column(Date, nullable=True)
    emergency_contact_name = Column(String(120), nullable=True)
    emergency_contact_phone = Column(String(30), nullable=True)
    qr_code_token = Column(String(64), unique=True, index=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    deactivated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Member(id={self.id}, user_id={self.user_id}, active={self.is_active})>"


class Trainer(Base):
    """Perfil de entrenador (usuarios con rol TRAINER)."""
    __tablename__ = "trainers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), unique=True, nullable=False)
    specialization = Column(String(120), nullable=True)
    bio = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
