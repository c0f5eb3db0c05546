from typing import Optional
from datetime import datetime, date
from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserRole, UserStatus


class MemberBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    date_of_birth: Optional[date] = None
    emergency_contact_name: Optional[str] = Field(None, max_length=120)
    emergency_contact_phone: Optional[str] = Field(None, max_length=30)


class MemberCreate(MemberBase):
    email: EmailStr


class MemberUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    date_of_birth: Optional[date] = None
    emergency_contact_name: Optional[str] = Field(None, max_length=120)
    emergency_contact_phone: Optional[str] = Field(None, max_length=30)


class Member(MemberBase):
    """Socio con los datos de su usuario ya resueltos"""
    id: int
    user_id: int
    email: EmailStr
    role: UserRole
    status: UserStatus
    is_active: bool
    qr_code_token: Optional[str] = None
    created_at: datetime


class QRToken(BaseModel):
    member_id: int
    qr_code_token: str


class TrainerCreate(BaseModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    specialization: Optional[str] = Field(None, max_length=120)
    bio: Optional[str] = None


class Trainer(BaseModel):
    id: int
    user_id: int
    email: EmailStr
    first_name: str
    last_name: str
    phone: Optional[str] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    average_rating: Optional[float] = None
    ratings_count: int = 0


def build_member_response(member, user) -> Member:
    return Member(
        id=member.id,
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role,
        status=user.status,
        date_of_birth=member.date_of_birth,
        emergency_contact_name=member.emergency_contact_name,
        emergency_contact_phone=member.emergency_contact_phone,
        is_active=member.is_active,
        qr_code_token=member.qr_code_token,
        created_at=member.created_at,
    )


def build_trainer_response(trainer, user, average_rating=None, ratings_count=0) -> Trainer:
    return Trainer(
        id=trainer.id,
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        specialization=trainer.specialization,
        bio=trainer.bio,
        is_active=trainer.is_active,
        average_rating=average_rating,
        ratings_count=ratings_count,
    )
