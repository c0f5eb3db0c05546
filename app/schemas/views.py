"""
Proyecciones de las entidades para cada cliente.

Hay una sola representación canónica (Trainer, ClassScheduleWithAvailability)
y funciones explícitas que la recortan para la web de administración o para la
app móvil.
"""
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel

from app.models.schedule import ClassCategory
from app.schemas.member import Trainer
from app.schemas.schedule import ClassScheduleWithAvailability


class ViewType(str, Enum):
    WEB = "web"
    MOBILE = "mobile"


class TrainerWebView(BaseModel):
    id: int
    full_name: str
    email: str
    phone: Optional[str] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    average_rating: Optional[float] = None
    ratings_count: int


class TrainerMobileView(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None
    rating: Optional[float] = None


class ClassSummaryWeb(BaseModel):
    schedule_id: int
    class_id: int
    class_name: str
    category: ClassCategory
    trainer_id: Optional[int] = None
    trainer_name: Optional[str] = None
    start_time: datetime
    end_time: datetime
    room: Optional[str] = None
    capacity: int
    confirmed_count: int
    available_spots: int
    waitlist_count: int


class ClassSummaryMobile(BaseModel):
    schedule_id: int
    class_name: str
    start_time: datetime
    trainer_name: Optional[str] = None
    available_spots: int
    is_full: bool


def trainer_web_view(trainer: Trainer) -> TrainerWebView:
    return TrainerWebView(
        id=trainer.id,
        full_name=f"{trainer.first_name} {trainer.last_name}",
        email=trainer.email,
        phone=trainer.phone,
        specialization=trainer.specialization,
        bio=trainer.bio,
        is_active=trainer.is_active,
        average_rating=trainer.average_rating,
        ratings_count=trainer.ratings_count,
    )


def trainer_mobile_view(trainer: Trainer) -> TrainerMobileView:
    rating = round(trainer.average_rating, 1) if trainer.average_rating is not None else None
    return TrainerMobileView(
        id=trainer.id,
        name=trainer.first_name,
        specialization=trainer.specialization,
        rating=rating,
    )


def class_summary_web(schedule: ClassScheduleWithAvailability, gym_class, trainer_name: Optional[str]) -> ClassSummaryWeb:
    return ClassSummaryWeb(
        schedule_id=schedule.id,
        class_id=gym_class.id,
        class_name=gym_class.name,
        category=gym_class.category,
        trainer_id=schedule.trainer_id,
        trainer_name=trainer_name,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        room=schedule.room,
        capacity=schedule.capacity,
        confirmed_count=schedule.confirmed_count,
        available_spots=schedule.available_spots,
        waitlist_count=schedule.waitlist_count,
    )


def class_summary_mobile(schedule: ClassScheduleWithAvailability, gym_class, trainer_name: Optional[str]) -> ClassSummaryMobile:
    return ClassSummaryMobile(
        schedule_id=schedule.id,
        class_name=gym_class.name,
        start_time=schedule.start_time,
        trainer_name=trainer_name,
        available_spots=schedule.available_spots,
        is_full=schedule.is_full,
    )
