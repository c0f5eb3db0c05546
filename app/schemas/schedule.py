from typing import Optional
from pydantic import BaseModel, Field, model_validator
from datetime import datetime

from app.models.schedule import ClassCategory, BookingStatus, WaitlistStatus


# Class schemas
class GymClassBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    category: ClassCategory = ClassCategory.OTHER
    duration_minutes: int = Field(..., gt=0)
    max_capacity: int = Field(..., gt=0)
    requires_credits: bool = True
    is_active: bool = True


class GymClassCreate(GymClassBase):
    pass


class GymClassUpdate(BaseModel):
    """Modelo para actualizar clases (campos opcionales)"""
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    category: Optional[ClassCategory] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    max_capacity: Optional[int] = Field(None, gt=0)
    requires_credits: Optional[bool] = None
    is_active: Optional[bool] = None


class GymClass(GymClassBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ClassSchedule schemas
class ClassScheduleCreate(BaseModel):
    class_id: int
    trainer_id: Optional[int] = None
    start_time: datetime
    end_time: Optional[datetime] = None  # Por defecto start_time + duración de la clase
    capacity: Optional[int] = Field(None, gt=0)  # Por defecto max_capacity de la clase
    room: Optional[str] = Field(None, max_length=60)

    @model_validator(mode='after')
    def check_times(self):
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError('end_time debe ser posterior a start_time')
        return self


class ClassScheduleUpdate(BaseModel):
    trainer_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    capacity: Optional[int] = Field(None, gt=0)
    room: Optional[str] = Field(None, max_length=60)


class ClassSchedule(BaseModel):
    id: int
    class_id: int
    trainer_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    capacity: int
    room: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


class ClassScheduleWithAvailability(ClassSchedule):
    confirmed_count: int
    available_spots: int
    waitlist_count: int
    is_full: bool


# Booking schemas
class BookingCreate(BaseModel):
    member_id: int
    schedule_id: int
    join_waitlist: bool = True


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class Booking(BaseModel):
    id: int
    member_id: int
    schedule_id: int
    status: BookingStatus
    booked_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    credit_pass_id: Optional[int] = None

    model_config = {"from_attributes": True}


# Waitlist schemas
class WaitlistJoin(BaseModel):
    member_id: int
    schedule_id: int


class WaitlistEntry(BaseModel):
    id: int
    member_id: int
    schedule_id: int
    position: Optional[int] = None
    status: WaitlistStatus
    joined_at: datetime
    notified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    booking_id: Optional[int] = None

    model_config = {"from_attributes": True}


# Valoraciones
class RatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class InstructorRating(BaseModel):
    id: int
    booking_id: int
    member_id: int
    trainer_id: int
    schedule_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
