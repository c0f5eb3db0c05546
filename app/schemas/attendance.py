from typing import Optional, List, Dict
from datetime import datetime, date
from pydantic import BaseModel, Field, model_validator

from app.models.attendance import AttendanceType, CheckInMethod


class CheckInRequest(BaseModel):
    member_id: int
    type: AttendanceType = AttendanceType.GYM_VISIT
    schedule_id: Optional[int] = None

    @model_validator(mode='after')
    def check_schedule_for_class(self):
        if self.type == AttendanceType.CLASS_ATTENDANCE and self.schedule_id is None:
            raise ValueError('schedule_id es obligatorio para CLASS_ATTENDANCE')
        return self


class QRCheckInRequest(BaseModel):
    qr_code: str = Field(..., min_length=1, max_length=64)
    type: AttendanceType = AttendanceType.GYM_VISIT
    schedule_id: Optional[int] = None

    @model_validator(mode='after')
    def check_schedule_for_class(self):
        if self.type == AttendanceType.CLASS_ATTENDANCE and self.schedule_id is None:
            raise ValueError('schedule_id es obligatorio para CLASS_ATTENDANCE')
        return self


class Attendance(BaseModel):
    id: int
    member_id: int
    schedule_id: Optional[int] = None
    type: AttendanceType
    method: CheckInMethod
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    model_config = {"from_attributes": True}


class PeakHour(BaseModel):
    hour: int
    count: int


class MemberAttendanceReport(BaseModel):
    member_id: int
    start_date: date
    end_date: date
    total_visits: int
    total_gym_visits: int
    total_class_attendances: int
    average_visits_per_week: float
    average_session_minutes: Optional[float] = None
    peak_hours: List[PeakHour]
    visits_by_day_of_week: Dict[str, int]
    last_check_in: Optional[datetime] = None


class GymAttendanceReport(BaseModel):
    start_date: date
    end_date: date
    timezone: str
    total_check_ins: int
    total_gym_visits: int
    total_class_attendances: int
    unique_members: int
    average_daily_visits: float
    peak_hours: List[PeakHour]
    visits_by_hour: Dict[int, int]
    visits_by_day_of_week: Dict[str, int]
