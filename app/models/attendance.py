from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Index, CheckConstraint, text
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class AttendanceType(str, enum.Enum):
    GYM_VISIT = "GYM_VISIT"
    CLASS_ATTENDANCE = "CLASS_ATTENDANCE"


class CheckInMethod(str, enum.Enum):
    MANUAL = "MANUAL"
    QR = "QR"


class Attendance(Base):
    """
    Registro de asistencia. El check-out modifica el mismo registro;
    como mucho hay una sesión abierta (sin check_out_time) por socio.
    """
    __tablename__ = "attendance"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedule.id"), nullable=True, index=True)
    type = Column(Enum(AttendanceType), nullable=False)
    method = Column(Enum(CheckInMethod), default=CheckInMethod.MANUAL, nullable=False)
    check_in_time = Column(DateTime, default=utcnow, nullable=False, index=True)
    check_out_time = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index(
            "uq_attendance_member_open",
            "member_id",
            unique=True,
            postgresql_where=text("check_out_time IS NULL"),
            sqlite_where=text("check_out_time IS NULL"),
        ),
        CheckConstraint(
            'check_out_time IS NULL OR check_out_time >= check_in_time',
            name='check_attendance_time_order'
        ),
    )

    def __repr__(self):
        return f"<Attendance(id={self.id}, member_id={self.member_id}, type={self.type})>"

    @property
    def duration_minutes(self):
        if self.check_out_time is None:
            return None
        return int((self.check_out_time - self.check_in_time).total_seconds() // 60)
