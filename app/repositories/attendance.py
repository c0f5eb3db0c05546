from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.attendance import Attendance, AttendanceType
from app.schemas.attendance import CheckInRequest


class AttendanceRepository(BaseRepository[Attendance, CheckInRequest, CheckInRequest]):
    def get_open(self, db: Session, *, member_id: int) -> Optional[Attendance]:
        """Sesión de asistencia sin check-out del socio."""
        return db.query(Attendance).filter(
            Attendance.member_id == member_id,
            Attendance.check_out_time.is_(None)
        ).first()

    def get_in_range(
        self, db: Session, *, start: datetime, end: datetime, member_id: Optional[int] = None
    ) -> List[Attendance]:
        query = db.query(Attendance).filter(
            Attendance.check_in_time >= start,
            Attendance.check_in_time < end
        )
        if member_id is not None:
            query = query.filter(Attendance.member_id == member_id)
        return query.order_by(Attendance.check_in_time).all()

    def get_last_check_in(self, db: Session, *, member_id: int) -> Optional[datetime]:
        row = db.query(Attendance.check_in_time).filter(
            Attendance.member_id == member_id
        ).order_by(Attendance.check_in_time.desc()).first()
        return row[0] if row else None

    def list_filtered(
        self, db: Session, *, member_id: Optional[int] = None, schedule_id: Optional[int] = None,
        type: Optional[AttendanceType] = None, start: Optional[datetime] = None,
        end: Optional[datetime] = None, page: int = 1, limit: int = 20
    ):
        query = db.query(Attendance)
        if member_id is not None:
            query = query.filter(Attendance.member_id == member_id)
        if schedule_id is not None:
            query = query.filter(Attendance.schedule_id == schedule_id)
        if type is not None:
            query = query.filter(Attendance.type == type)
        if start is not None:
            query = query.filter(Attendance.check_in_time >= start)
        if end is not None:
            query = query.filter(Attendance.check_in_time < end)
        return self.get_page(db, page=page, limit=limit, query=query)


attendance_repository = AttendanceRepository(Attendance)
