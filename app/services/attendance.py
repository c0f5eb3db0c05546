from collections import Counter
from datetime import datetime, date
import logging
from typing import Optional, Dict, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    StateTransitionError,
    ValidationError
)
from app.core.timezone_utils import utcnow, convert_utc_to_local, local_day_bounds_utc
from app.models.attendance import Attendance, AttendanceType, CheckInMethod
from app.models.schedule import BookingStatus
from app.repositories.attendance import attendance_repository
from app.repositories.schedule import class_booking_repository, class_schedule_repository
from app.schemas.attendance import (
    CheckInRequest,
    QRCheckInRequest,
    PeakHour,
    MemberAttendanceReport,
    GymAttendanceReport
)
from app.services.member import member_service
from app.services.membership import membership_service

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _peak_hours(hours: Counter, top: int = 5) -> List[PeakHour]:
    ranked = sorted(hours.items(), key=lambda item: (-item[1], item[0]))[:top]
    return [PeakHour(hour=hour, count=count) for hour, count in ranked]


class AttendanceService:
    """Check-in/check-out de socios y reportes de asistencia."""

    def check_in(
        self, db: Session, *, check_in: CheckInRequest, method: CheckInMethod = CheckInMethod.MANUAL,
        now: Optional[datetime] = None
    ) -> Attendance:
        """
        Registra la entrada de un socio.

        Raises:
            NotFoundError: socio o sesión inexistente
            AccessDeniedError: socio inactivo o sin membresía vigente
            ValidationError: asistencia a clase sin reserva confirmada
            ConflictError: el socio ya tiene una asistencia abierta
        """
        now = now or utcnow()
        member = member_service.require_member(db, check_in.member_id)
        if not member.is_active:
            raise AccessDeniedError(f"El socio {member.id} está dado de baja")
        if get_settings().CHECK_IN_REQUIRES_ACTIVE_MEMBERSHIP and not membership_service.is_membership_valid(
            db, member.id, now.date()
        ):
            logger.warning(f"Check-in rechazado: socio {member.id} sin membresía activa")
            raise AccessDeniedError(f"El socio {member.id} no tiene una membresía activa")

        booking = None
        if check_in.type == AttendanceType.CLASS_ATTENDANCE:
            if check_in.schedule_id is None:
                raise ValidationError("schedule_id es obligatorio para CLASS_ATTENDANCE")
            if not class_schedule_repository.exists(db, check_in.schedule_id):
                raise NotFoundError(f"Sesión con ID {check_in.schedule_id} no encontrada")
            booking = class_booking_repository.get_active_for_member(
                db, member_id=member.id, schedule_id=check_in.schedule_id
            )
            if booking is None or booking.status != BookingStatus.CONFIRMED:
                raise ValidationError(
                    f"El socio {member.id} no tiene una reserva confirmada para la sesión {check_in.schedule_id}"
                )

        if attendance_repository.get_open(db, member_id=member.id):
            raise ConflictError(f"El socio {member.id} ya tiene una asistencia abierta")

        try:
            attendance = Attendance(
                member_id=member.id,
                schedule_id=check_in.schedule_id if check_in.type == AttendanceType.CLASS_ATTENDANCE else None,
                type=check_in.type,
                method=method,
                check_in_time=now,
            )
            db.add(attendance)
            if booking is not None and booking.checked_in_at is None:
                booking.checked_in_at = now
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto en check-in del socio {member.id}: {e.orig}")
            raise ConflictError(f"El socio {member.id} ya tiene una asistencia abierta")
        db.refresh(attendance)
        logger.info(f"Check-in {attendance.id}: socio {member.id}, {attendance.type.value}, {method.value}")
        return attendance

    def qr_check_in(self, db: Session, *, request: QRCheckInRequest, now: Optional[datetime] = None) -> Attendance:
        member = member_service.resolve_qr_token(db, request.qr_code)
        return self.check_in(
            db,
            check_in=CheckInRequest(member_id=member.id, type=request.type, schedule_id=request.schedule_id),
            method=CheckInMethod.QR,
            now=now,
        )

    def _close(self, db: Session, attendance: Attendance, now: datetime) -> Attendance:
        if attendance.check_out_time is not None:
            raise StateTransitionError(f"La asistencia {attendance.id} ya está cerrada", "CHECKED_OUT", "CHECKED_OUT")
        attendance.check_out_time = max(now, attendance.check_in_time)
        db.commit()
        db.refresh(attendance)
        logger.info(f"Check-out {attendance.id}: socio {attendance.member_id}, {attendance.duration_minutes} min")
        return attendance

    def check_out(self, db: Session, attendance_id: int, now: Optional[datetime] = None) -> Attendance:
        attendance = attendance_repository.get(db, id=attendance_id)
        if not attendance:
            raise NotFoundError(f"Asistencia con ID {attendance_id} no encontrada")
        return self._close(db, attendance, now or utcnow())

    def check_out_member(self, db: Session, member_id: int, now: Optional[datetime] = None) -> Attendance:
        member_service.require_member(db, member_id)
        attendance = attendance_repository.get_open(db, member_id=member_id)
        if not attendance:
            raise NotFoundError(f"El socio {member_id} no tiene ninguna asistencia abierta")
        return self._close(db, attendance, now or utcnow())

    def list_attendance(
        self, db: Session, *, member_id: Optional[int] = None, schedule_id: Optional[int] = None,
        type: Optional[AttendanceType] = None, start: Optional[datetime] = None,
        end: Optional[datetime] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Attendance], int]:
        return attendance_repository.list_filtered(
            db, member_id=member_id, schedule_id=schedule_id, type=type,
            start=start, end=end, page=page, limit=limit
        )

    # === Reportes ===

    def _validate_range(self, start_date: date, end_date: date) -> int:
        if end_date < start_date:
            raise ValidationError("end_date debe ser igual o posterior a start_date")
        days = (end_date - start_date).days + 1
        if days > get_settings().MAX_REPORT_DAYS:
            raise ValidationError(f"El rango no puede superar {get_settings().MAX_REPORT_DAYS} días")
        return days

    def _bucket(self, records: List[Attendance], tz: str) -> Tuple[Counter, Dict[str, int]]:
        hours = Counter()
        weekdays = {name: 0 for name in WEEKDAY_NAMES}
        for record in records:
            local = convert_utc_to_local(record.check_in_time, tz)
            hours[local.hour] += 1
            weekdays[WEEKDAY_NAMES[local.weekday()]] += 1
        return hours, weekdays

    def member_report(self, db: Session, *, member_id: int, start_date: date, end_date: date) -> MemberAttendanceReport:
        days = self._validate_range(start_date, end_date)
        member_service.require_member(db, member_id)
        tz = get_settings().GYM_TIMEZONE
        start, end = local_day_bounds_utc(start_date, end_date, tz)
        records = attendance_repository.get_in_range(db, start=start, end=end, member_id=member_id)

        hours, weekdays = self._bucket(records, tz)
        durations = [r.duration_minutes for r in records if r.duration_minutes is not None]
        weeks = max(1.0, days / 7)
        return MemberAttendanceReport(
            member_id=member_id,
            start_date=start_date,
            end_date=end_date,
            total_visits=len(records),
            total_gym_visits=sum(1 for r in records if r.type == AttendanceType.GYM_VISIT),
            total_class_attendances=sum(1 for r in records if r.type == AttendanceType.CLASS_ATTENDANCE),
            average_visits_per_week=round(len(records) / weeks, 2),
            average_session_minutes=round(sum(durations) / len(durations), 1) if durations else None,
            peak_hours=_peak_hours(hours),
            visits_by_day_of_week=weekdays,
            last_check_in=attendance_repository.get_last_check_in(db, member_id=member_id),
        )

    def gym_report(self, db: Session, *, start_date: date, end_date: date) -> GymAttendanceReport:
        days = self._validate_range(start_date, end_date)
        tz = get_settings().GYM_TIMEZONE
        start, end = local_day_bounds_utc(start_date, end_date, tz)
        records = attendance_repository.get_in_range(db, start=start, end=end)

        hours, weekdays = self._bucket(records, tz)
        return GymAttendanceReport(
            start_date=start_date,
            end_date=end_date,
            timezone=tz,
            total_check_ins=len(records),
            total_gym_visits=sum(1 for r in records if r.type == AttendanceType.GYM_VISIT),
            total_class_attendances=sum(1 for r in records if r.type == AttendanceType.CLASS_ATTENDANCE),
            unique_members=len({r.member_id for r in records}),
            average_daily_visits=round(len(records) / days, 2),
            peak_hours=_peak_hours(hours),
            visits_by_hour={hour: hours.get(hour, 0) for hour in range(24)},
            visits_by_day_of_week=weekdays,
        )


attendance_service = AttendanceService()
