"""
Endpoints de asistencia: check-in manual o por QR, check-out, listados y
reportes agregados en la zona horaria del gimnasio.
"""
from datetime import date, datetime, timedelta
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.core.config import settings
from app.core.timezone_utils import utcnow, convert_utc_to_local
from app.db.session import get_db
from app.models.attendance import AttendanceType
from app.schemas.attendance import (
    Attendance,
    CheckInRequest,
    QRCheckInRequest,
    MemberAttendanceReport,
    GymAttendanceReport
)
from app.schemas.common import PaginatedResponse
from app.services.attendance import attendance_service

router = APIRouter()


def _report_range(days: int, start_date: Optional[date], end_date: Optional[date]) -> Tuple[date, date]:
    """Fechas explícitas o los últimos `days` días (incluido hoy, hora local)."""
    if start_date and end_date:
        return start_date, end_date
    today = convert_utc_to_local(utcnow(), settings.GYM_TIMEZONE).date()
    end = end_date or today
    return start_date or end - timedelta(days=days - 1), end


@router.post("/check-in", response_model=Attendance, status_code=status.HTTP_201_CREATED)
def check_in(check_in_data: CheckInRequest = Body(...), db: Session = Depends(get_db)) -> Any:
    """
    Registrar la entrada de un socio.

    Raises:
        403: socio inactivo o sin membresía activa
        409: el socio ya tiene una asistencia abierta
        422: CLASS_ATTENDANCE sin reserva confirmada
    """
    return attendance_service.check_in(db, check_in=check_in_data)


@router.post("/qr-check-in", response_model=Attendance, status_code=status.HTTP_201_CREATED)
def qr_check_in(request: QRCheckInRequest = Body(...), db: Session = Depends(get_db)) -> Any:
    """
    Check-in con el código QR del socio. Un QR no reconocido devuelve 404.
    """
    return attendance_service.qr_check_in(db, request=request)


@router.post("/members/{member_id}/check-out", response_model=Attendance)
def check_out_member(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """Cierra la asistencia abierta del socio."""
    return attendance_service.check_out_member(db, member_id)


@router.post("/{attendance_id}/check-out", response_model=Attendance)
def check_out(attendance_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return attendance_service.check_out(db, attendance_id)


@router.get("", response_model=PaginatedResponse[Attendance])
def list_attendance(
    member_id: Optional[int] = None,
    schedule_id: Optional[int] = None,
    type: Optional[AttendanceType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    records, total = attendance_service.list_attendance(
        db, member_id=member_id, schedule_id=schedule_id, type=type,
        start=start, end=end, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[Attendance].build(
        [Attendance.model_validate(r) for r in records], total, pagination.page, pagination.limit
    )


@router.get("/report/members/{member_id}", response_model=MemberAttendanceReport)
def member_attendance_report(
    member_id: int = Path(..., ge=1),
    days: int = Query(30, ge=1, le=settings.MAX_REPORT_DAYS),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db)
) -> Any:
    """
    Reporte de asistencia de un socio: totales por tipo, media semanal,
    duración media, horas punta y visitas por día de la semana.
    """
    start, end = _report_range(days, start_date, end_date)
    return attendance_service.member_report(db, member_id=member_id, start_date=start, end_date=end)


@router.get("/report/gym", response_model=GymAttendanceReport)
def gym_attendance_report(
    days: int = Query(30, ge=1, le=settings.MAX_REPORT_DAYS),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db)
) -> Any:
    start, end = _report_range(days, start_date, end_date)
    return attendance_service.gym_report(db, start_date=start, end_date=end)
