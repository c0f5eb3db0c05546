from typing import List, Optional, Dict
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import func

from app.repositories.base import BaseRepository
from app.models.schedule import (
    GymClass,
    ClassSchedule,
    ClassBooking,
    ClassWaitlist,
    InstructorRating,
    BookingStatus,
    WaitlistStatus
)
from app.schemas.schedule import (
    GymClassCreate,
    GymClassUpdate,
    ClassScheduleCreate,
    ClassScheduleUpdate,
    BookingCreate,
    BookingStatusUpdate,
    WaitlistJoin,
    RatingCreate
)


class GymClassRepository(BaseRepository[GymClass, GymClassCreate, GymClassUpdate]):
    def get_by_ids(self, db: Session, *, ids: List[int]) -> Dict[int, GymClass]:
        if not ids:
            return {}
        return {c.id: c for c in db.query(GymClass).filter(GymClass.id.in_(set(ids))).all()}


class ClassScheduleRepository(BaseRepository[ClassSchedule, ClassScheduleCreate, ClassScheduleUpdate]):
    def get_by_date_range(
        self, db: Session, *, start: datetime, end: datetime,
        class_id: Optional[int] = None, trainer_id: Optional[int] = None,
        active_only: bool = True
    ) -> List[ClassSchedule]:
        """
        Obtener sesiones que comienzan dentro de [start, end).
        """
        query = db.query(ClassSchedule).filter(
            ClassSchedule.start_time >= start,
            ClassSchedule.start_time < end
        )
        if class_id is not None:
            query = query.filter(ClassSchedule.class_id == class_id)
        if trainer_id is not None:
            query = query.filter(ClassSchedule.trainer_id == trainer_id)
        if active_only:
            query = query.filter(ClassSchedule.is_active == True)
        return query.order_by(ClassSchedule.start_time).all()

    def find_trainer_overlap(
        self, db: Session, *, trainer_id: int, start: datetime, end: datetime,
        exclude_id: Optional[int] = None
    ) -> Optional[ClassSchedule]:
        """Sesión activa del mismo entrenador que se solapa con [start, end)."""
        query = db.query(ClassSchedule).filter(
            ClassSchedule.trainer_id == trainer_id,
            ClassSchedule.is_active == True,
            ClassSchedule.start_time < end,
            ClassSchedule.end_time > start
        )
        if exclude_id is not None:
            query = query.filter(ClassSchedule.id != exclude_id)
        return query.first()


class ClassBookingRepository(BaseRepository[ClassBooking, BookingCreate, BookingStatusUpdate]):
    def count_confirmed(self, db: Session, *, schedule_id: int) -> int:
        return db.query(func.count(ClassBooking.id)).filter(
            ClassBooking.schedule_id == schedule_id,
            ClassBooking.status == BookingStatus.CONFIRMED
        ).scalar() or 0

    def count_confirmed_by_schedule(self, db: Session, *, schedule_ids: List[int]) -> Dict[int, int]:
        if not schedule_ids:
            return {}
        rows = db.query(ClassBooking.schedule_id, func.count(ClassBooking.id)).filter(
            ClassBooking.schedule_id.in_(schedule_ids),
            ClassBooking.status == BookingStatus.CONFIRMED
        ).group_by(ClassBooking.schedule_id).all()
        return {schedule_id: count for schedule_id, count in rows}

    def get_active_for_member(self, db: Session, *, member_id: int, schedule_id: int) -> Optional[ClassBooking]:
        """Reserva no cancelada del socio para la sesión, si existe."""
        return db.query(ClassBooking).filter(
            ClassBooking.member_id == member_id,
            ClassBooking.schedule_id == schedule_id,
            ClassBooking.status != BookingStatus.CANCELLED
        ).first()

    def get_by_schedule(self, db: Session, *, schedule_id: int, status: Optional[BookingStatus] = None) -> List[ClassBooking]:
        query = db.query(ClassBooking).filter(ClassBooking.schedule_id == schedule_id)
        if status is not None:
            query = query.filter(ClassBooking.status == status)
        return query.order_by(ClassBooking.booked_at).all()

    def get_by_member(
        self, db: Session, *, member_id: int, status: Optional[BookingStatus] = None,
        page: int = 1, limit: int = 20
    ):
        query = db.query(ClassBooking).filter(ClassBooking.member_id == member_id)
        if status is not None:
            query = query.filter(ClassBooking.status == status)
        return self.get_page(db, page=page, limit=limit, query=query)


class ClassWaitlistRepository(BaseRepository[ClassWaitlist, WaitlistJoin, WaitlistJoin]):
    def get_waiting(self, db: Session, *, schedule_id: int) -> List[ClassWaitlist]:
        """Entradas en cola ordenadas por posición ascendente."""
        return db.query(ClassWaitlist).filter(
            ClassWaitlist.schedule_id == schedule_id,
            ClassWaitlist.status == WaitlistStatus.WAITING
        ).order_by(ClassWaitlist.position).all()

    def count_waiting(self, db: Session, *, schedule_id: int) -> int:
        return db.query(func.count(ClassWaitlist.id)).filter(
            ClassWaitlist.schedule_id == schedule_id,
            ClassWaitlist.status == WaitlistStatus.WAITING
        ).scalar() or 0

    def count_waiting_by_schedule(self, db: Session, *, schedule_ids: List[int]) -> Dict[int, int]:
        if not schedule_ids:
            return {}
        rows = db.query(ClassWaitlist.schedule_id, func.count(ClassWaitlist.id)).filter(
            ClassWaitlist.schedule_id.in_(schedule_ids),
            ClassWaitlist.status == WaitlistStatus.WAITING
        ).group_by(ClassWaitlist.schedule_id).all()
        return {schedule_id: count for schedule_id, count in rows}

    def get_max_position(self, db: Session, *, schedule_id: int) -> int:
        return db.query(func.max(ClassWaitlist.position)).filter(
            ClassWaitlist.schedule_id == schedule_id,
            ClassWaitlist.status == WaitlistStatus.WAITING
        ).scalar() or 0

    def get_open_for_member(self, db: Session, *, member_id: int, schedule_id: int) -> Optional[ClassWaitlist]:
        """Entrada WAITING o NOTIFIED del socio en la sesión."""
        return db.query(ClassWaitlist).filter(
            ClassWaitlist.member_id == member_id,
            ClassWaitlist.schedule_id == schedule_id,
            ClassWaitlist.status.in_([WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED])
        ).first()

    def get_by_booking(self, db: Session, *, booking_id: int) -> Optional[ClassWaitlist]:
        return db.query(ClassWaitlist).filter(ClassWaitlist.booking_id == booking_id).first()

    def get_by_schedule(self, db: Session, *, schedule_id: int) -> List[ClassWaitlist]:
        return db.query(ClassWaitlist).filter(
            ClassWaitlist.schedule_id == schedule_id
        ).order_by(ClassWaitlist.position.is_(None), ClassWaitlist.position, ClassWaitlist.joined_at).all()

    def get_by_member(self, db: Session, *, member_id: int) -> List[ClassWaitlist]:
        return db.query(ClassWaitlist).filter(
            ClassWaitlist.member_id == member_id
        ).order_by(ClassWaitlist.joined_at.desc()).all()

    def get_expired_offers(self, db: Session, *, now: datetime) -> List[ClassWaitlist]:
        return db.query(ClassWaitlist).filter(
            ClassWaitlist.status == WaitlistStatus.NOTIFIED,
            ClassWaitlist.expires_at.isnot(None),
            ClassWaitlist.expires_at <= now
        ).order_by(ClassWaitlist.expires_at).all()


class InstructorRatingRepository(BaseRepository[InstructorRating, RatingCreate, RatingCreate]):
    def get_by_booking(self, db: Session, *, booking_id: int) -> Optional[InstructorRating]:
        return db.query(InstructorRating).filter(InstructorRating.booking_id == booking_id).first()

    def get_trainer_stats(self, db: Session, *, trainer_id: int):
        """Devuelve (media, número de valoraciones) del entrenador."""
        avg, count = db.query(
            func.avg(InstructorRating.rating), func.count(InstructorRating.id)
        ).filter(InstructorRating.trainer_id == trainer_id).one()
        return (float(avg) if avg is not None else None), (count or 0)


class_repository = GymClassRepository(GymClass)
class_schedule_repository = ClassScheduleRepository(ClassSchedule)
class_booking_repository = ClassBookingRepository(ClassBooking)
class_waitlist_repository = ClassWaitlistRepository(ClassWaitlist)
instructor_rating_repository = InstructorRatingRepository(InstructorRating)
