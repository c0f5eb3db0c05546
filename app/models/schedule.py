from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Enum,
    CheckConstraint, Index, UniqueConstraint, text
)
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class ClassCategory(str, enum.Enum):
    CARDIO = "CARDIO"
    STRENGTH = "STRENGTH"
    FLEXIBILITY = "FLEXIBILITY"
    HIIT = "HIIT"
    YOGA = "YOGA"
    PILATES = "PILATES"
    FUNCTIONAL = "FUNCTIONAL"
    OTHER = "OTHER"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class WaitlistStatus(str, enum.Enum):
    WAITING = "WAITING"      # En cola, con posición
    NOTIFIED = "NOTIFIED"    # Promovido, pendiente de aceptar antes de expires_at
    BOOKED = "BOOKED"        # Aceptó la plaza
    EXPIRED = "EXPIRED"      # No aceptó a tiempo
    CANCELLED = "CANCELLED"  # Salió de la lista


class GymClass(Base):
    """Definición de clases que se ofrecen"""
    __tablename__ = "class"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Enum(ClassCategory), default=ClassCategory.OTHER, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    requires_credits = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('max_capacity > 0', name='check_class_capacity_positive'),
        CheckConstraint('duration_minutes > 0', name='check_class_duration_positive'),
    )


class ClassSchedule(Base):
    """Instancia programada de una clase (fecha, hora, entrenador y aforo)"""
    __tablename__ = "class_schedule"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False, index=True)
    trainer_id = Column(Integer, ForeignKey("trainers.id"), nullable=True, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    capacity = Column(Integer, nullable=False)  # Techo duro de reservas confirmadas
    room = Column(String(60), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('capacity > 0', name='check_schedule_capacity_positive'),
        CheckConstraint('end_time > start_time', name='check_schedule_time_order'),
    )


class ClassBooking(Base):
    """Reserva de un socio para una sesión"""
    __tablename__ = "class_booking"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedule.id"), nullable=False, index=True)
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)
    booked_at = Column(DateTime, default=utcnow, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    checked_in_at = Column(DateTime, nullable=True)
    # Pase del que se descontó el crédito (None si no se consumió ninguno)
    credit_pass_id = Column(Integer, ForeignKey("member_class_passes.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # Una sola reserva no cancelada por socio y sesión
        Index(
            "uq_booking_member_schedule_active",
            "member_id", "schedule_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    def __repr__(self):
        return f"<ClassBooking(id={self.id}, member_id={self.member_id}, schedule_id={self.schedule_id}, status={self.status})>"


class ClassWaitlist(Base):
    """
    Entrada de lista de espera. `position` solo tiene valor mientras la entrada
    está en WAITING; las posiciones de una sesión forman siempre 1..N.
    """
    __tablename__ = "class_waitlist"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedule.id"), nullable=False, index=True)
    position = Column(Integer, nullable=True)
    status = Column(Enum(WaitlistStatus), default=WaitlistStatus.WAITING, nullable=False, index=True)
    joined_at = Column(DateTime, default=utcnow, nullable=False)
    notified_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    booking_id = Column(Integer, ForeignKey("class_booking.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("schedule_id", "position", name="uq_waitlist_schedule_position"),
        Index(
            "uq_waitlist_member_schedule_open",
            "member_id", "schedule_id",
            unique=True,
            postgresql_where=text("status IN ('WAITING', 'NOTIFIED')"),
            sqlite_where=text("status IN ('WAITING', 'NOTIFIED')"),
        ),
        CheckConstraint('position IS NULL OR position > 0', name='check_waitlist_position_positive'),
    )


class InstructorRating(Base):
    """Valoración de un socio al entrenador de una clase a la que asistió"""
    __tablename__ = "instructor_rating"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("class_booking.id"), unique=True, nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    trainer_id = Column(Integer, ForeignKey("trainers.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedule.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint('rating >= 1 AND rating <= 5', name='check_rating_range'),
    )
