from typing import List, Optional, Tuple, Union
from datetime import datetime, timedelta
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    InsufficientCreditsError,
    NotFoundError,
    StateTransitionError,
    ValidationError
)
from app.core.timezone_utils import utcnow, to_naive_utc
from app.models.schedule import (
    GymClass,
    ClassSchedule,
    ClassBooking,
    ClassWaitlist,
    InstructorRating,
    BookingStatus,
    WaitlistStatus,
    ClassCategory
)
from app.repositories.member import member_repository, trainer_repository
from app.repositories.schedule import (
    class_repository,
    class_schedule_repository,
    class_booking_repository,
    class_waitlist_repository,
    instructor_rating_repository
)
from app.schemas.schedule import (
    GymClassCreate,
    GymClassUpdate,
    ClassScheduleCreate,
    ClassScheduleUpdate,
    ClassScheduleWithAvailability,
    RatingCreate
)
from app.schemas.views import (
    ViewType,
    ClassSummaryWeb,
    ClassSummaryMobile,
    class_summary_web,
    class_summary_mobile
)
from app.services.credits import credit_service
from app.services.member import member_service, trainer_service

logger = logging.getLogger(__name__)

# Transiciones de estado permitidas para una reserva
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
}


def _lock_schedule(db: Session, schedule_id: int) -> ClassSchedule:
    """Bloquea la fila de la sesión; serializa reservas y lista de espera."""
    schedule = class_schedule_repository.get_for_update(db, schedule_id)
    if not schedule:
        raise NotFoundError(f"Sesión con ID {schedule_id} no encontrada")
    return schedule


def _check_bookable(schedule: ClassSchedule, now: datetime) -> None:
    if not schedule.is_active:
        raise ValidationError(f"La sesión {schedule.id} está cancelada")
    if schedule.start_time <= now:
        raise ValidationError(f"La sesión {schedule.id} ya ha comenzado")


def _require_active_member(db: Session, member_id: int):
    member = member_service.require_member(db, member_id)
    if not member.is_active:
        raise ValidationError(f"El socio {member_id} está dado de baja")
    return member


def _renumber_waitlist(db: Session, schedule_id: int) -> None:
    """
    Compacta las posiciones de las entradas WAITING a 1..N.
    Se recorre en orden ascendente y se hace flush fila a fila para no violar
    la restricción única (schedule_id, position).
    """
    for index, entry in enumerate(class_waitlist_repository.get_waiting(db, schedule_id=schedule_id), start=1):
        if entry.position != index:
            entry.position = index
            db.flush()


class ClassService:
    def create_class(self, db: Session, *, class_in: GymClassCreate) -> GymClass:
        gym_class = class_repository.create(db, obj_in=class_in)
        logger.info(f"Clase creada: {gym_class.name} (ID: {gym_class.id})")
        return gym_class

    def get_class(self, db: Session, class_id: int) -> GymClass:
        gym_class = class_repository.get(db, id=class_id)
        if not gym_class:
            raise NotFoundError(f"Clase con ID {class_id} no encontrada")
        return gym_class

    def list_classes(
        self, db: Session, *, active_only: bool = True, category: Optional[ClassCategory] = None
    ) -> List[GymClass]:
        query = db.query(GymClass)
        if active_only:
            query = query.filter(GymClass.is_active == True)
        if category is not None:
            query = query.filter(GymClass.category == category)
        return query.order_by(GymClass.name, GymClass.id).all()

    def update_class(self, db: Session, *, class_id: int, class_in: GymClassUpdate) -> GymClass:
        """Las sesiones ya programadas conservan su propio aforo."""
        gym_class = self.get_class(db, class_id)
        gym_class = class_repository.update(db, db_obj=gym_class, obj_in=class_in)
        logger.info(f"Clase {class_id} actualizada")
        return gym_class


class ClassScheduleService:
    """Programación de sesiones y cálculo de disponibilidad."""

    def _with_availability(
        self, schedule: ClassSchedule, confirmed: int, waiting: int
    ) -> ClassScheduleWithAvailability:
        return ClassScheduleWithAvailability(
            id=schedule.id,
            class_id=schedule.class_id,
            trainer_id=schedule.trainer_id,
            start_time=schedule.start_time,
            end_time=schedule.end_time,
            capacity=schedule.capacity,
            room=schedule.room,
            is_active=schedule.is_active,
            confirmed_count=confirmed,
            available_spots=max(0, schedule.capacity - confirmed),
            waitlist_count=waiting,
            is_full=confirmed >= schedule.capacity,
        )

    def availability(self, db: Session, schedule: ClassSchedule) -> ClassScheduleWithAvailability:
        return self._with_availability(
            schedule,
            class_booking_repository.count_confirmed(db, schedule_id=schedule.id),
            class_waitlist_repository.count_waiting(db, schedule_id=schedule.id),
        )

    def _check_trainer(self, db: Session, trainer_id: Optional[int]) -> None:
        if trainer_id is None:
            return
        trainer = trainer_repository.get(db, id=trainer_id)
        if not trainer:
            raise NotFoundError(f"Entrenador con ID {trainer_id} no encontrado")
        if not trainer.is_active:
            raise ValidationError(f"El entrenador {trainer_id} no está activo")

    def _check_overlap(
        self, db: Session, *, trainer_id: Optional[int], start: datetime, end: datetime,
        exclude_id: Optional[int] = None
    ) -> None:
        if trainer_id is None:
            return
        overlap = class_schedule_repository.find_trainer_overlap(
            db, trainer_id=trainer_id, start=start, end=end, exclude_id=exclude_id
        )
        if overlap:
            raise ConflictError(
                f"El entrenador {trainer_id} ya tiene la sesión {overlap.id} "
                f"({overlap.start_time} - {overlap.end_time})"
            )

    def create_schedule(self, db: Session, *, schedule_in: ClassScheduleCreate) -> ClassScheduleWithAvailability:
        gym_class = class_service.get_class(db, schedule_in.class_id)
        if not gym_class.is_active:
            raise ValidationError(f"La clase {gym_class.name} no está activa")
        self._check_trainer(db, schedule_in.trainer_id)

        start = to_naive_utc(schedule_in.start_time)
        end = to_naive_utc(schedule_in.end_time) or start + timedelta(minutes=gym_class.duration_minutes)
        if end <= start:
            raise ValidationError("end_time debe ser posterior a start_time")
        self._check_overlap(db, trainer_id=schedule_in.trainer_id, start=start, end=end)

        schedule = class_schedule_repository.create(db, obj_in={
            "class_id": gym_class.id,
            "trainer_id": schedule_in.trainer_id,
            "start_time": start,
            "end_time": end,
            "capacity": schedule_in.capacity or gym_class.max_capacity,
            "room": schedule_in.room,
        })
        logger.info(f"Sesión {schedule.id} programada para la clase {gym_class.id} a las {start}")
        return self._with_availability(schedule, 0, 0)

    def get_schedule(self, db: Session, schedule_id: int) -> ClassScheduleWithAvailability:
        return self.availability(db, self.get_schedule_model(db, schedule_id))

    def get_schedule_model(self, db: Session, schedule_id: int) -> ClassSchedule:
        schedule = class_schedule_repository.get(db, id=schedule_id)
        if not schedule:
            raise NotFoundError(f"Sesión con ID {schedule_id} no encontrada")
        return schedule

    def list_schedules(
        self, db: Session, *, start: datetime, end: datetime,
        class_id: Optional[int] = None, trainer_id: Optional[int] = None, active_only: bool = True
    ) -> List[ClassScheduleWithAvailability]:
        start, end = to_naive_utc(start), to_naive_utc(end)
        if end <= start:
            raise ValidationError("El final del rango debe ser posterior al inicio")
        schedules = class_schedule_repository.get_by_date_range(
            db, start=start, end=end, class_id=class_id, trainer_id=trainer_id, active_only=active_only
        )
        ids = [s.id for s in schedules]
        confirmed = class_booking_repository.count_confirmed_by_schedule(db, schedule_ids=ids)
        waiting = class_waitlist_repository.count_waiting_by_schedule(db, schedule_ids=ids)
        return [self._with_availability(s, confirmed.get(s.id, 0), waiting.get(s.id, 0)) for s in schedules]

    def update_schedule(
        self, db: Session, *, schedule_id: int, schedule_in: ClassScheduleUpdate,
        now: Optional[datetime] = None
    ) -> ClassScheduleWithAvailability:
        """
        Modifica una sesión. Reducir el aforo por debajo de las reservas
        confirmadas no está permitido; ampliarlo promueve la lista de espera.
        """
        now = now or utcnow()
        update_data = schedule_in.model_dump(exclude_unset=True)
        try:
            schedule = _lock_schedule(db, schedule_id)
            if "trainer_id" in update_data:
                self._check_trainer(db, update_data["trainer_id"])
            start = to_naive_utc(update_data.get("start_time")) or schedule.start_time
            end = to_naive_utc(update_data.get("end_time")) or schedule.end_time
            if end <= start:
                raise ValidationError("end_time debe ser posterior a start_time")
            trainer_id = update_data.get("trainer_id", schedule.trainer_id)
            self._check_overlap(db, trainer_id=trainer_id, start=start, end=end, exclude_id=schedule.id)

            old_capacity = schedule.capacity
            new_capacity = update_data.get("capacity") or old_capacity
            confirmed = class_booking_repository.count_confirmed(db, schedule_id=schedule.id)
            if new_capacity < confirmed:
                raise ValidationError(
                    f"El aforo no puede ser menor que las reservas confirmadas ({confirmed})"
                )

            schedule.start_time = start
            schedule.end_time = end
            schedule.trainer_id = trainer_id
            schedule.capacity = new_capacity
            if "room" in update_data:
                schedule.room = update_data["room"]
            db.flush()
            if new_capacity > old_capacity:
                waitlist_service._promote(db, schedule, now)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(schedule)
        logger.info(f"Sesión {schedule_id} actualizada")
        return self.availability(db, schedule)

    def deactivate_schedule(
        self, db: Session, schedule_id: int, *, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> ClassScheduleWithAvailability:
        """
        Cancela la sesión: anula reservas (devolviendo créditos) y cierra la
        lista de espera.
        """
        now = now or utcnow()
        reason = reason or "Sesión cancelada por el gimnasio"
        try:
            schedule = _lock_schedule(db, schedule_id)
            if not schedule.is_active:
                return self.availability(db, schedule)
            schedule.is_active = False

            for entry in class_waitlist_repository.get_by_schedule(db, schedule_id=schedule.id):
                if entry.status in (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED):
                    entry.status = WaitlistStatus.CANCELLED
                    entry.position = None
                    entry.expires_at = None
                    db.flush()

            cancelled = 0
            for booking in class_booking_repository.get_by_schedule(db, schedule_id=schedule.id):
                if booking.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                    booking_service._cancel(db, booking, reason=reason, refund=True, now=now)
                    cancelled += 1
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(schedule)
        logger.info(f"Sesión {schedule_id} desactivada; {cancelled} reservas anuladas")
        return self.availability(db, schedule)

    def list_class_summaries(
        self, db: Session, *, start: datetime, end: datetime, view: ViewType = ViewType.WEB,
        class_id: Optional[int] = None, trainer_id: Optional[int] = None
    ) -> List[Union[ClassSummaryWeb, ClassSummaryMobile]]:
        schedules = self.list_schedules(db, start=start, end=end, class_id=class_id, trainer_id=trainer_id)
        classes = class_repository.get_by_ids(db, ids=[s.class_id for s in schedules])
        trainer_names = {}
        mapper = class_summary_web if view == ViewType.WEB else class_summary_mobile
        result = []
        for schedule in schedules:
            if schedule.trainer_id not in trainer_names:
                trainer_names[schedule.trainer_id] = trainer_service.get_trainer_name(db, schedule.trainer_id)
            result.append(mapper(schedule, classes[schedule.class_id], trainer_names[schedule.trainer_id]))
        return result


class BookingService:
    """
    Ciclo de vida de las reservas.

    PENDING -> CONFIRMED -> {COMPLETED, CANCELLED, NO_SHOW} y PENDING -> CANCELLED.
    Cada operación que toca plazas bloquea la fila de la sesión, de modo que
    el número de reservas CONFIRMED nunca supera el aforo.
    """

    def get_booking(self, db: Session, booking_id: int) -> ClassBooking:
        booking = class_booking_repository.get(db, id=booking_id)
        if not booking:
            raise NotFoundError(f"Reserva con ID {booking_id} no encontrada")
        return booking

    def book_class(
        self, db: Session, *, member_id: int, schedule_id: int, join_waitlist: bool = True,
        now: Optional[datetime] = None
    ) -> ClassBooking:
        """
        Reserva una plaza confirmada consumiendo un crédito si la clase lo exige.

        Raises:
            CapacityExceededError: la sesión está completa. Si join_waitlist es
                True el socio queda en la lista de espera y el error lleva la entrada.
            InsufficientCreditsError: no hay pase aplicable con saldo.
            ConflictError: el socio ya tiene una reserva no cancelada.
        """
        now = now or utcnow()
        full_entry = None
        full = False
        try:
            schedule = _lock_schedule(db, schedule_id)
            _require_active_member(db, member_id)
            _check_bookable(schedule, now)
            if class_booking_repository.get_active_for_member(db, member_id=member_id, schedule_id=schedule_id):
                raise ConflictError(f"El socio {member_id} ya tiene una reserva para la sesión {schedule_id}")

            open_entry = class_waitlist_repository.get_open_for_member(
                db, member_id=member_id, schedule_id=schedule_id
            )
            confirmed = class_booking_repository.count_confirmed(db, schedule_id=schedule_id)
            if confirmed >= schedule.capacity:
                full = True
                if join_waitlist:
                    full_entry = open_entry or waitlist_service._enqueue(db, schedule, member_id, now)
            else:
                booking = ClassBooking(
                    member_id=member_id,
                    schedule_id=schedule_id,
                    status=BookingStatus.CONFIRMED,
                    booked_at=now,
                    confirmed_at=now,
                )
                db.add(booking)
                db.flush()
                credit_service.consume_credit(db, schedule=schedule, booking=booking, now=now)
                if open_entry is not None:
                    open_entry.status = WaitlistStatus.BOOKED
                    open_entry.position = None
                    open_entry.booking_id = booking.id
                    db.flush()
                    _renumber_waitlist(db, schedule_id)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al reservar sesión {schedule_id} para socio {member_id}: {e.orig}")
            raise ConflictError(f"El socio {member_id} ya tiene una reserva para la sesión {schedule_id}")
        except Exception:
            db.rollback()
            raise

        if full:
            if full_entry is None:
                logger.warning(f"Sesión {schedule_id} completa; socio {member_id} no se une a la lista de espera")
                raise CapacityExceededError(f"La sesión {schedule_id} está completa")
            logger.info(
                f"Sesión {schedule_id} completa; socio {member_id} en lista de espera "
                f"(entrada {full_entry.id}, posición {full_entry.position})"
            )
            raise CapacityExceededError(
                f"La sesión {schedule_id} está completa; añadido a la lista de espera",
                waitlist_entry_id=full_entry.id,
                waitlist_position=full_entry.position,
            )

        db.refresh(booking)
        logger.info(f"Reserva {booking.id} confirmada: socio {member_id}, sesión {schedule_id}")
        return booking

    def request_booking(
        self, db: Session, *, member_id: int, schedule_id: int, now: Optional[datetime] = None
    ) -> ClassBooking:
        """Crea una reserva PENDING sin ocupar plaza ni consumir crédito."""
        now = now or utcnow()
        try:
            schedule = _lock_schedule(db, schedule_id)
            _require_active_member(db, member_id)
            _check_bookable(schedule, now)
            if class_booking_repository.get_active_for_member(db, member_id=member_id, schedule_id=schedule_id):
                raise ConflictError(f"El socio {member_id} ya tiene una reserva para la sesión {schedule_id}")
            booking = ClassBooking(
                member_id=member_id,
                schedule_id=schedule_id,
                status=BookingStatus.PENDING,
                booked_at=now,
            )
            db.add(booking)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al solicitar reserva: {e.orig}")
            raise ConflictError(f"El socio {member_id} ya tiene una reserva para la sesión {schedule_id}")
        except Exception:
            db.rollback()
            raise
        db.refresh(booking)
        logger.info(f"Reserva {booking.id} solicitada (PENDING): socio {member_id}, sesión {schedule_id}")
        return booking

    def confirm_booking(self, db: Session, booking_id: int, now: Optional[datetime] = None) -> ClassBooking:
        now = now or utcnow()
        booking = self.get_booking(db, booking_id)
        if booking.status != BookingStatus.PENDING:
            raise StateTransitionError(
                "Solo se pueden confirmar reservas pendientes", booking.status, BookingStatus.CONFIRMED
            )
        try:
            schedule = _lock_schedule(db, booking.schedule_id)
            db.refresh(booking)
            if booking.status != BookingStatus.PENDING:
                raise StateTransitionError(
                    "Solo se pueden confirmar reservas pendientes", booking.status, BookingStatus.CONFIRMED
                )
            _check_bookable(schedule, now)
            if class_booking_repository.count_confirmed(db, schedule_id=schedule.id) >= schedule.capacity:
                raise CapacityExceededError(f"La sesión {schedule.id} está completa")
            credit_service.consume_credit(db, schedule=schedule, booking=booking, now=now)
            booking.status = BookingStatus.CONFIRMED
            booking.confirmed_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(booking)
        logger.info(f"Reserva {booking.id} confirmada")
        return booking

    def _cancel(self, db: Session, booking: ClassBooking, *, reason: Optional[str], refund: bool,
                now: datetime) -> None:
        """Pasa la reserva a CANCELLED dentro de la transacción actual."""
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        if refund:
            credit_service.refund_credit(db, booking=booking, reason=reason or "Reserva cancelada", now=now)

        entry = class_waitlist_repository.get_by_booking(db, booking_id=booking.id)
        if entry is not None and entry.status == WaitlistStatus.NOTIFIED:
            entry.status = WaitlistStatus.CANCELLED
            entry.expires_at = None
        db.flush()

    def cancel_booking(
        self, db: Session, booking_id: int, *, reason: Optional[str] = None,
        system_initiated: bool = False, now: Optional[datetime] = None
    ) -> ClassBooking:
        """
        Cancela una reserva PENDING o CONFIRMED y promueve la lista de espera.

        El crédito se devuelve si la cancelación llega al menos
        BOOKING_REFUND_GRACE_HOURS antes del inicio, o siempre que la cancela
        el sistema o el personal.
        """
        now = now or utcnow()
        booking = self.get_booking(db, booking_id)
        if BookingStatus.CANCELLED not in ALLOWED_TRANSITIONS.get(booking.status, set()):
            raise StateTransitionError(
                "La reserva no se puede cancelar", booking.status, BookingStatus.CANCELLED
            )
        try:
            schedule = _lock_schedule(db, booking.schedule_id)
            db.refresh(booking)
            if BookingStatus.CANCELLED not in ALLOWED_TRANSITIONS.get(booking.status, set()):
                raise StateTransitionError(
                    "La reserva no se puede cancelar", booking.status, BookingStatus.CANCELLED
                )
            was_confirmed = booking.status == BookingStatus.CONFIRMED
            grace = timedelta(hours=get_settings().BOOKING_REFUND_GRACE_HOURS)
            refund = system_initiated or schedule.start_time - now >= grace
            self._cancel(db, booking, reason=reason, refund=refund, now=now)
            if was_confirmed:
                waitlist_service._promote(db, schedule, now)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(booking)
        logger.info(
            f"Reserva {booking.id} cancelada ({'con' if refund else 'sin'} devolución de crédito)"
        )
        return booking

    def update_booking_status(
        self, db: Session, *, booking_id: int, status: BookingStatus, now: Optional[datetime] = None
    ) -> ClassBooking:
        """Cambio de estado manual por parte del personal."""
        now = now or utcnow()
        booking = self.get_booking(db, booking_id)
        if status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
            raise StateTransitionError(
                f"Transición no permitida: {booking.status.value} -> {status.value}", booking.status, status
            )
        if status == BookingStatus.CANCELLED:
            return self.cancel_booking(
                db, booking_id, reason="Cancelada por el personal", system_initiated=True, now=now
            )
        if status == BookingStatus.CONFIRMED:
            return self.confirm_booking(db, booking_id, now=now)

        try:
            schedule = _lock_schedule(db, booking.schedule_id)
            db.refresh(booking)
            if status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
                raise StateTransitionError(
                    f"Transición no permitida: {booking.status.value} -> {status.value}", booking.status, status
                )
            booking.status = status
            db.flush()
            if status == BookingStatus.NO_SHOW:
                waitlist_service._promote(db, schedule, now)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(booking)
        logger.info(f"Reserva {booking.id} -> {status.value}")
        return booking

    def get_member_bookings(
        self, db: Session, *, member_id: int, status: Optional[BookingStatus] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[ClassBooking], int]:
        member_service.require_member(db, member_id)
        return class_booking_repository.get_by_member(db, member_id=member_id, status=status, page=page, limit=limit)

    def get_schedule_bookings(
        self, db: Session, *, schedule_id: int, status: Optional[BookingStatus] = None
    ) -> List[ClassBooking]:
        schedule_service.get_schedule_model(db, schedule_id)
        return class_booking_repository.get_by_schedule(db, schedule_id=schedule_id, status=status)

    def rate_instructor(self, db: Session, *, booking_id: int, rating_in: RatingCreate) -> InstructorRating:
        booking = self.get_booking(db, booking_id)
        if booking.status != BookingStatus.COMPLETED and booking.checked_in_at is None:
            raise ValidationError("Solo se pueden valorar clases a las que el socio asistió")
        if instructor_rating_repository.get_by_booking(db, booking_id=booking.id):
            raise ConflictError(f"La reserva {booking.id} ya tiene una valoración")
        schedule = schedule_service.get_schedule_model(db, booking.schedule_id)
        if schedule.trainer_id is None:
            raise ValidationError("La sesión no tiene entrenador asignado")
        try:
            rating = InstructorRating(
                booking_id=booking.id,
                member_id=booking.member_id,
                trainer_id=schedule.trainer_id,
                schedule_id=schedule.id,
                rating=rating_in.rating,
                comment=rating_in.comment,
            )
            db.add(rating)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"La reserva {booking.id} ya tiene una valoración")
        db.refresh(rating)
        logger.info(f"Valoración {rating.rating}/5 para el entrenador {rating.trainer_id} (reserva {booking.id})")
        return rating


class WaitlistService:
    """
    Lista de espera por sesión.

    Las entradas WAITING tienen posiciones densas 1..N. Cuando se libera una
    plaza se promueve la primera entrada: se le crea una reserva CONFIRMED y
    pasa a NOTIFIED con un plazo para aceptarla; si no la acepta a tiempo, el
    barrido periódico la caduca y la plaza pasa al siguiente.
    """

    def get_entry(self, db: Session, entry_id: int) -> ClassWaitlist:
        entry = class_waitlist_repository.get(db, id=entry_id)
        if not entry:
            raise NotFoundError(f"Entrada de lista de espera con ID {entry_id} no encontrada")
        return entry

    def _enqueue(self, db: Session, schedule: ClassSchedule, member_id: int, now: datetime) -> ClassWaitlist:
        position = class_waitlist_repository.get_max_position(db, schedule_id=schedule.id) + 1
        entry = ClassWaitlist(
            member_id=member_id,
            schedule_id=schedule.id,
            position=position,
            status=WaitlistStatus.WAITING,
            joined_at=now,
        )
        db.add(entry)
        db.flush()
        return entry

    def join_waitlist(
        self, db: Session, *, member_id: int, schedule_id: int, now: Optional[datetime] = None
    ) -> ClassWaitlist:
        """Idempotente: si el socio ya está en la lista se devuelve su entrada."""
        now = now or utcnow()
        try:
            schedule = _lock_schedule(db, schedule_id)
            _require_active_member(db, member_id)
            _check_bookable(schedule, now)
            existing = class_waitlist_repository.get_open_for_member(
                db, member_id=member_id, schedule_id=schedule_id
            )
            if existing:
                return existing
            if class_booking_repository.get_active_for_member(db, member_id=member_id, schedule_id=schedule_id):
                raise ConflictError(f"El socio {member_id} ya tiene una reserva para la sesión {schedule_id}")
            if class_booking_repository.count_confirmed(db, schedule_id=schedule_id) < schedule.capacity:
                raise ValidationError(f"La sesión {schedule_id} tiene plazas libres; reserve directamente")
            entry = self._enqueue(db, schedule, member_id, now)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Conflicto al unir al socio {member_id} a la lista de la sesión {schedule_id}: {e.orig}")
            raise ConflictError(f"El socio {member_id} ya está en la lista de espera de la sesión {schedule_id}")
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        logger.info(f"Socio {member_id} en lista de espera de la sesión {schedule_id}, posición {entry.position}")
        return entry

    def leave_waitlist(self, db: Session, entry_id: int, now: Optional[datetime] = None) -> ClassWaitlist:
        """
        Sale de la lista. Una entrada NOTIFIED equivale a rechazar la oferta:
        se anula la reserva promovida y la plaza pasa al siguiente.
        """
        now = now or utcnow()
        entry = self.get_entry(db, entry_id)
        if entry.status == WaitlistStatus.NOTIFIED and entry.booking_id is not None:
            booking_service.cancel_booking(
                db, entry.booking_id, reason="Oferta de lista de espera rechazada",
                system_initiated=True, now=now
            )
            db.refresh(entry)
            return entry
        if entry.status != WaitlistStatus.WAITING:
            raise StateTransitionError(
                "La entrada ya no está en la lista de espera", entry.status, WaitlistStatus.CANCELLED
            )
        try:
            _lock_schedule(db, entry.schedule_id)
            db.refresh(entry)
            if entry.status != WaitlistStatus.WAITING:
                raise StateTransitionError(
                    "La entrada ya no está en la lista de espera", entry.status, WaitlistStatus.CANCELLED
                )
            entry.status = WaitlistStatus.CANCELLED
            entry.position = None
            db.flush()
            _renumber_waitlist(db, entry.schedule_id)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        logger.info(f"Entrada {entry.id} sale de la lista de espera de la sesión {entry.schedule_id}")
        return entry

    def _promote(self, db: Session, schedule: ClassSchedule, now: datetime) -> List[ClassWaitlist]:
        """
        Ocupa las plazas libres con las primeras entradas WAITING. Requiere la
        sesión bloqueada y no hace commit.
        """
        promoted = []
        if not schedule.is_active or schedule.end_time <= now:
            return promoted
        window = timedelta(minutes=get_settings().WAITLIST_ACCEPTANCE_WINDOW_MINUTES)

        while class_booking_repository.count_confirmed(db, schedule_id=schedule.id) < schedule.capacity:
            waiting = class_waitlist_repository.get_waiting(db, schedule_id=schedule.id)
            if not waiting:
                break
            entry = waiting[0]

            skip_reason = None
            credit_pass = None
            member = member_repository.get(db, id=entry.member_id)
            if not member or not member.is_active:
                skip_reason = "socio inactivo"
            elif class_booking_repository.get_active_for_member(
                db, member_id=entry.member_id, schedule_id=schedule.id
            ):
                skip_reason = "ya tiene reserva"
            else:
                try:
                    credit_pass = credit_service.select_pass(
                        db, member_id=entry.member_id, schedule=schedule, now=now
                    )
                except InsufficientCreditsError:
                    skip_reason = "sin créditos"

            entry.position = None
            if skip_reason:
                entry.status = WaitlistStatus.CANCELLED
                db.flush()
                logger.warning(
                    f"Entrada {entry.id} (socio {entry.member_id}) descartada de la sesión {schedule.id}: {skip_reason}"
                )
            else:
                booking = ClassBooking(
                    member_id=entry.member_id,
                    schedule_id=schedule.id,
                    status=BookingStatus.CONFIRMED,
                    booked_at=now,
                    confirmed_at=now,
                )
                db.add(booking)
                db.flush()
                if credit_pass is not None:
                    credit_service.apply_usage(db, credit_pass=credit_pass, booking=booking)
                entry.status = WaitlistStatus.NOTIFIED
                entry.notified_at = now
                entry.expires_at = now + window
                entry.booking_id = booking.id
                db.flush()
                promoted.append(entry)
                logger.info(
                    f"Entrada {entry.id} promovida en la sesión {schedule.id}: reserva {booking.id}, "
                    f"aceptar antes de {entry.expires_at}"
                )
            _renumber_waitlist(db, schedule.id)
        return promoted

    def promote_waitlist(self, db: Session, schedule_id: int, now: Optional[datetime] = None) -> List[ClassWaitlist]:
        now = now or utcnow()
        try:
            schedule = _lock_schedule(db, schedule_id)
            promoted = self._promote(db, schedule, now)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return promoted

    def accept_offer(self, db: Session, entry_id: int, now: Optional[datetime] = None) -> ClassWaitlist:
        """Confirma la oferta. Comparte el bloqueo de la sesión con el barrido de caducidad."""
        now = now or utcnow()
        entry = self.get_entry(db, entry_id)
        try:
            _lock_schedule(db, entry.schedule_id)
            entry = class_waitlist_repository.get_for_update(db, entry_id)
            if entry.status != WaitlistStatus.NOTIFIED:
                raise StateTransitionError(
                    "La entrada no tiene una oferta pendiente", entry.status, WaitlistStatus.BOOKED
                )
            if entry.expires_at is not None and entry.expires_at <= now:
                raise StateTransitionError("La oferta ha caducado", entry.status, WaitlistStatus.BOOKED)
            booking = class_booking_repository.get(db, id=entry.booking_id) if entry.booking_id else None
            if booking is None or booking.status != BookingStatus.CONFIRMED:
                raise StateTransitionError(
                    "La reserva de la oferta ya no está confirmada", entry.status, WaitlistStatus.BOOKED
                )
            entry.status = WaitlistStatus.BOOKED
            entry.expires_at = None
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        logger.info(f"Entrada {entry.id} aceptada (reserva {entry.booking_id})")
        return entry

    def expire_offers(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Caduca las ofertas NOTIFIED vencidas, anula su reserva devolviendo el
        crédito y promueve al siguiente. Cada entrada se confirma por separado.
        """
        now = now or utcnow()
        expired = 0
        for candidate in class_waitlist_repository.get_expired_offers(db, now=now):
            try:
                schedule = _lock_schedule(db, candidate.schedule_id)
                entry = class_waitlist_repository.get_for_update(db, candidate.id)
                if entry.status != WaitlistStatus.NOTIFIED or entry.expires_at is None or entry.expires_at > now:
                    db.rollback()
                    continue
                booking = class_booking_repository.get(db, id=entry.booking_id) if entry.booking_id else None
                if booking is not None and booking.status == BookingStatus.CONFIRMED and booking.checked_in_at is None:
                    entry.status = WaitlistStatus.EXPIRED
                    db.flush()
                    booking_service._cancel(
                        db, booking, reason="Oferta de lista de espera caducada", refund=True, now=now
                    )
                    self._promote(db, schedule, now)
                    expired += 1
                    logger.info(f"Oferta {entry.id} caducada; reserva {booking.id} anulada")
                else:
                    # El socio ya usó la plaza
                    entry.status = WaitlistStatus.BOOKED
                    entry.expires_at = None
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Error caducando la oferta {candidate.id}: {e}", exc_info=True)
                raise
        return expired

    def get_schedule_waitlist(self, db: Session, schedule_id: int) -> List[ClassWaitlist]:
        schedule_service.get_schedule_model(db, schedule_id)
        return class_waitlist_repository.get_by_schedule(db, schedule_id=schedule_id)

    def get_member_waitlist(self, db: Session, member_id: int) -> List[ClassWaitlist]:
        member_service.require_member(db, member_id)
        return class_waitlist_repository.get_by_member(db, member_id=member_id)


class_service = ClassService()
schedule_service = ClassScheduleService()
booking_service = BookingService()
waitlist_service = WaitlistService()
