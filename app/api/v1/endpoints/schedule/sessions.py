from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


def _default_range(start: Optional[datetime], end: Optional[datetime]):
    start = start or utcnow()
    end = end or start + timedelta(days=7)
    return start, end


@router.get("", response_model=List[ClassScheduleWithAvailability])
def get_sessions(
    start: Optional[datetime] = Query(None, description="Inicio del rango (por defecto, ahora)"),
    end: Optional[datetime] = Query(None, description="Fin del rango (por defecto, inicio + 7 días)"),
    class_id: Optional[int] = None,
    trainer_id: Optional[int] = None,
    active_only: bool = True,
    db: Session = Depends(get_db)
) -> Any:
    """
    Get Sessions

    Sesiones que comienzan dentro del rango, con plazas confirmadas,
    plazas libres y longitud de la lista de espera.
    """
    start, end = _default_range(start, end)
    return schedule_service.list_schedules(
        db, start=start, end=end, class_id=class_id, trainer_id=trainer_id, active_only=active_only
    )


@router.get("/summary", response_model=List[Union[ClassSummaryWeb, ClassSummaryMobile]])
def get_session_summaries(
    view: ViewType = Query(ViewType.WEB, description="Proyección: web o mobile"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    class_id: Optional[int] = None,
    trainer_id: Optional[int] = None,
    db: Session = Depends(get_db)
) -> Any:
    """
    Get Session Summaries

    Resumen de sesiones para el panel web o para la app móvil.
    """
    start, end = _default_range(start, end)
    return schedule_service.list_class_summaries(
        db, start=start, end=end, view=view, class_id=class_id, trainer_id=trainer_id
    )


@router.post("", response_model=ClassScheduleWithAvailability, status_code=status.HTTP_201_CREATED)
def create_session(
    session_data: ClassScheduleCreate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """
    Create Session

    Programa una sesión de una clase. Si no se indica, `end_time` se calcula
    con la duración de la clase y `capacity` toma el aforo de la clase.

    Raises:
        404: clase o entrenador inexistente
        409: el entrenador ya tiene otra sesión en ese horario
    """
    return schedule_service.create_schedule(db, schedule_in=session_data)


@router.get("/{session_id}", response_model=ClassScheduleWithAvailability)
def get_session(session_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return schedule_service.get_schedule(db, session_id)


@router.patch("/{session_id}", response_model=ClassScheduleWithAvailability)
def update_session(
    session_id: int = Path(..., ge=1),
    session_data: ClassScheduleUpdate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    return schedule_service.update_schedule(db, schedule_id=session_id, schedule_in=session_data)


@router.post("/{session_id}/deactivate", response_model=ClassScheduleWithAvailability)
def deactivate_session(
    session_id: int = Path(..., ge=1),
    cancel_data: Optional[BookingCancel] = Body(None),
    db: Session = Depends(get_db)
) -> Any:
    """
    Cancel Session

    Desactiva la sesión, anula sus reservas devolviendo los créditos y cierra
    la lista de espera.
    """
    reason = cancel_data.reason if cancel_data else None
    return schedule_service.deactivate_schedule(db, session_id, reason=reason)


@router.get("/{session_id}/bookings", response_model=List[Booking])
def get_session_bookings(
    session_id: int = Path(..., ge=1),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
) -> Any:
    return booking_service.get_schedule_bookings(db, schedule_id=session_id, status=status_filter)


@router.get("/{session_id}/waitlist", response_model=List[WaitlistEntry])
def get_session_waitlist(session_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return waitlist_service.get_schedule_waitlist(db, session_id)


@router.post("/{session_id}/promote-waitlist", response_model=List[WaitlistEntry])
def promote_session_waitlist(session_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """Ocupa las plazas libres con las primeras entradas de la lista de espera."""
    return waitlist_service.promote_waitlist(db, session_id)
