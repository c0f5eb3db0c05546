from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
def book_class(
    booking_data: BookingCreate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """
    Book Class

    Reserva una plaza confirmada en la sesión, descontando un crédito si la
    clase lo requiere.

    Raises:
        402: el socio no tiene créditos aplicables
        409: sesión completa (la respuesta incluye la entrada de lista de
             espera si `join_waitlist` es true) o reserva duplicada
    """
    return booking_service.book_class(
        db,
        member_id=booking_data.member_id,
        schedule_id=booking_data.schedule_id,
        join_waitlist=booking_data.join_waitlist
    )


@router.post("/request", response_model=Booking, status_code=status.HTTP_201_CREATED)
def request_booking(
    booking_data: BookingCreate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """Crea una reserva pendiente de confirmar, sin ocupar plaza."""
    return booking_service.request_booking(
        db, member_id=booking_data.member_id, schedule_id=booking_data.schedule_id
    )


@router.get("/{booking_id}", response_model=Booking)
def get_booking(booking_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return booking_service.get_booking(db, booking_id)


@router.post("/{booking_id}/confirm", response_model=Booking)
def confirm_booking(booking_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return booking_service.confirm_booking(db, booking_id)


@router.post("/{booking_id}/cancel", response_model=Booking)
def cancel_booking(
    booking_id: int = Path(..., ge=1),
    cancel_data: Optional[BookingCancel] = Body(None),
    db: Session = Depends(get_db)
) -> Any:
    """
    Cancel Booking

    Cancelación solicitada por el socio. El crédito se devuelve si se cancela
    con la antelación configurada; la plaza liberada pasa a la lista de espera.
    """
    reason = cancel_data.reason if cancel_data else None
    return booking_service.cancel_booking(db, booking_id, reason=reason)


@router.patch("/{booking_id}/status", response_model=Booking)
def update_booking_status(
    booking_id: int = Path(..., ge=1),
    status_data: BookingStatusUpdate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """
    Update Booking Status

    Cambio de estado por parte del personal (COMPLETED, NO_SHOW, CANCELLED,
    CONFIRMED). Las transiciones no permitidas devuelven 409.
    """
    return booking_service.update_booking_status(db, booking_id=booking_id, status=status_data.status)


@router.post("/{booking_id}/rating", response_model=InstructorRating, status_code=status.HTTP_201_CREATED)
def rate_instructor(
    booking_id: int = Path(..., ge=1),
    rating_data: RatingCreate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """Valorar al entrenador de una clase a la que se asistió. Una vez por reserva."""
    return booking_service.rate_instructor(db, booking_id=booking_id, rating_in=rating_data)
