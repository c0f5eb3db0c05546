from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.post("", response_model=WaitlistEntry, status_code=status.HTTP_201_CREATED)
def join_waitlist(
    entry_data: WaitlistJoin = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """
    Join Waitlist

    Apunta al socio a la lista de espera de una sesión completa. Si ya estaba
    apuntado devuelve su entrada actual.
    """
    return waitlist_service.join_waitlist(
        db, member_id=entry_data.member_id, schedule_id=entry_data.schedule_id
    )


@router.get("/{entry_id}", response_model=WaitlistEntry)
def get_waitlist_entry(entry_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return waitlist_service.get_entry(db, entry_id)


@router.post("/{entry_id}/accept", response_model=WaitlistEntry)
def accept_waitlist_offer(entry_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """Acepta la plaza ofrecida antes de que caduque la oferta."""
    return waitlist_service.accept_offer(db, entry_id)


@router.post("/{entry_id}/leave", response_model=WaitlistEntry)
def leave_waitlist(entry_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """
    Leave Waitlist

    Sale de la lista de espera. Si la entrada tenía una oferta pendiente, la
    oferta se rechaza y la plaza pasa al siguiente.
    """
    return waitlist_service.leave_waitlist(db, entry_id)
