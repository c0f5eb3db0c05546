"""
Endpoints de socios.

Alta, consulta y baja lógica de socios, más la gestión de su código QR de
acceso y las vistas de reservas, créditos y lista de espera de cada socio.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.db.session import get_db
from app.models.schedule import BookingStatus
from app.schemas.common import PaginatedResponse
from app.schemas.credits import MemberCredits
from app.schemas.member import Member, MemberCreate, MemberUpdate, QRToken
from app.schemas.membership import Membership
from app.schemas.schedule import Booking, WaitlistEntry
from app.services.credits import credit_service
from app.services.member import member_service
from app.services.membership import membership_service
from app.services.schedule import booking_service, waitlist_service

router = APIRouter()


@router.post("", response_model=Member, status_code=status.HTTP_201_CREATED)
def register_member(member_in: MemberCreate, db: Session = Depends(get_db)) -> Any:
    """
    Registrar un nuevo socio.

    Crea el usuario con rol MEMBER, su perfil de socio y un código QR de acceso.

    Raises:
        409: ya existe un usuario con ese email
    """
    return member_service.register_member(db, member_in=member_in)


@router.get("", response_model=PaginatedResponse[Member])
def list_members(
    search: Optional[str] = Query(None, description="Busca en nombre, apellidos y email"),
    is_active: Optional[bool] = Query(None),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    members, total = member_service.list_members(
        db, search=search, is_active=is_active, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[Member].build(members, total, pagination.page, pagination.limit)


@router.get("/{member_id}", response_model=Member)
def get_member(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return member_service.get_member(db, member_id)


@router.patch("/{member_id}", response_model=Member)
def update_member(
    member_in: MemberUpdate,
    member_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
) -> Any:
    return member_service.update_member(db, member_id=member_id, member_in=member_in)


@router.post("/{member_id}/deactivate", response_model=Member)
def deactivate_member(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """Baja lógica. El socio conserva su historial y puede reactivarse."""
    return member_service.deactivate_member(db, member_id)


@router.post("/{member_id}/reactivate", response_model=Member)
def reactivate_member(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return member_service.reactivate_member(db, member_id)


@router.post("/{member_id}/qr-token", response_model=QRToken)
def regenerate_qr_token(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    """Invalida el QR anterior y genera uno nuevo."""
    token = member_service.regenerate_qr_token(db, member_id)
    return QRToken(member_id=member_id, qr_code_token=token)


@router.get("/{member_id}/memberships", response_model=List[Membership])
def list_member_memberships(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return membership_service.list_member_memberships(db, member_id)


@router.get("/{member_id}/bookings", response_model=PaginatedResponse[Booking])
def list_member_bookings(
    member_id: int = Path(..., ge=1),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db)
) -> Any:
    bookings, total = booking_service.get_member_bookings(
        db, member_id=member_id, status=status_filter, page=pagination.page, limit=pagination.limit
    )
    return PaginatedResponse[Booking].build(
        [Booking.model_validate(b) for b in bookings], total, pagination.page, pagination.limit
    )


@router.get("/{member_id}/waitlist", response_model=List[WaitlistEntry])
def list_member_waitlist(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return waitlist_service.get_member_waitlist(db, member_id)


@router.get("/{member_id}/credits", response_model=MemberCredits)
def get_member_credits(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return credit_service.get_member_credits(db, member_id)
