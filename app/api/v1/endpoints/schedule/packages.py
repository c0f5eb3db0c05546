from app.api.v1.endpoints.schedule.common import *

router = APIRouter()
credits_router = APIRouter()


@router.get("", response_model=List[ClassPackage])
def get_packages(active_only: bool = True, db: Session = Depends(get_db)) -> Any:
    return credit_service.list_packages(db, active_only=active_only)


@router.post("", response_model=ClassPackage, status_code=status.HTTP_201_CREATED)
def create_package(package_data: ClassPackageCreate = Body(...), db: Session = Depends(get_db)) -> Any:
    return credit_service.create_package(db, package_in=package_data)


@router.get("/{package_id}", response_model=ClassPackage)
def get_package(package_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return credit_service.get_package(db, package_id)


@router.post("/{package_id}/purchase", response_model=MemberClassPass, status_code=status.HTTP_201_CREATED)
def purchase_package(
    package_id: int = Path(..., ge=1),
    purchase_data: PackagePurchase = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """
    Purchase Package

    Registra la compra de un paquete: crea un pase con sus créditos y una
    entrada PURCHASE en el libro de créditos.
    """
    return credit_service.purchase_package(db, member_id=purchase_data.member_id, package_id=package_id)


@credits_router.get("/{member_id}", response_model=MemberCredits)
def get_member_credits(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return credit_service.get_member_credits(db, member_id)


@credits_router.get("/{member_id}/transactions", response_model=List[CreditTransaction])
def get_member_credit_transactions(member_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> Any:
    return credit_service.get_transactions(db, member_id)
