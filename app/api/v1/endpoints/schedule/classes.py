from app.api.v1.endpoints.schedule.common import *

router = APIRouter()


@router.get("", response_model=List[GymClass])
def get_classes(
    active_only: bool = True,
    category: Optional[ClassCategory] = None,
    db: Session = Depends(get_db)
) -> Any:
    """
    Get Class Definitions

    Devuelve las definiciones de clase (plantillas), opcionalmente filtradas
    por categoría.
    """
    return class_service.list_classes(db, active_only=active_only, category=category)


@router.get("/{class_id}", response_model=GymClass)
def get_class(
    class_id: int = Path(..., description="ID de la clase"),
    db: Session = Depends(get_db)
) -> Any:
    return class_service.get_class(db, class_id)


@router.post("", response_model=GymClass, status_code=status.HTTP_201_CREATED)
def create_class(
    class_data: GymClassCreate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """
    Create Class Definition

    Crea una nueva definición de clase. `max_capacity` es el aforo por
    defecto de las sesiones que se programen a partir de ella.
    """
    return class_service.create_class(db, class_in=class_data)


@router.patch("/{class_id}", response_model=GymClass)
def update_class(
    class_id: int = Path(..., description="ID de la clase"),
    class_data: GymClassUpdate = Body(...),
    db: Session = Depends(get_db)
) -> Any:
    """Las sesiones ya programadas conservan su aforo."""
    return class_service.update_class(db, class_id=class_id, class_in=class_data)
