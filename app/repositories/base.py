from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session, Query

from app.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class BaseRepository(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        """
        Repository con operaciones CRUD por defecto.
        """
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        """
        Obtener un objeto por su ID.

        Args:
            db: Sesión de base de datos
            id: ID del objeto a obtener

        Returns:
            El objeto solicitado o None si no existe
        """
        return db.query(self.model).filter(self.model.id == id).first()

    def get_for_update(self, db: Session, id: Any) -> Optional[ModelType]:
        """
        Obtener un objeto bloqueando su fila (SELECT ... FOR UPDATE) hasta el
        final de la transacción actual. En SQLite el bloqueo se ignora.
        """
        return (
            db.query(self.model)
            .filter(self.model.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def get_multi(
        self, db: Session, *, skip: int = 0, limit: int = 100,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[ModelType]:
        """
        Obtener múltiples registros con filtros opcionales.

        Args:
            db: Sesión de base de datos
            skip: Número de registros a omitir (paginación)
            limit: Número máximo de registros a devolver
            filters: Diccionario de filtros adicionales {campo: valor}

        Returns:
            Lista de objetos que coinciden con los criterios
        """
        query = self._apply_filters(db.query(self.model), filters)
        return query.order_by(self.model.id).offset(skip).limit(limit).all()

    def get_page(
        self, db: Session, *, page: int = 1, limit: int = 20,
        filters: Optional[Dict[str, Any]] = None, query: Optional[Query] = None
    ) -> Tuple[List[ModelType], int]:
        """
        Obtener una página de registros y el total sin paginar.

        Returns:
            Tupla (registros de la página, total)
        """
        if query is None:
            query = db.query(self.model)
        query = self._apply_filters(query, filters)
        total = query.order_by(None).count()
        items = query.order_by(self.model.id).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def create(self, db: Session, *, obj_in: Union[CreateSchemaType, Dict[str, Any]]) -> ModelType:
        """
        Crear un nuevo registro.

        Args:
            db: Sesión de base de datos
            obj_in: Datos del objeto a crear

        Returns:
            El objeto creado
        """
        # Usar model_dump() en lugar de jsonable_encoder() para preservar datetime
        if isinstance(obj_in, dict):
            obj_in_data = dict(obj_in)
        else:
            obj_in_data = obj_in.model_dump()

        db_obj = self.model(**obj_in_data)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update(
        self,
        db: Session,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        """
        Actualizar un registro.

        Args:
            db: Sesión de base de datos
            db_obj: Objeto existente a actualizar
            obj_in: Datos de actualización (solo los campos enviados)

        Returns:
            El objeto actualizado
        """
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def remove(self, db: Session, *, id: int) -> ModelType:
        """
        Eliminar un registro.

        Raises:
            ValueError: Si el objeto no existe
        """
        obj = self.get(db, id=id)
        if not obj:
            raise ValueError(f"Objeto con ID {id} no encontrado")

        db.delete(obj)
        db.commit()
        return obj

    def exists(self, db: Session, id: int) -> bool:
        """
        Verificar si un objeto existe.
        """
        query = db.query(self.model.id).filter(self.model.id == id)
        return db.query(query.exists()).scalar()

    def _apply_filters(self, query: Query, filters: Optional[Dict[str, Any]]) -> Query:
        if filters:
            for field, value in filters.items():
                if value is not None and hasattr(self.model, field):
                    query = query.filter(getattr(self.model, field) == value)
        return query
