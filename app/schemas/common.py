import math
from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Respuesta paginada compartida por todos los listados"""
    data: List[T]
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, data: List[T], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        return cls(
            data=data,
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class MessageResponse(BaseModel):
    message: str
