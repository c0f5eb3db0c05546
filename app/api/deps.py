"""
Dependencias compartidas por los endpoints de la API.
"""
from dataclasses import dataclass

from fastapi import Query

from app.core.config import settings


@dataclass
class Pagination:
    page: int
    limit: int


def get_pagination(
    page: int = Query(1, ge=1, description="Número de página (desde 1)"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Elementos por página"),
) -> Pagination:
    return Pagination(page=page, limit=limit)
