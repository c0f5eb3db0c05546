"""
Schedule Module - API Endpoints

Este módulo agrupa los componentes del sistema de clases del gimnasio:
- Definiciones de clases (/classes)
- Sesiones programadas con su disponibilidad (/sessions)
- Reservas y su ciclo de vida (/bookings)
- Lista de espera por sesión (/waitlist)
- Paquetes de clases y créditos de los socios (/packages, /credits)

Cada área vive en su propio fichero para mantener los routers pequeños.
"""

from fastapi import APIRouter

from app.api.v1.endpoints.schedule import (
    classes,
    sessions,
    bookings,
    waitlist,
    packages
)

router = APIRouter()

# Rutas para clases y sesiones
router.include_router(classes.router, prefix="/classes", tags=["classes"])
router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])

# Reservas y lista de espera
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
router.include_router(waitlist.router, prefix="/waitlist", tags=["waitlist"])

# Paquetes de clases y créditos
router.include_router(packages.router, prefix="/packages", tags=["packages"])
router.include_router(packages.credits_router, prefix="/credits", tags=["packages"])
