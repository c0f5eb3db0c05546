"""
Services module for GymCore

Los servicios implementan la lógica de negocio: validan, coordinan
repositorios y controlan las transacciones.
"""

from app.services.member import member_service, trainer_service
from app.services.credits import credit_service
from app.services.discount import discount_service
from app.services.membership import membership_service
from app.services.schedule import (
    class_service,
    schedule_service,
    booking_service,
    waitlist_service
)
from app.services.attendance import attendance_service
from app.services.inventory import inventory_service
from app.services.retention import retention_service
from app.services.marketing import marketing_service

__all__ = [
    "member_service",
    "trainer_service",
    "credit_service",
    "discount_service",
    "membership_service",
    "class_service",
    "schedule_service",
    "booking_service",
    "waitlist_service",
    "attendance_service",
    "inventory_service",
    "retention_service",
    "marketing_service",
]
