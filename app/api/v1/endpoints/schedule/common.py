"""
Imports y dependencias comunes del módulo de horarios.

Centraliza lo que comparten los endpoints de clases, sesiones, reservas,
lista de espera y paquetes de créditos.
"""

from typing import Any, List, Optional, Union
from datetime import datetime, timedelta
from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.deps import Pagination, get_pagination
from app.core.timezone_utils import utcnow
from app.db.session import get_db
from app.models.schedule import BookingStatus, ClassCategory
from app.services.schedule import (
    class_service,
    schedule_service,
    booking_service,
    waitlist_service
)
from app.services.credits import credit_service
from app.schemas.common import PaginatedResponse
from app.schemas.schedule import (
    GymClass, GymClassCreate, GymClassUpdate,
    ClassScheduleCreate, ClassScheduleUpdate, ClassScheduleWithAvailability,
    Booking, BookingCreate, BookingCancel, BookingStatusUpdate,
    WaitlistEntry, WaitlistJoin,
    InstructorRating, RatingCreate
)
from app.schemas.credits import (
    ClassPackage, ClassPackageCreate, PackagePurchase,
    MemberClassPass, MemberCredits, CreditTransaction
)
from app.schemas.views import ViewType, ClassSummaryWeb, ClassSummaryMobile
