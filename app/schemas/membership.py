from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, field_validator

from app.models.membership import MembershipStatus


# === Esquemas de planes ===

class MembershipPlanBase(BaseModel):
    """Esquema base para planes de membresía"""
    name: str = Field(..., min_length=1, max_length=100, description="Nombre del plan")
    description: Optional[str] = Field(None, description="Descripción del plan")
    price_cents: int = Field(..., ge=0, description="Precio en centavos")
    currency: str = Field("EUR", min_length=3, max_length=3, description="Código de moneda")
    duration_days: int = Field(..., ge=1, description="Duración en días")
    features: List[str] = Field(default_factory=list, description="Características del plan")
    unlimited_classes: bool = Field(False, description="Incluye clases sin consumir créditos")
    is_active: bool = Field(True, description="Si el plan está activo")

    @field_validator('currency')
    def validate_currency(cls, v):
        return v.upper()


class MembershipPlanCreate(MembershipPlanBase):
    pass


class MembershipPlanUpdate(BaseModel):
    """Esquema para actualizar un plan de membresía"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price_cents: Optional[int] = Field(None, ge=0)
    duration_days: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    unlimited_classes: Optional[bool] = None
    is_active: Optional[bool] = None


class MembershipPlan(MembershipPlanBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# === Esquemas de membresías ===

class MembershipAssign(BaseModel):
    member_id: int
    plan_id: int
    start_date: Optional[date] = Field(None, description="Por defecto, hoy")
    discount_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class Membership(BaseModel):
    id: int
    member_id: int
    plan_id: int
    start_date: date
    end_date: date
    status: MembershipStatus
    original_price_cents: int
    discount_cents: int
    final_price_cents: int
    discount_code_id: Optional[int] = None
    frozen_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DiscountPreviewRequest(BaseModel):
    plan_id: int
    code: str = Field(..., min_length=1, max_length=50)


class PriceBreakdown(BaseModel):
    code: Optional[str] = None
    original_price_cents: int
    discount_cents: int
    final_price_cents: int


class MembershipLifecycleResult(BaseModel):
    expired: int
    activated: int
