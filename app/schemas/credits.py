from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from app.models.credits import ClassPassStatus, CreditTransactionType


class ClassPackageBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    credits_included: int = Field(..., ge=1)
    price_cents: int = Field(..., ge=0, description="Precio en centavos")
    currency: str = Field("EUR", min_length=3, max_length=3)
    validity_days: Optional[int] = Field(None, ge=1, description="Días de validez (None = sin caducidad)")
    monthly_unlimited: bool = False
    class_id: Optional[int] = Field(None, description="Limitar el paquete a una clase concreta")
    is_active: bool = True

    @model_validator(mode='after')
    def normalize(self):
        self.currency = self.currency.upper()
        return self


class ClassPackageCreate(ClassPackageBase):
    pass


class ClassPackage(ClassPackageBase):
    id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class PackagePurchase(BaseModel):
    member_id: int


class MemberClassPass(BaseModel):
    id: int
    member_id: int
    package_id: int
    class_id: Optional[int] = None
    purchased_at: datetime
    expires_at: Optional[datetime] = None
    total_credits: int
    remaining_credits: int
    monthly_unlimited: bool
    status: ClassPassStatus

    model_config = {"from_attributes": True}


class MemberCredits(BaseModel):
    member_id: int
    total_remaining_credits: int
    has_unlimited_pass: bool
    active_passes: List[MemberClassPass]


class CreditTransaction(BaseModel):
    id: int
    member_id: int
    pass_id: int
    booking_id: Optional[int] = None
    type: CreditTransactionType
    credits_delta: int
    balance_after: int
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
