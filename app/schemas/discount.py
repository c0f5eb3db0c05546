from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.discount import DiscountType


def normalize_code(value: str) -> str:
    return value.strip().upper()


class DiscountCodeBase(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = None
    type: DiscountType
    amount: int = Field(..., gt=0, description="Porcentaje (1-100) o centavos según el tipo")
    is_active: bool = True
    max_redemptions: Optional[int] = Field(None, ge=1)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    @field_validator('code')
    def validate_code(cls, v):
        return normalize_code(v)

    @model_validator(mode='after')
    def check_amount_and_window(self):
        if self.type == DiscountType.PERCENTAGE and self.amount > 100:
            raise ValueError('Un descuento porcentual no puede superar 100')
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError('ends_at debe ser posterior a starts_at')
        return self


class DiscountCodeCreate(DiscountCodeBase):
    pass


class DiscountCodeUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    max_redemptions: Optional[int] = Field(None, ge=1)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class DiscountCode(DiscountCodeBase):
    id: int
    used_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class DiscountUsage(BaseModel):
    code_id: int
    code: str
    type: DiscountType
    used_count: int
    max_redemptions: Optional[int] = None
    remaining_redemptions: Optional[int] = None
    total_discount_cents: int
    is_active: bool
