from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Enum, CheckConstraint
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"  # amount = porcentaje 1..100
    FIXED = "FIXED"            # amount = centavos


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)  # Siempre en mayúsculas
    description = Column(Text, nullable=True)
    type = Column(Enum(DiscountType), nullable=False)
    amount = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    max_redemptions = Column(Integer, nullable=True)  # None = ilimitado
    used_count = Column(Integer, default=0, nullable=False)
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_discount_amount_positive'),
        CheckConstraint('used_count >= 0', name='check_discount_used_non_negative'),
        CheckConstraint(
            'max_redemptions IS NULL OR used_count <= max_redemptions',
            name='check_discount_used_within_max'
        ),
    )

    def __repr__(self):
        return f"<DiscountCode(code='{self.code}', used={self.used_count}/{self.max_redemptions})>"

    @property
    def is_exhausted(self) -> bool:
        return self.max_redemptions is not None and self.used_count >= self.max_redemptions

    def compute_discount(self, price_cents: int) -> int:
        """Descuento en centavos aplicado sobre `price_cents` (nunca mayor que el precio)."""
        if self.type == DiscountType.PERCENTAGE:
            discount = price_cents * self.amount // 100
        else:
            discount = self.amount
        return max(0, min(discount, price_cents))
