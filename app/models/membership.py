from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Boolean, Text, Enum, JSON, CheckConstraint, Index, text
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class MembershipStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    PENDING = "PENDING"   # Comienza en una fecha futura
    FROZEN = "FROZEN"


class MembershipPlan(Base):
    """
    Planes de membresía del gimnasio.
    Cambiar precio o duración no afecta a las membresías ya asignadas.
    """
    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True)

    # Información básica del plan
    name = Column(String(100), unique=True, nullable=False)  # "Mensual", "Anual", "Pase Día"
    description = Column(Text, nullable=True)

    # Pricing
    price_cents = Column(Integer, nullable=False)  # Precio en centavos (ej: 2999 = €29.99)
    currency = Column(String(3), default="EUR", nullable=False)

    # Duración y características
    duration_days = Column(Integer, nullable=False)
    features = Column(JSON, nullable=False, default=list)
    unlimited_classes = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('duration_days > 0', name='check_plan_duration_positive'),
        CheckConstraint('price_cents >= 0', name='check_plan_price_non_negative'),
    )

    def __repr__(self):
        return f"<MembershipPlan(id={self.id}, name='{self.name}')>"


class Membership(Base):
    """Asignación de un plan a un socio con sus fechas y precio congelados"""
    __tablename__ = "memberships"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("membership_plans.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(Enum(MembershipStatus), default=MembershipStatus.PENDING, nullable=False, index=True)

    # Precio en el momento de la asignación
    original_price_cents = Column(Integer, nullable=False)
    discount_cents = Column(Integer, default=0, nullable=False)
    final_price_cents = Column(Integer, nullable=False)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True)

    frozen_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('end_date > start_date', name='check_membership_dates'),
        CheckConstraint('final_price_cents >= 0', name='check_membership_final_price'),
        # Como mucho una membresía vigente por socio
        Index(
            "uq_membership_member_current",
            "member_id",
            unique=True,
            postgresql_where=text("status IN ('ACTIVE', 'PENDING', 'FROZEN')"),
            sqlite_where=text("status IN ('ACTIVE', 'PENDING', 'FROZEN')"),
        ),
    )

    def __repr__(self):
        return f"<Membership(id={self.id}, member_id={self.member_id}, status={self.status})>"
