from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Enum, CheckConstraint
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class ClassPassStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXHAUSTED = "EXHAUSTED"
    EXPIRED = "EXPIRED"


class CreditTransactionType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    USAGE = "USAGE"
    REFUND = "REFUND"


class ClassPackage(Base):
    """Paquete de créditos de clases que se puede comprar"""
    __tablename__ = "class_packages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    credits_included = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)
    validity_days = Column(Integer, nullable=True)  # None = sin caducidad
    monthly_unlimited = Column(Boolean, default=False, nullable=False)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=True)  # Limitado a una clase
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('credits_included > 0', name='check_package_credits_positive'),
        CheckConstraint('price_cents >= 0', name='check_package_price_non_negative'),
        CheckConstraint('validity_days IS NULL OR validity_days > 0', name='check_package_validity'),
    )


class MemberClassPass(Base):
    """Pase: compra concreta de un paquete con su propio contador de créditos"""
    __tablename__ = "member_class_passes"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("class_packages.id"), nullable=False)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=True)
    purchased_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)  # None = sin caducidad (ilimitado)
    total_credits = Column(Integer, nullable=False)
    remaining_credits = Column(Integer, nullable=False)
    monthly_unlimited = Column(Boolean, default=False, nullable=False)
    status = Column(Enum(ClassPassStatus), default=ClassPassStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('remaining_credits >= 0', name='check_pass_remaining_non_negative'),
        CheckConstraint('remaining_credits <= total_credits', name='check_pass_remaining_within_total'),
    )

    def __repr__(self):
        return f"<MemberClassPass(id={self.id}, member_id={self.member_id}, remaining={self.remaining_credits})>"

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class ClassCreditTransaction(Base):
    """Libro de movimientos de créditos (compra, uso y devolución)"""
    __tablename__ = "class_credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    pass_id = Column(Integer, ForeignKey("member_class_passes.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("class_booking.id"), nullable=True)
    type = Column(Enum(CreditTransactionType), nullable=False)
    credits_delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    notes = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
