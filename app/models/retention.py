from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, Enum, JSON, CheckConstraint
import enum

from app.core.timezone_utils import utcnow
from app.db.base_class import Base


class RiskLevel(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RetentionTaskStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    DISMISSED = "DISMISSED"


class MemberRetentionRisk(Base):
    """Última clasificación de riesgo calculada para un socio"""
    __tablename__ = "member_retention_risk"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), unique=True, nullable=False)
    risk_level = Column(Enum(RiskLevel), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    reasons = Column(JSON, nullable=False, default=list)
    last_check_in_at = Column(DateTime, nullable=True)
    days_since_check_in = Column(Integer, nullable=True)
    membership_ends_at = Column(Date, nullable=True)
    last_evaluated_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('score >= 0 AND score <= 100', name='check_retention_score_range'),
    )


class RetentionTask(Base):
    """Tarea de seguimiento para el personal sobre un socio en riesgo alto"""
    __tablename__ = "retention_tasks"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    status = Column(Enum(RetentionTaskStatus), default=RetentionTaskStatus.OPEN, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)
    score_at_creation = Column(Integer, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
