from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field

from app.models.retention import RiskLevel, RetentionTaskStatus


class MemberRetentionRisk(BaseModel):
    member_id: int
    risk_level: RiskLevel
    score: int
    reasons: List[str]
    last_check_in_at: Optional[datetime] = None
    days_since_check_in: Optional[int] = None
    membership_ends_at: Optional[date] = None
    last_evaluated_at: datetime

    model_config = {"from_attributes": True}


class RetentionRecalculateRequest(BaseModel):
    as_of: Optional[datetime] = None


class RetentionRecalculateResult(BaseModel):
    processed: int
    high: int
    medium: int
    low: int
    tasks_created: int = 0


class RetentionOverview(BaseModel):
    evaluated_members: int
    high: int
    medium: int
    low: int
    open_tasks: int
    last_evaluated_at: Optional[datetime] = None


class RetentionTask(BaseModel):
    id: int
    member_id: int
    status: RetentionTaskStatus
    title: str
    notes: Optional[str] = None
    score_at_creation: int
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RetentionTaskUpdate(BaseModel):
    status: RetentionTaskStatus
    notes: Optional[str] = Field(None, max_length=2000)
