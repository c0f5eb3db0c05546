from typing import Dict, Optional
from datetime import datetime
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.models.retention import MemberRetentionRisk, RetentionTask, RiskLevel, RetentionTaskStatus
from app.schemas.retention import RetentionRecalculateRequest, RetentionTaskUpdate

OPEN_TASK_STATUSES = (RetentionTaskStatus.OPEN, RetentionTaskStatus.IN_PROGRESS)


class MemberRetentionRiskRepository(BaseRepository[MemberRetentionRisk, RetentionRecalculateRequest, RetentionRecalculateRequest]):
    def get_by_member(self, db: Session, *, member_id: int) -> Optional[MemberRetentionRisk]:
        return db.query(MemberRetentionRisk).filter(MemberRetentionRisk.member_id == member_id).first()

    def count_by_level(self, db: Session) -> Dict[RiskLevel, int]:
        rows = db.query(MemberRetentionRisk.risk_level, func.count(MemberRetentionRisk.id)).group_by(
            MemberRetentionRisk.risk_level
        ).all()
        return {level: count for level, count in rows}

    def last_evaluated_at(self, db: Session) -> Optional[datetime]:
        return db.query(func.max(MemberRetentionRisk.last_evaluated_at)).scalar()

    def list_filtered(
        self, db: Session, *, risk_level: Optional[RiskLevel] = None, min_score: Optional[int] = None,
        page: int = 1, limit: int = 20
    ):
        query = db.query(MemberRetentionRisk)
        if risk_level is not None:
            query = query.filter(MemberRetentionRisk.risk_level == risk_level)
        if min_score is not None:
            query = query.filter(MemberRetentionRisk.score >= min_score)
        total = query.count()
        items = query.order_by(
            MemberRetentionRisk.score.desc(), MemberRetentionRisk.member_id
        ).offset((page - 1) * limit).limit(limit).all()
        return items, total


class RetentionTaskRepository(BaseRepository[RetentionTask, RetentionTaskUpdate, RetentionTaskUpdate]):
    def get_open_for_member(self, db: Session, *, member_id: int) -> Optional[RetentionTask]:
        return db.query(RetentionTask).filter(
            RetentionTask.member_id == member_id,
            RetentionTask.status.in_(OPEN_TASK_STATUSES)
        ).first()

    def get_last_resolved_at(self, db: Session, *, member_id: int) -> Optional[datetime]:
        return db.query(func.max(RetentionTask.resolved_at)).filter(
            RetentionTask.member_id == member_id
        ).scalar()

    def count_open(self, db: Session) -> int:
        return db.query(func.count(RetentionTask.id)).filter(
            RetentionTask.status.in_(OPEN_TASK_STATUSES)
        ).scalar() or 0


retention_risk_repository = MemberRetentionRiskRepository(MemberRetentionRisk)
retention_task_repository = RetentionTaskRepository(RetentionTask)
