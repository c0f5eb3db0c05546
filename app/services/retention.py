from datetime import datetime, date, timedelta
import logging
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import NotFoundError
from app.core.timezone_utils import utcnow, to_naive_utc
from app.models.membership import MembershipStatus
from app.models.retention import MemberRetentionRisk, RetentionTask, RetentionTaskStatus, RiskLevel
from app.repositories.attendance import attendance_repository
from app.repositories.member import member_repository
from app.repositories.membership import membership_repository
from app.repositories.retention import retention_risk_repository, retention_task_repository
from app.schemas.retention import RetentionOverview, RetentionRecalculateResult, RetentionTaskUpdate

logger = logging.getLogger(__name__)


class MemberActivitySnapshot(BaseModel):
    """Datos de entrada del cálculo de riesgo de un socio."""
    member_id: int
    last_check_in_at: Optional[datetime] = None
    days_since_check_in: Optional[int] = None
    membership_status: Optional[MembershipStatus] = None
    membership_ends_at: Optional[date] = None


Scorer = Callable[[MemberActivitySnapshot, datetime], Tuple[int, List[str]]]


def default_scorer(snapshot: MemberActivitySnapshot, as_of: datetime) -> Tuple[int, List[str]]:
    settings = get_settings()
    score = 0
    reasons = []

    if snapshot.last_check_in_at is None:
        score += 50
        reasons.append("Sin historial de asistencia")
    elif snapshot.days_since_check_in >= settings.RETENTION_INACTIVITY_DAYS:
        score += 50
        reasons.append(f"{snapshot.days_since_check_in} días sin asistir")

    if snapshot.membership_status is None:
        score += 20
        reasons.append("Sin membresía vigente")
    elif snapshot.membership_status == MembershipStatus.FROZEN:
        score += 15
        reasons.append("Membresía congelada")

    if snapshot.membership_ends_at is not None and snapshot.membership_status == MembershipStatus.ACTIVE:
        days_left = (snapshot.membership_ends_at - as_of.date()).days
        if 0 <= days_left <= settings.RETENTION_EXPIRY_WARNING_DAYS:
            score += 25
            reasons.append(f"La membresía termina en {days_left} días")

    return max(0, min(100, score)), reasons


def risk_level_for(score: int) -> RiskLevel:
    settings = get_settings()
    if score >= settings.RETENTION_HIGH_THRESHOLD:
        return RiskLevel.HIGH
    if score >= settings.RETENTION_MEDIUM_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RetentionService:
    """
    Clasificación periódica de socios por riesgo de baja.

    El cálculo se hace por lotes (tarea nocturna o bajo demanda) y guarda una
    fila por socio. La función de puntuación es intercambiable.
    """

    def __init__(self, scorer: Scorer = default_scorer):
        self.scorer = scorer

    def set_scorer(self, scorer: Optional[Scorer]) -> None:
        self.scorer = scorer or default_scorer

    def build_snapshot(self, db: Session, member_id: int, as_of: datetime) -> MemberActivitySnapshot:
        last_check_in = attendance_repository.get_last_check_in(db, member_id=member_id)
        days_since = (as_of - last_check_in).days if last_check_in else None
        current = membership_repository.get_current(db, member_id=member_id)
        return MemberActivitySnapshot(
            member_id=member_id,
            last_check_in_at=last_check_in,
            days_since_check_in=max(0, days_since) if days_since is not None else None,
            membership_status=current.status if current else None,
            membership_ends_at=current.end_date if current else None,
        )

    def _maybe_create_task(self, db: Session, risk: MemberRetentionRisk, as_of: datetime) -> bool:
        if retention_task_repository.get_open_for_member(db, member_id=risk.member_id):
            return False
        last_resolved = retention_task_repository.get_last_resolved_at(db, member_id=risk.member_id)
        cooldown = timedelta(days=get_settings().RETENTION_FOLLOW_UP_COOLDOWN_DAYS)
        if last_resolved is not None and as_of - last_resolved < cooldown:
            return False
        db.add(RetentionTask(
            member_id=risk.member_id,
            status=RetentionTaskStatus.OPEN,
            title=f"Contactar al socio {risk.member_id} (riesgo alto, {risk.score} puntos)",
            notes="; ".join(risk.reasons),
            score_at_creation=risk.score,
        ))
        return True

    def recalculate_all(self, db: Session, as_of: Optional[datetime] = None) -> RetentionRecalculateResult:
        """
        Recalcula el riesgo de todos los socios activos y abre tareas de
        seguimiento para los de riesgo alto.
        """
        as_of = to_naive_utc(as_of) or utcnow()
        counts = {RiskLevel.HIGH: 0, RiskLevel.MEDIUM: 0, RiskLevel.LOW: 0}
        tasks_created = 0
        member_ids = member_repository.get_active_ids(db)
        try:
            for member_id in member_ids:
                snapshot = self.build_snapshot(db, member_id, as_of)
                score, reasons = self.scorer(snapshot, as_of)
                score = max(0, min(100, int(score)))
                level = risk_level_for(score)

                risk = retention_risk_repository.get_by_member(db, member_id=member_id)
                if risk is None:
                    risk = MemberRetentionRisk(member_id=member_id)
                    db.add(risk)
                risk.score = score
                risk.risk_level = level
                risk.reasons = list(reasons)
                risk.last_check_in_at = snapshot.last_check_in_at
                risk.days_since_check_in = snapshot.days_since_check_in
                risk.membership_ends_at = snapshot.membership_ends_at
                risk.last_evaluated_at = as_of
                db.flush()

                counts[level] += 1
                if level == RiskLevel.HIGH and self._maybe_create_task(db, risk, as_of):
                    tasks_created += 1
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Error recalculando riesgo de retención: {e}", exc_info=True)
            raise

        logger.info(
            f"Riesgo de retención recalculado para {len(member_ids)} socios: "
            f"alto={counts[RiskLevel.HIGH]}, medio={counts[RiskLevel.MEDIUM]}, bajo={counts[RiskLevel.LOW]}, "
            f"tareas nuevas={tasks_created}"
        )
        return RetentionRecalculateResult(
            processed=len(member_ids),
            high=counts[RiskLevel.HIGH],
            medium=counts[RiskLevel.MEDIUM],
            low=counts[RiskLevel.LOW],
            tasks_created=tasks_created,
        )

    def get_overview(self, db: Session) -> RetentionOverview:
        by_level = retention_risk_repository.count_by_level(db)
        return RetentionOverview(
            evaluated_members=sum(by_level.values()),
            high=by_level.get(RiskLevel.HIGH, 0),
            medium=by_level.get(RiskLevel.MEDIUM, 0),
            low=by_level.get(RiskLevel.LOW, 0),
            open_tasks=retention_task_repository.count_open(db),
            last_evaluated_at=retention_risk_repository.last_evaluated_at(db),
        )

    def get_member_risk(self, db: Session, member_id: int) -> MemberRetentionRisk:
        risk = retention_risk_repository.get_by_member(db, member_id=member_id)
        if not risk:
            raise NotFoundError(f"No hay evaluación de riesgo para el socio {member_id}")
        return risk

    def list_members(
        self, db: Session, *, risk_level: Optional[RiskLevel] = None, min_score: Optional[int] = None,
        page: int = 1, limit: int = 20
    ) -> Tuple[List[MemberRetentionRisk], int]:
        return retention_risk_repository.list_filtered(
            db, risk_level=risk_level, min_score=min_score, page=page, limit=limit
        )

    def list_tasks(
        self, db: Session, *, status: Optional[RetentionTaskStatus] = None,
        member_id: Optional[int] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[RetentionTask], int]:
        return retention_task_repository.get_page(
            db, page=page, limit=limit, filters={"status": status, "member_id": member_id}
        )

    def update_task(self, db: Session, *, task_id: int, task_in: RetentionTaskUpdate) -> RetentionTask:
        task = retention_task_repository.get(db, id=task_id)
        if not task:
            raise NotFoundError(f"Tarea de retención con ID {task_id} no encontrada")
        task.status = task_in.status
        if task_in.notes is not None:
            task.notes = task_in.notes
        if task_in.status in (RetentionTaskStatus.DONE, RetentionTaskStatus.DISMISSED):
            task.resolved_at = task.resolved_at or utcnow()
        else:
            task.resolved_at = None
        db.commit()
        db.refresh(task)
        logger.info(f"Tarea de retención {task.id} -> {task.status.value}")
        return task


retention_service = RetentionService()
