from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import OperationalError, DBAPIError
from datetime import timezone
from functools import wraps
import logging
import time

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.credits import credit_service
from app.services.marketing import marketing_service
from app.services.membership import membership_service
from app.services.retention import retention_service
from app.services.schedule import waitlist_service

logger = logging.getLogger(__name__)

# Variable global para mantener referencia al scheduler
_scheduler = None


def retry_on_db_error(max_retries=3, delay=2):
    """
    Decorator para reintentar operaciones en caso de errores de BD.

    Útil para tareas programadas que pueden fallar por conexiones cerradas
    o timeouts transitorios.

    Args:
        max_retries: Número máximo de reintentos (default: 3)
        delay: Tiempo base de espera entre reintentos en segundos (default: 2)
               Se aplica backoff lineal: delay * (attempt + 1)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (OperationalError, DBAPIError) as e:
                    if attempt < max_retries - 1:
                        wait_time = delay * (attempt + 1)
                        logger.warning(
                            f"DB error in {func.__name__}, retry {attempt + 1}/{max_retries} "
                            f"after {wait_time}s: {str(e)}"
                        )
                        time.sleep(wait_time)
                    else:
                        logger.error(
                            f"Max retries ({max_retries}) reached for {func.__name__}: {str(e)}",
                            exc_info=True
                        )
                        raise
                except Exception as e:
                    # Para otros errores, no reintentar
                    logger.error(f"Non-DB error in {func.__name__}: {str(e)}", exc_info=True)
                    raise
        return wrapper
    return decorator


@retry_on_db_error(max_retries=3, delay=2)
def run_membership_lifecycle():
    """
    Expira membresías vencidas, activa las pendientes y caduca pases de clases.
    """
    logger.info("Running scheduled task: run_membership_lifecycle")
    db = SessionLocal()
    try:
        result = membership_service.run_lifecycle(db)
        expired_passes = credit_service.expire_passes(db)
        logger.info(f"Membership lifecycle: {result}, expired passes: {expired_passes}")
        return result
    finally:
        db.close()


@retry_on_db_error(max_retries=3, delay=2)
def expire_waitlist_offers():
    """
    Caduca ofertas de lista de espera no aceptadas a tiempo y promueve al siguiente.
    """
    logger.debug("Running scheduled task: expire_waitlist_offers")
    db = SessionLocal()
    try:
        expired = waitlist_service.expire_offers(db)
        if expired:
            logger.info(f"Expired {expired} waitlist offers")
        return expired
    finally:
        db.close()


@retry_on_db_error(max_retries=3, delay=2)
def recompute_retention_risk():
    """
    Recalcula el riesgo de retención de todos los socios activos.
    """
    logger.info("Running scheduled task: recompute_retention_risk")
    db = SessionLocal()
    try:
        return retention_service.recalculate_all(db)
    finally:
        db.close()

@retry_on_db_error(max_retries=3, delay=2)
def send_scheduled_campaigns():
    """
    Envía las campañas de marketing programadas cuya hora ya llegó.
    """
    logger.debug("Running scheduled task: send_scheduled_campaigns")
    db = SessionLocal()
    try:
        return marketing_service.process_scheduled_campaigns(db)
    finally:
        db.close()


@retry_on_db_error(max_retries=3, delay=2)
def run_marketing_automations():
    """
    Campañas automáticas diarias: cumpleaños y reenganche de inactivos.
    """
    logger.info("Running scheduled task: run_marketing_automations")
    db = SessionLocal()
    try:
        return marketing_service.run_daily_automations(db)
    finally:
        db.close()


def init_scheduler():
    """
    Inicializa el programador de tareas
    """
    global _scheduler
    settings = get_settings()

    logger.info("Initializing scheduler with UTC timezone")
    _scheduler = BackgroundScheduler(timezone=timezone.utc)

    # Ciclo de vida de membresías una vez al día
    _scheduler.add_job(
        run_membership_lifecycle,
        trigger=CronTrigger(hour=settings.MEMBERSHIP_EXPIRY_CRON_HOUR, minute=5),
        id='membership_lifecycle',
        replace_existing=True
    )

    # Ofertas de lista de espera vencidas
    _scheduler.add_job(
        expire_waitlist_offers,
        trigger=IntervalTrigger(minutes=settings.WAITLIST_SWEEP_INTERVAL_MINUTES),
        id='waitlist_offer_expiry',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    # Riesgo de retención cada noche
    _scheduler.add_job(
        recompute_retention_risk,
        trigger=CronTrigger(hour=settings.RETENTION_RECOMPUTE_CRON_HOUR, minute=0),
        id='retention_recompute',
        replace_existing=True
    )

    # Campañas programadas
    _scheduler.add_job(
        send_scheduled_campaigns,
        trigger=IntervalTrigger(minutes=settings.MARKETING_SCHEDULED_SWEEP_INTERVAL_MINUTES),
        id='marketing_scheduled_campaigns',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    if settings.MARKETING_AUTOMATIONS_ENABLED:
        _scheduler.add_job(
            run_marketing_automations,
            trigger=CronTrigger(hour=settings.MARKETING_AUTOMATION_CRON_HOUR, minute=0),
            id='marketing_automations',
            replace_existing=True
        )

    _scheduler.start()
    logger.info(f"Scheduler started with {len(_scheduler.get_jobs())} jobs")
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None


# Función para obtener el scheduler (útil para pruebas y otros módulos)
def get_scheduler():
    global _scheduler
    return _scheduler
