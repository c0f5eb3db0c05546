import os
from typing import List, Optional, Union
from functools import lru_cache
import logging

import pytz
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Configurar el logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Permitir campos extra en .env
    )

    # Configuración básica
    API_V1_STR: str = "/api/v1"

    # Información del proyecto
    PROJECT_NAME: str = "GymCore API"
    PROJECT_DESCRIPTION: str = "API con FastAPI para la gestión de socios, clases, membresías e inventario de un gimnasio"
    VERSION: str = "0.1.0"

    # Debug mode
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "False").lower() in ("true", "1", "t")

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Base de datos (SQLite local si no se configura PostgreSQL)
    DATABASE_URL: str = "sqlite:///./gymcore.db"

    @field_validator("DATABASE_URL", mode="before")
    def ensure_proper_url_format(cls, v: Optional[str]) -> str:
        """Asegura que DATABASE_URL esté en el formato correcto."""
        if not v:
            logger.warning("DATABASE_URL vacío, usando SQLite local")
            return "sqlite:///./gymcore.db"
        if v.startswith('postgres://'):
            logger.info("Corrigiendo formato de postgres:// a postgresql://")
            return 'postgresql://' + v[len('postgres://'):]
        return v

    # Zona horaria del gimnasio (para reportes y agrupaciones por hora/día)
    GYM_TIMEZONE: str = "UTC"

    @field_validator("GYM_TIMEZONE")
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Zona horaria inválida: {v}")
        return v

    # Logging
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    # Tareas programadas
    SCHEDULER_ENABLED: bool = True
    MEMBERSHIP_EXPIRY_CRON_HOUR: int = 0
    RETENTION_RECOMPUTE_CRON_HOUR: int = 2
    WAITLIST_SWEEP_INTERVAL_MINUTES: int = 5

    # Reservas y lista de espera
    WAITLIST_ACCEPTANCE_WINDOW_MINUTES: int = 120
    BOOKING_REFUND_GRACE_HOURS: int = 2

    # Asistencia
    CHECK_IN_REQUIRES_ACTIVE_MEMBERSHIP: bool = True

    # Retención
    RETENTION_HIGH_THRESHOLD: int = 60
    RETENTION_MEDIUM_THRESHOLD: int = 30
    RETENTION_INACTIVITY_DAYS: int = 14
    RETENTION_EXPIRY_WARNING_DAYS: int = 7
    RETENTION_FOLLOW_UP_COOLDOWN_DAYS: int = 14

    # Marketing
    MARKETING_AUTOMATIONS_ENABLED: bool = True
    MARKETING_AUTOMATION_CRON_HOUR: int = 9
    MARKETING_SCHEDULED_SWEEP_INTERVAL_MINUTES: int = 15
    MARKETING_REENGAGEMENT_INACTIVE_DAYS: int = 30
    MARKETING_BIRTHDAY_MESSAGE: str = "¡Feliz cumpleaños, {{first_name}}! Te esperamos con {{special_offer}}."
    MARKETING_REENGAGEMENT_MESSAGE: str = "{{first_name}}, te echamos de menos. Vuelve esta semana y disfruta {{special_offer}}."

    # Inventario
    DEFAULT_LOW_STOCK_THRESHOLD: int = 5

    # Paginación y reportes
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100
    MAX_REPORT_DAYS: int = 365


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
