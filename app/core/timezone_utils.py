"""
Utilidades para el manejo de fechas y zonas horarias en el sistema.

Todas las marcas de tiempo se guardan en UTC naive; la zona horaria del
gimnasio solo se usa para presentar y agrupar datos (reportes).
"""
from datetime import datetime, timezone, date, timedelta
from typing import Optional
import pytz


def utcnow() -> datetime:
    """Hora actual en UTC sin tzinfo (formato de almacenamiento)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normaliza un datetime al formato de almacenamiento.

    - Si `dt` es aware, se convierte a UTC y se elimina el tzinfo.
    - Si `dt` es naive, se asume que ya está en UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def convert_utc_to_local(utc_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime UTC (naive o aware) a la zona horaria del gimnasio.

    Args:
        utc_dt: Datetime en UTC
        gym_timezone: Zona horaria del gimnasio (ej: 'America/Mexico_City')

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    tz = pytz.timezone(gym_timezone)
    return utc_dt.astimezone(tz)


def local_day_bounds_utc(start: date, end: date, gym_timezone: str):
    """
    Devuelve (inicio, fin) en UTC naive que cubren los días locales [start, end].
    El fin es exclusivo (medianoche local del día siguiente a `end`).
    """
    tz = pytz.timezone(gym_timezone)
    local_start = tz.localize(datetime(start.year, start.month, start.day))
    local_end = tz.localize(datetime(end.year, end.month, end.day) + timedelta(days=1))
    return to_naive_utc(local_start), to_naive_utc(local_end)


def gym_today(gym_timezone: str) -> date:
    """Fecha actual en la zona horaria del gimnasio."""
    return convert_utc_to_local(utcnow(), gym_timezone).date()
