from datetime import date, datetime, timezone, timedelta

from app.core.timezone_utils import convert_utc_to_local, gym_today, local_day_bounds_utc, to_naive_utc, utcnow


def test_utcnow_is_naive():
    now = utcnow()
    assert now.tzinfo is None
    assert abs(datetime.now(timezone.utc).replace(tzinfo=None) - now) < timedelta(seconds=5)


def test_to_naive_utc_aware_input():
    # Aware +02:00 should convert to 08:00 UTC
    aware_dt = datetime(2025, 7, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    utc_dt = to_naive_utc(aware_dt)
    assert utc_dt.tzinfo is None
    assert utc_dt.hour == 8 and utc_dt.minute == 0


def test_to_naive_utc_keeps_naive_and_none():
    naive = datetime(2025, 7, 1, 10, 0, 0)
    assert to_naive_utc(naive) == naive
    assert to_naive_utc(None) is None


def test_convert_utc_to_local_handles_dst():
    tz = 'America/New_York'
    # Julio: EDT (UTC-4); enero: EST (UTC-5)
    summer = convert_utc_to_local(datetime(2025, 7, 1, 14, 0, 0), tz)
    winter = convert_utc_to_local(datetime(2025, 1, 15, 14, 0, 0, tzinfo=timezone.utc), tz)
    assert summer.hour == 10
    assert winter.hour == 9
    assert summer.tzinfo is not None


def test_local_day_bounds_utc():
    start, end = local_day_bounds_utc(date(2025, 7, 1), date(2025, 7, 2), 'America/Mexico_City')
    # Mexico City no tiene horario de verano desde 2022 (UTC-6)
    assert start == datetime(2025, 7, 1, 6, 0, 0)
    assert end == datetime(2025, 7, 3, 6, 0, 0)


def test_gym_today_uses_local_date():
    # Kiribati va UTC+14: su fecha nunca es anterior a la de UTC
    assert gym_today('UTC') <= utcnow().date()
    assert gym_today('Pacific/Kiritimati') >= utcnow().date()
