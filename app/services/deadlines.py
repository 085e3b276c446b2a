# app/services/deadlines.py
import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devuelve datetimes sin zona; se interpretan como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def attempt_deadline(started_at: datetime, duration_minutes: int,
                     ends_at: Optional[datetime] = None) -> datetime:
    """
    Fecha límite efectiva de un intento: la duración del examen,
    acotada por el cierre de la ventana del examen si existe.
    """
    duration_deadline = ensure_utc(started_at) + timedelta(minutes=duration_minutes)
    if ends_at is None:
        return duration_deadline
    return min(duration_deadline, ensure_utc(ends_at))


def remaining_seconds(deadline_at: datetime, now: datetime) -> int:
    diff = (ensure_utc(deadline_at) - ensure_utc(now)).total_seconds()
    return max(0, math.floor(diff))


def is_expired(deadline_at: datetime, now: datetime) -> bool:
    return ensure_utc(now) > ensure_utc(deadline_at)


def elapsed_seconds(started_at: datetime, ended_at: datetime) -> int:
    diff = (ensure_utc(ended_at) - ensure_utc(started_at)).total_seconds()
    return max(0, math.floor(diff))
