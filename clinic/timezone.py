"""Helpers for working with the clinic's configured timezone."""
from __future__ import annotations

import time
from datetime import datetime
from zoneinfo import ZoneInfo

from .settings import get_settings


def clinic_now() -> datetime:
    """Return the current datetime in the clinic timezone."""
    return datetime.now(ZoneInfo(get_settings().timezone))


def clinic_now_iso() -> str:
    """Return an ISO 8601 timestamp anchored to the clinic timezone."""
    return clinic_now().isoformat()


def clinic_today_iso() -> str:
    return clinic_now().date().isoformat()


def epoch_millis() -> int:
    return int(time.time() * 1000)
