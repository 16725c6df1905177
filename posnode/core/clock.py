"""
POS Node — Clock helpers

Timestamps are stored in UTC; the per-day order counter reads the store's
local date instead.
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from posnode.core.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def store_now() -> datetime:
    """Current wall-clock time in the store's own timezone."""
    return datetime.now(ZoneInfo(get_settings().STORE_TIMEZONE))
