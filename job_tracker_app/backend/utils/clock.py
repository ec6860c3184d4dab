"""
Timestamps are stored as naive UTC, matching what SQLite hands back.
"""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return utcnow().date()
