"""
Clock helper — naive UTC timestamps, matching how DateTime columns are stored.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
