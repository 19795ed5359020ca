"""
Time normalization helpers.
"""

from datetime import datetime, timezone


def iso_utc(ts: float) -> str:
    """Epoch seconds -> ISO-8601 with millisecond precision and Z suffix."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def date_label(ts_ms: int) -> str:
    """Epoch ms -> short chart label, e.g. "Jan 5"."""
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return f"{dt:%b} {dt.day}"
