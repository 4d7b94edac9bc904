"""Time utilities."""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def parse_iso_timestamp(value: object) -> datetime | None:
    """Parse ISO timestamp string to datetime."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def parse_schedule(date: object, time: object) -> datetime | None:
    """Combine schedule date (YYYY-MM-DD) and time (HH:MM[:SS]) columns."""
    if not isinstance(date, str) or not date.strip():
        return None
    if isinstance(time, str) and time.strip():
        return parse_iso_timestamp(f"{date.strip()}T{time.strip()}")
    return parse_iso_timestamp(date)


def format_time(seconds: int) -> str:
    """Format remaining seconds as H:MM:SS."""
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"
