from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

ONE_MS = timedelta(milliseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def millis_between(start: datetime, end: datetime) -> int:
    """Whole milliseconds from start to end (negative if end precedes start)."""
    return (end - start) // ONE_MS


def format_duration_ms(total_ms: int) -> str:
    """Render a duration as HH:MM:SS, truncating to whole seconds."""
    safe_seconds = max(0, int(total_ms)) // 1000
    hours, remainder = divmod(safe_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_hours(hours: float | None) -> str:
    """Render the server's fractional total hours as HH:MM:SS."""
    if not hours:
        return "00:00:00"
    return format_duration_ms(int(hours * 3600) * 1000)


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO timestamp and normalize to UTC."""
    if not value:
        return None

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        # Stored values should be timezone-aware; treat naive values as UTC for resilience.
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_clock_time(value: str | None) -> time | None:
    """Parse the server's "HH:mm:ss" clock string. Fractional seconds are dropped."""
    if not value:
        return None

    parts = value.strip().split(":")
    if len(parts) < 3:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(float(parts[2]))
        return time(hours, minutes, seconds)
    except ValueError:
        return None


def resolve_clock_in_instant(
    clock_text: str | None,
    date_text: str | None,
    tz: ZoneInfo,
    now_utc: datetime,
) -> datetime | None:
    """Turn a server clock-in time into an aware UTC instant.

    The record's own date is used when it parses. Without one, the time is
    placed on today's local date, moved back a day if that would put the
    clock-in in the future (a session opened before midnight). Returns None
    when the clock string is unusable.
    """
    clock = parse_clock_time(clock_text)
    if clock is None:
        return None

    record_day: date | None = None
    if date_text:
        try:
            record_day = date.fromisoformat(date_text.strip()[:10])
        except ValueError:
            record_day = None

    if record_day is not None:
        return datetime.combine(record_day, clock, tzinfo=tz).astimezone(timezone.utc)

    today_local = now_utc.astimezone(tz).date()
    candidate = datetime.combine(today_local, clock, tzinfo=tz).astimezone(timezone.utc)
    if candidate > now_utc:
        candidate = datetime.combine(today_local - timedelta(days=1), clock, tzinfo=tz).astimezone(timezone.utc)
    return candidate


def local_clock_display(now_utc: datetime, tz: ZoneInfo) -> str:
    return now_utc.astimezone(tz).strftime("%H:%M:%S")
