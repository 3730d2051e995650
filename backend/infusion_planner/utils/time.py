from datetime import time, timedelta

DAY = timedelta(days=1)


def since_midnight(t: time) -> timedelta:
    if t is None:
        raise ValueError("time must not be None")
    return timedelta(hours=t.hour, minutes=t.minute, seconds=t.second, microseconds=t.microsecond)


def format_clock(offset: timedelta) -> str:
    """Render an offset since midnight as HH:MM, wrapping past 24h."""
    total_minutes = int((offset % DAY).total_seconds()) // 60
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"
