from datetime import datetime, timezone
import time

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


def days_between(earlier_ms: int, later_ms: int) -> float:
    return (later_ms - earlier_ms) / MS_PER_DAY


def hour_of_day(timestamp_ms: int) -> int:
    # UTC keeps hour matching independent of the host timezone
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).hour
