"""
Slot generator: operating hours + interval -> ordered "HH:MM" start times.

generate_slots is pure and knows nothing about dates or "now". The booking-now policy
(bookable_times) is a separate filter applied by callers that offer times to diners:
  - today: nothing before the later of open_time and now rounded up to the slot grid;
  - any day: nothing in the final cutoff window before close (a party must get a full sitting).
"""
import math
from datetime import date, datetime

MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """Minutes since midnight for an "HH:MM" string. Raises ValueError on malformed input."""
    try:
        hours_s, minutes_s = value.strip().split(":")
        hours, minutes = int(hours_s), int(minutes_s)
    except (AttributeError, ValueError):
        raise ValueError(f"expected HH:MM, got {value!r}") from None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"time out of range: {value!r}")
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def generate_slots(open_time: str, close_time: str, interval_minutes: int) -> list[str]:
    """
    Every start from open_time stepping by interval_minutes while start < close_time.
    open == close (or a reversed window) yields []. The last slot may run past close.
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")
    start = parse_hhmm(open_time)
    close = parse_hhmm(close_time)
    slots: list[str] = []
    while start < close:
        slots.append(format_hhmm(start))
        start += interval_minutes
    return slots


def _minute_of_day_ceil(now: datetime) -> int:
    m = now.hour * 60 + now.minute
    if now.second or now.microsecond:
        m += 1
    return m


def round_up_to_grid(open_time: str, interval_minutes: int, now: datetime) -> int:
    """First grid boundary (open + k*interval) at or after now's time of day, in minutes."""
    open_m = parse_hhmm(open_time)
    m = _minute_of_day_ceil(now)
    if m <= open_m:
        return open_m
    return open_m + math.ceil((m - open_m) / interval_minutes) * interval_minutes


def current_slot_start(open_time: str, close_time: str, interval_minutes: int, now: datetime) -> str | None:
    """Start of the grid slot containing now's time of day, or None outside operating hours."""
    open_m = parse_hhmm(open_time)
    close_m = parse_hhmm(close_time)
    m = now.hour * 60 + now.minute
    if m < open_m or m >= close_m:
        return None
    return format_hhmm(open_m + ((m - open_m) // interval_minutes) * interval_minutes)


def bookable_times(
    open_time: str,
    close_time: str,
    interval_minutes: int,
    day: date,
    now: datetime,
    cutoff_minutes: int = 60,
) -> list[str]:
    """Generator output filtered by the booking-now policy. `now` is branch wall-clock."""
    today = now.date()
    if day < today:
        return []
    times = generate_slots(open_time, close_time, interval_minutes)
    last_start = parse_hhmm(close_time) - cutoff_minutes
    earliest = round_up_to_grid(open_time, interval_minutes, now) if day == today else 0
    return [t for t in times if earliest <= parse_hhmm(t) <= last_start]
