import re
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, List, Tuple

SCHEDULE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M")
# Trailing "Z", "+03:00", "-0300" or "+03" on the time part
UTC_OFFSET = re.compile(r"(?:Z|[+-]\d{2}(?::?\d{2})?)$", re.IGNORECASE)

def parse_scheduled_at(value: str) -> datetime:
    """Parse an ISO-8601-like timestamp into a naive datetime at second precision.

    Fractional seconds and any UTC offset are dropped, matching how existing
    booking timestamps are stored.
    """
    if not isinstance(value, str):
        raise ValueError("scheduled time must be a string")

    date_part, sep, time_part = value.strip().replace("T", " ").partition(" ")
    normalized = (date_part + sep + UTC_OFFSET.sub("", time_part))[:19]
    for fmt in SCHEDULE_FORMATS:
        try:
            return datetime.strptime(normalized, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised scheduled time: {value!r}")

def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap; touching intervals do not overlap"""
    return start_a < end_b and start_b < end_a

def booking_window(starts_at: datetime, duration_minutes: int) -> Tuple[datetime, datetime]:
    return starts_at, starts_at + timedelta(minutes=duration_minutes)

def iter_slot_starts(day: date, start_hour: int, end_hour: int, interval_minutes: int) -> Iterator[datetime]:
    """Yield candidate start times for every interval step in the working hours"""
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")
    current = datetime.combine(day, time(hour=start_hour))
    while current.date() == day and current.hour < end_hour:
        yield current
        current += timedelta(minutes=interval_minutes)

def free_slots(
    day: date,
    duration_minutes: int,
    busy: Iterable[Tuple[datetime, datetime]],
    start_hour: int,
    end_hour: int,
    interval_minutes: int,
) -> List[str]:
    """Return HH:MM start times whose window overlaps none of the busy intervals"""
    busy = list(busy)
    slots = []
    for slot_start in iter_slot_starts(day, start_hour, end_hour, interval_minutes):
        slot_start, slot_end = booking_window(slot_start, duration_minutes)
        if any(intervals_overlap(slot_start, slot_end, start, end) for start, end in busy):
            continue
        slots.append(slot_start.strftime("%H:%M"))
    return slots
