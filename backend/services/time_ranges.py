from datetime import date, datetime, time, timedelta
from typing import Iterator


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    # Half-open ranges: back-to-back intervals do not overlap.
    return start_a < end_b and start_b < end_a


def day_of_week(day: date) -> int:
    """Day index with Sunday as 0, matching ``InstructorSchedule.day_of_week``."""
    return (day.weekday() + 1) % 7


def iterate_dates(date_from: date, date_to: date) -> Iterator[date]:
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


def partition_window(window_start: time, window_end: time, slot_minutes: int) -> list[tuple[time, time]]:
    """Split ``[window_start, window_end)`` into whole ``slot_minutes`` chunks.

    A trailing chunk shorter than ``slot_minutes`` is dropped.
    """
    anchor = date.min
    current = datetime.combine(anchor, window_start)
    end = datetime.combine(anchor, window_end)
    step = timedelta(minutes=slot_minutes)

    chunks: list[tuple[time, time]] = []
    while current + step <= end:
        chunks.append((current.time(), (current + step).time()))
        current += step

    return chunks


def hours_until(start: datetime, now: datetime) -> float:
    return (start - now).total_seconds() / 3600
