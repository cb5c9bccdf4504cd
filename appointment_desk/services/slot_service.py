from collections.abc import Iterable
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.core.config import settings
from appointment_desk.core.errors import IntegrityFault
from appointment_desk.services.overlap_service import get_appointments_for_day
from appointment_desk.services.time_range import TimeRange, parse_clock


def free_slots(booked: Iterable[TimeRange], work_start: str, work_end: str) -> list[TimeRange]:
    """Gaps of [work_start, work_end) not covered by `booked`, chronological.

    `booked` must be sorted by start. A booked range with end <= start is an
    IntegrityFault.
    """
    window = TimeRange.parse(work_start, work_end)
    cursor = window.start
    slots: list[TimeRange] = []
    for rng in booked:
        if rng.end <= rng.start:
            raise IntegrityFault(f"Stored appointment {rng.start_str}-{rng.end_str} has a non-positive length.")
        if cursor < rng.start:
            slots.append(TimeRange(cursor, min(rng.start, window.end)))
        cursor = max(cursor, rng.end)
        if cursor >= window.end:
            break
    if cursor < window.end:
        slots.append(TimeRange(cursor, window.end))
    # appointments entirely outside the window produce nothing
    return [s for s in slots if s.start < s.end]


async def find_free_slots(
    session: AsyncSession,
    day: date,
    work_start: str | None = None,
    work_end: str | None = None,
) -> list[TimeRange]:
    appointments = await get_appointments_for_day(session, day)
    booked = [TimeRange(parse_clock(a.start_time), parse_clock(a.end_time)) for a in appointments]
    return free_slots(
        booked,
        work_start or settings.work_day_start,
        work_end or settings.work_day_end,
    )
