import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.core.errors import SchedulingConflict
from appointment_desk.models.appointment import Appointment
from appointment_desk.services.time_range import TimeRange, at, overlaps

logger = logging.getLogger(__name__)


async def get_appointments_for_day(session: AsyncSession, day: date) -> list[Appointment]:
    """Confirmed appointments of `day`, ascending by start time."""
    result = await session.execute(
        select(Appointment)
        .where(Appointment.day == day)
        .order_by(Appointment.start_time, Appointment.id)
    )
    return list(result.scalars().all())


async def check_no_overlap(
    session: AsyncSession,
    day: date,
    time_range: TimeRange,
    exclude_id: int | None = None,
) -> None:
    """Raise SchedulingConflict on the first appointment of `day` overlapping `time_range`.

    `exclude_id` skips the appointment being edited. Always reads fresh from the
    database so the check sees the final target day and time.
    """
    start, end = time_range.on(day)
    for appointment in await get_appointments_for_day(session, day):
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        if overlaps(start, end, at(day, appointment.start_time), at(day, appointment.end_time)):
            logger.info(
                "Overlap on %s: %s-%s conflicts with appointment %s (%s-%s)",
                day,
                time_range.start_str,
                time_range.end_str,
                appointment.id,
                appointment.start_time,
                appointment.end_time,
            )
            raise SchedulingConflict(
                appointment.id,
                f"The selected time is not free: it overlaps appointment #{appointment.sequence_number} "
                f"({appointment.start_time}-{appointment.end_time}) on {day.isoformat()}.",
            )
