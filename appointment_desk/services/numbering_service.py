"""Dense per-day numbering of confirmed appointments.

The whole day is renumbered after every mutation instead of patching numbers
incrementally, so the stored order can never drift from the start times.
"""
import logging
from collections.abc import Iterable
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.core.errors import IntegrityFault
from appointment_desk.models.appointment import Appointment
from appointment_desk.services.overlap_service import get_appointments_for_day

logger = logging.getLogger(__name__)


def compute_sequence_numbers(appointments: Iterable[Appointment]) -> dict[int, int]:
    """Map appointment id -> 1-based position by (start_time, id)."""
    ordered = sorted(appointments, key=lambda a: (a.start_time, a.id))
    return {a.id: position for position, a in enumerate(ordered, start=1)}


def _check_ranges(day: date, appointments: list[Appointment]) -> None:
    bad = [a.id for a in appointments if a.end_time <= a.start_time]
    if bad:
        raise IntegrityFault(f"Appointment(s) {bad} on {day.isoformat()} end before they start")


async def renumber(session: AsyncSession, day: date) -> bool:
    """Rewrite sequence numbers of `day` to 1..k. Returns False if the day could not be repaired.

    Failures are logged and left for the next renumber of the same day.
    """
    appointments = await get_appointments_for_day(session, day)
    try:
        _check_ranges(day, appointments)
    except IntegrityFault as e:
        logger.error("Renumbering %s around corrupt data: %s", day.isoformat(), e)
    assignments = compute_sequence_numbers(appointments)
    changed = 0
    for appointment in appointments:
        number = assignments[appointment.id]
        if appointment.sequence_number != number:
            appointment.sequence_number = number
            session.add(appointment)
            changed += 1
    if not changed:
        return True
    try:
        await session.flush()
    except SQLAlchemyError as e:
        logger.exception("Renumber of %s failed, numbering left inconsistent: %s", day.isoformat(), e)
        return False
    logger.debug("Renumbered %d appointment(s) on %s", changed, day.isoformat())
    return True
