import logging
from datetime import date, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_desk.core.errors import NotFoundError, ValidationError
from appointment_desk.models.appointment import Appointment, AppointmentCreate
from appointment_desk.services.numbering_service import renumber
from appointment_desk.services.overlap_service import check_no_overlap
from appointment_desk.services.time_range import TimeRange

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require(fields: dict[str, object]) -> None:
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise ValidationError(f"Required field(s) missing: {', '.join(missing)}.")


async def count_appointments_on(session: AsyncSession, day: date) -> int:
    result = await session.execute(select(func.count()).select_from(Appointment).where(Appointment.day == day))
    return result.scalar_one()


async def create_appointment(session: AsyncSession, data: AppointmentCreate) -> Appointment:
    name, counterpart = _clean(data.name), _clean(data.counterpart)
    _require({"name": name, "day": data.day, "counterpart": counterpart})
    time_range = TimeRange.parse(data.start_time, data.end_time)

    await check_no_overlap(session, data.day, time_range)

    # provisional; the renumber pass below makes it authoritative
    provisional = await count_appointments_on(session, data.day) + 1
    appointment = Appointment(
        name=name,
        day=data.day,
        start_time=time_range.start_str,
        end_time=time_range.end_str,
        reason=_clean(data.reason),
        counterpart=counterpart,
        phone=_clean(data.phone),
        sequence_number=provisional,
    )
    session.add(appointment)
    await session.flush()
    await renumber(session, data.day)
    await session.refresh(appointment)
    logger.info(
        "Appointment %s created on %s %s-%s (#%d)",
        appointment.id,
        appointment.day,
        appointment.start_time,
        appointment.end_time,
        appointment.sequence_number,
    )
    return appointment


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    appointment = await session.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found.")
    return appointment


async def update_appointment(
    session: AsyncSession, appointment_id: int, data: AppointmentCreate
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    name, reason, counterpart = _clean(data.name), _clean(data.reason), _clean(data.counterpart)
    _require({"name": name, "day": data.day, "reason": reason, "counterpart": counterpart})
    time_range = TimeRange.parse(data.start_time, data.end_time)

    # on conflict nothing below runs and the record stays as it was
    await check_no_overlap(session, data.day, time_range, exclude_id=appointment.id)

    old_day = appointment.day
    appointment.name = name
    appointment.day = data.day
    appointment.start_time = time_range.start_str
    appointment.end_time = time_range.end_str
    appointment.reason = reason
    appointment.counterpart = counterpart
    if data.phone is not None:
        appointment.phone = _clean(data.phone)
    session.add(appointment)
    await session.flush()

    if old_day != appointment.day:
        await renumber(session, old_day)
    await renumber(session, appointment.day)
    await session.refresh(appointment)
    return appointment


async def delete_appointment(session: AsyncSession, appointment_id: int) -> None:
    appointment = await get_appointment(session, appointment_id)
    day = appointment.day
    await session.delete(appointment)
    await session.flush()
    await renumber(session, day)
    logger.info("Appointment %s on %s deleted", appointment_id, day)


async def list_appointments(
    session: AsyncSession, day: date | None = None, from_date: date | None = None
) -> list[Appointment]:
    q = select(Appointment).order_by(Appointment.day, Appointment.start_time, Appointment.id)
    if day:
        q = q.where(Appointment.day == day)
    if from_date:
        q = q.where(Appointment.day >= from_date)
    result = await session.execute(q)
    return list(result.scalars().all())


async def delete_past_appointments(session: AsyncSession, today: date, retention_days: int = 0) -> int:
    """Delete appointments whose day is before `today - retention_days`. Returns count deleted.

    Whole days are removed, so no renumbering is needed.
    """
    cutoff = today - timedelta(days=retention_days)
    result = await session.execute(delete(Appointment).where(Appointment.day < cutoff))
    await session.flush()
    return result.rowcount or 0
